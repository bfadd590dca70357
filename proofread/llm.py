"""Correction client: one chunk in, corrected chunk out."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Optional

from openai import OpenAI

from .config import DEFAULT_BASE_URL, CorrectionConfig
from .errors import CorrectionServiceError
from .prompt import build_messages

logger = logging.getLogger(__name__)


def build_openai_client(config: CorrectionConfig) -> OpenAI:
    # Retries are handled by CorrectionClient with a fixed delay.
    return OpenAI(
        api_key=os.getenv("OPENAI_API_KEY"),
        base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL),
        timeout=config.request_timeout_s,
        max_retries=0,
    )


def _message_content(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


class CorrectionClient:
    """Sends chunks to a chat-completions endpoint with bounded retries.

    ``openai_client`` is anything shaped like ``openai.OpenAI``: only
    ``chat.completions.create`` is used, so tests pass a small fake. An
    empty answer counts as a failed attempt, never as "nothing to fix".
    """

    def __init__(
        self,
        openai_client: Any,
        config: CorrectionConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.openai_client = openai_client
        self.config = config
        self.sleep = sleep

    @classmethod
    def from_config(cls, config: CorrectionConfig) -> "CorrectionClient":
        return cls(build_openai_client(config), config)

    def _request(self, chunk: str) -> str:
        response = self.openai_client.chat.completions.create(
            model=self.config.model,
            messages=build_messages(chunk),
            temperature=self.config.temperature,
            timeout=self.config.request_timeout_s,
        )
        content = _message_content(response)
        if not content or not content.strip():
            raise ValueError("No content returned by the correction service.")
        return content

    def correct_chunk(self, chunk: str) -> str:
        max_retries = self.config.max_retries
        last_error = ""
        for attempt in range(1, max_retries + 1):
            logger.info("Sending chunk (attempt %d/%d): %d characters", attempt, max_retries, len(chunk))
            started = time.monotonic()
            try:
                corrected = self._request(chunk)
            except Exception as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "Attempt %d/%d failed after %.0fms: %s",
                    attempt,
                    max_retries,
                    (time.monotonic() - started) * 1000,
                    last_error,
                )
                if attempt < max_retries:
                    self.sleep(self.config.retry_delay_s)
                continue
            logger.info(
                "Chunk corrected on attempt %d in %.0fms (%d -> %d characters)",
                attempt,
                (time.monotonic() - started) * 1000,
                len(chunk),
                len(corrected),
            )
            return corrected

        logger.error("Chunk correction failed after %d attempts: %s", max_retries, last_error)
        raise CorrectionServiceError(
            f"Chunk correction failed after {max_retries} attempts: {last_error}",
            attempts=max_retries,
            last_error=last_error,
        )
