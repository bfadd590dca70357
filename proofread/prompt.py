"""Prompt assembly utilities for proofreading."""

from __future__ import annotations

from typing import Dict, List

SYSTEM_PROMPT = (
    "You are an AI editor and an expert proofreader. Correct grammar, punctuation "
    "and spelling mistakes in the text you receive. Keep the original language, "
    "wording, line breaks and meaning wherever they are already correct. "
    "Return only the corrected text, in plain form, without comments, quotes "
    "or explanations."
)


def build_user_message(chunk: str) -> str:
    return f"Text to proofread:\n\n{chunk}"


def build_messages(chunk: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_message(chunk)},
    ]
