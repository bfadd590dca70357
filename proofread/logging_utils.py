from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from rich.logging import RichHandler

# Client libraries log every HTTP request at INFO; the worker's own chunk
# logs already cover that.
LIBRARY_LEVELS: Dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "urllib3": logging.WARNING,
    "werkzeug": logging.INFO,
}

FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    log_path: Optional[Path] = None,
    level: Union[int, str] = logging.INFO,
    library_levels: Optional[Dict[str, int]] = None,
) -> logging.Logger:
    """Route logs to a rich console and, optionally, a plain-text file.

    The file keeps the thread name so interleaved chunk logs from the batch
    pool can be told apart. Library loggers are capped at ``library_levels``
    unless the requested level is already stricter.
    """
    level = resolve_level(level)
    handlers: list = [RichHandler(rich_tracebacks=True, show_path=False, markup=False)]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, "%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)
    for name, library_level in (library_levels or LIBRARY_LEVELS).items():
        logging.getLogger(name).setLevel(max(level, library_level))
    return logging.getLogger("proofread")
