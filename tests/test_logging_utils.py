from __future__ import annotations

import logging

import pytest

from proofread.logging_utils import resolve_level, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    libraries = {name: logging.getLogger(name).level for name in ("openai", "httpx", "custom")}
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, library_level in libraries.items():
        logging.getLogger(name).setLevel(library_level)


def test_resolve_level():
    assert resolve_level(logging.DEBUG) == logging.DEBUG
    assert resolve_level(" warning ") == logging.WARNING
    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_library_loggers_are_capped(restore_logging):
    setup_logging(level="DEBUG")

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("openai").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_stricter_level_wins_over_library_default(restore_logging):
    setup_logging(level=logging.ERROR, library_levels={"custom": logging.INFO})
    assert logging.getLogger("custom").level == logging.ERROR


def test_file_log_records_thread_name(tmp_path, restore_logging):
    log_path = tmp_path / "logs" / "worker.log"
    logger = setup_logging(log_path=log_path)

    logger.info("chunk done")
    for handler in logging.getLogger().handlers:
        handler.flush()

    line = log_path.read_text(encoding="utf-8").strip()
    assert "MainThread proofread: chunk done" in line
