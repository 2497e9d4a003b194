"""Structured logging setup for the claim evaluation pipeline."""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional, Dict, Any, Iterator
from pathlib import Path

# Per-job context; each asyncio task sees its own copy
_log_context: ContextVar[Dict[str, Any]] = ContextVar("claim_log_context", default={})

DEFAULT_CONTEXT_FIELDS = {"user_id": "-"}


class ContextFilter(logging.Filter):
    """Add job context information to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record."""
        for key, value in DEFAULT_CONTEXT_FIELDS.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        for key, value in _log_context.get().items():
            setattr(record, key, value)
        return True


_context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(user_id)s] %(message)s",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for log messages
        log_file: Optional path to log file

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)
        root_logger.addHandler(file_handler)

    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(numeric_level, logging.INFO))

    return root_logger


def get_context() -> Dict[str, Any]:
    """Return a copy of the current log context."""
    return dict(_log_context.get())


@contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """
    Scope context fields to a block, restoring the previous context on exit.

    Example:
        with log_context(user_id=user_id):
            await pipeline.run(user_id)
    """
    updated = dict(_log_context.get())
    updated.update(kwargs)
    token = _log_context.set(updated)
    try:
        yield
    finally:
        _log_context.reset(token)
