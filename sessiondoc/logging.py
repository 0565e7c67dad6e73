"""Logging utilities for sessiondoc commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_ROOT = "sessiondoc"
_CONSOLE_FORMAT = "[sessiondoc] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
# Marks handlers installed here so reconfiguring only replaces our own.
_OWNED = "_sessiondoc_handler"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``sessiondoc.<name>``, or the package logger itself."""
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def _owned(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    setattr(handler, _OWNED, True)
    return handler


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> logging.Logger:
    """Send sessiondoc logs to stderr and, optionally, to ``log_file``.

    stdout stays free for generated markdown. Calling this again swaps the
    handlers it installed earlier rather than stacking new ones.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False

    for handler in [h for h in logger.handlers if getattr(h, _OWNED, False)]:
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_owned(logging.StreamHandler(sys.stderr), level, _CONSOLE_FORMAT))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _owned(logging.FileHandler(log_file, encoding="utf-8"), level, _FILE_FORMAT)
        )
    return logger


__all__ = ["configure_logging", "get_logger"]
