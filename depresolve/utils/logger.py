"""
Logging utilities for depresolve.

This module centralizes logger configuration and retrieval for the
depresolve package. Library use stays silent (a ``NullHandler`` is attached)
until :func:`setup_logging` installs a stderr handler, which the CLI does
according to its ``-v`` count.
"""

from __future__ import annotations

import os
import sys
import logging
import threading
from typing import IO, Any, MutableMapping, Optional, Tuple

from depresolve.constants import (
    LOG_DATE_FORMAT,
    LOG_DEFAULT_FORMAT,
    LOG_VERBOSE_FORMAT,
)

_ROOT = "depresolve"

_logging_configured: bool = False
_lock = threading.Lock()


class ColoredFormatter(logging.Formatter):
    """Logging formatter with optional ANSI color support."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str,
        *,
        datefmt: Optional[str] = None,
        use_color: bool = True,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not (self.use_color and _stderr_supports_color()):
            return super().format(record)

        color = self.COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        # Colour a copy so other handlers see the plain level name
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class PackageLogAdapter(logging.LoggerAdapter):
    """Prefix messages with the package they concern.

    Fetch and resolution logs interleave across many packages; the prefix
    keeps per-package attribution readable.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['package']}] {msg}", kwargs


def _stderr_supports_color() -> bool:
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stderr.isatty()
    except (AttributeError, OSError):
        return False


def level_for_verbosity(verbose: int) -> int:
    """Map a ``-v`` count to a logging level (0=WARNING, 1=INFO, 2+=DEBUG)."""
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(
    *,
    level: int = logging.INFO,
    verbose: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure logging for depresolve.

    Safe to call repeatedly; the previous handler is replaced.

    Args:
        level: Logging level (e.g., ``logging.INFO``, ``logging.DEBUG``).
        verbose: Include timestamps and logger names.
        stream: Output stream; defaults to ``sys.stderr``.
    """
    global _logging_configured

    with _lock:
        root_logger = logging.getLogger(_ROOT)
        root_logger.handlers.clear()
        root_logger.setLevel(level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(
            ColoredFormatter(
                LOG_VERBOSE_FORMAT if verbose else LOG_DEFAULT_FORMAT,
                datefmt=LOG_DATE_FORMAT,
                use_color=not os.environ.get("NO_COLOR"),
            )
        )

        root_logger.addHandler(handler)
        root_logger.propagate = False
        _logging_configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger within the depresolve namespace.

    Args:
        name: Logger name, with or without the ``depresolve.`` prefix.
    """
    if not name or name == _ROOT:
        logger = logging.getLogger(_ROOT)
    elif name.startswith(f"{_ROOT}."):
        logger = logging.getLogger(name)
    else:
        logger = logging.getLogger(f"{_ROOT}.{name}")

    root_logger = logging.getLogger(_ROOT)
    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    return logger


def get_package_logger(name: str, package: str) -> PackageLogAdapter:
    """Return a logger whose messages are prefixed with *package*."""
    return PackageLogAdapter(get_logger(name), {"package": package})


def is_logging_configured() -> bool:
    """Return True if depresolve logging has been configured."""
    return _logging_configured


def disable_logging() -> None:
    """Disable all depresolve logging output."""
    global _logging_configured

    with _lock:
        root_logger = logging.getLogger(_ROOT)
        root_logger.handlers.clear()
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(logging.NOTSET)
        _logging_configured = False
