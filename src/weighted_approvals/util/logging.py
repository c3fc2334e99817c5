"""Logging utilities for weighted-approvals."""

from __future__ import annotations

import logging
import sys
from typing import Final, TextIO

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_LEVELS: Final[dict[str, int]] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}
_ANNOTATIONS: Final[frozenset[str]] = frozenset({"notice", "warning", "error"})


def configure_logging(level: str = "INFO", fmt: str | None = None, *, debug: bool = False) -> None:
    """Configure application logging.

    Args:
        level: Logging level name (e.g., "INFO", "DEBUG").
        fmt: Optional logging format string.
        debug: Force DEBUG level, mirroring the action's ``debug`` input.
    """

    logging.basicConfig(
        level=logging.DEBUG if debug else _normalize_level(level),
        format=fmt or DEFAULT_LOG_FORMAT,
        force=debug,
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module or component."""

    return logging.getLogger(name)


def annotate(kind: str, message: str, stream: TextIO | None = None) -> None:
    """Emit a GitHub Actions workflow annotation (``::notice::`` and friends).

    Args:
        kind: One of "notice", "warning" or "error".
        message: Annotation text; newlines are escaped as the runner requires.
        stream: Output stream, stdout by default.
    """

    if kind not in _ANNOTATIONS:
        raise ValueError(f"Unknown annotation kind: {kind}")
    escaped = message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    print(f"::{kind}::{escaped}", file=stream or sys.stdout)


def _normalize_level(level: str) -> int:
    normalized = level.strip().upper()
    return _LEVELS.get(normalized, logging.INFO)
