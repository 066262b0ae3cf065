"""Logging configuration helpers."""
from __future__ import annotations

import logging
import os


def _coerce_level(level: str | int) -> int:
    """Translate a user provided level into a numeric log level."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Configure the root logger for console output.

    The level defaults to ``FOLIOSCOPE_LOG_LEVEL`` and then WARNING. An
    unknown level name also falls back to WARNING. ``force`` replaces handlers
    installed by an earlier call.
    """

    try:
        resolved_level = _coerce_level(level if level is not None else os.getenv("FOLIOSCOPE_LOG_LEVEL", "WARNING"))
    except ValueError:
        resolved_level = logging.WARNING

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
        return

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=force,
    )

    # yfinance logs every failed symbol at ERROR; quote failures are reported by the fetcher
    logging.getLogger("yfinance").setLevel(logging.CRITICAL)


__all__ = ["configure_logging"]
