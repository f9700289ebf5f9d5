"""Logging setup shared by scripts and the application entry points."""

from __future__ import annotations

import logging

from .config import get_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a root handler using the configured level (LOG_LEVEL)."""
    resolved = (level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
