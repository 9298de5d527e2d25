"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
import logging.config
from typing import Any


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def text_length_for_log(value: str | None) -> int:
    """Transcript, notes and message bodies are logged by size only."""
    return len(value or "")


def configure_logging(level: str = "INFO") -> None:
    """Configure console logging once at application startup."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "notemate": {"level": level.upper(), "handlers": ["console"], "propagate": False},
            },
        }
    )
