"""
Logging setup for the lead import service.

Request handlers, import worker threads and the upload session reaper all
log through ``logging.getLogger(__name__)``. Lines carry the thread name so
that output from concurrent import jobs can be told apart.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional


_is_configured = False

# Quiet at INFO; they would otherwise bury per-job progress lines.
_NOISY_LOGGERS = ("sqlalchemy.engine", "multipart", "openpyxl")

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s"


def _resolve_level(level: Optional[str]) -> str:
    name = (level or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        return "INFO"
    return name


def _build_config(log_level: str) -> Dict[str, Any]:
    loggers: Dict[str, Any] = {
        "app": {"level": log_level, "propagate": True},
    }
    for name in _NOISY_LOGGERS:
        loggers[name] = {"level": "WARNING", "propagate": True}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "lead_import": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "lead_import",
                "level": log_level,
            },
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": loggers,
    }


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the console handler once per process.

    Args:
        level: Level name such as "DEBUG" or "INFO". Unknown names fall back to INFO.
    """
    global _is_configured

    if _is_configured:
        return

    dictConfig(_build_config(_resolve_level(level)))
    _is_configured = True
