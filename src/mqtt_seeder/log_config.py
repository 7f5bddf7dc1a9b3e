"""
Apply log level from config or env.

Single log level for all loggers. An explicit value wins over SEEDER_LOG_LEVEL.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_level(raw: str) -> int:
    if not raw or not str(raw).strip():
        return logging.INFO
    raw = str(raw).strip().upper()
    if raw.isdigit():
        return int(raw)
    level = getattr(logging, raw, logging.INFO)
    return level if isinstance(level, int) else logging.INFO


def level_from_env(raw: Optional[str] = None) -> int:
    """
    Resolve log level: raw if given, else SEEDER_LOG_LEVEL env, else INFO.
    """
    if raw:
        return _parse_level(raw)
    env = os.environ.get("SEEDER_LOG_LEVEL", "").strip()
    return _parse_level(env) if env else logging.INFO


def apply_log_level(level: int) -> None:
    """Set root logger level so every module logger uses it."""
    logging.getLogger().setLevel(level)


def configure_logging(raw: Optional[str] = None) -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    apply_log_level(level_from_env(raw))
