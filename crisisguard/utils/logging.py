# crisisguard/utils/logging.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — logging utilities
----------------------------------------------
Central logging configuration for the session server.

We try to:
- Use one format across the location, advisory and session modules.
- Honour settings.debug (DEBUG in dev, INFO otherwise).
- Allow an explicit override via CRISISGUARD_LOG_LEVEL.
- Keep HTTP client / server chatter (urllib3, uvicorn.access, websockets)
  out of the way so session transitions stay readable.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("uvicorn.access", "urllib3", "httpx", "websockets")


def _level_from_env() -> Optional[int]:
    raw = os.getenv("CRISISGUARD_LOG_LEVEL")
    if not raw:
        return None
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else None


def setup_logging(
    *,
    debug: bool = False,
    level: Optional[int] = None,
) -> None:
    """
    Configure root logging for the process.

    Parameters
    ----------
    debug:
        If True, default log level becomes DEBUG, otherwise INFO.
        Wired from settings.debug in crisisguard.main.
    level:
        Explicit logging level. Wins over CRISISGUARD_LOG_LEVEL,
        which in turn wins over the debug flag.

    Calling it again only adjusts levels on the existing handlers.
    """
    base_level = level if level is not None else _level_from_env()
    if base_level is None:
        base_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(base_level)
        for handler in root.handlers:
            handler.setLevel(base_level)
        return

    logging.basicConfig(level=base_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    noisy_level = os.getenv("CRISISGUARD_NOISY_LOG_LEVEL", "WARNING")
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    """
    Thin wrapper around logging.getLogger.

    Usage:
        from crisisguard.utils import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
