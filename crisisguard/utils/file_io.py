# crisisguard/utils/file_io.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — file_io utilities
----------------------------------------------
Safe helper for reading small text files (system-instruction prompts).

Be tolerant: on read errors, log and return a default instead of crashing.
A missing prompt file must never take the crisis flow down.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def read_text_safely(
    path: Path,
    default: Optional[str] = None,
    *,
    strip: bool = False,
    log_missing: bool = True,
) -> Optional[str]:
    """
    Read a UTF-8 text file and return its content.

    - If the file does not exist, returns `default` (logged at WARNING
      when log_missing=True).
    - On other read failures, logs and returns `default`.
    - If strip=True, leading/trailing whitespace is removed.
    """
    if not path.is_file():
        if log_missing:
            logger.warning("read_text_safely: file not found: %s", path)
        return default

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("read_text_safely: failed to read %s: %s", path, exc)
        return default

    return text.strip() if strip else text
