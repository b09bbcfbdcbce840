# crisisguard/core/safety.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Input safety helpers
----------------------------------
Central place for cleaning user text before it reaches the advisory
backend or the chat history:

- sanitize_user_text() : chat messages, typed addresses.
- normalize_severity() : situation description for protocol generation;
                         empty input becomes the default marker, never "".

These functions are *pure* (no network, no I/O) so they are easy to test.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from crisisguard.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class SanitizedTextResult:
    """
    Result of sanitize_user_text().

    Attributes
    ----------
    original:
        Original raw text from the client (None -> "").
    sanitized:
        Cleaned version used for the backend + history.
    truncated:
        True if we had to cut the text at the character limit.
    too_short:
        True if sanitized text is empty. Callers treat this as "ignore".
    """
    original: str
    sanitized: str
    truncated: bool
    too_short: bool


_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_user_text(
    raw_text: Optional[str],
    max_chars: Optional[int] = None,
) -> SanitizedTextResult:
    """
    Clean up user text.

    - None -> "".
    - Remove control characters (newlines and tabs are kept).
    - Trim leading/trailing whitespace.
    - Truncate to `max_chars` (default settings.max_user_chars).
    """
    original = raw_text if isinstance(raw_text, str) else ""
    limit = settings.max_user_chars if max_chars is None else max_chars

    cleaned = _CONTROL_CHARS_RE.sub("", original).strip()

    truncated = False
    if limit > 0 and len(cleaned) > limit:
        cleaned = cleaned[:limit].rstrip()
        truncated = True
        logger.debug(
            "sanitize_user_text: truncated user text from %d to %d chars",
            len(original),
            len(cleaned),
        )

    return SanitizedTextResult(
        original=original,
        sanitized=cleaned,
        truncated=truncated,
        too_short=len(cleaned) == 0,
    )


def normalize_severity(
    raw_text: Optional[str],
    default: Optional[str] = None,
    max_chars: Optional[int] = None,
) -> str:
    """Return a non-empty situation description, capped at `max_chars`."""
    result = sanitize_user_text(raw_text, max_chars)
    if result.too_short:
        return default or settings.default_severity
    return result.sanitized
