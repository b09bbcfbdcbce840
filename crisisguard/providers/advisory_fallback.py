# crisisguard/providers/advisory_fallback.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Offline fallback messages
---------------------------------------
Last tier of the advisory chain. NEVER depends on network, NEVER fails.

    online  (OpenRouter-style)  → providers.advisory_online
    local   (Ollama)            → providers.advisory_local
    fallback (this module)      → fixed safety text / empty resource list
"""

from __future__ import annotations

from typing import List

from crisisguard.models.advisory_models import EmergencyResource

PROTOCOL_FALLBACK_TEXT = (
    "CRITICAL ERROR: Unable to contact AI Command. FOLLOW STANDARD PROTOCOLS: "
    "1. Ensure Safety. 2. Call Local Emergency Services (911/112). 3. Seek Shelter."
)

CHAT_FALLBACK_TEXT = (
    "I am having trouble connecting. Please ensure you are safe and call "
    "emergency services if needed."
)


def protocol_fallback() -> str:
    return PROTOCOL_FALLBACK_TEXT


def chat_fallback() -> str:
    return CHAT_FALLBACK_TEXT


def resources_fallback() -> List[EmergencyResource]:
    # Showing no resources beats showing invented ones.
    return []
