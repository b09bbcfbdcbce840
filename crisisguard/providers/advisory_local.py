# crisisguard/providers/advisory_local.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Local Advisory Provider (Ollama)
----------------------------------------------
Second tier, used when every online model failed. No web grounding here,
so replies carry no sources.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from crisisguard.core.config import Settings, settings
from crisisguard.models.advisory_models import AdvisoryReply

logger = logging.getLogger(__name__)


class AdvisoryLocalError(Exception):
    """Raised when the local tier fails in a recoverable way."""


def call_local_model(
    messages: List[Dict[str, str]],
    *,
    config: Optional[Settings] = None,
) -> AdvisoryReply:
    """
    Call the local Ollama chat endpoint.

    Expected config (`config`, default the global `settings`):
        advisory_ollama_url   e.g. "http://localhost:11434/api/chat"
        advisory_ollama_model e.g. "llama3.2:latest"

    Raises
    ------
    AdvisoryLocalError
        If the tier is disabled, not configured, or the HTTP/JSON fails.
    """
    cfg = config or settings
    if not cfg.advisory_local_enabled:
        raise AdvisoryLocalError("Local advisory tier is disabled in config.")

    base_url = cfg.advisory_ollama_url
    model = cfg.advisory_ollama_model
    if not base_url or not model:
        raise AdvisoryLocalError(
            "Local tier (Ollama) is not configured. "
            "Set ADVISORY_OLLAMA_URL and ADVISORY_OLLAMA_MODEL in your .env "
            "or disable the local tier."
        )

    # stream=false so we get one JSON object back.
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": False,
    }

    try:
        resp = requests.post(base_url, json=payload, timeout=cfg.advisory_local_timeout_s)
    except requests.RequestException as exc:
        raise AdvisoryLocalError(f"Ollama HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise AdvisoryLocalError(f"Ollama HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise AdvisoryLocalError("Ollama returned non-JSON response.") from exc

    # {"model": ..., "message": {"role": "assistant", "content": "..."}, "done": true}
    message = data.get("message") or {}
    content = message.get("content")

    if not isinstance(content, str) or not content.strip():
        raise AdvisoryLocalError("Ollama returned empty content.")

    return AdvisoryReply(text=content.strip())
