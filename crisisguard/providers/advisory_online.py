# crisisguard/providers/advisory_online.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Online Advisory Provider (OpenRouter-style)
---------------------------------------------------------
This module is the ONLY place that knows how to talk to the online
chat-completions backend.

Responsibilities:
- Build the HTTP request (URL, headers, JSON payload).
- Optionally ask for web-grounded answers (the "web" plugin), used for
  protocols and nearby-resource lookups.
- Parse the response and return assistant text plus any citation URLs.

It is used by crisisguard/core/advisory.py, which:
- Chooses which model to call (advisory_model_candidates, in order).
- Falls back to the local tier / fixed messages if this raises
  AdvisoryOnlineError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from crisisguard.core.config import Settings, settings
from crisisguard.models.advisory_models import AdvisoryReply

logger = logging.getLogger(__name__)


class AdvisoryOnlineError(Exception):
    """Raised when the online tier fails in a recoverable way."""


def _build_payload(
    messages: List[Dict[str, str]],
    model_name: str,
    web_search: bool,
) -> Dict[str, Any]:
    """
    Build the JSON payload.

    messages:
        [{"role": "system"|"user"|"assistant", "content": "..."}]
    web_search:
        When True, attach the web plugin so the provider grounds the
        answer and returns url_citation annotations.
    """
    payload: Dict[str, Any] = {
        "model": model_name,
        "messages": messages,
    }
    if web_search:
        payload["plugins"] = [{"id": "web"}]
    return payload


def _extract_sources(data: Dict[str, Any], message: Dict[str, Any]) -> List[str]:
    """
    Collect citation URLs, in order, without duplicates.

    Two shapes are seen in the wild:
    - message.annotations = [{"type": "url_citation", "url_citation": {"url": ...}}]
    - top-level "citations" = ["https://...", ...]
    """
    urls: List[str] = []

    for ann in message.get("annotations") or []:
        if not isinstance(ann, dict) or ann.get("type") != "url_citation":
            continue
        url = (ann.get("url_citation") or {}).get("url")
        if isinstance(url, str) and url and url not in urls:
            urls.append(url)

    for url in data.get("citations") or []:
        if isinstance(url, str) and url and url not in urls:
            urls.append(url)

    return urls


def call_online_model(
    messages: List[Dict[str, str]],
    model_name: str,
    *,
    web_search: bool = False,
    config: Optional[Settings] = None,
) -> AdvisoryReply:
    """
    Call one online model and return its reply.

    `config` defaults to the global `settings`.

    Raises
    ------
    AdvisoryOnlineError
        If the tier is disabled, misconfigured, or the HTTP/JSON fails.
    """
    cfg = config or settings
    if not cfg.advisory_online_enabled:
        raise AdvisoryOnlineError("Online advisory tier is disabled in config.")

    api_key = cfg.advisory_api_key
    if not api_key:
        raise AdvisoryOnlineError("Online advisory API key is missing.")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Title": cfg.app_name,
    }
    payload = _build_payload(messages, model_name, web_search)

    try:
        resp = requests.post(
            cfg.advisory_base_url,
            headers=headers,
            json=payload,
            timeout=cfg.advisory_timeout_s,
        )
    except requests.RequestException as exc:
        raise AdvisoryOnlineError(f"Online HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise AdvisoryOnlineError(f"Online HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise AdvisoryOnlineError("Online tier returned non-JSON response.") from exc

    try:
        message = data["choices"][0]["message"]
        content = message["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AdvisoryOnlineError(
            "Online response JSON missing choices[0].message.content"
        ) from exc

    if not isinstance(content, str) or not content.strip():
        raise AdvisoryOnlineError("Online tier returned empty content.")

    return AdvisoryReply(text=content.strip(), sources=_extract_sources(data, message))
