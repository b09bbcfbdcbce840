# crisisguard/core/advisory.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Advisory client
-----------------------------
The orchestrator's only door to the advisory backend. Three operations,
each fault-isolated:

- request_protocol(disaster, location, severity) -> str
      Step-by-step survival protocol. Backend failure → fixed safety text.
- request_resources(location) -> list[EmergencyResource]
      Nearby hospitals / police / fire / shelters. Backend failure or
      unusable output → [].
- continue_chat(prior_context, new_message) -> str
      One chat turn on top of the accumulated history. Backend failure →
      fixed apology text.

Each operation builds chat-style messages and runs the tier chain:

    1) online  (OpenRouter-style, model priority list, optional web grounding)
    2) local   (Ollama)
    3) fixed fallback (providers.advisory_fallback)

Provider calls are blocking (requests), so they run in a worker thread
via asyncio.to_thread; the event loop stays free for the sibling request.
None of the operations ever raises to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from crisisguard.core.config import Settings, settings
from crisisguard.models.advisory_models import (
    AdvisoryReply,
    ChatMessage,
    ChatRole,
    EmergencyResource,
    ResourceCategory,
)
from crisisguard.models.location_state import (
    Coordinates,
    EffectiveLocation,
    location_to_text,
)
from crisisguard.providers.advisory_fallback import (
    chat_fallback,
    protocol_fallback,
    resources_fallback,
)
from crisisguard.providers.advisory_local import AdvisoryLocalError, call_local_model
from crisisguard.providers.advisory_online import AdvisoryOnlineError, call_online_model
from crisisguard.utils import Stopwatch, read_text_safely

logger = logging.getLogger(__name__)

OnlineCall = Callable[..., AdvisoryReply]
LocalCall = Callable[..., AdvisoryReply]

# ---------------------------------------------------------------------------
# System instructions
# ---------------------------------------------------------------------------

PROTOCOL_SYSTEM_DEFAULT = (
    "You are CrisisGuard AI. Priority: SAVING LIVES. "
    "Be authoritative, calm, precise. Use short sentences."
)
CHAT_SYSTEM_DEFAULT = (
    "You are a professional Crisis Response Specialist. You are talking to a "
    "victim or a helper in a potential crisis. Be empathetic but focused on "
    "solution and safety. Provide verified information where possible."
)

_PROMPT_CACHE: Dict[str, str] = {}


def _read_prompt_file(prompts_dir: Path, filename: str, default: str) -> str:
    """Read a prompt from `prompts_dir` (cached per path); `default` if missing/empty."""
    path = Path(prompts_dir) / filename
    key = str(path)
    if key in _PROMPT_CACHE:
        return _PROMPT_CACHE[key]

    text = read_text_safely(path, default="", strip=True)
    _PROMPT_CACHE[key] = " ".join((text or "").split()) or default
    return _PROMPT_CACHE[key]


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def _build_protocol_prompt(disaster: str, location: EffectiveLocation, severity: str) -> str:
    lines = [
        "CRITICAL EMERGENCY ALERT.",
        f"Type: {disaster}",
        f"Location: {location_to_text(location)}",
        f"Severity/Context: {severity}",
        "",
        "ACT AS A GLOBAL CRISIS RESPONSE CENTER.",
        "1. ANALYZE the situation immediately.",
        "2. PROVIDE a step-by-step survival protocol.",
    ]
    if isinstance(location, Coordinates):
        lines.append("3. Mention 1-2 key landmarks near these coordinates as reference points.")
    lines += [
        "FORMAT with clear HEADINGS, BULLET POINTS and BOLD text.",
        "KEEP IT CONCISE. Time is critical.",
    ]
    return "\n".join(lines)


def _build_resources_prompt(location: EffectiveLocation, max_items: int, default_phone: str) -> str:
    categories = ", ".join(f'"{c.value}"' for c in ResourceCategory if c is not ResourceCategory.OTHER)
    return "\n".join(
        [
            f'Find the nearest REAL emergency resources to this location: "{location_to_text(location)}".',
            "Look for hospitals / medical centers, police stations, fire stations and emergency shelters.",
            "Return ONLY a raw JSON array of objects with exactly these keys:",
            '- "name": name of the facility',
            f'- "type": one of [{categories}]',
            '- "address": the physical address',
            f'- "phone": the phone number (if unknown, use "{default_phone}")',
            f"Give the {max_items} closest results at most.",
            "Do not wrap the array in markdown or add any commentary.",
        ]
    )


# ---------------------------------------------------------------------------
# Resource output parsing
# ---------------------------------------------------------------------------

_DECODER = json.JSONDecoder()


def extract_json_array(text: str) -> Optional[List[Any]]:
    """
    Return the first well-formed JSON array embedded in `text`.

    The model may wrap the array in prose or a ```json fence; everything
    around the array is ignored. Returns None if no array parses.
    """
    if not text:
        return None

    idx = text.find("[")
    while idx != -1:
        try:
            obj, _end = _DECODER.raw_decode(text, idx)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, list):
            return obj
        idx = text.find("[", idx + 1)

    return None


def coerce_resources(
    items: Sequence[Any],
    *,
    max_items: int,
    default_phone: str,
) -> List[EmergencyResource]:
    """
    Turn parsed JSON entries into EmergencyResource records.

    - non-objects and entries without a name are dropped
    - unknown "type" → Other
    - blank phone → default_phone
    - at most max_items kept
    """
    resources: List[EmergencyResource] = []
    for item in items:
        if len(resources) >= max_items:
            break
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        phone = str(item.get("phone") or "").strip() or default_phone
        resources.append(
            EmergencyResource(
                name=name,
                category=ResourceCategory.parse(item.get("type")),
                address=str(item.get("address") or "").strip(),
                phone=phone,
            )
        )
    return resources


def _history_to_messages(history: Sequence[ChatMessage]) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    for entry in history:
        role = "assistant" if entry.role is ChatRole.MODEL else "user"
        messages.append({"role": role, "content": entry.text})
    return messages


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AdvisoryClient:
    """
    Fault-isolated advisory backend adapter.

    Parameters
    ----------
    online_call / local_call:
        Provider functions; injectable so tests can script the backend.
    config:
        Settings instance (defaults to the global `settings`).
    """

    def __init__(
        self,
        *,
        online_call: Optional[OnlineCall] = None,
        local_call: Optional[LocalCall] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self._online_call = online_call or call_online_model
        self._local_call = local_call or call_local_model
        self._config = config or settings

    # ------------------------------------------------------------------
    # Tier chain
    # ------------------------------------------------------------------

    def _generate(
        self,
        messages: List[Dict[str, str]],
        *,
        web_search: bool = False,
    ) -> Optional[AdvisoryReply]:
        """Run online → local. None means every tier failed."""
        cfg = self._config

        if cfg.advisory_online_enabled and cfg.advisory_api_key:
            model_list = cfg.advisory_model_candidates or []
            if not model_list:
                logger.warning(
                    "Online tier enabled with an API key, but no "
                    "advisory_model_candidates configured; skipping."
                )
            for model_name in model_list:
                try:
                    with Stopwatch(f"advisory online call ({model_name})", logger):
                        return self._online_call(
                            messages, model_name, web_search=web_search, config=cfg
                        )
                except AdvisoryOnlineError as exc:
                    logger.warning("Online model %s failed: %s", model_name, exc)

        if cfg.advisory_local_enabled:
            try:
                with Stopwatch("advisory local call", logger):
                    return self._local_call(messages, config=cfg)
            except AdvisoryLocalError as exc:
                logger.warning("Local tier failed: %s", exc)

        return None

    async def _generate_async(
        self,
        label: str,
        messages: List[Dict[str, str]],
        *,
        web_search: bool = False,
    ) -> Optional[AdvisoryReply]:
        try:
            return await asyncio.to_thread(self._generate, messages, web_search=web_search)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected failure during %s; using fallback.", label)
            return None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def request_protocol(
        self,
        disaster: str,
        location: EffectiveLocation,
        severity: str,
    ) -> str:
        system = _read_prompt_file(self._config.prompts_dir, "protocol_system.txt", PROTOCOL_SYSTEM_DEFAULT)
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": _build_protocol_prompt(disaster, location, severity)},
        ]
        reply = await self._generate_async(
            "protocol generation",
            messages,
            web_search=self._config.advisory_web_search,
        )
        if reply is None:
            logger.warning("All advisory tiers failed for protocol; using fixed safety text.")
            return protocol_fallback()

        text = reply.text
        sources = reply.sources[: max(self._config.max_verified_sources, 0)]
        if sources:
            text += "\n\n**Verified Sources:**\n" + "\n".join(sources)
        return text

    async def request_resources(self, location: EffectiveLocation) -> List[EmergencyResource]:
        cfg = self._config
        messages = [
            {
                "role": "user",
                "content": _build_resources_prompt(location, cfg.max_resources, cfg.default_emergency_phone),
            },
        ]
        reply = await self._generate_async(
            "resource lookup",
            messages,
            web_search=cfg.advisory_web_search,
        )
        if reply is None:
            logger.warning("All advisory tiers failed for resources; returning none.")
            return resources_fallback()

        items = extract_json_array(reply.text)
        if items is None:
            logger.warning("Resource reply had no JSON array: %r", reply.text[:200])
            return resources_fallback()

        return coerce_resources(
            items,
            max_items=cfg.max_resources,
            default_phone=cfg.default_emergency_phone,
        )

    async def continue_chat(
        self,
        prior_context: Sequence[ChatMessage],
        new_message: str,
    ) -> str:
        system = _read_prompt_file(self._config.prompts_dir, "chat_system.txt", CHAT_SYSTEM_DEFAULT)
        messages = [
            {"role": "system", "content": system},
            *_history_to_messages(prior_context),
            {"role": "user", "content": new_message},
        ]
        reply = await self._generate_async("chat continuation", messages)
        if reply is None:
            logger.warning("All advisory tiers failed for chat; using apology text.")
            return chat_fallback()
        return reply.text
