# crisisguard/routers/commands.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Session commands
------------------------------
One handler per UI operation, shared by the HTTP router (sessions.py) and
the WebSocket router (ws.py):

    start_assessment     {"disaster": "Flood"}
    generate_protocol    {"severity": "water rising fast"}
    send_message         {"text": "...", "source": "keyboard"}
    enter_chat_mode      {}
    skip_to_chat         {}
    reset_session        {}
    enable_manual_entry  {"reason": "..."}
    update_manual_address{"address": "123 Main St"}
    retry_location       {}
    report_position      {"latitude": 52.5, "longitude": 13.4}
    report_location_failure {"kind": "timeout", "message": "..."}
    toggle_voice         {}
    voice_result         {"transcript": "..."}
    voice_error          {"code": "no-speech"}
    voice_end            {}

`dispatch()` validates the payload with the matching pydantic model and
runs the handler. It raises:
- UnknownCommandError      : no such command
- pydantic.ValidationError : payload does not match
- InvalidTransitionError   : operation not allowed in this view state
- ValueError               : rejected input (e.g. empty disaster label)
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel

from crisisguard.models.session_requests import (
    ChatSendRequest,
    LocationFailureReport,
    ManualAddressRequest,
    ManualEntryRequest,
    PositionReport,
    ProtocolRequest,
    StartAssessmentRequest,
    VoiceErrorReport,
    VoiceResultReport,
)
from crisisguard.runtime_state import LiveSession

logger = logging.getLogger(__name__)


class UnknownCommandError(Exception):
    """Raised for a command name that has no handler."""


Handler = Callable[[LiveSession, Any], Awaitable[None]]


async def start_assessment(live: LiveSession, req: StartAssessmentRequest) -> None:
    # Location keeps resolving in the background until the client reports.
    live.orchestrator.start_assessment(req.disaster)


async def generate_protocol(live: LiveSession, req: ProtocolRequest) -> None:
    await live.orchestrator.generate_protocol(req.severity)


async def send_message(live: LiveSession, req: ChatSendRequest) -> None:
    logger.debug("Chat message from %s for session %s", req.source.value, live.session_id)
    await live.orchestrator.send_message(req.text)


async def enter_chat_mode(live: LiveSession, _req: None) -> None:
    live.orchestrator.enter_chat_mode()


async def skip_to_chat(live: LiveSession, _req: None) -> None:
    live.orchestrator.skip_to_chat()


async def reset_session(live: LiveSession, _req: None) -> None:
    live.orchestrator.reset_session()


async def enable_manual_entry(live: LiveSession, req: ManualEntryRequest) -> None:
    live.orchestrator.enable_manual_entry(req.reason)


async def update_manual_address(live: LiveSession, req: ManualAddressRequest) -> None:
    live.orchestrator.update_manual_address(req.address)


async def retry_location(live: LiveSession, _req: None) -> None:
    live.orchestrator.retry_location()


async def report_position(live: LiveSession, req: PositionReport) -> None:
    if live.location_bridge.report_position(req.latitude, req.longitude):
        await live.orchestrator.location.settle()


async def report_location_failure(live: LiveSession, req: LocationFailureReport) -> None:
    if live.location_bridge.report_failure(req.kind, req.message):
        await live.orchestrator.location.settle()


async def toggle_voice(live: LiveSession, _req: None) -> None:
    live.orchestrator.toggle_voice()


async def voice_result(live: LiveSession, req: VoiceResultReport) -> None:
    await live.orchestrator.voice.handle_result(req.transcript)


async def voice_error(live: LiveSession, req: VoiceErrorReport) -> None:
    live.orchestrator.voice.handle_error(req.code)


async def voice_end(live: LiveSession, _req: None) -> None:
    live.orchestrator.voice.handle_end()


COMMANDS: Dict[str, Tuple[Optional[Type[BaseModel]], Handler]] = {
    "start_assessment": (StartAssessmentRequest, start_assessment),
    "generate_protocol": (ProtocolRequest, generate_protocol),
    "send_message": (ChatSendRequest, send_message),
    "enter_chat_mode": (None, enter_chat_mode),
    "skip_to_chat": (None, skip_to_chat),
    "reset_session": (None, reset_session),
    "enable_manual_entry": (ManualEntryRequest, enable_manual_entry),
    "update_manual_address": (ManualAddressRequest, update_manual_address),
    "retry_location": (None, retry_location),
    "report_position": (PositionReport, report_position),
    "report_location_failure": (LocationFailureReport, report_location_failure),
    "toggle_voice": (None, toggle_voice),
    "voice_result": (VoiceResultReport, voice_result),
    "voice_error": (VoiceErrorReport, voice_error),
    "voice_end": (None, voice_end),
}


async def dispatch(live: LiveSession, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
    entry = COMMANDS.get(name)
    if entry is None:
        raise UnknownCommandError(name)

    model, handler = entry
    req = model.model_validate(payload or {}) if model is not None else None
    live.touch()
    await handler(live, req)
