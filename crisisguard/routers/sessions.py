# crisisguard/routers/sessions.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — /sessions router
---------------------------------------------
HTTP surface for one emergency-assistance session. Every mutating call
returns the session snapshot after the operation settled:

  POST   /sessions                          -> new session
  GET    /sessions/{id}                     -> snapshot
  DELETE /sessions/{id}
  POST   /sessions/{id}/assessment          {disaster}
  POST   /sessions/{id}/protocol            {severity}   (waits for both fetches)
  POST   /sessions/{id}/chat                {text}       (waits for the reply)
  POST   /sessions/{id}/chat-mode | /skip | /reset
  POST   /sessions/{id}/location/manual     {reason?}
  PUT    /sessions/{id}/location/address    {address}
  POST   /sessions/{id}/location/retry
  POST   /sessions/{id}/location/fix        {latitude, longitude}
  POST   /sessions/{id}/location/failure    {kind, message?}
  POST   /sessions/{id}/voice/toggle | /voice/result | /voice/error | /voice/end

Invalid view transitions → 409; unknown session → 404.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from crisisguard.core.orchestrator import InvalidTransitionError
from crisisguard.models.session_requests import (
    ChatSendRequest,
    CreateSessionRequest,
    LocationFailureReport,
    ManualAddressRequest,
    ManualEntryRequest,
    PositionReport,
    ProtocolRequest,
    StartAssessmentRequest,
    VoiceErrorReport,
    VoiceResultReport,
)
from crisisguard.routers.commands import dispatch
from crisisguard.runtime_state import LiveSession, SessionRegistry, session_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ---------------------------------------------------------------------------
# Dependencies / helpers
# ---------------------------------------------------------------------------


def get_registry() -> SessionRegistry:
    """Overridable in tests via app.dependency_overrides."""
    return session_registry


def get_live_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> LiveSession:
    live = registry.get_session(session_id)
    if live is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return live


async def _run(live: LiveSession, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        await dispatch(live, command, payload)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return live.orchestrator.snapshot().to_json_dict()


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: Optional[CreateSessionRequest] = None,
    registry: SessionRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    pruned = registry.prune_stale_sessions()
    if pruned:
        logger.info("[/sessions] pruned %d idle sessions", pruned)
    live = registry.create_session(voice_supported=bool(body and body.voice_supported))
    return live.orchestrator.snapshot().to_json_dict()


@router.get("/{session_id}")
async def get_session(live: LiveSession = Depends(get_live_session)) -> Dict[str, Any]:
    return live.orchestrator.snapshot().to_json_dict()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> Response:
    if not registry.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Assessment / protocol / chat
# ---------------------------------------------------------------------------


@router.post("/{session_id}/assessment")
async def start_assessment(body: StartAssessmentRequest, live: LiveSession = Depends(get_live_session)):
    logger.info("[/sessions] %s start assessment: %r", live.session_id, body.disaster)
    return await _run(live, "start_assessment", body.model_dump())


@router.post("/{session_id}/protocol")
async def generate_protocol(body: ProtocolRequest, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "generate_protocol", body.model_dump())


@router.post("/{session_id}/chat")
async def send_message(body: ChatSendRequest, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "send_message", body.model_dump())


@router.post("/{session_id}/chat-mode")
async def enter_chat_mode(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "enter_chat_mode")


@router.post("/{session_id}/skip")
async def skip_to_chat(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "skip_to_chat")


@router.post("/{session_id}/reset")
async def reset_session(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "reset_session")


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


@router.post("/{session_id}/location/manual")
async def enable_manual_entry(
    body: Optional[ManualEntryRequest] = None,
    live: LiveSession = Depends(get_live_session),
):
    return await _run(live, "enable_manual_entry", body.model_dump() if body else None)


@router.put("/{session_id}/location/address")
async def update_manual_address(body: ManualAddressRequest, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "update_manual_address", body.model_dump())


@router.post("/{session_id}/location/retry")
async def retry_location(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "retry_location")


@router.post("/{session_id}/location/fix")
async def report_position(body: PositionReport, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "report_position", body.model_dump())


@router.post("/{session_id}/location/failure")
async def report_location_failure(body: LocationFailureReport, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "report_location_failure", body.model_dump())


# ---------------------------------------------------------------------------
# Voice
# ---------------------------------------------------------------------------


@router.post("/{session_id}/voice/toggle")
async def toggle_voice(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "toggle_voice")


@router.post("/{session_id}/voice/result")
async def voice_result(body: VoiceResultReport, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "voice_result", body.model_dump())


@router.post("/{session_id}/voice/error")
async def voice_error(body: VoiceErrorReport, live: LiveSession = Depends(get_live_session)):
    return await _run(live, "voice_error", body.model_dump())


@router.post("/{session_id}/voice/end")
async def voice_end(live: LiveSession = Depends(get_live_session)):
    return await _run(live, "voice_end")
