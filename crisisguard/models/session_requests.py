# crisisguard/models/session_requests.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — request payloads
---------------------------------------------
Request bodies for the session HTTP API and the WebSocket command frames.

Most text fields are validated loosely on purpose: empty severity and empty
chat text are *normalized* or *ignored* by the orchestrator rather than
rejected, so the client never gets a hard error mid-crisis. Only the
disaster label must be non-empty.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, constr

from crisisguard.models.location_state import LocationFailureKind


class InputSource(str, Enum):
    """Where a chat message originally came from."""

    KEYBOARD = "keyboard"  # Typed into the chat box
    VOICE = "voice"        # Speech recognition transcript
    TEST = "test"          # Automated tests and health checks


class CreateSessionRequest(BaseModel):
    voice_supported: bool = Field(
        default=False,
        description="Whether the client device offers speech recognition.",
    )


class StartAssessmentRequest(BaseModel):
    disaster: constr(min_length=1, strip_whitespace=True) = Field(
        ...,
        description="Disaster label, ideally one of GET /catalog.",
        examples=["Flood"],
    )


class ProtocolRequest(BaseModel):
    severity: str = Field(
        default="",
        description="Free-text situation description. Empty → default marker.",
        examples=["water rising fast"],
    )


class ChatSendRequest(BaseModel):
    text: str = Field(default="", examples=["Is it safe to go to the roof?"])
    source: InputSource = InputSource.KEYBOARD


class ManualEntryRequest(BaseModel):
    reason: Optional[str] = Field(
        default=None,
        description="Optional cause shown to the user (e.g. 'GPS disabled').",
    )


class ManualAddressRequest(BaseModel):
    address: str = Field(default="", examples=["123 Main St"])


class PositionReport(BaseModel):
    """Device GPS fix pushed by the client."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class LocationFailureReport(BaseModel):
    """Device geolocation failure pushed by the client."""

    kind: LocationFailureKind
    message: Optional[str] = None


class VoiceResultReport(BaseModel):
    transcript: str = ""


class VoiceErrorReport(BaseModel):
    code: str = "unknown"
