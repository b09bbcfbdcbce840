# crisisguard/models/session_state.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Session state models
----------------------------------
Models for the session-level view of an emergency-assistance flow:

- ViewState         : home → assessing → protocol → chat.
- VoiceSessionState : speech input availability + listening flag.
- DisasterType      : one entry of the fixed disaster catalog.
- SessionSnapshot   : everything the UI layer can observe, in one
                      JSON-friendly object (HTTP responses, WebSocket frames).

Self-test
---------
Run:

    python -m crisisguard.models.session_state
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crisisguard.models.advisory_models import ChatMessage, EmergencyResource
from crisisguard.models.location_state import LocationState


class ViewState(str, Enum):
    """Which stage of the flow the UI is showing. Exactly one at a time."""

    HOME = "home"
    ASSESSING = "assessing"
    PROTOCOL = "protocol"
    CHAT = "chat"


class VoiceSessionState(BaseModel):
    """`listening` is only True between a successful start and a terminal event."""

    model_config = ConfigDict(frozen=True)

    supported: bool = False
    listening: bool = False


class DisasterType(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    icon: str


DISASTER_CATALOG: List[DisasterType] = [
    DisasterType(name="Earthquake", icon="🏚️"),
    DisasterType(name="Flood", icon="🌊"),
    DisasterType(name="Fire", icon="🔥"),
    DisasterType(name="Medical", icon="🚑"),
    DisasterType(name="Accident", icon="💥"),
    DisasterType(name="Violence", icon="🛡️"),
    DisasterType(name="Animal", icon="🐍"),
    DisasterType(name="Storm", icon="🌪️"),
    DisasterType(name="Chemical", icon="☣️"),
    DisasterType(name="Cyber", icon="💻"),
    DisasterType(name="Collapse", icon="🏗️"),
    DisasterType(name="Nuclear", icon="☢️"),
]


def normalize_disaster_label(label: str) -> str:
    """
    Map a label onto the catalog spelling when it matches (case-insensitive).

    Free-text labels outside the catalog are returned trimmed, unchanged.
    """
    cleaned = " ".join((label or "").split())
    for entry in DISASTER_CATALOG:
        if entry.name.lower() == cleaned.lower():
            return entry.name
    return cleaned


class SessionSnapshot(BaseModel):
    """
    Read-only view of one session, as exposed to the rendering layer.

    Fields
    ------
    session_id:
        Registry key (None when the orchestrator is used standalone).
    view_state / selected_disaster / location / protocol_result /
    resources / chat_history / voice:
        The observable records of the session.
    map_query_url:
        Maps search link derived from `location` ("" when unknown).
    is_generating / is_loading_resources / is_chatting:
        Busy flags for in-flight advisory requests.
    """

    session_id: Optional[str] = None
    view_state: ViewState = ViewState.HOME
    selected_disaster: str = ""
    location: LocationState = Field(default_factory=LocationState.initial)
    map_query_url: str = ""
    protocol_result: str = ""
    resources: List[EmergencyResource] = Field(default_factory=list)
    chat_history: List[ChatMessage] = Field(default_factory=list)
    voice: VoiceSessionState = Field(default_factory=VoiceSessionState)
    is_generating: bool = False
    is_loading_resources: bool = False
    is_chatting: bool = False

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


if __name__ == "__main__":
    print("CrisisGuard — session_state self-test\n")
    print("Catalog:", ", ".join(d.name for d in DISASTER_CATALOG))
    print("normalize('  flood ') ->", normalize_disaster_label("  flood "))
    print("normalize('Gas leak') ->", normalize_disaster_label("Gas leak"))
    print(SessionSnapshot().model_dump_json(indent=2))
