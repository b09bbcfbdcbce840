# crisisguard/models/advisory_models.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Advisory data models
----------------------------------
Records produced by (or sent to) the advisory backend:

- ResourceCategory  : fixed category set for nearby emergency resources.
- EmergencyResource : one nearby facility (name, category, address, phone).
- ChatRole / ChatMessage : one entry of the session chat history.
- AdvisoryReply     : raw provider reply (text + any citation URLs).

Backend JSON uses the key "type" for the category; we keep that as the
serialization alias so resources round-trip to the UI unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ResourceCategory(str, Enum):
    """High-level category of an emergency resource."""

    HOSPITAL = "Hospital"
    POLICE = "Police"
    FIRE = "Fire"
    SHELTER = "Shelter"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: object) -> "ResourceCategory":
        """Case-insensitive lookup; anything unknown becomes OTHER."""
        text = str(raw or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.OTHER


class EmergencyResource(BaseModel):
    """A single nearby emergency facility."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    category: ResourceCategory = Field(default=ResourceCategory.OTHER, alias="type")
    address: str = ""
    phone: str = ""


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    """One committed chat history entry. Never edited once appended."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    text: str


class AdvisoryReply(BaseModel):
    """
    Reply text from one provider call.

    `sources` holds web-citation URLs when the provider grounded its
    answer with search; empty otherwise.
    """

    text: str
    sources: List[str] = Field(default_factory=list)
