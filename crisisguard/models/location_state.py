# crisisguard/models/location_state.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Location state models
-----------------------------------
Pydantic models describing where the person in crisis is:

- Coordinates         : a device GPS fix (lat/lng).
- LocationFailureKind : categorized device failure (denied, unavailable,
                        timeout, unsupported).
- LocationOutcome     : normalized result of ONE device lookup.
- LocationState       : the full lifecycle record owned by
                        core.location.LocationFallbackController.

LocationState is immutable; every mutation produces a new instance via
`model_copy(update=...)`, so readers never see a half-applied change.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="


class Coordinates(BaseModel):
    """A single GPS fix in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def as_text(self) -> str:
        return f"{self.lat}, {self.lng}"


class LocationFailureKind(str, Enum):
    """Why the device could not produce a fix."""

    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


# Human-readable causes shown to the user when fallback mode kicks in.
FAILURE_MESSAGES = {
    LocationFailureKind.PERMISSION_DENIED: "User denied the request for Geolocation.",
    LocationFailureKind.UNAVAILABLE: "Location information is unavailable.",
    LocationFailureKind.TIMEOUT: "The request to get user location timed out.",
    LocationFailureKind.UNSUPPORTED: "Geolocation is not supported by your browser.",
}

UNKNOWN_FAILURE_MESSAGE = "Unknown error getting location."


class LocationOutcome(BaseModel):
    """
    Normalized result of a single device lookup.

    Exactly one of `coordinates` / `failure` is set.
    """

    model_config = ConfigDict(frozen=True)

    coordinates: Optional[Coordinates] = None
    failure: Optional[LocationFailureKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.coordinates is not None

    @classmethod
    def success(cls, coordinates: Coordinates) -> "LocationOutcome":
        return cls(coordinates=coordinates)

    @classmethod
    def failed(
        cls,
        kind: LocationFailureKind,
        message: Optional[str] = None,
    ) -> "LocationOutcome":
        return cls(failure=kind, error=message or FAILURE_MESSAGES.get(kind, UNKNOWN_FAILURE_MESSAGE))


class LocationState(BaseModel):
    """
    Location lifecycle record.

    Fields
    ------
    coordinates:
        Device fix, if one was committed. Takes precedence over the
        manual address when resolving the effective location.
    manual_address:
        Free-text address typed by the user in fallback mode. An empty
        string means "fallback engaged, nothing typed yet".
    error:
        Human-readable cause of the last device failure.
    loading:
        True while a device lookup is in flight.
    is_fallback_mode:
        True once the user (or a failure) switched to manual entry.
        Sticky until the next acquisition attempt succeeds.
    """

    model_config = ConfigDict(frozen=True)

    coordinates: Optional[Coordinates] = None
    manual_address: Optional[str] = None
    error: Optional[str] = None
    loading: bool = False
    is_fallback_mode: bool = False

    @classmethod
    def initial(cls) -> "LocationState":
        return cls()

    @classmethod
    def acquiring(cls) -> "LocationState":
        return cls(loading=True)

    def resolve(self, unknown_label: str) -> Union[Coordinates, str]:
        """
        Effective location for advisory requests.

        coordinates → non-empty manual address → `unknown_label`.
        Never returns None.
        """
        if self.coordinates is not None:
            return self.coordinates
        if self.manual_address and self.manual_address.strip():
            return self.manual_address.strip()
        return unknown_label

    def map_query_url(self) -> str:
        """Maps search link for the current location, or "" if unknown."""
        if self.coordinates is not None:
            return f"{MAPS_SEARCH_URL}{self.coordinates.lat},{self.coordinates.lng}"
        if self.manual_address:
            return f"{MAPS_SEARCH_URL}{quote(self.manual_address, safe='')}"
        return ""


EffectiveLocation = Union[Coordinates, str]


def location_to_text(location: EffectiveLocation) -> str:
    """Render an effective location for prompts and alert summaries."""
    if isinstance(location, Coordinates):
        return location.as_text()
    return str(location)
