# crisisguard/core/device_bridge.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Client-bridged device ports
-----------------------------------------
On the server the GPS chip and the microphone live on the CLIENT. These
classes implement the device ports used by the core (LocationProvider,
SpeechRecognizer) by waiting for the client to report back over HTTP or
WebSocket.

- ClientLocationProvider
    request_position() parks on a future; the client resolves it with
    report_position() or report_failure(). If the client stays silent,
    LocationAcquirer's bounded wait turns that into a TIMEOUT.

- ClientSpeechRecognizer
    Tracks whether the client was asked to listen. Terminal events
    (result / error / end) are delivered straight to VoiceInputController
    by the routers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from crisisguard.core.location import LocationError
from crisisguard.core.voice import VoiceStartError
from crisisguard.models.location_state import Coordinates, LocationFailureKind

logger = logging.getLogger(__name__)


class ClientLocationProvider:
    """LocationProvider whose answer is pushed by the client."""

    def __init__(self) -> None:
        self._pending: Optional[asyncio.Future[Coordinates]] = None

    @property
    def awaiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def request_position(self) -> Coordinates:
        if self.awaiting:
            assert self._pending is not None
            self._pending.set_exception(
                LocationError(
                    LocationFailureKind.UNAVAILABLE,
                    "Superseded by a newer location request.",
                )
            )

        fut: asyncio.Future[Coordinates] = asyncio.get_running_loop().create_future()
        self._pending = fut
        try:
            return await fut
        finally:
            if self._pending is fut:
                self._pending = None

    def report_position(self, latitude: float, longitude: float) -> bool:
        """Resolve the pending lookup with a fix. False if nothing was pending."""
        if not self.awaiting:
            logger.info("Position report ignored; no location request pending.")
            return False
        assert self._pending is not None
        self._pending.set_result(Coordinates(lat=latitude, lng=longitude))
        return True

    def report_failure(
        self,
        kind: LocationFailureKind,
        message: Optional[str] = None,
    ) -> bool:
        """Fail the pending lookup. False if nothing was pending."""
        if not self.awaiting:
            logger.info("Location failure report ignored; no request pending.")
            return False
        assert self._pending is not None
        self._pending.set_exception(LocationError(kind, message))
        return True


class ClientSpeechRecognizer:
    """SpeechRecognizer whose audio and transcription happen on the client."""

    def __init__(self, supported: bool = False) -> None:
        self.supported = supported
        self.active = False

    def start(self) -> None:
        if not self.supported:
            raise VoiceStartError("Speech recognition is not supported on this client.")
        if self.active:
            raise VoiceStartError("Recognition session already started.")
        self.active = True

    def stop(self) -> None:
        self.active = False
