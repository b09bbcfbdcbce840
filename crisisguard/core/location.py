# crisisguard/core/location.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Location acquisition with manual fallback
-------------------------------------------------------
Two layers:

- LocationAcquirer
    Wraps ONE device lookup (an injected LocationProvider) with a bounded
    wait and normalizes every way it can end into a LocationOutcome.
    Never raises.

- LocationFallbackController
    Owns the LocationState lifecycle:
      * begin_acquisition() resets state and starts a lookup.
      * enable_manual_entry() switches to fallback (sticky).
      * update_manual_address() merges typed text at any time.
      * retry() starts a fresh lookup without discarding typed text.
    Every lookup gets an epoch number. A result is committed only if its
    epoch is still current, and a GPS success is dropped if manual entry
    was engaged during that same epoch ("fallback wins").

Resolution rule (effective_location):
    coordinates → non-empty manual address → "Unknown Location".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Set

from crisisguard.core.config import settings
from crisisguard.core.observable import Observable
from crisisguard.models.location_state import (
    Coordinates,
    EffectiveLocation,
    LocationFailureKind,
    LocationOutcome,
    LocationState,
    UNKNOWN_FAILURE_MESSAGE,
)

logger = logging.getLogger(__name__)


class LocationError(Exception):
    """Raised by a LocationProvider when the device cannot produce a fix."""

    def __init__(self, kind: LocationFailureKind, message: Optional[str] = None) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message


class LocationProvider(Protocol):
    """Single-shot device location lookup."""

    async def request_position(self) -> Coordinates:
        """Return a fix or raise LocationError."""
        ...


# ---------------------------------------------------------------------------
# Leaf: one lookup
# ---------------------------------------------------------------------------


class LocationAcquirer:
    """
    Normalize one device lookup into a LocationOutcome.

    Parameters
    ----------
    provider:
        Device port. None means the environment has no geolocation at all
        (reported as UNSUPPORTED).
    timeout_s:
        Bounded wait; a lookup running longer is a TIMEOUT failure.
    """

    def __init__(
        self,
        provider: Optional[LocationProvider],
        timeout_s: Optional[float] = None,
    ) -> None:
        self._provider = provider
        self.timeout_s = settings.location_timeout_s if timeout_s is None else timeout_s

    async def acquire(self) -> LocationOutcome:
        if self._provider is None:
            return LocationOutcome.failed(LocationFailureKind.UNSUPPORTED)

        try:
            coords = await asyncio.wait_for(
                self._provider.request_position(),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            return LocationOutcome.failed(LocationFailureKind.TIMEOUT)
        except LocationError as exc:
            return LocationOutcome.failed(exc.kind, exc.message)
        except Exception:  # noqa: BLE001
            logger.exception("Location provider failed unexpectedly.")
            return LocationOutcome.failed(
                LocationFailureKind.UNAVAILABLE,
                UNKNOWN_FAILURE_MESSAGE,
            )

        return LocationOutcome.success(coords)


# ---------------------------------------------------------------------------
# Lifecycle + fallback
# ---------------------------------------------------------------------------


class LocationFallbackController:
    """Owns LocationState; the only writer of it."""

    def __init__(
        self,
        acquirer: LocationAcquirer,
        state: Optional[Observable[LocationState]] = None,
        *,
        unknown_label: Optional[str] = None,
    ) -> None:
        self._acquirer = acquirer
        self._state: Observable[LocationState] = state or Observable(
            "location", LocationState.initial()
        )
        self._unknown_label = unknown_label or settings.unknown_location_label

        self._epoch = 0
        # Epoch during which manual entry was engaged (None = not engaged).
        self._fallback_epoch: Optional[int] = None
        self._current: Optional[asyncio.Task[LocationState]] = None
        self._tasks: Set[asyncio.Task[LocationState]] = set()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> LocationState:
        return self._state.value

    @property
    def observable(self) -> Observable[LocationState]:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    def effective_location(self) -> EffectiveLocation:
        return self._state.value.resolve(self._unknown_label)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def begin_acquisition(self) -> "asyncio.Task[LocationState]":
        """
        Reset to {loading} and start a device lookup in the background.

        Must be called from a running event loop. Returns the task so
        callers (and tests) can await the commit.
        """
        self._epoch += 1
        self._fallback_epoch = None
        self._state.set(LocationState.acquiring())
        logger.info("Location acquisition started (epoch=%d)", self._epoch)
        return self._launch(self._epoch)

    def retry(self) -> "asyncio.Task[LocationState]":
        """
        Start a fresh lookup, keeping typed text, error and fallback flag.

        They are cleared only if the new attempt succeeds.
        """
        self._epoch += 1
        self._fallback_epoch = None
        self._state.update(lambda s: s.model_copy(update={"loading": True}))
        logger.info("Location retry started (epoch=%d)", self._epoch)
        return self._launch(self._epoch)

    def enable_manual_entry(self, reason: Optional[str] = None) -> None:
        """
        Switch into fallback mode. Idempotent.

        Keeps any typed address (None becomes ""), drops coordinates and
        stops the loading indicator. An in-flight GPS success for the
        current epoch will be discarded.
        """
        self._fallback_epoch = self._epoch

        def _engage(s: LocationState) -> LocationState:
            return s.model_copy(
                update={
                    "loading": False,
                    "is_fallback_mode": True,
                    "error": reason if reason is not None else s.error,
                    "coordinates": None,
                    "manual_address": s.manual_address or "",
                }
            )

        self._state.update(_engage)
        logger.info("Manual location entry engaged (epoch=%d, reason=%r)", self._epoch, reason)

    def update_manual_address(self, text: str) -> None:
        """Pure merge of the typed address; allowed while a lookup is in flight."""
        self._state.update(lambda s: s.model_copy(update={"manual_address": text}))

    def reset(self) -> None:
        """Forget everything; in-flight lookups become stale."""
        self._epoch += 1
        self._fallback_epoch = None
        self._state.set(LocationState.initial())

    async def settle(self) -> LocationState:
        """Wait for the current lookup (if any) to finish, then return the state."""
        task = self._current
        if task is not None and not task.done():
            await asyncio.shield(task)
        return self._state.value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _launch(self, epoch: int) -> "asyncio.Task[LocationState]":
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(epoch), name=f"location-epoch-{epoch}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._current = task
        return task

    async def _run(self, epoch: int) -> LocationState:
        outcome = await self._acquirer.acquire()

        if epoch != self._epoch:
            logger.debug(
                "Discarding stale location outcome (epoch=%d, current=%d)",
                epoch,
                self._epoch,
            )
            return self._state.value

        if outcome.ok:
            if self._fallback_epoch == epoch:
                logger.info("Late GPS fix ignored; manual entry already engaged.")
                return self._state.value
            self._state.set(LocationState(coordinates=outcome.coordinates))
            logger.info("Location fix committed (epoch=%d)", epoch)
        else:
            logger.warning("Location lookup failed (%s): %s", outcome.failure, outcome.error)
            self.enable_manual_entry(outcome.error)

        return self._state.value
