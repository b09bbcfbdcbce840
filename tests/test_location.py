from __future__ import annotations

import asyncio

from conftest import GatedLocationProvider, InstantLocationProvider, spin

from crisisguard.core.location import LocationAcquirer, LocationError, LocationFallbackController
from crisisguard.models.location_state import (
    FAILURE_MESSAGES,
    UNKNOWN_FAILURE_MESSAGE,
    Coordinates,
    LocationFailureKind,
    LocationState,
)


def _controller(provider, timeout_s: float = 1.0) -> LocationFallbackController:
    return LocationFallbackController(
        LocationAcquirer(provider, timeout_s=timeout_s),
        unknown_label="Unknown Location",
    )


def test_success_commits_coordinates():
    async def scenario():
        ctl = _controller(InstantLocationProvider(Coordinates(lat=52.52, lng=13.40)))
        await ctl.begin_acquisition()
        return ctl

    ctl = asyncio.run(scenario())
    assert ctl.state == LocationState(coordinates=Coordinates(lat=52.52, lng=13.40))
    assert ctl.effective_location() == Coordinates(lat=52.52, lng=13.40)


def test_loading_while_lookup_in_flight():
    async def scenario():
        provider = GatedLocationProvider()
        ctl = _controller(provider)
        task = ctl.begin_acquisition()
        await spin()
        during = ctl.state
        provider.succeed(1.0, 2.0)
        await task
        return during, ctl.state

    during, after = asyncio.run(scenario())
    assert during.loading is True
    assert during.coordinates is None
    assert after.loading is False


def test_permission_denied_engages_fallback():
    async def scenario():
        ctl = _controller(InstantLocationProvider(error=LocationError(LocationFailureKind.PERMISSION_DENIED)))
        await ctl.begin_acquisition()
        return ctl

    ctl = asyncio.run(scenario())
    state = ctl.state
    assert state.is_fallback_mode is True
    assert state.loading is False
    assert state.error == FAILURE_MESSAGES[LocationFailureKind.PERMISSION_DENIED]
    assert state.manual_address == ""
    assert ctl.effective_location() == "Unknown Location"


def test_no_provider_reports_unsupported():
    async def scenario():
        ctl = _controller(None)
        await ctl.begin_acquisition()
        return ctl.state

    state = asyncio.run(scenario())
    assert state.is_fallback_mode is True
    assert state.error == FAILURE_MESSAGES[LocationFailureKind.UNSUPPORTED]


def test_unexpected_provider_error_uses_unknown_message():
    async def scenario():
        ctl = _controller(InstantLocationProvider(error=RuntimeError("chip on fire")))
        await ctl.begin_acquisition()
        return ctl.state

    state = asyncio.run(scenario())
    assert state.is_fallback_mode is True
    assert state.error == UNKNOWN_FAILURE_MESSAGE


def test_silent_provider_times_out_into_fallback():
    async def scenario():
        ctl = _controller(GatedLocationProvider(), timeout_s=0.05)
        await ctl.begin_acquisition()
        return ctl.state

    state = asyncio.run(scenario())
    assert state.is_fallback_mode is True
    assert state.error == FAILURE_MESSAGES[LocationFailureKind.TIMEOUT]


def test_late_fix_after_manual_entry_is_ignored():
    async def scenario():
        provider = GatedLocationProvider()
        ctl = _controller(provider)
        task = ctl.begin_acquisition()
        await spin()
        ctl.enable_manual_entry()
        ctl.update_manual_address("123 Main St")
        provider.succeed(40.0, -74.0)
        await task
        return ctl

    ctl = asyncio.run(scenario())
    state = ctl.state
    assert state.coordinates is None
    assert state.is_fallback_mode is True
    assert state.manual_address == "123 Main St"
    assert ctl.effective_location() == "123 Main St"


def test_manual_entry_keeps_typed_address_and_is_idempotent():
    ctl = _controller(None)
    ctl.update_manual_address("Harbour Road 4")
    ctl.enable_manual_entry("GPS disabled")
    ctl.enable_manual_entry()

    state = ctl.state
    assert state.manual_address == "Harbour Road 4"
    assert state.error == "GPS disabled"
    assert state.is_fallback_mode is True
    assert state.loading is False


def test_retry_success_clears_fallback():
    async def scenario():
        provider = GatedLocationProvider()
        ctl = _controller(provider)
        first = ctl.begin_acquisition()
        await spin()
        provider.fail(LocationFailureKind.UNAVAILABLE)
        await first
        ctl.update_manual_address("Typed street")

        second = ctl.retry()
        await spin()
        during = ctl.state
        provider.succeed(10.0, 20.0)
        await second
        return during, ctl.state

    during, after = asyncio.run(scenario())
    assert during.loading is True
    assert during.is_fallback_mode is True
    assert during.manual_address == "Typed street"
    assert after == LocationState(coordinates=Coordinates(lat=10.0, lng=20.0))


def test_stale_outcome_from_previous_attempt_is_discarded():
    async def scenario():
        provider = GatedLocationProvider()
        ctl = _controller(provider)
        first = ctl.begin_acquisition()
        await spin()
        second = ctl.begin_acquisition()
        await spin()
        provider.fail(LocationFailureKind.TIMEOUT, index=0)
        await first
        mid = ctl.state
        provider.succeed(5.0, 6.0, index=1)
        await second
        return mid, ctl.state

    mid, after = asyncio.run(scenario())
    assert mid.loading is True
    assert mid.is_fallback_mode is False
    assert after.coordinates == Coordinates(lat=5.0, lng=6.0)


def test_reset_makes_inflight_lookup_stale():
    async def scenario():
        provider = GatedLocationProvider()
        ctl = _controller(provider)
        task = ctl.begin_acquisition()
        await spin()
        ctl.reset()
        provider.succeed(1.0, 1.0)
        await task
        return ctl.state

    assert asyncio.run(scenario()) == LocationState.initial()


def test_resolution_order():
    coords = Coordinates(lat=1.5, lng=2.5)
    assert LocationState(coordinates=coords, manual_address="x").resolve("U") == coords
    assert LocationState(manual_address="  Main St  ").resolve("U") == "Main St"
    assert LocationState(manual_address="   ").resolve("U") == "U"
    assert LocationState().resolve("U") == "U"


def test_map_query_url():
    assert LocationState().map_query_url() == ""
    assert LocationState(coordinates=Coordinates(lat=1.5, lng=2.5)).map_query_url().endswith("query=1.5,2.5")
    assert LocationState(manual_address="1 A St").map_query_url().endswith("query=1%20A%20St")
