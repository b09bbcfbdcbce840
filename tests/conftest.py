from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from crisisguard.core.config import Settings
from crisisguard.core.location import LocationError
from crisisguard.models.advisory_models import AdvisoryReply, ChatMessage, EmergencyResource
from crisisguard.models.location_state import Coordinates, LocationFailureKind


def make_settings(**overrides) -> Settings:
    values = dict(
        environment="test",
        debug=False,
        advisory_api_key="test-key",
        advisory_model_candidates=["model-a", "model-b"],
        advisory_local_enabled=False,
        advisory_web_search=False,
        location_timeout_s=1.0,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


class GatedLocationProvider:
    """Location port the test resolves by hand."""

    def __init__(self) -> None:
        self.calls = 0
        self._futures: List[asyncio.Future] = []

    async def request_position(self) -> Coordinates:
        self.calls += 1
        fut = asyncio.get_running_loop().create_future()
        self._futures.append(fut)
        return await fut

    def succeed(self, lat: float, lng: float, index: int = -1) -> None:
        self._futures[index].set_result(Coordinates(lat=lat, lng=lng))

    def fail(self, kind: LocationFailureKind, message: Optional[str] = None, index: int = -1) -> None:
        self._futures[index].set_exception(LocationError(kind, message))


class InstantLocationProvider:
    def __init__(self, coords: Optional[Coordinates] = None, error: Optional[Exception] = None) -> None:
        self.coords = coords
        self.error = error

    async def request_position(self) -> Coordinates:
        if self.error is not None:
            raise self.error
        assert self.coords is not None
        return self.coords


class FakeAdvisory:
    """
    Duck-typed AdvisoryClient. Each call can be held on a gate so tests
    can observe the in-flight state.
    """

    def __init__(
        self,
        protocol: str = "Stay calm. Move to higher ground.",
        resources: Optional[List[EmergencyResource]] = None,
        chat_reply: Callable[[str], str] = lambda text: f"reply to {text}",
    ) -> None:
        self.protocol = protocol
        self.resources = resources or []
        self.chat_reply = chat_reply
        self.protocol_calls: List[tuple] = []
        self.resource_calls: List[object] = []
        self.chat_calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    async def request_protocol(self, disaster, location, severity) -> str:
        self.protocol_calls.append((disaster, location, severity))
        await self._wait()
        return self.protocol

    async def request_resources(self, location) -> List[EmergencyResource]:
        self.resource_calls.append(location)
        await self._wait()
        return list(self.resources)

    async def continue_chat(self, prior_context: Sequence[ChatMessage], new_message: str) -> str:
        self.chat_calls.append((list(prior_context), new_message))
        await self._wait()
        return self.chat_reply(new_message)


class ScriptedProvider:
    """Blocking provider function returning/raising from a script, recording calls."""

    def __init__(self, script: Dict[str, object]) -> None:
        self.script = script
        self.calls: List[str] = []

    def online(self, messages, model_name, *, web_search=False, config=None) -> AdvisoryReply:
        self.calls.append(model_name)
        outcome = self.script.get(model_name)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            from crisisguard.providers.advisory_online import AdvisoryOnlineError

            raise AdvisoryOnlineError(f"{model_name} not scripted")
        return outcome  # type: ignore[return-value]

    def local(self, messages, *, config=None) -> AdvisoryReply:
        self.calls.append("local")
        outcome = self.script.get("local")
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            from crisisguard.providers.advisory_local import AdvisoryLocalError

            raise AdvisoryLocalError("local not scripted")
        return outcome  # type: ignore[return-value]


async def spin(ticks: int = 5) -> None:
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(ticks):
        await asyncio.sleep(0)
