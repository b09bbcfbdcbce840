from __future__ import annotations

import asyncio

import pytest
from conftest import FakeAdvisory, GatedLocationProvider, InstantLocationProvider, make_settings, spin

from crisisguard.core.location import LocationError
from crisisguard.core.orchestrator import InvalidTransitionError, SessionOrchestrator
from crisisguard.models.advisory_models import ChatRole, EmergencyResource, ResourceCategory
from crisisguard.models.location_state import Coordinates, LocationFailureKind
from crisisguard.models.session_state import ViewState


def _orchestrator(advisory=None, provider=None, **overrides) -> SessionOrchestrator:
    return SessionOrchestrator(
        advisory or FakeAdvisory(),
        location_provider=provider,
        config=make_settings(**overrides),
        session_id="s-test",
    )


def test_initial_state():
    orch = _orchestrator()
    assert orch.view_state is ViewState.HOME
    assert orch.selected_disaster == ""
    assert orch.protocol_result == ""
    assert orch.resources == []
    assert orch.chat_history == []


def test_start_assessment_moves_to_assessing_and_starts_location():
    async def scenario():
        provider = GatedLocationProvider()
        orch = _orchestrator(provider=provider)
        orch.start_assessment("  flood ")
        await spin()
        return orch, provider

    orch, provider = asyncio.run(scenario())
    assert orch.view_state is ViewState.ASSESSING
    assert orch.selected_disaster == "Flood"
    assert orch.location_state.loading is True
    assert provider.calls == 1


def test_start_assessment_rejects_empty_label():
    orch = _orchestrator()
    with pytest.raises(ValueError):
        orch.start_assessment("   ")
    assert orch.view_state is ViewState.HOME


def test_generate_protocol_requires_assessing():
    orch = _orchestrator()
    with pytest.raises(InvalidTransitionError):
        asyncio.run(orch.generate_protocol("anything"))


def test_flood_scenario_with_manual_address():
    advisory = FakeAdvisory(
        protocol="Move to higher ground.",
        resources=[EmergencyResource(name="Hilltop Shelter", category=ResourceCategory.SHELTER)],
    )

    async def scenario():
        provider = GatedLocationProvider()
        orch = _orchestrator(advisory, provider)
        task = orch.start_assessment("Flood")
        await spin()
        provider.fail(LocationFailureKind.PERMISSION_DENIED)
        await task
        orch.update_manual_address("123 Main St")
        assert await orch.generate_protocol("water rising fast") is True
        return orch

    orch = asyncio.run(scenario())
    assert advisory.protocol_calls == [("Flood", "123 Main St", "water rising fast")]
    assert advisory.resource_calls == ["123 Main St"]
    assert orch.view_state is ViewState.PROTOCOL
    assert orch.protocol_result == "Move to higher ground."
    assert [r.name for r in orch.resources] == ["Hilltop Shelter"]

    history = orch.chat_history
    assert len(history) == 2
    assert history[0].role is ChatRole.USER
    assert history[0].text == "EMERGENCY ALERT: Flood. Location: 123 Main St. Info: water rising fast"
    assert history[1].role is ChatRole.MODEL
    assert history[1].text == "Move to higher ground."


def test_empty_severity_uses_default_marker():
    advisory = FakeAdvisory()

    async def scenario():
        orch = _orchestrator(advisory, InstantLocationProvider(Coordinates(lat=1.0, lng=2.0)))
        await orch.start_assessment("Fire")
        await orch.generate_protocol("   ")
        return orch

    orch = asyncio.run(scenario())
    _, location, severity = advisory.protocol_calls[0]
    assert severity == "Situation Unknown. Need General Protocol."
    assert location == Coordinates(lat=1.0, lng=2.0)
    assert orch.chat_history[0].text.endswith("Info: Situation Unknown. Need General Protocol.")


def test_protocol_view_shown_before_results_arrive():
    advisory = FakeAdvisory()

    async def scenario():
        advisory.gate = asyncio.Event()
        orch = _orchestrator(advisory, InstantLocationProvider(Coordinates(lat=1.0, lng=2.0)))
        await orch.start_assessment("Storm")
        gen = asyncio.create_task(orch.generate_protocol("roof gone"))
        await spin()
        during = orch.snapshot()
        advisory.gate.set()
        await gen
        return during, orch.snapshot()

    during, after = asyncio.run(scenario())
    assert during.view_state is ViewState.PROTOCOL
    assert during.protocol_result == ""
    assert during.is_generating is True
    assert during.is_loading_resources is True
    assert after.is_generating is False
    assert after.is_loading_resources is False
    assert after.protocol_result


def test_protocol_and_resources_requested_concurrently():
    advisory = FakeAdvisory()

    async def scenario():
        advisory.gate = asyncio.Event()
        orch = _orchestrator(advisory)
        await orch.start_assessment("Medical")
        gen = asyncio.create_task(orch.generate_protocol(""))
        await spin()
        both_started = (len(advisory.protocol_calls), len(advisory.resource_calls))
        advisory.gate.set()
        await gen
        return both_started

    assert asyncio.run(scenario()) == (1, 1)


def test_send_message_appends_user_then_model():
    advisory = FakeAdvisory()

    async def scenario():
        advisory.gate = asyncio.Event()
        orch = _orchestrator(advisory)
        orch.skip_to_chat()
        send = asyncio.create_task(orch.send_message("Is the bridge safe?"))
        await spin()
        during = orch.chat_history
        advisory.gate.set()
        await send
        return during, orch.chat_history

    during, after = asyncio.run(scenario())
    assert [(m.role, m.text) for m in during] == [(ChatRole.USER, "Is the bridge safe?")]
    assert [(m.role, m.text) for m in after] == [
        (ChatRole.USER, "Is the bridge safe?"),
        (ChatRole.MODEL, "reply to Is the bridge safe?"),
    ]
    prior, new = advisory.chat_calls[0]
    assert prior == []
    assert new == "Is the bridge safe?"


def test_prior_context_excludes_new_message():
    advisory = FakeAdvisory()

    async def scenario():
        orch = _orchestrator(advisory)
        orch.skip_to_chat()
        await orch.send_message("first")
        await orch.send_message("second")

    asyncio.run(scenario())
    prior, new = advisory.chat_calls[1]
    assert new == "second"
    assert [m.text for m in prior] == ["first", "reply to first"]


def test_send_message_ignores_blank_text():
    advisory = FakeAdvisory()
    orch = _orchestrator(advisory)
    assert asyncio.run(orch.send_message("   \n ")) is False
    assert orch.chat_history == []
    assert advisory.chat_calls == []


def test_send_message_keeps_text_as_typed():
    advisory = FakeAdvisory()
    orch = _orchestrator(advisory)
    assert asyncio.run(orch.send_message("  Is the bridge safe?  ")) is True
    assert orch.chat_history[0].text == "  Is the bridge safe?  "
    assert advisory.chat_calls[0][1] == "  Is the bridge safe?  "


def test_send_message_honours_configured_length_limit(caplog):
    advisory = FakeAdvisory()
    orch = _orchestrator(advisory, max_user_chars=10)
    with caplog.at_level("WARNING", logger="crisisguard.core.orchestrator"):
        asyncio.run(orch.send_message("x" * 30))

    assert orch.chat_history[0].text == "x" * 10
    assert advisory.chat_calls[0][1] == "x" * 10
    assert "truncated" in caplog.text


def test_severity_honours_configured_length_limit():
    advisory = FakeAdvisory()

    async def scenario():
        orch = _orchestrator(advisory, InstantLocationProvider(Coordinates(lat=1.0, lng=2.0)), max_user_chars=10)
        await orch.start_assessment("Fire")
        await orch.generate_protocol("smoke everywhere on the third floor")

    asyncio.run(scenario())
    assert advisory.protocol_calls[0][2] == "smoke ever"


def test_skip_and_proceed_edges():
    async def scenario():
        orch = _orchestrator()
        await orch.start_assessment("Animal")
        orch.skip_to_chat()
        orch.skip_to_chat()
        return orch

    orch = asyncio.run(scenario())
    assert orch.view_state is ViewState.CHAT
    with pytest.raises(InvalidTransitionError):
        orch.enter_chat_mode()


def test_enter_chat_mode_after_protocol():
    async def scenario():
        orch = _orchestrator()
        await orch.start_assessment("Chemical")
        await orch.generate_protocol("smell of gas")
        orch.enter_chat_mode()
        return orch

    orch = asyncio.run(scenario())
    assert orch.view_state is ViewState.CHAT
    assert len(orch.chat_history) == 2


def test_reset_is_a_single_commit():
    async def scenario():
        orch = _orchestrator(provider=InstantLocationProvider(Coordinates(lat=1.0, lng=1.0)))
        await orch.start_assessment("Earthquake")
        await orch.generate_protocol("aftershocks")
        commits = []
        orch.subscribe(commits.append)
        orch.reset_session()
        return orch, commits

    orch, commits = asyncio.run(scenario())
    assert len(commits) == 1
    assert {"view_state", "selected_disaster", "protocol_result", "chat_history", "location"} <= commits[0]
    assert orch.view_state is ViewState.HOME
    assert orch.selected_disaster == ""
    assert orch.protocol_result == ""
    assert orch.chat_history == []
    assert orch.location_state.coordinates is None


def test_protocol_superseded_by_reset_is_discarded():
    advisory = FakeAdvisory()

    async def scenario():
        advisory.gate = asyncio.Event()
        orch = _orchestrator(advisory)
        await orch.start_assessment("Flood")
        gen = asyncio.create_task(orch.generate_protocol("high water"))
        await spin()
        orch.reset_session()
        advisory.gate.set()
        committed = await gen
        return orch, committed

    orch, committed = asyncio.run(scenario())
    assert committed is False
    assert orch.view_state is ViewState.HOME
    assert orch.protocol_result == ""
    assert orch.chat_history == []


def test_chat_reply_after_reset_is_discarded():
    advisory = FakeAdvisory()

    async def scenario():
        advisory.gate = asyncio.Event()
        orch = _orchestrator(advisory)
        orch.skip_to_chat()
        send = asyncio.create_task(orch.send_message("hello?"))
        await spin()
        orch.reset_session()
        advisory.gate.set()
        return orch, await send

    orch, committed = asyncio.run(scenario())
    assert committed is False
    assert orch.chat_history == []
    assert orch.snapshot().is_chatting is False


def test_voice_transcript_is_sent_as_chat():
    class Recognizer:
        supported = True

        def start(self):
            pass

        def stop(self):
            pass

    advisory = FakeAdvisory()

    async def scenario():
        orch = SessionOrchestrator(advisory, speech_recognizer=Recognizer(), config=make_settings())
        orch.skip_to_chat()
        orch.toggle_voice()
        await orch.voice.handle_result("need water")
        return orch

    orch = asyncio.run(scenario())
    assert [m.text for m in orch.chat_history] == ["need water", "reply to need water"]
    assert orch.voice_state.listening is False


def test_snapshot_json_shape():
    async def scenario():
        orch = _orchestrator(provider=InstantLocationProvider(error=LocationError(LocationFailureKind.TIMEOUT)))
        await orch.start_assessment("Cyber")
        orch.update_manual_address("1 A St")
        return orch.snapshot().to_json_dict()

    data = asyncio.run(scenario())
    assert data["session_id"] == "s-test"
    assert data["view_state"] == "assessing"
    assert data["location"]["is_fallback_mode"] is True
    assert data["location"]["manual_address"] == "1 A St"
    assert data["map_query_url"].endswith("1%20A%20St")
