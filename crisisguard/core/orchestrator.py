# crisisguard/core/orchestrator.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Session orchestrator
----------------------------------
Top-level owner of one emergency-assistance session.

View state machine:

    HOME --start(disaster)--> ASSESSING --confirm(severity)--> PROTOCOL --proceed--> CHAT
    ASSESSING --skip--> CHAT
    PROTOCOL  --skip--> CHAT
    HOME      --skip--> CHAT
    any       --reset--> HOME

Flow:
- start_assessment() picks the disaster and kicks off location acquisition.
- generate_protocol() switches to PROTOCOL *first* (so the UI can show a
  spinner), then fetches protocol + resources concurrently and commits both
  at once, seeding the chat history with the alert summary and protocol.
- send_message() appends the user turn immediately, sends the earlier
  history as context, and appends the model reply when it arrives.
- reset_session() wipes everything in one commit.

Stale results:
- _assessment_epoch bumps on start/reset; a protocol/resources pair whose
  epoch is no longer current is dropped.
- _session_epoch bumps on reset only; a chat reply for a wiped history is
  dropped.

All state lives in Observable cells under one ChangeHub, so observers see
each commit as a single change.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, FrozenSet, List, Optional

from crisisguard.core.advisory import AdvisoryClient
from crisisguard.core.config import Settings, settings
from crisisguard.core.location import (
    LocationAcquirer,
    LocationFallbackController,
    LocationProvider,
)
from crisisguard.core.observable import ChangeHub
from crisisguard.core.safety import normalize_severity
from crisisguard.core.voice import SpeechRecognizer, VoiceInputController
from crisisguard.models.advisory_models import ChatMessage, ChatRole, EmergencyResource
from crisisguard.models.location_state import (
    EffectiveLocation,
    LocationState,
    location_to_text,
)
from crisisguard.models.session_state import (
    SessionSnapshot,
    ViewState,
    VoiceSessionState,
    normalize_disaster_label,
)
from crisisguard.utils import log_duration

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an operation is not allowed from the current view state."""

    def __init__(self, trigger: str, current: ViewState) -> None:
        super().__init__(f"Cannot {trigger} from view state {current.value!r}.")
        self.trigger = trigger
        self.current = current


_TRANSITIONS = {
    ("start", ViewState.HOME): ViewState.ASSESSING,
    ("confirm", ViewState.ASSESSING): ViewState.PROTOCOL,
    ("proceed", ViewState.PROTOCOL): ViewState.CHAT,
    ("skip", ViewState.HOME): ViewState.CHAT,
    ("skip", ViewState.ASSESSING): ViewState.CHAT,
    ("skip", ViewState.PROTOCOL): ViewState.CHAT,
}


def build_alert_summary(disaster: str, location: EffectiveLocation, severity: str) -> str:
    """Synthetic user turn that opens the chat context after a protocol."""
    return f"EMERGENCY ALERT: {disaster}. Location: {location_to_text(location)}. Info: {severity}"


class SessionOrchestrator:
    """
    One emergency-assistance session.

    Parameters
    ----------
    advisory:
        AdvisoryClient (never raises; returns degraded defaults).
    location_provider:
        Device location port, or None when the environment has none.
    speech_recognizer:
        Device speech port, or None when voice input is unsupported.
    config:
        Settings instance (defaults to the global `settings`).
    session_id:
        Optional registry key, echoed in snapshots.
    """

    def __init__(
        self,
        advisory: AdvisoryClient,
        location_provider: Optional[LocationProvider] = None,
        speech_recognizer: Optional[SpeechRecognizer] = None,
        *,
        config: Optional[Settings] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self._advisory = advisory
        self._config = config or settings
        self.session_id = session_id

        self.hub = ChangeHub()
        self._view = self.hub.cell("view_state", ViewState.HOME)
        self._disaster = self.hub.cell("selected_disaster", "")
        self._protocol = self.hub.cell("protocol_result", "")
        self._resources = self.hub.cell("resources", ())
        self._chat = self.hub.cell("chat_history", ())
        self._is_generating = self.hub.cell("is_generating", False)
        self._is_loading_resources = self.hub.cell("is_loading_resources", False)
        self._is_chatting = self.hub.cell("is_chatting", False)

        self.location = LocationFallbackController(
            LocationAcquirer(location_provider, timeout_s=self._config.location_timeout_s),
            state=self.hub.cell("location", LocationState.initial()),
            unknown_label=self._config.unknown_location_label,
        )
        self.voice = VoiceInputController(
            speech_recognizer,
            on_transcript=self.send_message,
            state=self.hub.cell("voice", VoiceSessionState()),
        )

        self._assessment_epoch = 0
        self._session_epoch = 0
        self._chats_in_flight = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def view_state(self) -> ViewState:
        return self._view.value

    @property
    def selected_disaster(self) -> str:
        return self._disaster.value

    @property
    def protocol_result(self) -> str:
        return self._protocol.value

    @property
    def resources(self) -> List[EmergencyResource]:
        return list(self._resources.value)

    @property
    def chat_history(self) -> List[ChatMessage]:
        return list(self._chat.value)

    @property
    def location_state(self) -> LocationState:
        return self.location.state

    @property
    def voice_state(self) -> VoiceSessionState:
        return self.voice.state

    def subscribe(self, listener: Callable[[FrozenSet[str]], None]) -> Callable[[], None]:
        """Called once per commit with the names of the changed records."""
        return self.hub.subscribe(listener)

    def snapshot(self) -> SessionSnapshot:
        loc = self.location.state
        return SessionSnapshot(
            session_id=self.session_id,
            view_state=self._view.value,
            selected_disaster=self._disaster.value,
            location=loc,
            map_query_url=loc.map_query_url(),
            protocol_result=self._protocol.value,
            resources=list(self._resources.value),
            chat_history=list(self._chat.value),
            voice=self.voice.state,
            is_generating=self._is_generating.value,
            is_loading_resources=self._is_loading_resources.value,
            is_chatting=self._is_chatting.value,
        )

    # ------------------------------------------------------------------
    # View transitions
    # ------------------------------------------------------------------

    def _target(self, trigger: str) -> ViewState:
        current = self._view.value
        target = _TRANSITIONS.get((trigger, current))
        if target is None:
            raise InvalidTransitionError(trigger, current)
        return target

    def _move(self, target: ViewState, trigger: str) -> None:
        previous = self._view.value
        self._view.set(target)
        logger.info("View %s --%s--> %s", previous.value, trigger, target.value)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start_assessment(self, disaster_label: str) -> "asyncio.Task[LocationState]":
        """
        HOME → ASSESSING and start location acquisition.

        Returns the acquisition task. Must run inside the event loop.
        """
        label = normalize_disaster_label(disaster_label)
        if not label:
            raise ValueError("Disaster label must not be empty.")
        target = self._target("start")

        self._assessment_epoch += 1
        with self.hub.batch():
            self._disaster.set(label)
            self._move(target, "start")
            task = self.location.begin_acquisition()
        return task

    @log_duration("protocol generation", logger)
    async def generate_protocol(self, severity_text: str = "") -> bool:
        """
        ASSESSING → PROTOCOL, then fetch protocol + resources concurrently.

        Returns True if the results were committed, False if a reset or a
        new assessment superseded them while they were in flight.
        """
        target = self._target("confirm")
        severity = normalize_severity(
            severity_text,
            self._config.default_severity,
            max_chars=self._config.max_user_chars,
        )
        location = self.location.effective_location()
        disaster = self._disaster.value
        epoch = self._assessment_epoch

        # Transition BEFORE any await: the UI shows progress immediately.
        with self.hub.batch():
            self._move(target, "confirm")
            self._protocol.set("")
            self._resources.set(())
            self._is_generating.set(True)
            self._is_loading_resources.set(True)

        protocol, resources = await asyncio.gather(
            self._advisory.request_protocol(disaster, location, severity),
            self._advisory.request_resources(location),
        )

        if epoch != self._assessment_epoch:
            logger.info("Discarding superseded protocol results for %r.", disaster)
            return False

        summary = build_alert_summary(disaster, location, severity)
        with self.hub.batch():
            self._protocol.set(protocol)
            self._resources.set(tuple(resources))
            self._is_generating.set(False)
            self._is_loading_resources.set(False)
            self._chat.set(
                self._chat.value
                + (
                    ChatMessage(role=ChatRole.USER, text=summary),
                    ChatMessage(role=ChatRole.MODEL, text=protocol),
                )
            )
        logger.info(
            "Protocol committed for %r (%d chars, %d resources)",
            disaster,
            len(protocol),
            len(resources),
        )
        return True

    async def send_message(self, text: str) -> bool:
        """
        Append a user turn, ask the backend, append the model turn.

        Empty/whitespace text is ignored (returns False). Other text is kept
        as typed, cut to `max_user_chars` when a limit is configured.
        """
        if not text or not text.strip():
            return False

        message = text
        limit = self._config.max_user_chars
        if limit > 0 and len(message) > limit:
            logger.warning("Chat message truncated from %d to %d chars", len(message), limit)
            message = message[:limit]

        prior = self._chat.value
        epoch = self._session_epoch

        self._chats_in_flight += 1
        with self.hub.batch():
            self._chat.set(prior + (ChatMessage(role=ChatRole.USER, text=message),))
            self._is_chatting.set(True)
        logger.debug("Chat turn sent (%d prior entries)", len(prior))

        try:
            reply = await self._advisory.continue_chat(list(prior), message)
        finally:
            self._chats_in_flight -= 1

        if epoch != self._session_epoch:
            logger.info("Discarding chat reply for a reset session.")
            return False

        with self.hub.batch():
            self._chat.set(self._chat.value + (ChatMessage(role=ChatRole.MODEL, text=reply),))
            self._is_chatting.set(self._chats_in_flight > 0)
        return True

    def enter_chat_mode(self) -> None:
        """PROTOCOL → CHAT (the "proceed" edge)."""
        self._move(self._target("proceed"), "proceed")

    def skip_to_chat(self) -> None:
        """Jump to CHAT without a protocol. No-op when already chatting."""
        if self._view.value is ViewState.CHAT:
            return
        self._move(self._target("skip"), "skip")

    def reset_session(self) -> None:
        """Back to HOME with disaster, protocol, resources, history cleared at once."""
        self._assessment_epoch += 1
        self._session_epoch += 1
        with self.hub.batch():
            previous = self._view.value
            self._view.set(ViewState.HOME)
            self._disaster.set("")
            self._protocol.set("")
            self._resources.set(())
            self._chat.set(())
            self._is_generating.set(False)
            self._is_loading_resources.set(False)
            self._is_chatting.set(False)
            self.location.reset()
        logger.info("Session reset (%s → home)", previous.value)

    # Location / voice passthroughs exposed to the UI layer.

    def enable_manual_entry(self, reason: Optional[str] = None) -> None:
        self.location.enable_manual_entry(reason)

    def update_manual_address(self, text: str) -> None:
        self.location.update_manual_address(text)

    def retry_location(self) -> "asyncio.Task[LocationState]":
        return self.location.retry()

    def toggle_voice(self) -> None:
        self.voice.toggle()

