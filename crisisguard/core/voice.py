# crisisguard/core/voice.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Voice input controller
------------------------------------
Bridges ONE single-utterance speech session into the chat.

States: Idle ⇄ Listening.

- toggle(): unsupported → no-op; Listening → stop + Idle;
  Idle → start (Listening), or stay Idle if start fails.
- Exactly one terminal event (result / error / end) moves Listening → Idle.
  Events that arrive while Idle (e.g. the recognizer's own `end` after a
  manual stop) are ignored.
- A non-empty transcript is forwarded verbatim to the chat-send callback.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from crisisguard.core.observable import Observable
from crisisguard.models.session_state import VoiceSessionState

logger = logging.getLogger(__name__)

TranscriptSink = Callable[[str], Union[Awaitable[Any], Any]]


class VoiceStartError(Exception):
    """Raised by a SpeechRecognizer when a session cannot be started."""


class SpeechRecognizer(Protocol):
    supported: bool

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class VoiceInputController:
    def __init__(
        self,
        recognizer: Optional[SpeechRecognizer],
        on_transcript: TranscriptSink,
        state: Optional[Observable[VoiceSessionState]] = None,
    ) -> None:
        self._recognizer = recognizer
        self._on_transcript = on_transcript
        supported = bool(recognizer is not None and getattr(recognizer, "supported", False))
        self._state: Observable[VoiceSessionState] = state or Observable(
            "voice", VoiceSessionState(supported=supported)
        )
        if self._state.value.supported != supported:
            self._state.set(VoiceSessionState(supported=supported))

    @property
    def state(self) -> VoiceSessionState:
        return self._state.value

    @property
    def listening(self) -> bool:
        return self._state.value.listening

    def _set_listening(self, listening: bool) -> None:
        self._state.set(self._state.value.model_copy(update={"listening": listening}))

    def toggle(self) -> None:
        if not self._state.value.supported or self._recognizer is None:
            return

        if self.listening:
            self._recognizer.stop()
            self._set_listening(False)
            logger.info("Voice input stopped by user.")
            return

        try:
            self._recognizer.start()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unable to start voice recognition: %s", exc)
            self._set_listening(False)
            return

        self._set_listening(True)
        logger.info("Voice input listening.")

    async def handle_result(self, transcript: str) -> None:
        if not self.listening:
            logger.debug("Voice result ignored; not listening.")
            return
        self._finish()

        if not transcript or not transcript.strip():
            logger.debug("Empty voice transcript ignored.")
            return

        outcome = self._on_transcript(transcript)
        if inspect.isawaitable(outcome):
            await outcome

    def handle_error(self, code: str) -> None:
        if not self.listening:
            return
        logger.warning("Speech recognition error: %s", code)
        self._finish()

    def handle_end(self) -> None:
        if not self.listening:
            return
        self._finish()

    def _finish(self) -> None:
        if self._recognizer is not None:
            self._recognizer.stop()
        self._set_listening(False)
