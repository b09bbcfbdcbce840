# crisisguard/runtime_state/sessions.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Runtime Session Registry
--------------------------------------

Purpose
~~~~~~~
- Keep one SessionOrchestrator per connected client so several people can
  use the server at once without mixing their chats or locations.
- Hold the client-bridged device ports for each session (GPS fix and
  speech results are pushed by the client).

Design notes
~~~~~~~~~~~~
- Purely in memory. Sessions are never persisted: a crisis session that
  outlives the process is not something we want to resurrect.
- Assumes a single worker process (one event loop).
- Idle sessions are pruned by `prune_stale_sessions()`; the HTTP layer
  calls it whenever a new session is created.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from crisisguard.core.advisory import AdvisoryClient
from crisisguard.core.config import Settings, settings
from crisisguard.core.device_bridge import ClientLocationProvider, ClientSpeechRecognizer
from crisisguard.core.orchestrator import SessionOrchestrator
from crisisguard.utils import get_logger

logger = get_logger("crisisguard.runtime_state")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LiveSession:
    """
    One registered session.

    Attributes
    ----------
    session_id:
        Registry key handed to the client.
    orchestrator:
        The session's state machine and operations.
    location_bridge / speech_bridge:
        Device ports the client reports into.
    created_at / last_seen:
        Timestamps used for pruning idle sessions.
    """

    session_id: str
    orchestrator: SessionOrchestrator
    location_bridge: ClientLocationProvider
    speech_bridge: ClientSpeechRecognizer
    created_at: datetime = field(default_factory=_utcnow)
    last_seen: datetime = field(default_factory=_utcnow)

    def touch(self) -> None:
        self.last_seen = _utcnow()


class SessionRegistry:
    """
    In-memory session registry.

    Parameters
    ----------
    advisory_factory:
        Builds the AdvisoryClient for each new session. Tests pass a
        factory returning a client with scripted providers.
    config:
        Settings instance (defaults to the global `settings`).
    """

    def __init__(
        self,
        advisory_factory: Optional[Callable[[], AdvisoryClient]] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self._advisory_factory = advisory_factory or AdvisoryClient
        self._config = config or settings
        self._sessions: Dict[str, LiveSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create_session(self, *, voice_supported: bool = False) -> LiveSession:
        session_id = uuid.uuid4().hex
        location_bridge = ClientLocationProvider()
        speech_bridge = ClientSpeechRecognizer(supported=voice_supported)
        orchestrator = SessionOrchestrator(
            self._advisory_factory(),
            location_provider=location_bridge,
            speech_recognizer=speech_bridge,
            config=self._config,
            session_id=session_id,
        )
        live = LiveSession(
            session_id=session_id,
            orchestrator=orchestrator,
            location_bridge=location_bridge,
            speech_bridge=speech_bridge,
        )
        self._sessions[session_id] = live
        logger.info("[SessionRegistry] Created session %s (voice=%s)", session_id, voice_supported)
        return live

    def get_session(self, session_id: str) -> Optional[LiveSession]:
        """Return the session (and refresh last_seen), or None."""
        live = self._sessions.get(session_id)
        if live is not None:
            live.touch()
        return live

    def delete_session(self, session_id: str) -> bool:
        live = self._sessions.pop(session_id, None)
        if live is None:
            return False
        live.orchestrator.reset_session()
        logger.info("[SessionRegistry] Deleted session %s", session_id)
        return True

    def list_session_ids(self) -> List[str]:
        return list(self._sessions)

    def prune_stale_sessions(self, max_age_seconds: Optional[int] = None) -> int:
        """
        Remove sessions not seen for more than `max_age_seconds`
        (default settings.session_idle_ttl_s). Returns how many were removed.
        """
        max_age = self._config.session_idle_ttl_s if max_age_seconds is None else max_age_seconds
        if max_age <= 0:
            return 0

        cutoff = _utcnow() - timedelta(seconds=max_age)
        stale = [sid for sid, live in self._sessions.items() if live.last_seen < cutoff]
        for sid in stale:
            logger.info(
                "[SessionRegistry] Pruning idle session %s (last_seen=%s)",
                sid,
                self._sessions[sid].last_seen,
            )
            self.delete_session(sid)
        return len(stale)


# Global instance used by the routers
session_registry = SessionRegistry()
