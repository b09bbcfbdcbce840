"""
Runtime state package for the CrisisGuard session server.

Tracks the live sessions of connected clients so each person gets their
own view state, location lifecycle and chat history.

Typical usage (e.g. in a router):

    from crisisguard.runtime_state import session_registry

    live = session_registry.create_session(voice_supported=True)
    live.orchestrator.start_assessment("Flood")
    live.location_bridge.report_position(52.52, 13.40)
"""

from .sessions import (
    LiveSession,
    SessionRegistry,
    session_registry,
)

__all__ = [
    "LiveSession",
    "SessionRegistry",
    "session_registry",
]
