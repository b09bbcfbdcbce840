# crisisguard/routers/ws.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — WebSocket router
------------------------------
Live channel for one session:

- /ws/sessions/{session_id}

Server -> client frames
-----------------------
    {"type": "snapshot", "changed": ["view_state", ...], "state": {...}}
    {"type": "error", "code": "...", "message": "...", "details": ...}

The first frame after connecting is a full snapshot with "changed": [].
After that, one snapshot frame is pushed per committed change (several
commits that land before the sender wakes up are coalesced).

Client -> server frames
-----------------------
    {"type": "<command>", "payload": {...}}

<command> is any name from routers/commands.py (start_assessment,
generate_protocol, send_message, report_position, ...) plus "ping".

Commands run as tasks so a slow protocol fetch never blocks a GPS fix or
a voice result arriving on the same socket. Malformed frames get an error
frame and the connection stays open.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, FrozenSet, Optional, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from crisisguard.core.orchestrator import InvalidTransitionError
from crisisguard.routers.commands import UnknownCommandError, dispatch
from crisisguard.routers.sessions import get_registry
from crisisguard.runtime_state import LiveSession, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Application-level close code for an unknown session id.
CLOSE_UNKNOWN_SESSION = 4404


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _SessionChannel:
    """Serialises all sends on one socket and pushes snapshot frames."""

    def __init__(self, websocket: WebSocket, live: LiveSession) -> None:
        self.websocket = websocket
        self.live = live
        self._send_lock = asyncio.Lock()
        self._changes: "asyncio.Queue[FrozenSet[str]]" = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()

    # Hub listener: called synchronously inside the event loop.
    def on_change(self, names: FrozenSet[str]) -> None:
        self._changes.put_nowait(names)

    async def send(self, payload: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(payload)

    async def send_snapshot(self, changed: FrozenSet[str] = frozenset()) -> None:
        await self.send(
            {
                "type": "snapshot",
                "changed": sorted(changed),
                "state": self.live.orchestrator.snapshot().to_json_dict(),
            }
        )

    async def send_error(self, code: str, message: str, details: Optional[Any] = None) -> None:
        payload: Dict[str, Any] = {"type": "error", "code": code, "message": message}
        if details is not None:
            payload["details"] = details
        try:
            await self.send(payload)
        except Exception:  # noqa: BLE001
            logger.debug("Failed to send error frame over WebSocket", exc_info=True)

    async def pump(self) -> None:
        """Push coalesced snapshots until the socket stops accepting frames."""
        while True:
            changed = set(await self._changes.get())
            while not self._changes.empty():
                changed.update(self._changes.get_nowait())
            try:
                await self.send_snapshot(frozenset(changed))
            except Exception:  # noqa: BLE001
                logger.debug(
                    "Snapshot push failed for session %s; stopping pump",
                    self.live.session_id,
                    exc_info=True,
                )
                return

    def spawn(self, name: str, payload: Optional[Dict[str, Any]]) -> None:
        task = asyncio.create_task(self.run_command(name, payload))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        # Commands outlive the socket; the session keeps their results.
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "WS command task failed for session %s",
                self.live.session_id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def run_command(self, name: str, payload: Optional[Dict[str, Any]]) -> None:
        try:
            await dispatch(self.live, name, payload)
        except UnknownCommandError:
            await self.send_error("unknown_type", f"Unknown command: {name!r}")
        except ValidationError as exc:
            logger.warning("Invalid %s payload over WS: %s", name, exc)
            await self.send_error(
                "invalid_payload",
                f"Payload does not match the {name} schema.",
                details=json.loads(exc.json()),
            )
        except InvalidTransitionError as exc:
            await self.send_error("invalid_transition", str(exc))
        except ValueError as exc:
            await self.send_error("invalid_value", str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Command %s failed for session %s: %s", name, self.live.session_id, exc)
            await self.send_error("command_error", "Internal error while running the command.")


# ---------------------------------------------------------------------------
# /ws/sessions/{session_id}
# ---------------------------------------------------------------------------


@router.websocket("/ws/sessions/{session_id}")
async def websocket_session(
    websocket: WebSocket,
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    live = registry.get_session(session_id)
    if live is None:
        logger.warning("WS connect for unknown session %s", session_id)
        await websocket.close(code=CLOSE_UNKNOWN_SESSION)
        return

    await websocket.accept()
    logger.info("WebSocket /ws/sessions/%s connected", session_id)

    channel = _SessionChannel(websocket, live)
    unsubscribe = live.orchestrator.subscribe(channel.on_change)
    pump_task: Optional[asyncio.Task] = None

    try:
        await channel.send_snapshot()
        pump_task = asyncio.create_task(channel.pump())

        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await channel.send_error("invalid_json", "Frame is not valid JSON.")
                continue

            if not isinstance(frame, dict) or not frame.get("type"):
                await channel.send_error("missing_type", 'Frame must include a "type" field.')
                continue

            msg_type = str(frame["type"]).lower().strip()
            payload = frame.get("payload")
            if payload is not None and not isinstance(payload, dict):
                await channel.send_error("invalid_payload", '"payload" must be an object.')
                continue

            if msg_type == "ping":
                await channel.send({"type": "pong"})
                continue

            logger.debug("WS session %s command %s: %r", session_id, msg_type, payload)
            channel.spawn(msg_type, payload)

    except WebSocketDisconnect:
        logger.info("WebSocket /ws/sessions/%s disconnected", session_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in WS /ws/sessions/%s: %s", session_id, exc)
        try:
            await websocket.close(code=1011)
        except Exception:  # noqa: BLE001
            logger.debug("Close after error failed", exc_info=True)
    finally:
        unsubscribe()
        if pump_task is not None:
            pump_task.cancel()
            await asyncio.gather(pump_task, return_exceptions=True)
