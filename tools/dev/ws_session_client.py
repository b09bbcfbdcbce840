#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CrisisGuard — Dev WebSocket Session Client (/ws/sessions/{id})
--------------------------------------------------------------
Interactive console tool for driving one session over WebSocket.

Features:
- Creates a session over HTTP (POST /sessions) unless --session is given.
- Prints every snapshot frame the server pushes (view, location, protocol,
  resources, chat turns) as it arrives.
- Plain text is sent as a chat message; slash commands map to session
  commands:

    /start <disaster>      start_assessment
    /protocol [severity]   generate_protocol
    /fix <lat> <lng>       report_position (pretend to be the GPS chip)
    /nofix [kind]          report_location_failure (default: timeout)
    /manual [reason]       enable_manual_entry
    /address <text>        update_manual_address
    /retry                 retry_location
    /chatmode              enter_chat_mode
    /skip                  skip_to_chat
    /voice                 toggle_voice
    /say <transcript>      voice_result
    /reset                 reset_session
    /quit

- AUTO-RECONNECT to the same session when the connection drops (with
  backoff).

This client is meant for development / testing on your laptop.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional, Tuple

import requests
import websockets
from websockets.exceptions import ConnectionClosed

DEFAULT_HTTP = "http://127.0.0.1:8000"


class UserQuit(Exception):
    """Raised when the user types /quit or hits Ctrl+D."""


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="CrisisGuard — Dev WebSocket Session Client",
    )
    parser.add_argument(
        "--http",
        type=str,
        default=DEFAULT_HTTP,
        help=f"HTTP base URL of the server (default: {DEFAULT_HTTP})",
    )
    parser.add_argument(
        "--session",
        type=str,
        default=None,
        help="Attach to an existing session id instead of creating one.",
    )
    parser.add_argument(
        "--voice",
        action="store_true",
        help="Create the session with voice_supported=true.",
    )
    return parser.parse_args()


def create_session(http_base: str, voice_supported: bool) -> str:
    resp = requests.post(
        f"{http_base.rstrip('/')}/sessions",
        json={"voice_supported": voice_supported},
        timeout=10,
    )
    resp.raise_for_status()
    return resp.json()["session_id"]


def ws_url(http_base: str, session_id: str) -> str:
    base = http_base.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws/sessions/{session_id}"


# ---------------------------------------------------------------------------
# Input → command frame
# ---------------------------------------------------------------------------


def parse_line(line: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Turn one console line into (command, payload). None = nothing to send."""
    text = line.strip()
    if not text:
        return None
    if not text.startswith("/"):
        return "send_message", {"text": text, "source": "keyboard"}

    head, _, rest = text.partition(" ")
    rest = rest.strip()
    cmd = head.lower()

    if cmd in {"/quit", "/exit"}:
        raise UserQuit()
    if cmd == "/start":
        return "start_assessment", {"disaster": rest}
    if cmd == "/protocol":
        return "generate_protocol", {"severity": rest}
    if cmd == "/fix":
        parts = rest.replace(",", " ").split()
        if len(parts) != 2:
            print("usage: /fix <lat> <lng>")
            return None
        try:
            return "report_position", {"latitude": float(parts[0]), "longitude": float(parts[1])}
        except ValueError:
            print("usage: /fix <lat> <lng>")
            return None
    if cmd == "/nofix":
        return "report_location_failure", {"kind": rest or "timeout"}
    if cmd == "/manual":
        return "enable_manual_entry", {"reason": rest or None}
    if cmd == "/address":
        return "update_manual_address", {"address": rest}
    if cmd == "/retry":
        return "retry_location", {}
    if cmd == "/chatmode":
        return "enter_chat_mode", {}
    if cmd == "/skip":
        return "skip_to_chat", {}
    if cmd == "/voice":
        return "toggle_voice", {}
    if cmd == "/say":
        return "voice_result", {"transcript": rest}
    if cmd == "/reset":
        return "reset_session", {}

    print(f"Unknown command: {cmd}")
    return None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def print_frame(data: Dict[str, Any], seen_chat: int) -> int:
    """Print one server frame. Returns the number of chat entries shown so far."""
    if data.get("type") == "error":
        print(f"\n[server error] {data.get('code')} - {data.get('message')}")
        if data.get("details"):
            print(f"  details: {data['details']}")
        return seen_chat

    if data.get("type") != "snapshot":
        print(f"\n[server] {data}")
        return seen_chat

    state = data.get("state") or {}
    changed = set(data.get("changed") or [])
    loc = state.get("location") or {}

    if not changed or "view_state" in changed:
        print(f"\n[view] {state.get('view_state')}  disaster={state.get('selected_disaster') or '-'}")
    if not changed or "location" in changed:
        print(
            f"[location] coords={loc.get('coordinates')} address={loc.get('manual_address')!r} "
            f"loading={loc.get('loading')} fallback={loc.get('is_fallback_mode')} error={loc.get('error')!r}"
        )
    if "voice" in changed:
        print(f"[voice] {state.get('voice')}")
    if "resources" in changed and state.get("resources"):
        print("[resources]")
        for res in state["resources"]:
            print(f"  - {res.get('type')}: {res.get('name')} | {res.get('address')} | {res.get('phone')}")

    history = state.get("chat_history") or []
    if len(history) < seen_chat:
        seen_chat = 0
    for entry in history[seen_chat:]:
        who = "You" if entry.get("role") == "user" else "CrisisGuard"
        print(f"\n{who}: {entry.get('text')}\n")
    return len(history)


# ---------------------------------------------------------------------------
# One connection
# ---------------------------------------------------------------------------


async def _reader(ws: Any) -> None:
    seen_chat = 0
    async for raw in ws:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            print(f"Raw frame (not JSON): {raw}")
            continue
        seen_chat = print_frame(data, seen_chat)


async def run_single_session(url: str) -> None:
    print(f"[client] server : {url}")
    print("Type a message (chat) or a /command. Type /quit to exit.\n")

    async with websockets.connect(url, ping_interval=None, ping_timeout=None) as ws:
        print("Connected.\n")
        reader = asyncio.create_task(_reader(ws))
        try:
            while True:
                try:
                    line = await asyncio.to_thread(input, "> ")
                except EOFError:
                    raise UserQuit()

                if reader.done():
                    # Surfaces ConnectionClosed to the reconnect loop.
                    reader.result()
                    raise ConnectionClosed(None, None)

                parsed = parse_line(line)
                if parsed is None:
                    continue
                cmd, payload = parsed
                await ws.send(json.dumps({"type": cmd, "payload": payload}))
        finally:
            reader.cancel()


# ---------------------------------------------------------------------------
# Auto-reconnect wrapper
# ---------------------------------------------------------------------------


async def run_with_reconnect(url: str) -> None:
    """
    Reconnect to the same session when the connection fails.

    Backoff: 3s, 6s, 9s, ... capped at 30s. Ctrl+C or /quit to exit.
    """
    attempt = 0
    base_delay = 3

    while True:
        attempt += 1
        try:
            print(f"Connecting (attempt {attempt}) ...")
            await run_single_session(url)
            return
        except UserQuit:
            print("Bye.")
            return
        except ConnectionClosed as exc:
            if exc.rcvd is not None and exc.rcvd.code == 4404:
                print("Session not found on the server. Bye.")
                return
            print(f"\nConnection closed: {exc}")
        except OSError as exc:
            print(f"\nConnection error: {exc}")
        except Exception as exc:  # noqa: BLE001
            print(f"\nUnexpected error: {exc}")

        delay = min(base_delay * attempt, 30)
        print(f"Reconnecting in {delay} seconds... (Ctrl+C to stop)")
        await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    args = parse_args()
    session_id = args.session
    if session_id is None:
        try:
            session_id = create_session(args.http, args.voice)
        except requests.RequestException as exc:
            print(f"Could not create a session: {exc}")
            sys.exit(1)
        print(f"[client] created session {session_id}")

    try:
        asyncio.run(run_with_reconnect(ws_url(args.http, session_id)))
    except KeyboardInterrupt:
        print("\nBye.")
        sys.exit(0)


if __name__ == "__main__":
    main()
