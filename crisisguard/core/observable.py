# crisisguard/core/observable.py
# -*- coding: utf-8 -*-
"""
CrisisGuard — Observable state cells
------------------------------------
Plain state containers with a notify-on-change contract.

- Observable[T] holds one committed value and a list of subscribers.
- ChangeHub groups cells that belong to one session. Its `batch()` context
  defers notifications until the outermost batch exits, so a multi-field
  commit (reset, protocol results) is seen by observers as ONE change.

Everything runs on a single event loop; there is no locking. Writers must
not await inside a batch.

Example:

    hub = ChangeHub()
    view = hub.cell("view_state", ViewState.HOME)
    hub.subscribe(lambda changed: print("changed:", changed))

    with hub.batch():
        view.set(ViewState.CHAT)
        other.set(...)
    # -> "changed: {'view_state', 'other'}" printed once
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, FrozenSet, Generic, Iterator, List, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Any], None]
HubListener = Callable[[FrozenSet[str]], None]


def _call_safely(listener: Callable[[Any], None], arg: Any) -> None:
    # A broken observer must not break the session.
    try:
        listener(arg)
    except Exception:  # noqa: BLE001
        logger.exception("Observer %r raised; ignoring.", listener)


class Observable(Generic[T]):
    """A single observable value."""

    def __init__(self, name: str, value: T, hub: "ChangeHub | None" = None) -> None:
        self.name = name
        self._value = value
        self._hub = hub
        self._listeners: List[Listener] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value is self._value:
            return
        self._value = value
        if self._hub is not None:
            self._hub._mark_changed(self)
        else:
            self._emit()

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(new_value)`. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            _call_safely(listener, self._value)

    def __repr__(self) -> str:
        return f"Observable({self.name!r}, {self._value!r})"


class ChangeHub:
    """Owns a set of cells and coalesces their notifications."""

    def __init__(self) -> None:
        self._cells: Dict[str, Observable[Any]] = {}
        self._listeners: List[HubListener] = []
        self._depth = 0
        self._pending: Dict[str, Observable[Any]] = {}

    def cell(self, name: str, value: T) -> Observable[T]:
        if name in self._cells:
            raise ValueError(f"Duplicate observable name: {name!r}")
        obs: Observable[T] = Observable(name, value, hub=self)
        self._cells[name] = obs
        return obs

    def subscribe(self, listener: HubListener) -> Callable[[], None]:
        """Register `listener(changed_names)`, called once per commit."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @contextmanager
    def batch(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._flush()

    def _mark_changed(self, obs: Observable[Any]) -> None:
        self._pending[obs.name] = obs
        if self._depth == 0:
            self._flush()

    def _flush(self) -> None:
        if not self._pending:
            return
        changed = dict(self._pending)
        self._pending.clear()

        for obs in changed.values():
            obs._emit()

        names: FrozenSet[str] = frozenset(changed)
        for listener in list(self._listeners):
            _call_safely(listener, names)

    @property
    def names(self) -> Set[str]:
        return set(self._cells)
