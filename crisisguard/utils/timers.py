# crisisguard/utils/timers.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — timing utilities
---------------------------------------------
Helpers for measuring how long backend calls take and logging it.

Used mainly around advisory backend calls (online tier, local tier) so
slow providers show up in the logs during a crisis flow.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from contextlib import ContextDecorator
from typing import Any, Callable, Optional


class Stopwatch(ContextDecorator):
    """
    Stopwatch context manager.

    Example:
        from crisisguard.utils import Stopwatch, get_logger

        logger = get_logger(__name__)

        with Stopwatch("advisory online call", logger) as sw:
            call_online_model(...)
        print(sw.elapsed)

    Logs something like:
        advisory online call took 0.237 s
    """

    def __init__(
        self,
        label: str,
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO,
    ) -> None:
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self.elapsed: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:  # type: ignore[override]
        self.elapsed = time.perf_counter() - self._start
        outcome = "failed after" if exc_type is not None else "took"
        self.logger.log(self.level, "%s %s %.3f s", self.label, outcome, self.elapsed)


def log_duration(
    label: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator factory that logs the duration of each call.

    Works for plain functions and coroutine functions:

        @log_duration("request_protocol", logger)
        async def request_protocol(...):
            ...
    """
    log = logger or logging.getLogger(__name__)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with Stopwatch(label, log, level):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with Stopwatch(label, log, level):
                return func(*args, **kwargs)

        return wrapper

    return decorator
