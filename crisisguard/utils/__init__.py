# crisisguard/utils/__init__.py
# -*- coding: utf-8 -*-
"""
CrisisGuard Session Server — Utility toolbox
--------------------------------------------
Shared helper functions that are used across the server:

- file_io   : safe text reads (system-instruction prompt files)
- logging   : central logging configuration
- timers    : small timing/profiling helpers

Import from here when it makes sense, for a clean public API, e.g.:

    from crisisguard.utils import setup_logging, read_text_safely
"""

from __future__ import annotations

from .file_io import (  # noqa: F401
    read_text_safely,
)

from .logging import (  # noqa: F401
    setup_logging,
    get_logger,
)

from .timers import (  # noqa: F401
    Stopwatch,
    log_duration,
)
