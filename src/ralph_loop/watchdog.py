"""Hang/timeout watchdog for a running worker."""

from __future__ import annotations

import asyncio
import time
from enum import Enum

from .process import ProcessHandle

# Upper bound on one sleep, so an exited process is noticed promptly.
POLL_INTERVAL = 1.0


class WatchResult(str, Enum):
    NORMAL = "normal"
    TIMED_OUT = "timed_out"


def deadline(
    handle: ProcessHandle, live: bool, idle_timeout: float, hard_timeout: float
) -> float:
    """Monotonic time at which the worker counts as hung."""
    if live:
        return handle.last_output_at + idle_timeout
    return handle.started_at + hard_timeout


async def watch(
    handle: ProcessHandle,
    live: bool,
    idle_timeout: float,
    hard_timeout: float,
) -> WatchResult:
    """Wait until the worker exits or hangs.

    In live mode the clock is the silence since the last output chunk (or
    since launch, before the first one); otherwise it is total run time.
    Output content is never looked at.
    """
    while handle.alive:
        remaining = deadline(handle, live, idle_timeout, hard_timeout) - time.monotonic()
        if remaining <= 0:
            return WatchResult.TIMED_OUT
        await asyncio.sleep(min(remaining, POLL_INTERVAL))
    return WatchResult.NORMAL
