"""Termination escalation: ask politely, wait, then force."""

from __future__ import annotations

import asyncio
import signal
from typing import Protocol

from .display import debug_log, warn
from .process import FORCE_SIGNAL

GROUP_POLL_INTERVAL = 0.05
# Upper bound on waiting for the group to disappear after SIGKILL. Members
# can linger as zombies until whoever inherited them reaps them.
REAP_TIMEOUT = 2.0


class Stoppable(Protocol):
    pid: int

    @property
    def returncode(self) -> int | None: ...

    def group_alive(self) -> bool: ...

    def send_signal(self, sig: int) -> None: ...

    async def wait(self) -> int: ...


async def _wait_group(handle: Stoppable) -> None:
    await handle.wait()
    while handle.group_alive():
        await asyncio.sleep(GROUP_POLL_INTERVAL)


async def stop(handle: Stoppable, grace: float, debug: bool = False) -> None:
    """Stop a worker and everything in its process group.

    Sends SIGTERM to the group, waits up to ``grace`` seconds for the worker
    and every other group member to exit, then sends the forced signal to
    whatever is left. Calling this once the whole group is gone does nothing.
    """
    if not handle.group_alive():
        return

    debug_log(f"SIGTERM -> process group {handle.pid}", debug)
    handle.send_signal(signal.SIGTERM)
    try:
        await asyncio.wait_for(_wait_group(handle), timeout=grace)
        return
    except asyncio.TimeoutError:
        pass

    if handle.returncode is None:
        warn(f"Worker (pid {handle.pid}) ignored SIGTERM for {grace:g}s, killing it.")
    else:
        warn(f"Processes left in worker group {handle.pid} ignored SIGTERM, killing them.")
    debug_log(f"SIGKILL -> process group {handle.pid}", debug)
    handle.send_signal(FORCE_SIGNAL)
    await handle.wait()
    try:
        await asyncio.wait_for(_wait_group(handle), timeout=REAP_TIMEOUT)
    except asyncio.TimeoutError:
        debug_log(f"Process group {handle.pid} still listed after SIGKILL", debug)
