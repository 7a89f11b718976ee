"""Live worker process: spawn, read, signal, wait."""

from __future__ import annotations

import asyncio
import os
import signal
import time

CHUNK_SIZE = 65536

# Forced termination. Windows has no SIGKILL; there terminate() already is one.
FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class ProcessHandle:
    """One running worker and the liveness state the watchdog reads.

    The child is started in a new session, so its pid doubles as its
    process-group id and signals reach anything it spawned.
    """

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self.proc = proc
        self.started_at = time.monotonic()
        self.last_output_at = self.started_at
        self.bytes_read = 0

    @classmethod
    async def spawn(cls, command: list[str], cwd: str | None = None) -> ProcessHandle:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            start_new_session=(os.name == "posix"),
        )
        return cls(proc)

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> int | None:
        return self.proc.returncode

    @property
    def alive(self) -> bool:
        return self.proc.returncode is None

    def group_alive(self) -> bool:
        """True while anything in the worker's process group still exists.

        Outlives ``alive``: a grandchild may keep the group going after the
        worker itself has exited.
        """
        if os.name != "posix":
            return self.alive
        try:
            os.killpg(self.proc.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    @property
    def idle_for(self) -> float:
        return time.monotonic() - self.last_output_at

    @property
    def running_for(self) -> float:
        return time.monotonic() - self.started_at

    async def read_chunk(self) -> bytes:
        """Read the next piece of output; ``b""`` means the pipe is closed."""
        assert self.proc.stdout is not None
        chunk = await self.proc.stdout.read(CHUNK_SIZE)
        if chunk:
            self.last_output_at = time.monotonic()
            self.bytes_read += len(chunk)
        return chunk

    def send_signal(self, sig: int) -> None:
        """Signal the worker's whole process group (or just the worker off POSIX)."""
        try:
            if os.name == "posix":
                os.killpg(self.proc.pid, sig)
            elif sig == FORCE_SIGNAL:
                self.proc.kill()
            else:
                self.proc.terminate()
        except (ProcessLookupError, PermissionError):
            pass

    async def wait(self) -> int:
        return await self.proc.wait()
