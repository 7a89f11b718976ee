"""Core iteration runner: spawns and supervises a single worker run."""

from __future__ import annotations

import asyncio
import shlex
import time
from datetime import datetime
from typing import TYPE_CHECKING

from .display import debug_log, draw_box_line, error, fmt_duration, warn
from .logs import IterationLog, RunLogs
from .models import InvocationOutcome, WorkerInvocation
from .process import FORCE_SIGNAL, ProcessHandle
from .stream import clean, clip, render_event
from .terminate import stop
from .watchdog import WatchResult, watch

if TYPE_CHECKING:
    from .config import RunConfig

# How long to keep reading after the worker exits (or is stopped) before
# giving up on whatever still holds its output pipe open.
DRAIN_TIMEOUT = 5.0


class OutputCapture:
    """Everything the worker wrote during one invocation."""

    def __init__(self) -> None:
        self.chunks: list[bytes] = []
        self.display_lines: list[str] = []

    @property
    def raw(self) -> bytes:
        return b"".join(self.chunks)

    @property
    def text(self) -> str:
        return self.raw.decode("utf-8", errors="replace")

    @property
    def display_text(self) -> str:
        return "\n".join(self.display_lines)


def describe_command(command: list[str]) -> str:
    return " ".join(shlex.quote(clip(arg, 60)) for arg in command)


def _show(capture: OutputCapture, raw_line: bytes) -> None:
    line = raw_line.decode("utf-8", errors="replace")
    try:
        rendered_lines = render_event(line)
    except Exception:
        # Display only; a line that fails to render must not end the read loop.
        rendered_lines = [f"[raw] {clean(line)}"] if line.strip() else []
    for rendered in rendered_lines:
        capture.display_lines.append(rendered)
        print(draw_box_line(rendered), flush=True)


async def _consume(
    handle: ProcessHandle, capture: OutputCapture, iter_log: IterationLog, live: bool
) -> None:
    """Read output until EOF, then wait for the worker to exit."""
    buf = b""
    while True:
        chunk = await handle.read_chunk()
        if not chunk:
            break
        capture.chunks.append(chunk)
        if not live:
            continue
        iter_log.write(chunk)
        buf += chunk
        while b"\n" in buf:
            raw_line, buf = buf.split(b"\n", 1)
            _show(capture, raw_line)
    if live and buf:
        _show(capture, buf)
    await handle.wait()


async def run_iteration(
    command: list[str],
    iteration: int,
    config: RunConfig,
    logs: RunLogs,
    cancel: asyncio.Event,
) -> WorkerInvocation:
    """Run the worker once under the watchdog and return the finalized record.

    Three tasks race: the output consumer (finishes when the worker exits),
    the watchdog (finishes when the worker hangs) and the interrupt waiter.
    The first to finish decides the outcome and the others are cancelled.
    """
    started_at = datetime.now()
    start = time.monotonic()
    iter_log = logs.iteration_log(iteration)
    capture = OutputCapture()

    debug_log(f"Spawning: {describe_command(command)}", config.debug)
    try:
        handle = await ProcessHandle.spawn(command)
    except OSError as e:
        error(f"Failed to start worker: {e}")
        iter_log.close()
        return WorkerInvocation(
            iteration=iteration,
            started_at=started_at,
            ended_at=datetime.now(),
            outcome=InvocationOutcome.WORKER_ERROR,
            duration=time.monotonic() - start,
        )
    debug_log(f"Worker pid {handle.pid}", config.debug)

    consumer = asyncio.create_task(_consume(handle, capture, iter_log, config.live))
    watcher = asyncio.create_task(
        watch(handle, config.live, config.idle_timeout, config.hard_timeout)
    )
    interrupt = asyncio.create_task(cancel.wait())

    outcome: InvocationOutcome | None = None
    try:
        done, _ = await asyncio.wait(
            {consumer, watcher, interrupt}, return_when=asyncio.FIRST_COMPLETED
        )
        if interrupt in done:
            outcome = InvocationOutcome.INTERRUPTED
            warn("Interrupt received, stopping worker...")
            await stop(handle, config.kill_grace, config.debug)
            await asyncio.wait({consumer}, timeout=DRAIN_TIMEOUT)
        elif consumer in done:
            consumer.result()
        elif watcher.result() is WatchResult.TIMED_OUT:
            outcome = InvocationOutcome.TIMEOUT
            if config.live:
                error(f"No output for {fmt_duration(config.idle_timeout)}, worker looks hung.")
            else:
                error(f"Worker still running after {fmt_duration(config.hard_timeout)}.")
            await stop(handle, config.kill_grace, config.debug)
            await asyncio.wait({consumer}, timeout=DRAIN_TIMEOUT)
        else:
            await _drain(consumer, handle, config.debug)
    except Exception as e:
        outcome = InvocationOutcome.WORKER_ERROR
        error(f"Error while running worker: {e}")
    finally:
        for task in (consumer, watcher, interrupt):
            task.cancel()
        await asyncio.gather(consumer, watcher, interrupt, return_exceptions=True)
        if handle.group_alive():
            await stop(handle, config.kill_grace, config.debug)
        if not config.live:
            iter_log.write(capture.raw)
        iter_log.close()

    output = capture.text
    if outcome is None:
        if handle.returncode != 0 or not output.strip():
            outcome = InvocationOutcome.WORKER_ERROR
        else:
            outcome = InvocationOutcome.SUCCESS

    return WorkerInvocation(
        iteration=iteration,
        started_at=started_at,
        ended_at=datetime.now(),
        outcome=outcome,
        output=output,
        duration=time.monotonic() - start,
        exit_code=handle.returncode,
        display_text=capture.display_text,
    )


async def _drain(consumer: asyncio.Task, handle: ProcessHandle, debug: bool) -> None:
    """The worker exited; collect the rest of its output.

    If something it spawned still holds the pipe open, kill the group.
    """
    done, _ = await asyncio.wait({consumer}, timeout=DRAIN_TIMEOUT)
    if done:
        consumer.result()
        return
    warn("Worker exited but its output is still open, killing leftover processes.")
    debug_log(f"SIGKILL -> process group {handle.pid}", debug)
    handle.send_signal(FORCE_SIGNAL)
    await asyncio.wait({consumer}, timeout=DRAIN_TIMEOUT)
