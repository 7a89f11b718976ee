"""The outer loop: run the worker until it signals completion or we give up."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from .config import RunConfig
from .display import (
    BLUE,
    BOLD,
    DIM,
    GREEN,
    RED,
    RESET,
    YELLOW,
    fmt_duration,
    log,
    print_preview,
    warn,
)
from .logs import RunLogs
from .models import (
    InvocationOutcome,
    IterationState,
    RunOutcome,
    RunResult,
    WorkerInvocation,
)
from .prompt import build_command
from .runner import run_iteration
from .session import extract_session_id, should_capture

Invoker = Callable[
    [list[str], int, RunConfig, RunLogs, asyncio.Event], Awaitable[WorkerInvocation]
]


class IterationLoop:
    """Drives iterations: Idle -> Running(n) -> one terminal outcome.

    Only one worker runs at a time; iteration n+1 starts after iteration n's
    process is gone and its record is logged.
    """

    def __init__(
        self,
        config: RunConfig,
        logs: RunLogs,
        invoke: Invoker = run_iteration,
    ) -> None:
        self.config = config
        self.logs = logs
        self.invoke = invoke
        self.state = IterationState()
        self.invocations: list[WorkerInvocation] = []
        self.outcome: RunOutcome | None = None
        self._interrupted = asyncio.Event()
        self._started = time.monotonic()

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    def interrupt(self) -> None:
        """Request shutdown. Any live worker is stopped; no new one starts."""
        self._interrupted.set()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    def _finish(self, outcome: RunOutcome) -> RunResult:
        if self.outcome is not None:
            raise RuntimeError(f"run already finished as {self.outcome.value}")
        self.outcome = outcome
        self.logs.write_stats(self.config, outcome, self.elapsed)
        return RunResult(
            outcome=outcome,
            iterations=self.state.iteration,
            invocations=tuple(self.invocations),
        )

    async def run(self) -> RunResult:
        config = self.config
        state = self.state
        self._started = time.monotonic()

        while True:
            if self.interrupted:
                return self._finish(RunOutcome.INTERRUPTED)

            state.iteration += 1
            n = state.iteration
            self._print_header(n)

            command = build_command(config, state.session_id)
            inv = await self.invoke(command, n, config, self.logs, self._interrupted)
            self.invocations.append(inv)
            self.logs.append_iteration(inv)
            self.logs.write_stats(config, None, self.elapsed)
            self._print_status(inv)

            if inv.outcome is InvocationOutcome.INTERRUPTED:
                return self._finish(RunOutcome.INTERRUPTED)
            if inv.outcome is InvocationOutcome.TIMEOUT:
                return self._finish(RunOutcome.TIMED_OUT)

            self._track_session(n, inv.output)

            # The marker decides, whatever the exit code says.
            if config.completion_marker in inv.output:
                state.completed = True
                print(f"\n  {BOLD}{GREEN}✅  Completion promise detected!{RESET}")
                log(f"{GREEN}Task completed in {n} iteration(s).{RESET}")
                return self._finish(RunOutcome.COMPLETED)

            if not inv.output.strip():
                warn("📭  Empty response. The worker may have hit a limit.")
            elif inv.exit_code not in (0, None):
                warn(f"Worker exited with code {inv.exit_code}, retrying.")

            if n >= config.max_iterations:
                return self._finish(RunOutcome.EXHAUSTED)

            if await self._cooldown():
                return self._finish(RunOutcome.INTERRUPTED)

    def _track_session(self, iteration: int, output: str) -> None:
        if not should_capture(self.config.session_mode, iteration, self.state.session_id):
            return
        session_id = extract_session_id(output)
        if session_id:
            self.state.session_id = session_id
            log(f"{GREEN}📎 Session: {session_id}{RESET}")

    async def _cooldown(self) -> bool:
        """Sleep between iterations. Returns True if interrupted meanwhile."""
        if self.config.cooldown > 0:
            log(f"{BLUE}🧘  Next iteration in {self.config.cooldown:g}s...{RESET}")
        try:
            await asyncio.wait_for(self._interrupted.wait(), timeout=self.config.cooldown)
        except asyncio.TimeoutError:
            return False
        return True

    def _print_header(self, n: int) -> None:
        stamp = time.strftime("%H:%M:%S")
        line = f"{BOLD}{BLUE}━━━ Iteration {n}/{self.config.max_iterations} ━━━{RESET}"
        if n > 1:
            line += f"  {DIM}{stamp} | elapsed: {fmt_duration(self.elapsed)}{RESET}"
        else:
            line += f"  {DIM}{stamp}{RESET}"
        print(f"\n  {line}", flush=True)

    def _print_status(self, inv: WorkerInvocation) -> None:
        if inv.outcome is InvocationOutcome.TIMEOUT:
            status = f"{RED}✗  timeout{RESET}"
        elif inv.outcome is InvocationOutcome.INTERRUPTED:
            status = f"{YELLOW}✗  interrupted{RESET}"
        elif inv.exit_code not in (0, None):
            status = f"{RED}✗  exit {inv.exit_code}{RESET}"
        elif not inv.output.strip():
            status = f"{YELLOW}○  no output{RESET}"
        else:
            status = f"{GREEN}✓  done{RESET}"

        if not self.config.live:
            print_preview(inv.output)
        print(
            f"\n  {status}  {DIM}│{RESET}  {fmt_duration(inv.duration)}"
            f"  {DIM}│{RESET}  {DIM}{len(inv.output)} chars{RESET}",
            flush=True,
        )
