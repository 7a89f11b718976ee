"""Data models for ralph-loop."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SessionMode(str, Enum):
    """How worker context carries over between iterations."""

    CLEAN = "clean"
    CONTINUE = "continue"


class InvocationOutcome(str, Enum):
    """How a single worker invocation ended."""

    SUCCESS = "success"
    WORKER_ERROR = "worker_error"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"


class RunOutcome(str, Enum):
    """Terminal reason for a whole run."""

    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"
    INTERRUPTED = "interrupted"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.EXHAUSTED: 2,
    RunOutcome.TIMED_OUT: 124,
    RunOutcome.INTERRUPTED: 130,
}

CONFIG_ERROR_EXIT = 1


@dataclass(frozen=True)
class WorkerInvocation:
    """Finalized record of one worker run."""

    iteration: int
    started_at: datetime
    ended_at: datetime
    outcome: InvocationOutcome
    output: str = ""
    duration: float = 0.0
    exit_code: int | None = None
    display_text: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome is not InvocationOutcome.SUCCESS


@dataclass
class IterationState:
    """Mutable loop state, owned by the iteration loop."""

    iteration: int = 0
    completed: bool = False
    _session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @session_id.setter
    def session_id(self, value: str) -> None:
        if self._session_id is not None:
            raise ValueError(
                f"session id already set to {self._session_id!r}, refusing {value!r}"
            )
        self._session_id = value


@dataclass(frozen=True)
class RunResult:
    """How a run ended and what it did on the way."""

    outcome: RunOutcome
    iterations: int
    invocations: tuple[WorkerInvocation, ...] = ()

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code
