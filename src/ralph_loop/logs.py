"""Run and iteration log files, plus the per-run stats file.

Logging is best effort: a failed write prints one warning and the file is
skipped from then on. Loop decisions only ever use in-memory output.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import TYPE_CHECKING

from .display import warn
from .models import RunOutcome, WorkerInvocation

if TYPE_CHECKING:
    from .config import RunConfig


class IterationLog:
    """Raw output of one iteration, owned by that iteration's runner."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self._file = None
        self._failed = path is None

    def write(self, data: bytes) -> None:
        if self._failed:
            return
        try:
            if self._file is None:
                self._file = open(self.path, "ab")
            self._file.write(data)
            self._file.flush()
        except OSError as e:
            self._failed = True
            warn(f"Could not write iteration log {self.path}: {e}")

    def close(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except OSError:
                pass
            self._file = None


class RunLogs:
    """File layout for one supervisor run, named from its start timestamp."""

    def __init__(self, log_dir: Path, timestamp: str | None = None) -> None:
        self.log_dir = log_dir
        self.timestamp = timestamp or time.strftime("%Y%m%d_%H%M%S")
        self.started = time.strftime("%Y-%m-%d %H:%M:%S")
        self.enabled = True
        self._run_log_failed = False
        self._records: list[dict] = []

    @classmethod
    def create(cls, log_dir: Path) -> RunLogs:
        logs = cls(log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            warn(f"Could not create log directory {log_dir}: {e}. Logging disabled.")
            logs.enabled = False
        return logs

    @property
    def run_log(self) -> Path:
        return self.log_dir / f"run_{self.timestamp}.log"

    @property
    def stats_file(self) -> Path:
        return self.log_dir / f"run_{self.timestamp}.json"

    def iteration_path(self, iteration: int) -> Path:
        return self.log_dir / f"iter_{self.timestamp}_{iteration}.log"

    def iteration_log(self, iteration: int) -> IterationLog:
        return IterationLog(self.iteration_path(iteration) if self.enabled else None)

    def append_iteration(self, inv: WorkerInvocation) -> None:
        """Append one delimited block with the full output to the run log."""
        self._records.append(
            {
                "iteration": inv.iteration,
                "status": inv.outcome.value,
                "exit_code": inv.exit_code,
                "started": inv.started_at.isoformat(timespec="seconds"),
                "duration_s": round(inv.duration, 1),
                "output_chars": len(inv.output),
            }
        )
        if not self.enabled or self._run_log_failed:
            return
        stamp = inv.ended_at.strftime("%a %b %d %H:%M:%S %Y")
        block = (
            f"=== ITERATION {inv.iteration} ({inv.outcome.value}) {stamp} ===\n"
            f"{inv.output}\n\n"
        )
        try:
            with open(self.run_log, "a", encoding="utf-8") as f:
                f.write(block)
        except OSError as e:
            self._run_log_failed = True
            warn(f"Could not write run log {self.run_log}: {e}")

    def write_stats(
        self, config: RunConfig, outcome: RunOutcome | None, duration: float
    ) -> None:
        """Write cumulative stats for the run so far."""
        if not self.enabled:
            return
        stats = {
            "prompt_file": str(config.prompt_file),
            "started": self.started,
            "settings": config.settings(),
            "iterations": self._records,
            "totals": {
                "iterations": len(self._records),
                "duration_s": round(duration, 1),
                "worker_errors": sum(
                    1 for r in self._records if r["status"] == "worker_error"
                ),
            },
            "outcome": outcome.value if outcome else None,
        }
        try:
            self.stats_file.write_text(json.dumps(stats, indent=2))
        except OSError as e:
            warn(f"Could not write stats file {self.stats_file}: {e}")
