"""Run configuration: built once from the command line, never mutated."""

from __future__ import annotations

import argparse
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .models import SessionMode
from .prompt import DEFAULT_COMPLETION_MARKER, DEFAULT_PROMPT_FILE, load_prompt

DEFAULT_LOG_DIR = ".ralph"
DEFAULT_WORKER = "claude"


class ConfigError(ValueError):
    """Invalid option, missing prompt, or missing worker binary."""


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one supervisor invocation."""

    prompt: str
    max_iterations: int = 30
    completion_marker: str = DEFAULT_COMPLETION_MARKER
    cooldown: float = 3.0
    session_mode: SessionMode = SessionMode.CLEAN
    live: bool = True
    idle_timeout: float = 600.0
    hard_timeout: float = 1800.0
    kill_grace: float = 5.0
    prompt_file: Path = field(default_factory=lambda: Path(DEFAULT_PROMPT_FILE))
    worker: str = DEFAULT_WORKER
    model: str | None = None
    log_dir: Path = field(default_factory=lambda: Path(DEFAULT_LOG_DIR))
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.prompt.strip():
            raise ConfigError(f"Prompt file is empty: {self.prompt_file}")
        if self.max_iterations < 1:
            raise ConfigError("--max must be a positive integer")
        if not self.completion_marker:
            raise ConfigError("--promise must not be empty")
        if self.cooldown < 0:
            raise ConfigError("--cooldown must be non-negative")
        if self.idle_timeout <= 0:
            raise ConfigError("--idle-timeout must be positive")
        if self.hard_timeout <= 0:
            raise ConfigError("--hard-timeout must be positive")
        if self.kill_grace < 0:
            raise ConfigError("--kill-grace must be non-negative")
        if not self.worker:
            raise ConfigError("--worker must not be empty")
        # Accept plain strings from callers that don't go through argparse.
        try:
            mode = SessionMode(self.session_mode)
        except ValueError:
            raise ConfigError("--session must be 'continue' or 'clean'") from None
        object.__setattr__(self, "session_mode", mode)

    @property
    def timeout(self) -> float:
        """The timeout that applies in the configured output mode."""
        return self.idle_timeout if self.live else self.hard_timeout

    def settings(self) -> dict:
        """Plain-dict view for the stats file."""
        return {
            "max_iterations": self.max_iterations,
            "prompt_file": str(self.prompt_file),
            "completion_marker": self.completion_marker,
            "cooldown": self.cooldown,
            "session_mode": self.session_mode.value,
            "live": self.live,
            "idle_timeout": self.idle_timeout,
            "hard_timeout": self.hard_timeout,
            "kill_grace": self.kill_grace,
            "worker": self.worker,
            "model": self.model,
        }


def preflight(worker: str) -> str:
    """Resolve the worker executable or fail before the loop starts."""
    resolved = shutil.which(worker)
    if resolved is None:
        hint = ""
        if worker == DEFAULT_WORKER:
            hint = " Install Claude Code first: npm install -g @anthropic-ai/claude-code"
        raise ConfigError(f"'{worker}' CLI not found.{hint}")
    return resolved


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Validate parsed arguments, run preflight checks and build the config."""
    prompt_file = Path(args.prompt).expanduser()
    if not prompt_file.is_file():
        raise ConfigError(f"Prompt file not found: {prompt_file}")
    try:
        prompt = load_prompt(prompt_file)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read prompt file {prompt_file}: {e}") from e
    if not prompt.strip():
        raise ConfigError(f"Prompt file is empty: {prompt_file}")

    config = RunConfig(
        prompt=prompt,
        max_iterations=args.max,
        completion_marker=args.promise,
        cooldown=args.cooldown,
        session_mode=args.session,
        live=args.live,
        idle_timeout=args.idle_timeout,
        hard_timeout=args.hard_timeout,
        kill_grace=args.kill_grace,
        prompt_file=prompt_file,
        worker=args.worker,
        model=args.model,
        log_dir=Path(args.log_dir).expanduser(),
        debug=args.debug,
    )
    preflight(config.worker)
    return config
