"""Prompt loading and worker command construction for each iteration."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .session import augment_args

if TYPE_CHECKING:
    from .config import RunConfig

DEFAULT_PROMPT_FILE = "docs/PROMPT.md"
DEFAULT_COMPLETION_MARKER = "<promise>COMPLETE</promise>"

# The worker runs unattended, so it must never stop to ask for permission.
SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"


def load_prompt(path: Path) -> str:
    """Read the task prompt. Trailing newlines are dropped, as `$(cat f)` would."""
    return path.read_text(encoding="utf-8").rstrip("\n")


def build_command(config: RunConfig, session_id: str | None = None) -> list[str]:
    """Build the worker argv for one iteration.

    Live mode asks for the stream-json event stream so output arrives while
    the worker runs; buffered mode asks for a single plain-text blob.
    """
    cmd = [config.worker, SKIP_PERMISSIONS_FLAG]
    if config.live:
        cmd.append("--verbose")
    cmd.extend(["-p", config.prompt])
    if config.model:
        cmd.extend(["--model", config.model])

    cmd = augment_args(cmd, session_id)

    if config.live:
        cmd.extend(
            ["--output-format", "stream-json", "--include-partial-messages"]
        )
    else:
        cmd.extend(["--output-format", "text"])
    return cmd
