"""Terminal display helpers: colors, timestamps, log lines."""

from __future__ import annotations

import sys
import time

# ANSI colors, 256-color for consistent rendering in iTerm2 + tmux
DIM = "\033[90m"
BOLD = "\033[1m"
RED = "\033[38;5;203m"
GREEN = "\033[38;5;114m"
YELLOW = "\033[38;5;221m"
BLUE = "\033[38;5;75m"
CYAN = "\033[38;5;81m"
MAGENTA = "\033[38;5;176m"
WHITE = "\033[38;5;255m"
RESET = "\033[0m"

PANEL_WIDTH = 70
PREVIEW_LINES = 20


def fmt_duration(secs: float) -> str:
    if secs < 60:
        return f"{secs:.0f}s"
    m, s = divmod(int(secs), 60)
    if m < 60:
        return f"{m}m{s:02d}s"
    h, m = divmod(m, 60)
    return f"{h}h{m:02d}m"


def log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"  {DIM}{ts}{RESET}  {msg}", flush=True)


def warn(msg: str) -> None:
    log(f"{YELLOW}{msg}{RESET}")


def error(msg: str) -> None:
    log(f"{RED}{msg}{RESET}")


def debug_log(msg: str, debug: bool) -> None:
    if debug:
        ts = time.strftime("%H:%M:%S")
        print(f"[{ts}] [DEBUG] {msg}", file=sys.stderr, flush=True)


def draw_box_line(text: str) -> str:
    ts = time.strftime("%H:%M:%S")
    return f"  {DIM}{ts}  {text}{RESET}"


def rule(char: str = "─") -> str:
    return f"  {DIM}{char * PANEL_WIDTH}{RESET}"


def print_preview(text: str, max_lines: int = PREVIEW_LINES) -> None:
    """Print the tail of a worker's output, dimmed and indented."""
    lines = [line.rstrip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        return
    print(f"  {DIM}{'─' * 40}{RESET}")
    for line in lines[-max_lines:]:
        print(f"  {DIM}{line[:160]}{RESET}")
    print(f"  {DIM}{'─' * 40}{RESET}", flush=True)
