"""ralph-loop CLI: feed one prompt to a worker until it reports completion."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from .config import DEFAULT_LOG_DIR, DEFAULT_WORKER, ConfigError, RunConfig, config_from_args
from .display import (
    BOLD,
    CYAN,
    DIM,
    GREEN,
    MAGENTA,
    RED,
    RESET,
    WHITE,
    YELLOW,
    fmt_duration,
    log,
    rule,
)
from .logs import RunLogs
from .loop import IterationLoop
from .models import CONFIG_ERROR_EXIT, RunOutcome, RunResult
from .prompt import DEFAULT_COMPLETION_MARKER, DEFAULT_PROMPT_FILE


class ArgumentParser(argparse.ArgumentParser):
    """argparse, but usage errors are configuration errors (exit 1)."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(CONFIG_ERROR_EXIT, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="ralph-loop",
        description=(
            "Feed a prompt file to a coding agent in a loop until it prints the "
            "completion promise or the iteration limit is reached."
        ),
    )
    parser.add_argument(
        "--max", type=int, default=30, metavar="N",
        help="Maximum iterations (default: 30)",
    )
    parser.add_argument(
        "--prompt", default=DEFAULT_PROMPT_FILE, metavar="FILE",
        help=f"Prompt file path (default: {DEFAULT_PROMPT_FILE})",
    )
    parser.add_argument(
        "--promise", default=DEFAULT_COMPLETION_MARKER, metavar="TXT",
        help=f"Completion signal to look for (default: {DEFAULT_COMPLETION_MARKER})",
    )
    parser.add_argument(
        "--cooldown", type=float, default=3, metavar="N",
        help="Seconds to wait between iterations (default: 3)",
    )
    parser.add_argument(
        "--session", choices=["clean", "continue"], default="clean",
        help=(
            "clean: fresh session each iteration; continue: resume the first "
            "iteration's session (default: clean)"
        ),
    )
    parser.add_argument(
        "--live", action="store_true", default=True, dest="live",
        help="Stream the worker's events as they arrive (default)",
    )
    parser.add_argument(
        "--no-live", action="store_false", dest="live",
        help="Capture output and show it when the worker exits instead of streaming",
    )
    parser.add_argument(
        "--idle-timeout", type=float, default=600, metavar="N",
        help="Live mode: abort after N seconds without output (default: 600)",
    )
    parser.add_argument(
        "--hard-timeout", type=float, default=1800, metavar="N",
        help="Non-live mode: abort after N seconds in total (default: 1800)",
    )
    parser.add_argument(
        "--kill-grace", type=float, default=5, metavar="N",
        help="Seconds between SIGTERM and SIGKILL when stopping the worker (default: 5)",
    )
    parser.add_argument(
        "--worker", default=DEFAULT_WORKER, metavar="CMD",
        help=f"Worker executable (default: {DEFAULT_WORKER})",
    )
    parser.add_argument("--model", default=None, help="Model passed to the worker")
    parser.add_argument(
        "--log-dir", default=DEFAULT_LOG_DIR, metavar="DIR",
        help=f"Directory for run and iteration logs (default: {DEFAULT_LOG_DIR})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    return parser


def print_banner(config: RunConfig, logs: RunLogs) -> None:
    print()
    print(f"  {BOLD}{CYAN}◉ RALPH LOOP{RESET}")
    print(rule())
    print(f"  {DIM}Prompt:{RESET}    {WHITE}{config.prompt_file}{RESET}")
    print(f"  {DIM}Max iter:{RESET}  {WHITE}{config.max_iterations}{RESET}")
    print(f"  {DIM}Promise:{RESET}   {WHITE}{config.completion_marker}{RESET}")
    print(f"  {DIM}Session:{RESET}   {WHITE}{config.session_mode.value}{RESET}")
    if config.live:
        mode = f"live {DIM}(idle timeout {fmt_duration(config.idle_timeout)}){RESET}"
    else:
        mode = f"buffered {DIM}(hard timeout {fmt_duration(config.hard_timeout)}){RESET}"
    print(f"  {DIM}Output:{RESET}    {WHITE}{mode}")
    print(f"  {DIM}Log:{RESET}       {MAGENTA}{logs.run_log}{RESET}")
    print(rule())


def print_summary(config: RunConfig, logs: RunLogs, result: RunResult, elapsed: float) -> None:
    print()
    print(rule("━"))
    outcome = result.outcome
    if outcome is RunOutcome.COMPLETED:
        print(f"  {GREEN}{BOLD}🎉 Ralph Loop finished successfully!{RESET}")
    elif outcome is RunOutcome.EXHAUSTED:
        print(
            f"  {YELLOW}{BOLD}🫡  Max iterations ({config.max_iterations}) "
            f"reached without completion.{RESET}"
        )
        print("  Tip: Increase --max or refine your prompt for convergence.")
    elif outcome is RunOutcome.TIMED_OUT:
        print(
            f"  {RED}{BOLD}⏱  Worker hung at iteration {result.iterations}"
            f"/{config.max_iterations}, run aborted.{RESET}"
        )
    else:
        print(
            f"  {YELLOW}🚥 Ralph Loop interrupted at iteration {result.iterations}"
            f"/{config.max_iterations}{RESET}"
        )
    print(
        f"  {BOLD}Iterations:{RESET}  {result.iterations}"
        f"  {DIM}│{RESET}  {BOLD}Outcome:{RESET} {outcome.value}"
        f"  {DIM}│{RESET}  {BOLD}Time:{RESET} {fmt_duration(elapsed)}"
    )
    if logs.enabled:
        print(f"  {BOLD}Full log:{RESET}    {MAGENTA}{logs.run_log}{RESET}")
    print(rule("━"))
    print(flush=True)


async def async_main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"{RED}Error:{RESET} {e}", file=sys.stderr)
        return CONFIG_ERROR_EXIT

    logs = RunLogs.create(config.log_dir)
    print_banner(config, logs)

    runner = IterationLoop(config, logs)
    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        if runner.interrupted:
            log(f"{DIM}Already stopping...{RESET}")
            return
        print()
        log(f"{YELLOW}Interrupted, shutting down...{RESET}")
        runner.interrupt()

    handled = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal)
            handled.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available off the main thread or on Windows.
            pass

    try:
        result = await runner.run()
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)

    print_summary(config, logs, result, runner.elapsed)
    return result.exit_code


def main() -> None:
    """Entry point for the ralph-loop CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print(f"\n{DIM}Interrupted.{RESET}", flush=True)
        sys.exit(RunOutcome.INTERRUPTED.exit_code)


if __name__ == "__main__":
    main()
