import asyncio
import os
import sys
import time

import pytest

from ralph_loop.config import RunConfig
from ralph_loop.logs import RunLogs
from ralph_loop.models import InvocationOutcome
from ralph_loop.runner import run_iteration

pytestmark = pytest.mark.skipif(os.name != "posix", reason="needs POSIX process groups")


def py(script: str) -> list[str]:
    return [sys.executable, "-c", script]


def run(command, tmp_path, cancel_after=None, **overrides):
    settings = {"live": False, "hard_timeout": 30, "idle_timeout": 30, "kill_grace": 1}
    settings.update(overrides)
    config = RunConfig(prompt="task", **settings)
    logs = RunLogs(tmp_path, timestamp="20260101_000000")

    async def go():
        cancel = asyncio.Event()
        if cancel_after is not None:
            asyncio.get_running_loop().call_later(cancel_after, cancel.set)
        return await run_iteration(command, 1, config, logs, cancel)

    return asyncio.run(go()), logs


def test_success_buffered(tmp_path):
    inv, logs = run(py("print('hello <done/>')"), tmp_path)
    assert inv.outcome is InvocationOutcome.SUCCESS
    assert inv.exit_code == 0
    assert "hello <done/>" in inv.output
    assert inv.iteration == 1
    assert inv.ended_at >= inv.started_at
    assert logs.iteration_path(1).read_text() == inv.output


def test_stderr_is_captured_with_stdout(tmp_path):
    inv, _ = run(py("import sys; print('out'); print('err', file=sys.stderr)"), tmp_path)
    assert "out" in inv.output
    assert "err" in inv.output


def test_nonzero_exit_is_worker_error(tmp_path):
    inv, _ = run(py("import sys; print('oops'); sys.exit(3)"), tmp_path)
    assert inv.outcome is InvocationOutcome.WORKER_ERROR
    assert inv.exit_code == 3
    assert "oops" in inv.output


def test_empty_output_is_worker_error(tmp_path):
    inv, _ = run(py("pass"), tmp_path)
    assert inv.outcome is InvocationOutcome.WORKER_ERROR
    assert inv.exit_code == 0
    assert inv.output == ""


def test_missing_binary_is_worker_error(tmp_path):
    inv, _ = run([str(tmp_path / "no-such-worker")], tmp_path)
    assert inv.outcome is InvocationOutcome.WORKER_ERROR
    assert inv.exit_code is None


def test_hard_timeout_in_buffered_mode(tmp_path):
    start = time.monotonic()
    inv, logs = run(
        py("print('started', flush=True); import time; time.sleep(60)"),
        tmp_path,
        hard_timeout=0.5,
    )
    assert inv.outcome is InvocationOutcome.TIMEOUT
    assert "started" in inv.output
    assert time.monotonic() - start < 15
    # Partial output still reaches the iteration log.
    assert "started" in logs.iteration_path(1).read_text()


def test_idle_timeout_in_live_mode(tmp_path):
    inv, logs = run(
        py("print('{\"type\": \"system\"}', flush=True); import time; time.sleep(60)"),
        tmp_path,
        live=True,
        idle_timeout=0.5,
    )
    assert inv.outcome is InvocationOutcome.TIMEOUT
    assert '"system"' in inv.output
    assert '"system"' in logs.iteration_path(1).read_text()


def test_steady_output_keeps_live_worker_alive(tmp_path):
    script = (
        "import time\n"
        "for i in range(6):\n"
        "    print(f'tick {i}', flush=True)\n"
        "    time.sleep(0.3)\n"
    )
    inv, _ = run(py(script), tmp_path, live=True, idle_timeout=1.5)
    assert inv.outcome is InvocationOutcome.SUCCESS
    assert "tick 5" in inv.output
    assert "[raw] tick 5" in inv.display_text


def test_interrupt_stops_worker(tmp_path):
    start = time.monotonic()
    inv, _ = run(py("import time; time.sleep(60)"), tmp_path, cancel_after=0.3)
    assert inv.outcome is InvocationOutcome.INTERRUPTED
    assert inv.exit_code is not None
    assert time.monotonic() - start < 15


def test_interrupt_escalates_when_sigterm_ignored(tmp_path):
    script = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)\n"
    )
    inv, _ = run(py(script), tmp_path, cancel_after=1.5, kill_grace=0.3)
    assert inv.outcome is InvocationOutcome.INTERRUPTED
    assert inv.exit_code == -9


# Worker that leaves a SIGTERM-ignoring grandchild behind, detached from the
# output pipe. The first output line is the grandchild's pid.
STUBBORN_GRANDCHILD = (
    "import signal, subprocess, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "child = subprocess.Popen(\n"
    "    [sys.executable, '-c', 'import time; time.sleep(60)'],\n"
    "    stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,\n"
    ")\n"
    "signal.signal(signal.SIGTERM, signal.SIG_DFL)\n"
    "print(child.pid, flush=True)\n"
)


def test_timeout_kills_grandchild_that_ignores_sigterm(tmp_path, assert_gone):
    script = STUBBORN_GRANDCHILD + "time.sleep(60)\n"
    inv, _ = run(py(script), tmp_path, hard_timeout=1.0, kill_grace=0.5)
    assert inv.outcome is InvocationOutcome.TIMEOUT
    assert_gone(int(inv.output.split()[0]))


def test_interrupt_kills_grandchild_that_ignores_sigterm(tmp_path, assert_gone):
    script = STUBBORN_GRANDCHILD + "time.sleep(60)\n"
    inv, _ = run(py(script), tmp_path, cancel_after=1.0, kill_grace=0.5)
    assert inv.outcome is InvocationOutcome.INTERRUPTED
    assert_gone(int(inv.output.split()[0]))


def test_natural_exit_clears_leftover_group(tmp_path, assert_gone):
    script = STUBBORN_GRANDCHILD + "print('<done/>', flush=True)\n"
    inv, _ = run(py(script), tmp_path, kill_grace=0.3)
    assert inv.outcome is InvocationOutcome.SUCCESS
    assert "<done/>" in inv.output
    assert_gone(int(inv.output.split()[0]))


def test_leftover_holding_the_pipe_is_killed_after_drain(tmp_path, monkeypatch, assert_gone):
    monkeypatch.setattr("ralph_loop.runner.DRAIN_TIMEOUT", 0.5)
    # The grandchild keeps the output pipe open after the worker exits.
    script = (
        STUBBORN_GRANDCHILD.replace(
            "    stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,\n", ""
        )
        + "print('<done/>', flush=True)\n"
    )
    start = time.monotonic()
    inv, _ = run(py(script), tmp_path, kill_grace=0.3)
    assert inv.outcome is InvocationOutcome.SUCCESS
    assert "<done/>" in inv.output
    assert time.monotonic() - start < 15
    assert_gone(int(inv.output.split()[0]))


def test_malformed_events_do_not_stop_live_worker(tmp_path):
    script = (
        "import json, time\n"
        "print(json.dumps({'type': 'assistant', 'message': None}), flush=True)\n"
        "print(json.dumps({'type': 'assistant', 'message': {'content': [\n"
        "    {'type': 'tool_use', 'name': None, 'input': []},\n"
        "    {'type': 'text', 'text': 42},\n"
        "]}}), flush=True)\n"
        "print(json.dumps({'type': 'user', 'message': {'content': 'nope'}}), flush=True)\n"
        "time.sleep(0.5)\n"
        "print('<done/>', flush=True)\n"
    )
    inv, _ = run(py(script), tmp_path, live=True)
    assert inv.outcome is InvocationOutcome.SUCCESS
    assert inv.exit_code == 0
    assert "<done/>" in inv.output
    assert "[assistant] 42" in inv.display_text
    assert "[raw] <done/>" in inv.display_text
