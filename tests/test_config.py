import sys
from pathlib import Path

import pytest

from ralph_loop.cli import build_parser
from ralph_loop.config import ConfigError, RunConfig, config_from_args, preflight
from ralph_loop.models import SessionMode


def parse(*argv):
    return build_parser().parse_args(list(argv))


def test_defaults():
    args = parse()
    assert args.max == 30
    assert args.prompt == "docs/PROMPT.md"
    assert args.promise == "<promise>COMPLETE</promise>"
    assert args.cooldown == 3
    assert args.session == "clean"
    assert args.live is True
    assert args.idle_timeout == 600
    assert args.hard_timeout == 1800
    assert args.kill_grace == 5


def test_no_live_flag():
    assert parse("--no-live").live is False


def test_every_option_has_help_text():
    for action in build_parser()._actions:
        assert action.help, action.option_strings


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_iterations": 0},
        {"completion_marker": ""},
        {"cooldown": -1},
        {"idle_timeout": 0},
        {"hard_timeout": -5},
        {"kill_grace": -0.1},
        {"session_mode": "sometimes"},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ConfigError):
        RunConfig(prompt="task", **kwargs)


def test_empty_prompt_rejected():
    with pytest.raises(ConfigError):
        RunConfig(prompt="   \n")


def test_session_mode_accepts_strings():
    assert RunConfig(prompt="task", session_mode="continue").session_mode is SessionMode.CONTINUE


def test_timeout_follows_mode():
    assert RunConfig(prompt="t", idle_timeout=7).timeout == 7
    assert RunConfig(prompt="t", live=False, hard_timeout=9).timeout == 9


def test_preflight_missing_worker():
    with pytest.raises(ConfigError, match="not found"):
        preflight("definitely-not-a-real-worker-binary")


def test_config_from_args(tmp_path):
    prompt = tmp_path / "PROMPT.md"
    prompt.write_text("Do the thing\n")
    config = config_from_args(
        parse(
            "--prompt", str(prompt), "--worker", sys.executable,
            "--max", "4", "--session", "continue", "--no-live",
            "--log-dir", str(tmp_path / "logs"),
        )
    )
    assert config.prompt == "Do the thing"
    assert config.max_iterations == 4
    assert config.session_mode is SessionMode.CONTINUE
    assert config.live is False
    assert config.log_dir == Path(tmp_path / "logs")


def test_config_from_args_missing_prompt(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        config_from_args(parse("--prompt", str(tmp_path / "nope.md"), "--worker", sys.executable))


def test_config_from_args_empty_prompt(tmp_path):
    prompt = tmp_path / "PROMPT.md"
    prompt.write_text("\n")
    with pytest.raises(ConfigError, match="empty"):
        config_from_args(parse("--prompt", str(prompt), "--worker", sys.executable))


@pytest.mark.parametrize("argv", [["--max", "abc"], ["--session", "bogus"], ["--nope"]])
def test_usage_errors_exit_1(argv):
    with pytest.raises(SystemExit) as exc:
        parse(*argv)
    assert exc.value.code == 1
