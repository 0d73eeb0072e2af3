"""Tests for the command runner and the systemctl wrappers."""

import subprocess
from unittest.mock import Mock, patch

from src.infra.shell import CommandResult, CommandRunner, SystemctlCommands


@patch("src.infra.shell.runner.subprocess.run")
def test_run_returns_structured_result(mock_run):
    mock_run.return_value = Mock(returncode=0, stdout="ok\n", stderr="")

    result = CommandRunner().run(["true"])

    assert result == CommandResult(success=True, stdout="ok\n", stderr="", returncode=0)


@patch("src.infra.shell.runner.subprocess.run")
def test_run_merges_env_over_process_environment(mock_run, monkeypatch):
    monkeypatch.setenv("EXISTING", "1")
    mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

    CommandRunner().run(["pg_dump"], env={"PGPASSWORD": "secret"})

    env = mock_run.call_args.kwargs["env"]
    assert env["PGPASSWORD"] == "secret"
    assert env["EXISTING"] == "1"


@patch("src.infra.shell.runner.subprocess.run", side_effect=FileNotFoundError)
def test_missing_binary_is_reported_as_127(mock_run):
    result = CommandRunner().run(["ufw", "status"])

    assert result.success is False
    assert result.returncode == 127
    assert "command not found: ufw" in result.output


@patch(
    "src.infra.shell.runner.subprocess.run",
    side_effect=subprocess.TimeoutExpired(cmd=["pg_dump"], timeout=5),
)
def test_timeout_is_reported_as_124(mock_run):
    result = CommandRunner(timeout=5).run(["pg_dump"])

    assert result.success is False
    assert result.returncode == 124


def test_reload_or_restart_falls_back_to_restart(mock_runner):
    mock_runner.run.side_effect = [
        CommandResult(success=False, stderr="reload not supported"),
        CommandResult(success=True),
    ]

    result = SystemctlCommands(mock_runner).reload_or_restart("pgbouncer")

    assert result.success is True
    assert [c.args[0] for c in mock_runner.run.call_args_list] == [
        ["systemctl", "reload", "pgbouncer"],
        ["systemctl", "restart", "pgbouncer"],
    ]


def test_command_result_output_joins_streams():
    result = CommandResult(success=False, stdout=" out \n", stderr="err\n")

    assert result.output == "out\nerr"
