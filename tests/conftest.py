"""Shared fixtures: a scratch host tree and a mocked command runner."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from src.infra.constants import ProvisionPaths
from src.infra.shell import CommandResult, CommandRunner, ShellCommands

POSTGRESQL_CONF = """\
# -----------------------------
# PostgreSQL configuration file
# -----------------------------

#listen_addresses = 'localhost'\t\t# what IP address(es) to listen on;
port = 5432\t\t\t\t# (change requires restart)
max_connections = 100\t\t\t# (change requires restart)

#shared_buffers = 128MB\t\t\t# min 128kB
#work_mem = 4MB\t\t\t\t# min 64kB
#ssl = off
"""

PG_HBA_CONF = """\
# Database administrative login by Unix domain socket
local   all             postgres                                peer

# TYPE  DATABASE        USER            ADDRESS                 METHOD
local   all             all                                     peer
host    all             all             127.0.0.1/32            scram-sha-256
host    all             all             ::1/128                 scram-sha-256
"""

OS_RELEASE = 'PRETTY_NAME="Ubuntu 24.04 LTS"\nID=ubuntu\nVERSION_ID="24.04"\n'


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """A scratch filesystem root with stock PostgreSQL config files."""
    conf_dir = tmp_path / "etc/postgresql/17/main"
    conf_dir.mkdir(parents=True)
    (conf_dir / "postgresql.conf").write_text(POSTGRESQL_CONF)
    (conf_dir / "pg_hba.conf").write_text(PG_HBA_CONF)
    (tmp_path / "etc/os-release").write_text(OS_RELEASE)
    (tmp_path / "run").mkdir()
    return tmp_path


@pytest.fixture
def paths(host_root: Path) -> ProvisionPaths:
    return ProvisionPaths(host_root, "17")


@pytest.fixture
def mock_runner():
    """A CommandRunner whose commands all succeed with no output."""
    runner = Mock(spec=CommandRunner)
    runner.run.return_value = CommandResult(success=True)
    return runner


@pytest.fixture
def commands(mock_runner) -> ShellCommands:
    return ShellCommands(runner=mock_runner)


@pytest.fixture
def issued(mock_runner):
    """Returns a function listing every command line passed to the runner."""

    def _issued() -> list[list[str]]:
        return [list(call.args[0]) for call in mock_runner.run.call_args_list]

    return _issued
