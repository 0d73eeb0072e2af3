"""Tests for option parsing, password input and logging setup."""

from unittest.mock import Mock, patch

import pytest
import typer

from src.cli.commands.common import parse_set_options, require_host_access
from src.cli.shared.log_setup import configure_logging
from src.cli.shared.secrets import get_password
from src.infra.constants import ProvisionPaths
from src.infra.errors import ConfigError, HostError


def test_parse_set_options_maps_state_keys_and_field_names():
    overrides = parse_set_options(["DB_PORT=5433", "enable_ssl=no", "allowed_ips= 10.0.0.0/8 "])

    assert overrides == {"port": "5433", "enable_ssl": "no", "allowed_ips": "10.0.0.0/8"}


@pytest.mark.parametrize("pair", ["DB_PORT", "=5", "NOT_A_KEY=1"])
def test_parse_set_options_rejects_bad_pairs(pair):
    with pytest.raises(ConfigError):
        parse_set_options([pair])


def test_root_check_only_applies_to_real_root(tmp_path):
    context = Mock(paths=ProvisionPaths(tmp_path))
    require_host_access(context)

    context = Mock(paths=ProvisionPaths("/"))
    with patch("src.infra.host.os.geteuid", return_value=1000):
        with pytest.raises(HostError, match="must be run as root"):
            require_host_access(context)


def test_get_password_prefers_environment(monkeypatch):
    monkeypatch.setenv("POSTGRES_PASSWORD", "from-env")

    with patch("src.cli.shared.secrets.getpass.getpass") as mock_getpass:
        assert get_password("Password: ", "POSTGRES_PASSWORD") == "from-env"

    mock_getpass.assert_not_called()


def test_get_password_mismatch_exits(monkeypatch):
    monkeypatch.delenv("PG_PROVISION_ROLE_PASSWORD", raising=False)

    with patch("src.cli.shared.secrets.getpass.getpass", side_effect=["one", "two"]):
        with pytest.raises(typer.Exit) as excinfo:
            get_password("Password: ", "PG_PROVISION_ROLE_PASSWORD")

    assert excinfo.value.exit_code == 1


def test_configure_logging_writes_file_sink(tmp_path):
    log_file = configure_logging(tmp_path / "logs")

    assert log_file == tmp_path / "logs" / "setup.log"
