"""Tests for role/database/pooler credential provisioning."""

from unittest.mock import Mock

import psycopg2
import pytest

from src.infra.errors import CredentialError
from src.infra.postgres import CredentialProvisioner, PostgresConnection
from src.infra.postgres.pooler import UserList, verify_pooler_secret
from src.infra.shell import CommandResult, SystemctlCommands


@pytest.fixture
def connection():
    conn = Mock(spec=PostgresConnection)
    conn.scalar.return_value = None
    return conn


@pytest.fixture
def systemctl():
    mock = Mock(spec=SystemctlCommands)
    mock.reload.return_value = CommandResult(success=True)
    return mock


@pytest.fixture
def userlist(tmp_path):
    return UserList(tmp_path / "userlist.txt")


def test_new_role_and_database_are_created(connection, systemctl, userlist):
    provisioner = CredentialProvisioner(connection, systemctl, userlist)

    pair = provisioner.create_credential("app", "app_user", "s3cr3t")

    assert pair.role_created and pair.database_created
    assert connection.execute_script.call_count == 4
    create_role = connection.execute_script.call_args_list[0]
    assert create_role.args[1] == (pair.pooler_hash,)
    assert "s3cr3t" not in create_role.args[1]
    grant_schema = connection.execute_script.call_args_list[3]
    assert grant_schema.kwargs["database"] == "app"
    connection.close.assert_called_once()


def test_pooler_entry_validates_the_same_secret(connection, systemctl, userlist):
    CredentialProvisioner(connection, systemctl, userlist).create_credential(
        "app", "app_user", "s3cr3t"
    )

    stored = userlist.lookup("app_user")
    assert stored is not None and stored.startswith("SCRAM-SHA-256$")
    assert verify_pooler_secret(stored, "app_user", "s3cr3t")
    systemctl.reload.assert_called_once_with("pgbouncer")


def test_existing_role_only_gets_new_password(connection, systemctl, userlist):
    connection.scalar.side_effect = [1, 1]

    pair = CredentialProvisioner(connection, systemctl, userlist).create_credential(
        "app", "app_user", "rotated"
    )

    assert not pair.role_created and not pair.database_created
    # ALTER ROLE + two grants; no CREATE DATABASE
    assert connection.execute_script.call_count == 3


def test_owner_only_skips_schema_grant(connection, systemctl):
    CredentialProvisioner(connection, systemctl).create_credential(
        "app", "app_user", "s3cr3t", owner_only=True
    )

    assert connection.execute_script.call_count == 3


def test_database_failure_leaves_pooler_store_untouched(connection, systemctl, userlist):
    connection.execute_script.side_effect = [None, psycopg2.OperationalError("disk full")]

    with pytest.raises(CredentialError) as excinfo:
        CredentialProvisioner(connection, systemctl, userlist).create_credential(
            "app", "app_user", "s3cr3t"
        )

    assert "disk full" in excinfo.value.details
    assert not userlist.path.exists()
    systemctl.reload.assert_not_called()
    connection.close.assert_called_once()


def test_reload_failure_is_reported(connection, systemctl, userlist):
    systemctl.reload.return_value = CommandResult(success=False, stderr="unit not found")

    with pytest.raises(CredentialError, match="reload failed"):
        CredentialProvisioner(connection, systemctl, userlist).create_credential(
            "app", "app_user", "s3cr3t"
        )

    assert userlist.lookup("app_user") is not None


@pytest.mark.parametrize(
    ("database", "role", "secret"),
    [("app; DROP", "app_user", "x"), ("app", "1user", "x"), ("app", "app_user", "")],
)
def test_invalid_input_is_rejected_before_any_sql(connection, systemctl, database, role, secret):
    with pytest.raises(CredentialError):
        CredentialProvisioner(connection, systemctl).create_credential(database, role, secret)

    connection.scalar.assert_not_called()
    connection.execute_script.assert_not_called()


@pytest.mark.parametrize("existing", [None, 1])
def test_server_and_pooler_receive_the_same_verifier(connection, systemctl, userlist, existing):
    connection.scalar.side_effect = [existing, 1]

    CredentialProvisioner(connection, systemctl, userlist).create_credential(
        "app", "app_user", "s3cr3t"
    )

    role_statement = connection.execute_script.call_args_list[0]
    (sent,) = role_statement.args[1]
    assert sent == userlist.lookup("app_user")
    assert verify_pooler_secret(sent, "app_user", "s3cr3t")


def test_md5_scheme_is_sent_to_server_unchanged(connection, systemctl, userlist):
    pair = CredentialProvisioner(
        connection, systemctl, userlist, hash_scheme="md5"
    ).create_credential("app", "app_user", "s3cr3t")

    assert pair.pooler_hash.startswith("md5")
    assert connection.execute_script.call_args_list[0].args[1] == (pair.pooler_hash,)


def test_server_gets_scram_verifier_without_pooler(connection, systemctl):
    pair = CredentialProvisioner(
        connection, systemctl, hash_scheme="md5"
    ).create_credential("app", "app_user", "s3cr3t")

    (sent,) = connection.execute_script.call_args_list[0].args[1]
    assert sent.startswith("SCRAM-SHA-256$4096:")
    assert sent == pair.pooler_hash
    systemctl.reload.assert_not_called()
