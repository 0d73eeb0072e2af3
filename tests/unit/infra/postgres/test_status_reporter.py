"""Tests for the host status report."""

from unittest.mock import Mock

import psycopg2

from src.infra.postgres import DbSettings, PostgresConnection, StatusReporter
from src.infra.shell import CommandResult


def make_connection():
    conn = Mock(spec=PostgresConnection)
    conn.settings = DbSettings(superuser_password="pw")
    conn.execute.side_effect = [
        [{"active": 2, "total": 10, "max": 200}],
        [{"database": "app", "size": "12 MB"}],
        [],
    ]
    return conn


def test_collect_gathers_services_and_statistics(commands):
    connection = make_connection()

    status = StatusReporter(connection, commands).collect()

    assert status.services == {"postgresql": True, "pgbouncer": True}
    assert status.accepting_connections
    assert status.connections == {"active": 2, "total": 10, "max": 200}
    assert status.sizes == [{"database": "app", "size": "12 MB"}]
    connection.close.assert_called_once()
    StatusReporter(connection, commands).render(status)


def test_collect_stops_when_server_is_down(commands, mock_runner):
    mock_runner.run.return_value = CommandResult(success=False)
    connection = make_connection()

    status = StatusReporter(connection, commands).collect()

    assert not status.accepting_connections
    connection.execute.assert_not_called()


def test_query_errors_are_reported_not_raised(commands):
    connection = make_connection()
    connection.execute.side_effect = psycopg2.OperationalError("password authentication failed")

    status = StatusReporter(connection, commands).collect()

    assert status.error == "password authentication failed"
