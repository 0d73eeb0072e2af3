"""Tests for backup creation, retention and remote offload."""

from datetime import datetime, timedelta
from unittest.mock import Mock

import psycopg2
import pytest

from src.infra.errors import BackupError, LockError
from src.infra.locking import advisory_lock
from src.infra.postgres import BackupManager, DbSettings, PostgresConnection
from src.infra.postgres.backup import parse_artifact_name, sha256_file
from src.infra.shell import CommandResult
from src.infra.state import ConfigRecord

NOW = datetime(2026, 10, 18, 2, 0, 0)


def _stamp(when: datetime) -> str:
    return when.strftime("%Y%m%d_%H%M%S")


@pytest.fixture
def connection():
    conn = Mock(spec=PostgresConnection)
    conn.settings = DbSettings(superuser_password="pw")
    conn.execute.return_value = [{"datname": "app"}, {"datname": "postgres"}]
    return conn


@pytest.fixture
def writing_runner(mock_runner):
    """pg_dump/pg_dumpall write their -f target; everything else succeeds."""

    def _run(cmd, **kwargs):
        if cmd[0] in ("pg_dump", "pg_dumpall"):
            output = cmd[cmd.index("-f") + 1]
            with open(output, "wb") as f:
                f.write(b"PGDMP" + cmd[-1].encode())
        return CommandResult(success=True)

    mock_runner.run.side_effect = _run
    return mock_runner


def make_manager(connection, commands, paths, **record_fields):
    record = ConfigRecord(**record_fields)
    return BackupManager(
        connection, commands, record, paths, clock=lambda: NOW, hostname="db1"
    )


def test_backup_writes_dump_per_database_globals_and_checksums(
    connection, commands, paths, writing_runner, issued
):
    artifacts = make_manager(connection, commands, paths).run_backup()

    names = sorted(a.path.name for a in artifacts)
    stamp = _stamp(NOW)
    assert names == [f"app_{stamp}.dump", f"globals_{stamp}.sql", f"postgres_{stamp}.dump"]
    for artifact in artifacts:
        sidecar = artifact.checksum_path.read_text().split()
        assert sidecar == [sha256_file(artifact.path), artifact.path.name]
    dump_cmd = next(cmd for cmd in issued() if cmd[0] == "pg_dump")
    assert "-Fc" in dump_cmd
    assert "-Z" not in dump_cmd
    assert writing_runner.run.call_args_list[0].kwargs["env"] == {"PGPASSWORD": "pw"}


def test_uncompressed_backup_passes_level_zero(connection, commands, paths, writing_runner, issued):
    make_manager(connection, commands, paths, backup_compression=False).run_backup()

    dump_cmd = next(cmd for cmd in issued() if cmd[0] == "pg_dump")
    assert dump_cmd[dump_cmd.index("-Z") + 1] == "0"


def test_retention_uses_whole_days_from_file_name(connection, commands, paths):
    paths.backup_dir.mkdir(parents=True)
    files = {}
    for days in (13, 14, 15):
        path = paths.backup_dir / f"app_{_stamp(NOW - timedelta(days=days))}.dump"
        path.write_bytes(b"x")
        files[days] = path
    sidecar = files[15].with_name(files[15].name + ".sha256")
    sidecar.write_text("abc  x\n")
    unmanaged = paths.backup_dir / "README.txt"
    unmanaged.write_text("keep me")

    removed = make_manager(
        connection, commands, paths, backup_retention_days=14
    ).apply_retention()

    assert sorted(removed) == sorted([files[15], sidecar])
    assert files[13].exists() and files[14].exists()
    assert unmanaged.exists()


def test_failed_dump_aborts_before_retention(connection, commands, paths, mock_runner):
    paths.backup_dir.mkdir(parents=True)
    expired = paths.backup_dir / f"app_{_stamp(NOW - timedelta(days=30))}.dump"
    expired.write_bytes(b"x")

    def _run(cmd, **kwargs):
        if cmd[0] != "pg_dump":
            return CommandResult(success=True)
        # pg_dump dies after it has started writing its output file
        with open(cmd[cmd.index("-f") + 1], "wb") as f:
            f.write(b"PGDMP")
        return CommandResult(success=False, stderr="connection refused")

    mock_runner.run.side_effect = _run

    with pytest.raises(BackupError, match="pg_dump failed for database 'app'"):
        make_manager(connection, commands, paths).run_backup()

    assert expired.exists()
    assert not (paths.backup_dir / f"app_{_stamp(NOW)}.dump").exists()
    assert make_manager(connection, commands, paths).list_artifacts()[0].path == expired


def test_failed_globals_dump_removes_partial_file(connection, commands, paths, writing_runner):
    original = writing_runner.run.side_effect

    def _run(cmd, **kwargs):
        result = original(cmd, **kwargs)
        if cmd[0] == "pg_dumpall":
            return CommandResult(success=False, stderr="permission denied")
        return result

    writing_runner.run.side_effect = _run

    with pytest.raises(BackupError, match="pg_dumpall"):
        make_manager(connection, commands, paths).run_backup()

    assert not (paths.backup_dir / f"globals_{_stamp(NOW)}.sql").exists()
    assert (paths.backup_dir / f"app_{_stamp(NOW)}.dump").exists()


def test_backup_refuses_to_run_during_another_operation(connection, commands, paths, issued):
    with advisory_lock(paths.lock_file):
        with pytest.raises(LockError, match="Another pg-provision operation"):
            make_manager(connection, commands, paths).run_backup()

    assert not any(cmd[0] in ("pg_dump", "pg_dumpall") for cmd in issued())
    connection.execute.assert_not_called()


def test_listing_failure_is_a_backup_error(connection, commands, paths):
    connection.execute.side_effect = psycopg2.OperationalError("no route")

    with pytest.raises(BackupError, match="Cannot list databases"):
        make_manager(connection, commands, paths).run_backup()

    connection.close.assert_called_once()


def test_remote_sync_failure_keeps_local_artifacts(connection, commands, paths, writing_runner):
    def _run(cmd, **kwargs):
        if cmd[0] == "aws":
            return CommandResult(success=False, stderr="AccessDenied")
        return original(cmd, **kwargs)

    original = writing_runner.run.side_effect
    writing_runner.run.side_effect = _run

    artifacts = make_manager(
        connection, commands, paths, remote_backup_enabled=True, s3_bucket="my-bucket"
    ).run_backup()

    assert all(a.path.exists() for a in artifacts)
    assert all(a.remote_uri is None for a in artifacts)


def test_remote_sync_records_destination(connection, commands, paths, writing_runner, issued):
    artifacts = make_manager(
        connection, commands, paths, remote_backup_enabled=True, s3_bucket="my-bucket"
    ).run_backup()

    sync = next(cmd for cmd in issued() if cmd[0] == "aws")
    assert sync[3:5] == [str(paths.backup_dir), "s3://my-bucket/postgresql-backups/db1/"]
    assert artifacts[0].remote_uri == (
        "s3://my-bucket/postgresql-backups/db1/" + artifacts[0].path.name
    )


def test_list_artifacts_is_newest_first_without_sidecars(connection, commands, paths):
    paths.backup_dir.mkdir(parents=True)
    old = paths.backup_dir / "app_20260101_000000.dump"
    new = paths.backup_dir / "globals_20260201_000000.sql"
    for path in (old, new):
        path.write_bytes(b"x")
        path.with_name(path.name + ".sha256").write_text("x")

    artifacts = make_manager(connection, commands, paths).list_artifacts()

    assert [(a.database, a.format) for a in artifacts] == [("globals", "sql"), ("app", "custom")]


def test_parse_artifact_name_rejects_foreign_files(tmp_path):
    assert parse_artifact_name(tmp_path / "notes.txt") is None
    assert parse_artifact_name(tmp_path / "app_20261399_000000.dump") is None
    unit, stamp, ext = parse_artifact_name(tmp_path / "my_app_20260102_030405.dump")
    assert (unit, stamp, ext) == ("my_app", datetime(2026, 1, 2, 3, 4, 5), "dump")
