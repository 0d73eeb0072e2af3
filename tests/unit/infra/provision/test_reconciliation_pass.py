"""Tests for the end-to-end configuration pass."""

import pytest

from src.infra.access import FirewallRule, HbaFile, InMemoryFirewall
from src.infra.errors import LockError, PatchError
from src.infra.locking import advisory_lock
from src.infra.patching import DirectivePatcher
from src.infra.provision import ReconciliationPass
from src.infra.provision.cron import CRON_ENV_FILE, render_cron
from src.infra.state import ConfigRecord, StateStore


@pytest.fixture
def host(paths):
    """Host tree with a certificate already in place."""
    ssl_dir = paths.ssl_dir
    ssl_dir.mkdir(parents=True)
    (ssl_dir / "server.crt").write_text("cert")
    (ssl_dir / "server.key").write_text("key")
    return paths


@pytest.fixture
def store(host):
    return StateStore(host.state_file)


@pytest.fixture
def record():
    return ConfigRecord(allowed_ips=["10.0.0.0/8", "192.168.1.20"], port=5433)


def make_pass(store, paths, commands, firewall):
    return ReconciliationPass(
        store, paths, commands, firewall=firewall, reload_services=False
    )


def snapshot(paths):
    files = [
        paths.pg_conf,
        paths.pg_hba,
        paths.pgbouncer_ini,
        paths.pgbouncer_userlist,
        paths.cron_file,
    ]
    return {path: path.read_text() for path in files}


def test_pass_applies_record_to_every_artifact(store, host, commands, record):
    firewall = InMemoryFirewall()

    report = make_pass(store, host, commands, firewall).run(record)

    assert report.changed
    conf = host.pg_conf.read_text()
    assert "port = 5433" in conf
    assert "ssl = on" in conf
    hba = HbaFile(host.pg_hba)
    assert len([r for r in hba.rules() if r.address == "10.0.0.0/8"]) == 1
    assert firewall.has_rule(FirewallRule("192.168.1.20/32", 5433))
    assert firewall.has_rule(FirewallRule("10.0.0.0/8", 6432))
    assert firewall.enabled and firewall.ssh_port == 22
    ini = host.pgbouncer_ini.read_text()
    assert "listen_port = 6432" in ini
    assert "* = host=127.0.0.1 port=5433 pool_size=25" in ini
    assert host.pgbouncer_userlist.exists()
    assert CRON_ENV_FILE in host.cron_file.read_text()
    assert store.load() == record


def test_second_pass_changes_nothing(store, host, commands, record):
    firewall = InMemoryFirewall()
    make_pass(store, host, commands, firewall).run(record)
    before = snapshot(host)

    report = make_pass(store, host, commands, firewall).run(record)

    assert not report.changed
    assert snapshot(host) == before
    assert len(firewall.rules) == 4


def test_one_conf_backup_per_pass(store, host, commands, record):
    make_pass(store, host, commands, InMemoryFirewall()).run(record)

    backups = list(host.pg_conf_dir.glob("postgresql.conf.backup.*"))
    assert len(backups) == 1


def test_failed_patch_leaves_state_file_unwritten(store, host, commands, record):
    host.pg_conf.unlink()

    with pytest.raises(PatchError):
        make_pass(store, host, commands, InMemoryFirewall()).run(record)

    assert not store.exists()


def test_disabling_backups_removes_cron_file(store, host, commands, record):
    make_pass(store, host, commands, InMemoryFirewall()).run(record)

    report = make_pass(store, host, commands, InMemoryFirewall()).run(
        record.model_copy(update={"enable_backups": False})
    )

    assert report.cron_written
    assert not host.cron_file.exists()


def test_disabled_firewall_and_pooler_are_left_alone(store, host, commands):
    firewall = InMemoryFirewall()
    record = ConfigRecord(enable_firewall=False, enable_pgbouncer=False)

    make_pass(store, host, commands, firewall).run(record)

    assert firewall.rules == [] and not firewall.enabled
    assert not host.pgbouncer_ini.exists()


def test_port_change_restarts_services(store, host, commands, record, issued):
    report = ReconciliationPass(store, host, commands, firewall=InMemoryFirewall()).run(record)

    assert "port" in report.conf_changed
    assert "listen_port" in report.pgbouncer_changed
    assert ["systemctl", "restart", "postgresql"] in issued()
    assert ["systemctl", "restart", "pgbouncer"] in issued()
    assert ["systemctl", "reload", "postgresql"] not in issued()


def test_reloadable_change_only_reloads(store, host, commands, record, issued, mock_runner):
    make_pass(store, host, commands, InMemoryFirewall()).run(record)
    mock_runner.run.reset_mock()

    ReconciliationPass(store, host, commands, firewall=InMemoryFirewall()).run(
        record.model_copy(update={"work_mem_mb": record.work_mem_mb + 4})
    )

    assert ["systemctl", "reload", "postgresql"] in issued()
    assert ["systemctl", "reload", "pgbouncer"] in issued()
    assert not any(cmd[:2] == ["systemctl", "restart"] for cmd in issued())


def test_pass_refuses_to_run_during_another_operation(store, host, commands, record, issued):
    before = host.pg_conf.read_text()

    with advisory_lock(host.lock_file):
        with pytest.raises(LockError, match="Another pg-provision operation"):
            make_pass(store, host, commands, InMemoryFirewall()).run(record)

    assert host.pg_conf.read_text() == before
    assert not store.exists()
    assert issued() == []


def test_patcher_is_reused_for_the_whole_pass(store, host, commands, record):
    patcher = DirectivePatcher()

    ReconciliationPass(
        store, host, commands, patcher=patcher, firewall=InMemoryFirewall(), reload_services=False
    ).run(record)

    assert set(patcher.backups) == {host.pg_conf, host.pgbouncer_ini}


def test_cron_schedule_follows_record():
    content = render_cron(ConfigRecord(backup_schedule="hourly"), executable="/usr/bin/pg-provision")

    job = [line for line in content.splitlines() if line.startswith("0 ")]
    assert job == [
        "0 * * * * root /usr/bin/pg-provision --env-file /etc/pg-provision/backup.env backup "
        ">> /var/log/postgresql-setup/backup.log 2>&1"
    ]
