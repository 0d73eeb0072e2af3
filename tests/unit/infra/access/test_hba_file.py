"""Tests for pg_hba.conf parsing and editing."""

import os

import pytest

from src.infra.access import AuthRule, HbaFile
from src.infra.access.hba import MANAGED_MARKER
from src.infra.errors import PatchError


def test_parse_local_and_host_rules():
    local = AuthRule.parse("local   all   postgres   peer")
    host = AuthRule.parse("host all all 10.0.0.5/32 scram-sha-256  # office")

    assert local == AuthRule("local", "all", "postgres", None, "peer")
    assert host == AuthRule("host", "all", "all", "10.0.0.5/32", "scram-sha-256")


def test_parse_address_mask_form():
    rule = AuthRule.parse("host all all 192.168.0.0 255.255.0.0 md5")

    assert rule is not None
    assert rule.address == "192.168.0.0/16"
    assert rule.method == "md5"


@pytest.mark.parametrize("line", ["", "# comment", "include_dir conf.d", "host all"])
def test_parse_ignores_non_rules(line):
    assert AuthRule.parse(line) is None


def test_equivalent_normalizes_single_addresses():
    a = AuthRule("host", "all", "all", "10.0.0.5", "scram-sha-256")
    b = AuthRule("host", "all", "all", "10.0.0.5/32", "scram-sha-256")

    assert a.equivalent(b)


def test_add_rule_appends_below_marker_and_flushes(tmp_path):
    path = tmp_path / "pg_hba.conf"
    path.write_text("local all all peer\n")
    hba = HbaFile(path)

    hba.add_rule(AuthRule("host", "all", "all", "10.0.0.0/8", "scram-sha-256"))
    assert hba.flush() is True

    lines = path.read_text().splitlines()
    assert lines[2] == MANAGED_MARKER
    assert lines[3].split() == ["host", "all", "all", "10.0.0.0/8", "scram-sha-256"]
    assert list(tmp_path.glob("pg_hba.conf.backup.*"))


@pytest.mark.skipif(os.geteuid() != 0, reason="changing file ownership requires root")
def test_flush_keeps_owner_the_server_reads_as(tmp_path):
    path = tmp_path / "pg_hba.conf"
    path.write_text("local all all peer\n")
    os.chown(path, 65534, 65534)
    hba = HbaFile(path)

    hba.add_rule(AuthRule("host", "all", "all", "10.0.0.0/8", "scram-sha-256"))
    hba.flush()

    st = path.stat()
    assert (st.st_uid, st.st_gid) == (65534, 65534)
    assert st.st_mode & 0o7777 == 0o640


def test_flush_without_changes_does_not_write(tmp_path):
    path = tmp_path / "pg_hba.conf"
    path.write_text("local all all peer")
    hba = HbaFile(path)

    assert hba.has_rule(AuthRule("local", "all", "all", None, "peer"))
    assert hba.flush() is False
    assert path.read_text() == "local all all peer"


def test_baseline_is_inserted_before_existing_rules(tmp_path):
    path = tmp_path / "pg_hba.conf"
    path.write_text("# header\nhost all all 0.0.0.0/0 reject\n")
    hba = HbaFile(path)

    missing = hba.ensure_baseline([AuthRule("local", "all", "postgres", None, "peer")])
    hba.flush()

    assert len(missing) == 1
    rules = HbaFile(path).rules()
    assert rules[0] == AuthRule("local", "all", "postgres", None, "peer")
    assert rules[1].method == "reject"


def test_missing_file_raises_patch_error(tmp_path):
    with pytest.raises(PatchError, match="file does not exist"):
        HbaFile(tmp_path / "absent").rules()
