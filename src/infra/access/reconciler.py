"""Reconciles one allow-list into two enforcement points.

Both the authentication rules (pg_hba.conf) and the firewall are derived from
the same allow-list. Rules are only ever added: an entry removed from the
allow-list leaves its old rules in place.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.state.record import ConfigRecord

from .firewall import FirewallArtifact, FirewallRule
from .hba import AuthRule


class AuthArtifact(Protocol):
    def has_rule(self, rule: AuthRule) -> bool: ...

    def add_rule(self, rule: AuthRule) -> None: ...

    def ensure_baseline(self, rules: list[AuthRule]) -> list[AuthRule]: ...

    def flush(self) -> bool: ...


@dataclass
class ReconcileReport:
    """What one reconciliation changed and skipped."""

    baseline_added: list[AuthRule] = field(default_factory=list)
    auth_added: list[AuthRule] = field(default_factory=list)
    firewall_added: list[FirewallRule] = field(default_factory=list)
    loopback_added: bool = False
    skipped: list[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.baseline_added or self.auth_added or self.firewall_added or self.loopback_added
        )


def normalize_source(entry: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    """Parse an allow-list entry (CIDR or single IP).

    Raises:
        ValueError: If the entry is not an IP address or network
    """
    return ipaddress.ip_network(entry.strip(), strict=False)


class AccessControlReconciler:
    """Applies an allow-list to an auth artifact and a firewall artifact."""

    def __init__(
        self,
        *,
        db_port: int,
        pooler_port: int | None = None,
        replication: bool = False,
        auth_method: str = DEFAULT_CONSTANTS.AUTH_METHOD,
    ) -> None:
        self._db_port = db_port
        self._pooler_port = pooler_port
        self._replication = replication
        self._method = auth_method

    @classmethod
    def from_record(cls, record: ConfigRecord) -> AccessControlReconciler:
        return cls(
            db_port=record.port,
            pooler_port=record.pgbouncer_port if record.enable_pgbouncer else None,
            replication=record.enable_replication,
        )

    def baseline_rules(self) -> list[AuthRule]:
        """Loopback access that no allow-list can remove."""
        rules = [
            AuthRule("local", "all", DEFAULT_CONSTANTS.SUPERUSER, None, "peer"),
            AuthRule("local", "all", "all", None, "peer"),
            AuthRule("host", "all", "all", "127.0.0.1/32", self._method),
            AuthRule("host", "all", "all", "::1/128", self._method),
        ]
        if self._replication:
            rules += [
                AuthRule("local", "replication", "all", None, "peer"),
                AuthRule("host", "replication", "all", "127.0.0.1/32", self._method),
                AuthRule("host", "replication", "all", "::1/128", self._method),
            ]
        return rules

    def rules_for(self, network: ipaddress.IPv4Network | ipaddress.IPv6Network) -> list[AuthRule]:
        rules = [AuthRule("host", "all", "all", str(network), self._method)]
        if self._replication:
            rules.append(AuthRule("host", "replication", "all", str(network), self._method))
        return rules

    def firewall_rules_for(
        self, network: ipaddress.IPv4Network | ipaddress.IPv6Network
    ) -> list[FirewallRule]:
        rules = [FirewallRule(str(network), self._db_port, "tcp", DEFAULT_CONSTANTS.POSTGRES_RULE_LABEL)]
        if self._pooler_port is not None:
            rules.append(
                FirewallRule(
                    str(network), self._pooler_port, "tcp", DEFAULT_CONSTANTS.PGBOUNCER_RULE_LABEL
                )
            )
        return rules

    def reconcile(
        self,
        allow_list: Iterable[str],
        auth: AuthArtifact,
        firewall: FirewallArtifact | None,
    ) -> ReconcileReport:
        """Make both artifacts admit every valid allow-list entry.

        Invalid entries are logged and skipped. Existing equivalent rules are
        never added twice. ``firewall`` may be None when the firewall is
        disabled.
        """
        report = ReconcileReport()
        report.baseline_added = auth.ensure_baseline(self.baseline_rules())
        if firewall is not None:
            report.loopback_added = firewall.ensure_loopback()

        for entry in allow_list:
            try:
                network = normalize_source(entry)
            except ValueError:
                logger.warning(f"Skipping invalid allow-list entry {entry!r}: not an IP or CIDR")
                report.skipped.append((entry, "not an IP address or CIDR"))
                continue

            for rule in self.rules_for(network):
                if not auth.has_rule(rule):
                    auth.add_rule(rule)
                    report.auth_added.append(rule)

            if firewall is None or network.is_loopback:
                continue
            for fw_rule in self.firewall_rules_for(network):
                if not firewall.has_rule(fw_rule):
                    firewall.allow(fw_rule)
                    report.firewall_added.append(fw_rule)

        auth.flush()
        return report
