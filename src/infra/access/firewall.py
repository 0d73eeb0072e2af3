"""Firewall rule artifacts keyed by (source, port, protocol)."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from src.infra.errors import FirewallError
from src.infra.shell.ufw import UfwCommands

from .hba import normalize_address


@dataclass(frozen=True)
class FirewallRule:
    """Permit inbound traffic from ``source`` to ``port``/``proto``."""

    source: str
    port: int
    proto: str = "tcp"
    comment: str | None = field(default=None, compare=False)

    def key(self) -> tuple[str | None, int, str]:
        return normalize_address(self.source), self.port, self.proto


class FirewallArtifact(Protocol):
    def has_rule(self, rule: FirewallRule) -> bool: ...

    def allow(self, rule: FirewallRule) -> None: ...

    def ensure_loopback(self) -> bool: ...


class ManagedFirewall(FirewallArtifact, Protocol):
    """A firewall the configuration pass also sets defaults on and enables."""

    def apply_defaults(self, ssh_port: int, ssh_label: str = "SSH") -> None: ...

    def enable(self) -> None: ...


class InMemoryFirewall:
    """Firewall artifact held in memory; stands in for UFW in tests and dry runs."""

    def __init__(self, rules: list[FirewallRule] | None = None) -> None:
        self.rules: list[FirewallRule] = list(rules or [])
        self.loopback = False
        self.ssh_port: int | None = None
        self.enabled = False

    def has_rule(self, rule: FirewallRule) -> bool:
        return any(existing.key() == rule.key() for existing in self.rules)

    def allow(self, rule: FirewallRule) -> None:
        self.rules.append(rule)

    def ensure_loopback(self) -> bool:
        if self.loopback:
            return False
        self.loopback = True
        return True

    def apply_defaults(self, ssh_port: int, ssh_label: str = "SSH") -> None:
        self.ssh_port = ssh_port

    def enable(self) -> None:
        self.enabled = True


def parse_ufw_rule(line: str) -> FirewallRule | None:
    """Parse a ``ufw show added`` line into a source-scoped allow rule."""
    try:
        tokens = shlex.split(line)
    except ValueError:
        return None
    if tokens[:2] != ["ufw", "allow"]:
        return None

    opts: dict[str, str] = {}
    i = 2
    while i + 1 < len(tokens):
        opts[tokens[i]] = tokens[i + 1]
        i += 2 if tokens[i] in ("from", "to", "port", "proto", "comment") else 1

    if "from" not in opts or "port" not in opts:
        return None
    try:
        port = int(opts["port"])
    except ValueError:
        return None
    return FirewallRule(opts["from"], port, opts.get("proto", "tcp"), opts.get("comment"))


class UfwFirewall:
    """Firewall artifact backed by UFW.

    Existing rules are read once from ``ufw show added`` and tracked as rules
    are added, so each rule is checked before it is issued.
    """

    LOOPBACK_RULE = "ufw allow in on lo"

    def __init__(self, ufw: UfwCommands) -> None:
        self._ufw = ufw
        self._added: list[str] | None = None

    def _lines(self) -> list[str]:
        if self._added is None:
            self._added = self._ufw.show_added()
        return self._added

    def rules(self) -> list[FirewallRule]:
        return [rule for rule in map(parse_ufw_rule, self._lines()) if rule is not None]

    def has_rule(self, rule: FirewallRule) -> bool:
        return any(existing.key() == rule.key() for existing in self.rules())

    def allow(self, rule: FirewallRule) -> None:
        result = self._ufw.allow_from(rule.source, rule.port, rule.proto, rule.comment)
        if not result.success:
            raise FirewallError(
                f"Firewall rule could not be applied: allow from {rule.source} "
                f"to port {rule.port}/{rule.proto}",
                details=result.output,
            )
        line = f"ufw allow from {rule.source} to any port {rule.port} proto {rule.proto}"
        self._lines().append(line)
        logger.info(f"Firewall: {line}")

    def ensure_loopback(self) -> bool:
        if self.LOOPBACK_RULE in self._lines():
            return False
        result = self._ufw.allow_in_on("lo")
        if not result.success:
            raise FirewallError("Firewall loopback rule could not be applied", result.output)
        self._lines().append(self.LOOPBACK_RULE)
        return True

    def apply_defaults(self, ssh_port: int, ssh_label: str = "SSH") -> None:
        """Deny inbound by default while keeping SSH reachable."""
        for policy, direction in (("deny", "incoming"), ("allow", "outgoing")):
            result = self._ufw.default(policy, direction)
            if not result.success:
                raise FirewallError(f"Could not set ufw default {policy} {direction}", result.output)

        ssh_rule = f"ufw allow {ssh_port}/tcp"
        if not any(line.startswith(ssh_rule) for line in self._lines()):
            result = self._ufw.allow_port(ssh_port, "tcp", ssh_label)
            if not result.success:
                raise FirewallError(f"Could not allow SSH port {ssh_port}", result.output)
            self._lines().append(ssh_rule)

    def enable(self) -> None:
        result = self._ufw.enable()
        if not result.success:
            raise FirewallError("Could not enable ufw", result.output)
