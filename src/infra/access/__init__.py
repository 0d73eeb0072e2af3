"""Allow-list reconciliation across authentication rules and the firewall."""

from .firewall import FirewallRule, InMemoryFirewall, ManagedFirewall, UfwFirewall
from .hba import AuthRule, HbaFile
from .reconciler import AccessControlReconciler, ReconcileReport

__all__ = [
    "AccessControlReconciler",
    "ReconcileReport",
    "AuthRule",
    "HbaFile",
    "FirewallRule",
    "InMemoryFirewall",
    "ManagedFirewall",
    "UfwFirewall",
]
