"""The configuration pass that converges the host to a configuration record."""

from .engine import PassReport, ReconciliationPass

__all__ = ["PassReport", "ReconciliationPass"]
