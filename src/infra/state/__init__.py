"""Configuration record and its run-to-run persistence."""

from .record import ConfigRecord
from .store import StateStore

__all__ = ["ConfigRecord", "StateStore"]
