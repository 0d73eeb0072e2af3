"""Idempotent configuration-file patching."""

from .line_model import ConfigDocument
from .patcher import DirectivePatcher

__all__ = ["ConfigDocument", "DirectivePatcher"]
