"""Sync orchestration between Obsidian notes and Anki."""

from .liveness import LivenessProbe
from .orchestrator import SyncOrchestrator, SyncState
from .reconciler import reconcile

__all__ = ["LivenessProbe", "SyncOrchestrator", "SyncState", "reconcile"]
