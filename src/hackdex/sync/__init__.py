"""Catalog synchronization: progress events, lifecycle FSM and orchestrator."""

from hackdex.sync.events import ProgressChannel, SyncProgress, SyncStage
from hackdex.sync.fsm import SyncLifecycleSM, create_sync_fsm
from hackdex.sync.importer import CatalogImportJob
from hackdex.sync.orchestrator import SyncJob, SyncOrchestrator, format_relative_time

__all__ = [
    "CatalogImportJob",
    "ProgressChannel",
    "SyncJob",
    "SyncLifecycleSM",
    "SyncOrchestrator",
    "SyncProgress",
    "SyncStage",
    "create_sync_fsm",
    "format_relative_time",
]
