"""Reconciliation layer -- drives field maps and the ledger for incoming events.

Provides:
- ReconciliationCoordinator: Handles one local or remote event end to end
- RemoteTransport / LocalStorage: Pluggable collaborator interfaces
- SyncRequest / ReconcileResult: Event input and per-field-map outcomes
"""

from src.objectsync.sync.adapter import LocalStorage, RemoteTransport
from src.objectsync.sync.coordinator import ReconciliationCoordinator
from src.objectsync.sync.schemas import (
    MappingOutcome,
    OutcomeStatus,
    ReconcileResult,
    SyncRequest,
    TransportResult,
)

__all__ = [
    "ReconciliationCoordinator",
    "RemoteTransport",
    "LocalStorage",
    "SyncRequest",
    "ReconcileResult",
    "MappingOutcome",
    "OutcomeStatus",
    "TransportResult",
]
