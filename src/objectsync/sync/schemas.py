"""Reconciliation request/result schemas and transport results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.objectsync.mapping.schemas import SyncEvent

# last_sync_status values written to object map rows.
STATUS_SUCCESS = 1
STATUS_ERROR = 0


class SyncRequest(BaseModel):
    """An event from one of the two systems that may need reconciling.

    For local events, object_type is the local object type and record_id the
    local id. For remote events, they are the remote object type and id.
    An empty record means "read it from its system first".
    """

    trigger: SyncEvent
    object_type: str
    record_id: str
    record: dict[str, Any] = Field(default_factory=dict)
    record_type: str | None = None
    is_draft: bool = False


class TransportResult(BaseModel):
    """Outcome of one remote write."""

    success: bool = True
    remote_id: str | None = None
    errors: list[str] = Field(default_factory=list)


class OutcomeStatus(str, Enum):
    SYNCED = "synced"
    BLOCKED = "blocked"
    FAILED = "failed"
    SKIPPED = "skipped"


class MappingOutcome(BaseModel):
    """What happened to one record under one field map."""

    mapping_id: int | None
    status: OutcomeStatus
    local_id: str | None = None
    remote_id: str | None = None
    object_map_id: int | None = None
    message: str = ""


class ReconcileResult(BaseModel):
    """Summary of a handled event across all applicable field maps."""

    trigger: SyncEvent
    object_type: str
    record_id: str
    outcomes: list[MappingOutcome] = Field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def synced(self) -> int:
        return self.count(OutcomeStatus.SYNCED)

    @property
    def blocked(self) -> int:
        return self.count(OutcomeStatus.BLOCKED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)
