"""Error kinds raised or reported by the mapping engine and the ledger.

Only InvalidRuleDefinition and TemporaryIdentifierMisuse abort the current
operation. The remaining kinds describe degraded-but-completed outcomes: they
are built so their message can be handed to diagnostics, and TransportFailure
is raised by transports and caught by the coordinator.
"""

from __future__ import annotations

from typing import Any


class ObjectSyncError(Exception):
    """Base class for all object sync errors."""


class InvalidRuleDefinition(ObjectSyncError):
    """Raised when a field rule is missing its local or remote field name."""

    def __init__(self, local_field: str, remote_field: str) -> None:
        self.local_field = local_field
        self.remote_field = remote_field
        super().__init__(
            "Invalid field rule: both fields must be named "
            f"(local={local_field!r}, remote={remote_field!r})"
        )


class MissingRequiredRemoteField(ObjectSyncError):
    """A required remote field has no local value for this record."""

    def __init__(self, mapping_id: int | None, record_id: Any, fields: list[str]) -> None:
        self.mapping_id = mapping_id
        self.record_id = record_id
        self.fields = fields
        super().__init__(
            f"Record {record_id} is missing required remote field(s) "
            f"{', '.join(fields)} for field map {mapping_id}"
        )


class TemporaryIdentifierMisuse(ObjectSyncError):
    """Raised when a push placeholder id is stored without the pending action."""

    def __init__(self, local_object: str, local_id: str, remote_id: str) -> None:
        self.local_object = local_object
        self.local_id = local_id
        self.remote_id = remote_id
        super().__init__(
            f"Error Mapping: error caused by trying to map the local {local_object} "
            f"with ID of {local_id} to temporary remote ID {remote_id}, which is invalid."
        )


class LedgerUniquenessCollision(ObjectSyncError):
    """An object map insert collided with an existing correspondence."""

    def __init__(self, remote_id: str, existing_id: int) -> None:
        self.remote_id = remote_id
        self.existing_id = existing_id
        super().__init__(
            "Error: Mapping: there is already a local object mapped to the remote "
            f"object {remote_id} and the mapping object ID is {existing_id}"
        )


class MultipleCorrespondenceNotice(ObjectSyncError):
    """More than one object map row matched a single-row lookup."""

    def __init__(self, lookup: str, matches: list[tuple[str, str]]) -> None:
        self.lookup = lookup
        self.matches = matches
        listed = "; ".join(f"object type: {obj}, id: {oid}" for obj, oid in matches)
        super().__init__(
            f"Notice: Mapping: there is more than one mapped object for {lookup}. "
            f"These objects are: {listed}."
        )


class TransportFailure(ObjectSyncError):
    """Opaque failure reported by the remote transport."""

    def __init__(self, message: str, *, operation: str = "", details: Any = None) -> None:
        self.operation = operation
        self.details = details
        super().__init__(message)
