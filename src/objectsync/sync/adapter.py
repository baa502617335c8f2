"""Collaborator interfaces for the reconciliation coordinator.

RemoteTransport talks to the remote system; LocalStorage reads and writes
local records. The coordinator only sees these ABCs, so any remote API
client or local store can be plugged in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.objectsync.mapping.schemas import FieldDescriptor, PrematchDescriptor, PulledValue
from src.objectsync.sync.schemas import TransportResult


class RemoteTransport(ABC):
    """Abstract interface for remote record operations.

    Write methods return a TransportResult or raise TransportFailure.

    Methods:
        create: Create a remote record, result carries the new id.
        upsert: Create or update by external-id key field.
        update: Update a remote record by id.
        delete: Delete a remote record by id.
        read: Fetch selected fields of a remote record.
        match: Find an existing remote record by prematch field.
    """

    # True when the key field may also be sent inside the record body.
    supports_inline_key: bool = False

    @abstractmethod
    async def create(self, remote_object: str, params: dict[str, Any]) -> TransportResult:
        """Create a remote record."""
        ...

    @abstractmethod
    async def upsert(
        self, remote_object: str, key: FieldDescriptor, params: dict[str, Any]
    ) -> TransportResult:
        """Create or update a remote record identified by an external-id key."""
        ...

    @abstractmethod
    async def update(
        self, remote_object: str, remote_id: str, params: dict[str, Any]
    ) -> TransportResult:
        """Update a remote record by id."""
        ...

    @abstractmethod
    async def delete(self, remote_object: str, remote_id: str) -> TransportResult:
        """Delete a remote record by id."""
        ...

    @abstractmethod
    async def read(
        self, remote_object: str, remote_id: str, fields: list[str]
    ) -> dict[str, Any] | None:
        """Fetch a remote record's fields, or None if it does not exist."""
        ...

    @abstractmethod
    async def match(self, remote_object: str, prematch: FieldDescriptor) -> str | None:
        """Return the id of a remote record whose prematch field equals the value."""
        ...


class LocalStorage(ABC):
    """Abstract interface for local record operations."""

    @abstractmethod
    async def get(self, local_object: str, local_id: str) -> dict[str, Any] | None:
        """Fetch a local record keyed by field label."""
        ...

    @abstractmethod
    async def create(
        self,
        local_object: str,
        values: dict[str, PulledValue],
        *,
        draft: bool = False,
    ) -> str:
        """Create a local record from pulled values, return its id."""
        ...

    @abstractmethod
    async def update(
        self, local_object: str, local_id: str, values: dict[str, PulledValue]
    ) -> None:
        """Apply pulled values to a local record."""
        ...

    @abstractmethod
    async def delete(self, local_object: str, local_id: str) -> None:
        """Delete a local record."""
        ...

    @abstractmethod
    async def match(self, local_object: str, prematch: PrematchDescriptor) -> str | None:
        """Return the id of a local record matching the prematch value."""
        ...
