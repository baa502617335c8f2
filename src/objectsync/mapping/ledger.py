"""Object correspondence ledger -- async persistence of local <-> remote record identities.

Provides ObjectMapLedger with the session_factory callable pattern used by
the field map repository. Rules enforced here:

- A push placeholder id (TEMP_PUSH_PREFIX...) may only be written with
  action="pending"; anything else raises TemporaryIdentifierMisuse after a
  diagnostic is recorded, and nothing is inserted.
- Inserts rely on the unique constraint rather than a pre-check. A
  collision is resolved by returning the canonical existing row for the
  remote id and recording an error diagnostic with a dump of that row.
- Lookups are ordered latest first by (object_updated, created); the first
  row is the canonical correspondence. Multiple matches on a single-row
  lookup produce one notice and the first row is used.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.objectsync.config import Settings, get_settings
from src.objectsync.core.diagnostics import Diagnostics, Severity, StructlogDiagnostics
from src.objectsync.mapping.errors import (
    LedgerUniquenessCollision,
    MultipleCorrespondenceNotice,
    TemporaryIdentifierMisuse,
)
from src.objectsync.mapping.models import MissingRequiredDataModel, ObjectMapModel
from src.objectsync.mapping.schemas import (
    FailedObjectMaps,
    ObjectMapCreate,
    ObjectMapRead,
    ObjectMapUpdate,
)

logger = structlog.get_logger(__name__)

PUSH = "push"
PULL = "pull"

_ORDERING = (
    ObjectMapModel.object_updated.desc().nulls_last(),
    ObjectMapModel.created.desc(),
    ObjectMapModel.id.desc(),
)


def _model_to_object_map(model: ObjectMapModel) -> ObjectMapRead:
    """Convert ObjectMapModel to ObjectMapRead schema."""
    return ObjectMapRead(
        id=model.id,
        local_object=model.local_object,
        local_id=model.local_id,
        remote_id=model.remote_id,
        created=model.created,
        object_updated=model.object_updated,
        last_sync=model.last_sync,
        last_sync_action=model.last_sync_action,
        last_sync_status=model.last_sync_status,
        last_sync_message=model.last_sync_message,
    )


class ObjectMapLedger:
    """Async CRUD and invariants for object map rows.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        diagnostics: Sink for collisions, misuse and multiple-match notices.
        settings: Supplies the temporary id prefixes.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        diagnostics: Diagnostics | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._diagnostics = diagnostics or StructlogDiagnostics()
        settings = settings or get_settings()
        self._push_prefix = settings.TEMP_PUSH_PREFIX
        self._pull_prefix = settings.TEMP_PULL_PREFIX

    # ── Temporary Identifiers ───────────────────────────────────────────────

    def generate_temporary_id(self, direction: str) -> str:
        """Placeholder id held by a ledger row while a create is in flight.

        Args:
            direction: "push" (placeholder for the remote id) or "pull"
                (placeholder for the local id).

        Raises:
            ValueError: For any other direction.
        """
        if direction == PUSH:
            prefix = self._push_prefix
        elif direction == PULL:
            prefix = self._pull_prefix
        else:
            raise ValueError(f"Unknown sync direction for temporary id: {direction!r}")
        return f"{prefix}{uuid.uuid4().hex}"

    def is_temporary_remote_id(self, remote_id: str) -> bool:
        return remote_id.startswith(self._push_prefix)

    def is_temporary_local_id(self, local_id: str) -> bool:
        return local_id.startswith(self._pull_prefix)

    # ── Create ──────────────────────────────────────────────────────────────

    async def create_object_map(self, data: ObjectMapCreate) -> int:
        """Insert a ledger row and return its id.

        Returns the id of the canonical existing row when the insert
        collides with an existing correspondence.

        Raises:
            TemporaryIdentifierMisuse: remote_id is a push placeholder and
                the row is not marked pending.
        """
        if self.is_temporary_remote_id(data.remote_id) and data.action != "pending":
            error = TemporaryIdentifierMisuse(data.local_object, data.local_id, data.remote_id)
            self._diagnostics.record(
                str(error),
                {"local_object": data.local_object, "local_id": data.local_id},
                Severity.ERROR,
            )
            raise error

        now = datetime.now(timezone.utc)
        values = data.model_dump(exclude={"action"})
        values["created"] = now
        if values["object_updated"] is None:
            values["object_updated"] = now

        async for session in self._session_factory():
            model = ObjectMapModel(**values)
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                continue
            await session.refresh(model)
            logger.info(
                "ledger.object_map_created",
                object_map_id=model.id,
                local_object=model.local_object,
                local_id=model.local_id,
                remote_id=model.remote_id,
            )
            return model.id

        return await self._resolve_collision(data)

    async def _resolve_collision(self, data: ObjectMapCreate) -> int:
        existing = await self.load_all_by_remote(data.remote_id)
        if not existing:
            # The conflicting row went away between the insert and the lookup.
            raise LookupError(
                f"Object map insert for remote id {data.remote_id} collided "
                "but no existing row was found"
            )

        canonical = existing[0]
        collision = LedgerUniquenessCollision(data.remote_id, canonical.id)
        self._diagnostics.record(
            str(collision),
            canonical.model_dump(mode="json"),
            Severity.ERROR,
        )
        logger.warning(
            "ledger.object_map_collision",
            remote_id=data.remote_id,
            existing_id=canonical.id,
        )
        return canonical.id

    # ── Read ────────────────────────────────────────────────────────────────

    async def get_object_map(self, object_map_id: int) -> ObjectMapRead | None:
        """Get a ledger row by id."""
        async for session in self._session_factory():
            model = await session.get(ObjectMapModel, object_map_id)
            if model is None:
                return None
            return _model_to_object_map(model)

    async def get_all_object_maps(self, **conditions: Any) -> list[ObjectMapRead]:
        """All ledger rows matching column=value conditions, latest first.

        Raises:
            ValueError: A condition names an unknown column.
        """
        stmt = select(ObjectMapModel)
        for column_name, value in conditions.items():
            if column_name not in ObjectMapModel.__table__.columns:
                raise ValueError(f"Unknown object map column: {column_name}")
            stmt = stmt.where(getattr(ObjectMapModel, column_name) == value)
        stmt = stmt.order_by(*_ORDERING)

        async for session in self._session_factory():
            result = await session.execute(stmt)
            return [_model_to_object_map(m) for m in result.scalars().all()]

    async def load_all_by_local(self, local_object: str, local_id: Any) -> list[ObjectMapRead]:
        """All ledger rows for a local record, latest first."""
        return await self.get_all_object_maps(local_object=local_object, local_id=str(local_id))

    async def load_all_by_remote(
        self, remote_id: str, local_object: str | None = None
    ) -> list[ObjectMapRead]:
        """All ledger rows for a remote record, latest first.

        With local_object, only rows mapping it to that local object type.
        """
        if local_object is None:
            return await self.get_all_object_maps(remote_id=remote_id)
        return await self.get_all_object_maps(remote_id=remote_id, local_object=local_object)

    async def load_by_local(self, local_object: str, local_id: Any) -> ObjectMapRead | None:
        """Canonical ledger row for a local record, or None.

        One local record mapped to several remote records is allowed but
        reported as a notice.
        """
        rows = await self.load_all_by_local(local_object, local_id)
        return self._canonical(rows, f"the local {local_object} {local_id}")

    async def load_by_remote(
        self, remote_id: str, local_object: str | None = None
    ) -> ObjectMapRead | None:
        """Canonical ledger row for a remote record, or None.

        When several local records map to the remote record, one notice is
        recorded and the latest row is used. Given local_object, rows for
        other local object types are ignored.
        """
        rows = await self.load_all_by_remote(remote_id, local_object)
        return self._canonical(rows, f"the remote object {remote_id}")

    def _canonical(self, rows: list[ObjectMapRead], lookup: str) -> ObjectMapRead | None:
        if not rows:
            return None
        if len(rows) > 1:
            notice = MultipleCorrespondenceNotice(
                lookup,
                [(row.local_object, row.local_id) for row in rows],
            )
            self._diagnostics.record(
                str(notice),
                {"object_map_ids": [row.id for row in rows], "canonical_id": rows[0].id},
                Severity.NOTICE,
            )
        return rows[0]

    # ── Update / Delete ─────────────────────────────────────────────────────

    async def update_object_map(self, object_map_id: int, data: ObjectMapUpdate) -> bool:
        """Update a ledger row; object_updated is refreshed unless supplied.

        Returns:
            True if the row exists and was updated.
        """
        values = data.model_dump(exclude_unset=True)
        if values.get("object_updated") is None:
            values["object_updated"] = datetime.now(timezone.utc)

        async for session in self._session_factory():
            model = await session.get(ObjectMapModel, object_map_id)
            if model is None:
                return False
            for column_name, value in values.items():
                setattr(model, column_name, value)
            await session.commit()
            logger.info(
                "ledger.object_map_updated",
                object_map_id=object_map_id,
                fields=sorted(values),
            )
            return True

    async def delete_object_map(self, object_map_id: int | str | Iterable[int]) -> bool:
        """Delete one ledger row, or a set of rows in a single transaction.

        Returns:
            For one id, True if exactly that row was deleted. For a set of
            ids, True once the transaction commits.
        """
        if isinstance(object_map_id, (int, str)):
            ids = [int(object_map_id)]
            single = True
        else:
            ids = [int(i) for i in object_map_id]
            single = False

        if not ids:
            return True

        async for session in self._session_factory():
            async with session.begin():
                result = await session.execute(
                    delete(ObjectMapModel).where(ObjectMapModel.id.in_(ids))
                )
            logger.info("ledger.object_maps_deleted", ids=ids, deleted=result.rowcount)
            if single:
                return result.rowcount == 1
            return True

    # ── Failure Inventory ───────────────────────────────────────────────────

    async def get_failed_object_maps(self) -> FailedObjectMaps:
        """Rows still holding a temporary id: stuck pushes and stuck pulls."""
        push_stmt = (
            select(ObjectMapModel)
            .where(ObjectMapModel.remote_id.startswith(self._push_prefix, autoescape=True))
            .order_by(*_ORDERING)
        )
        pull_stmt = (
            select(ObjectMapModel)
            .where(ObjectMapModel.local_id.startswith(self._pull_prefix, autoescape=True))
            .order_by(*_ORDERING)
        )
        async for session in self._session_factory():
            push_rows = (await session.execute(push_stmt)).scalars().all()
            pull_rows = (await session.execute(pull_stmt)).scalars().all()
            return FailedObjectMaps(
                push_errors=[_model_to_object_map(m) for m in push_rows],
                pull_errors=[_model_to_object_map(m) for m in pull_rows],
            )

    async def get_failed_object_map(self, object_map_id: int) -> ObjectMapRead | None:
        """A single ledger row by id, or None, for retry jobs re-driving a failure."""
        return await self.get_object_map(object_map_id)

    # ── Missing Required Data Markers ───────────────────────────────────────

    async def mark_missing_required_data(
        self, local_object: str, local_id: Any, fields: list[str]
    ) -> None:
        """Flag a local record as blocked until its required data is present."""
        async for session in self._session_factory():
            stmt = select(MissingRequiredDataModel).where(
                MissingRequiredDataModel.local_object == local_object,
                MissingRequiredDataModel.local_id == str(local_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                session.add(
                    MissingRequiredDataModel(
                        local_object=local_object,
                        local_id=str(local_id),
                        fields=list(fields),
                        created=datetime.now(timezone.utc),
                    )
                )
            else:
                model.fields = list(fields)
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent sync flagged the same record first.
                await session.rollback()
            logger.info(
                "ledger.missing_required_data_marked",
                local_object=local_object,
                local_id=str(local_id),
                fields=fields,
            )

    async def clear_missing_required_data(self, local_object: str, local_id: Any) -> bool:
        """Remove a blocked-record flag. Returns True if one existed."""
        async for session in self._session_factory():
            async with session.begin():
                result = await session.execute(
                    delete(MissingRequiredDataModel).where(
                        MissingRequiredDataModel.local_object == local_object,
                        MissingRequiredDataModel.local_id == str(local_id),
                    )
                )
            return result.rowcount > 0

    async def has_missing_required_data(self, local_object: str, local_id: Any) -> bool:
        async for session in self._session_factory():
            stmt = select(MissingRequiredDataModel.id).where(
                MissingRequiredDataModel.local_object == local_object,
                MissingRequiredDataModel.local_id == str(local_id),
            )
            return (await session.execute(stmt)).first() is not None
