"""Field map repository -- async CRUD for field map configuration rows.

Serializes FieldMapping to FieldMapModel: rules as a JSON document, sync
triggers as an integer bit mask, allowed record types as a JSON list. The
configured schema version is written on every save.

Rules are validated when the FieldMapping is built, so an incomplete rule
(empty local or remote field name) never reaches this layer.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.objectsync.config import Settings, get_settings
from src.objectsync.mapping.models import FieldMapModel
from src.objectsync.mapping.schemas import FieldMapping, FieldRule, SyncTriggerSet
from src.objectsync.mapping.selection import select_fieldmaps

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_fieldmap(model: FieldMapModel) -> FieldMapping:
    """Convert FieldMapModel to FieldMapping schema."""
    return FieldMapping(
        id=model.id,
        label=model.label,
        local_object=model.local_object,
        remote_object=model.remote_object,
        rules=tuple(FieldRule.model_validate(rule) for rule in (model.fields or [])),
        sync_triggers=SyncTriggerSet.from_bits(model.sync_triggers or 0),
        allowed_record_types=frozenset(model.record_types_allowed or []),
        default_record_type=model.record_type_default,
        pull_trigger_field=model.pull_trigger_field,
        push_async=model.push_async,
        push_drafts=model.push_drafts,
        pull_to_drafts=model.pull_to_drafts,
        weight=model.weight,
        version=model.version,
    )


def _fieldmap_columns(mapping: FieldMapping, version: str) -> dict:
    """Column values for a FieldMapModel insert or update."""
    return {
        "label": mapping.label,
        "name": mapping.name,
        "local_object": mapping.local_object,
        "remote_object": mapping.remote_object,
        "record_types_allowed": sorted(mapping.allowed_record_types),
        "record_type_default": mapping.default_record_type,
        "fields": [rule.model_dump(mode="json") for rule in mapping.rules],
        "pull_trigger_field": mapping.pull_trigger_field,
        "sync_triggers": SyncTriggerSet(mapping.sync_triggers).to_bits(),
        "push_async": mapping.push_async,
        "push_drafts": mapping.push_drafts,
        "pull_to_drafts": mapping.pull_to_drafts,
        "weight": mapping.weight,
        "version": version,
    }


# ── Repository ──────────────────────────────────────────────────────────────


class FieldMapRepository:
    """Async CRUD operations for field maps.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        settings: Supplies the schema version recorded on save.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._version = (settings or get_settings()).SCHEMA_VERSION

    async def create_fieldmap(self, mapping: FieldMapping) -> int:
        """Create a field map and return its id."""
        async for session in self._session_factory():
            model = FieldMapModel(**_fieldmap_columns(mapping, self._version))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "fieldmap.created",
                fieldmap_id=model.id,
                local_object=model.local_object,
                remote_object=model.remote_object,
            )
            return model.id

    async def get_fieldmap(self, fieldmap_id: int) -> FieldMapping | None:
        """Get a field map by id."""
        async for session in self._session_factory():
            model = await session.get(FieldMapModel, fieldmap_id)
            if model is None:
                return None
            return _model_to_fieldmap(model)

    async def get_fieldmaps(
        self,
        local_object: str | None = None,
        remote_object: str | None = None,
        record_type: str | None = None,
    ) -> list[FieldMapping]:
        """List field maps ordered by weight, optionally filtered.

        Args:
            local_object: Only maps for this local object type.
            remote_object: Only maps for this remote object type.
            record_type: Drop maps restricted to other remote record types.
        """
        stmt = select(FieldMapModel)
        if local_object is not None:
            stmt = stmt.where(FieldMapModel.local_object == local_object)
        if remote_object is not None:
            stmt = stmt.where(FieldMapModel.remote_object == remote_object)
        stmt = stmt.order_by(FieldMapModel.weight, FieldMapModel.id)

        async for session in self._session_factory():
            result = await session.execute(stmt)
            mappings = [_model_to_fieldmap(m) for m in result.scalars().all()]
            return select_fieldmaps(mappings, record_type=record_type)

    async def update_fieldmap(self, fieldmap_id: int, mapping: FieldMapping) -> bool:
        """Replace a field map's configuration. Returns False if it does not exist."""
        async for session in self._session_factory():
            model = await session.get(FieldMapModel, fieldmap_id)
            if model is None:
                return False
            for column_name, value in _fieldmap_columns(mapping, self._version).items():
                setattr(model, column_name, value)
            await session.commit()
            logger.info("fieldmap.updated", fieldmap_id=fieldmap_id)
            return True

    async def delete_fieldmap(self, fieldmap_id: int) -> bool:
        """Delete a field map. Returns True if a row was deleted."""
        async for session in self._session_factory():
            async with session.begin():
                result = await session.execute(
                    delete(FieldMapModel).where(FieldMapModel.id == fieldmap_id)
                )
            logger.info("fieldmap.deleted", fieldmap_id=fieldmap_id, deleted=result.rowcount)
            return result.rowcount == 1
