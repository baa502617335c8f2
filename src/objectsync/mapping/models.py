"""Object sync persistence models.

Three SQLAlchemy models on SyncBase:
- FieldMapModel: Field map configuration (rules stored as a JSON document)
- ObjectMapModel: Ledger of local <-> remote record correspondences
- MissingRequiredDataModel: Records blocked by a missing required remote field

Sync triggers are stored as an integer bit mask; everything above this
layer works with SyncTriggerSet.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.objectsync.core.database import SyncBase


class FieldMapModel(SyncBase):
    """Field map between a local object type and a remote object type."""

    __tablename__ = "field_maps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    local_object: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    remote_object: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    record_types_allowed: Mapped[list] = mapped_column(JSON, default=list)
    record_type_default: Mapped[str] = mapped_column(String(255), nullable=False)
    fields: Mapped[list] = mapped_column(JSON, default=list)
    pull_trigger_field: Mapped[str] = mapped_column(
        String(128), default="LastModifiedDate", nullable=False
    )
    sync_triggers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    push_async: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    push_drafts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pull_to_drafts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ObjectMapModel(SyncBase):
    """One local record <-> remote record correspondence.

    remote_id may hold a temporary push id (tmp_sf_...) and local_id a
    temporary pull id (tmp_wp_...) while a create is in flight.
    """

    __tablename__ = "object_maps"
    __table_args__ = (
        UniqueConstraint(
            "local_object",
            "local_id",
            "remote_id",
            name="uq_object_map_local_remote",
        ),
        Index("ix_object_map_local", "local_object", "local_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_object: Mapped[str] = mapped_column(String(128), nullable=False)
    local_id: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    object_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sync: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sync_action: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_sync_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sync_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class MissingRequiredDataModel(SyncBase):
    """Marker for a local record whose push is blocked by missing required data."""

    __tablename__ = "missing_required_data"
    __table_args__ = (
        UniqueConstraint(
            "local_object",
            "local_id",
            name="uq_missing_required_data_local",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_object: Mapped[str] = mapped_column(String(128), nullable=False)
    local_id: Mapped[str] = mapped_column(String(64), nullable=False)
    fields: Mapped[list] = mapped_column(JSON, default=list)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
