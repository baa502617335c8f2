"""Initial object sync tables: field maps, object maps, missing required data.

Revision ID: 001_initial_objectsync
Revises:
Create Date: 2026-10-19

Creates three tables:
- field_maps: Field map configuration (rules as a JSON document)
- object_maps: Local <-> remote record correspondences, unique per
  (local_object, local_id, remote_id)
- missing_required_data: Local records blocked by a missing required field

No foreign keys between tables (object maps reference records in two other
systems, not field maps).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_objectsync"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── field_maps table ────────────────────────────────────────────────

    op.create_table(
        "field_maps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("label", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("local_object", sa.String(128), nullable=False),
        sa.Column("remote_object", sa.String(255), nullable=False),
        sa.Column("record_types_allowed", sa.JSON(), nullable=True),
        sa.Column("record_type_default", sa.String(255), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=True),
        sa.Column(
            "pull_trigger_field",
            sa.String(128),
            server_default="LastModifiedDate",
            nullable=False,
        ),
        sa.Column("sync_triggers", sa.Integer(), server_default="0", nullable=False),
        sa.Column("push_async", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("push_drafts", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("pull_to_drafts", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("weight", sa.Integer(), server_default="0", nullable=False),
        sa.Column("version", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_field_maps"),
    )
    op.create_index("ix_field_maps_local_object", "field_maps", ["local_object"])
    op.create_index("ix_field_maps_remote_object", "field_maps", ["remote_object"])

    # ── object_maps table ───────────────────────────────────────────────

    op.create_table(
        "object_maps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("local_object", sa.String(128), nullable=False),
        sa.Column("local_id", sa.String(64), nullable=False),
        sa.Column("remote_id", sa.String(64), nullable=False),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("object_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_action", sa.String(128), nullable=True),
        sa.Column("last_sync_status", sa.Integer(), nullable=True),
        sa.Column("last_sync_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_object_maps"),
        sa.UniqueConstraint(
            "local_object",
            "local_id",
            "remote_id",
            name="uq_object_map_local_remote",
        ),
    )
    op.create_index("ix_object_map_local", "object_maps", ["local_object", "local_id"])
    op.create_index("ix_object_maps_remote_id", "object_maps", ["remote_id"])

    # ── missing_required_data table ─────────────────────────────────────

    op.create_table(
        "missing_required_data",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("local_object", sa.String(128), nullable=False),
        sa.Column("local_id", sa.String(64), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=True),
        sa.Column(
            "created",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_missing_required_data"),
        sa.UniqueConstraint(
            "local_object",
            "local_id",
            name="uq_missing_required_data_local",
        ),
    )


def downgrade() -> None:
    op.drop_table("missing_required_data")
    op.drop_index("ix_object_maps_remote_id", table_name="object_maps")
    op.drop_index("ix_object_map_local", table_name="object_maps")
    op.drop_table("object_maps")
    op.drop_index("ix_field_maps_remote_object", table_name="field_maps")
    op.drop_index("ix_field_maps_local_object", table_name="field_maps")
    op.drop_table("field_maps")
