"""Field map selection -- which field maps apply to an object type and record type."""

from __future__ import annotations

from collections.abc import Iterable

from src.objectsync.config import SchemaCompatibilityMode
from src.objectsync.mapping.schemas import (
    DEFAULT_RECORD_TYPE,
    RECORD_TYPE_FIELD,
    FieldMapping,
    SyncDirection,
)


def get_mapped_record_types(mapping: FieldMapping) -> frozenset[str]:
    """Record types a field map is restricted to.

    Empty when the map's default record type is the unrestricted sentinel.
    """
    if mapping.default_record_type == DEFAULT_RECORD_TYPE:
        return frozenset()
    return frozenset(rt for rt in mapping.allowed_record_types if rt)


def select_fieldmaps(
    mappings: Iterable[FieldMapping],
    *,
    local_object: str | None = None,
    remote_object: str | None = None,
    record_type: str | None = None,
) -> list[FieldMapping]:
    """Return the field maps that apply, ordered by weight.

    Args:
        mappings: Candidate field maps.
        local_object: Only maps for this local object type.
        remote_object: Only maps for this remote object type.
        record_type: Remote record type of the record being synced. Maps
            restricted to other record types are excluded.

    Returns:
        Matching field maps; empty when nothing needs syncing.
    """
    selected: list[FieldMapping] = []
    for mapping in mappings:
        if local_object is not None and mapping.local_object != local_object:
            continue
        if remote_object is not None and mapping.remote_object != remote_object:
            continue
        if record_type:
            restricted_to = get_mapped_record_types(mapping)
            if restricted_to and record_type not in restricted_to:
                continue
        selected.append(mapping)

    # sorted() is stable, so equal weights keep their input order.
    return sorted(selected, key=lambda m: m.weight)


def get_mapped_fields(
    mapping: FieldMapping,
    directions: Iterable[SyncDirection] | None = None,
    mode: SchemaCompatibilityMode = SchemaCompatibilityMode.NAME,
) -> dict[str, str]:
    """Remote field identifiers used by a field map, for building remote reads.

    Args:
        mapping: Field map to inspect.
        directions: Only rules with one of these directions. All when None.
        mode: Whether fields are identified by API name or by label.

    Returns:
        Ordered dict of identifier -> identifier. Includes RecordTypeId when
        the map is restricted to record types.
    """
    wanted = set(directions) if directions is not None else None
    fields: dict[str, str] = {}

    for rule in mapping.active_rules():
        if wanted is not None and rule.direction not in wanted:
            continue
        remote = rule.remote_field
        if mode == SchemaCompatibilityMode.LABEL and remote.label:
            identifier = remote.label
        else:
            identifier = remote.name
        fields[identifier] = identifier

    if get_mapped_record_types(mapping):
        fields[RECORD_TYPE_FIELD] = RECORD_TYPE_FIELD

    return fields
