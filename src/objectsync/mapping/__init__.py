"""Field mapping engine and object correspondence ledger.

Provides:
- FieldMapping / FieldRule: Declarative local <-> remote field rules
- select_fieldmaps / get_mapped_fields: Which field maps apply to a record
- FieldTransformer / map_params: Per-record value coercion for push and pull
- ObjectMapLedger: Persistent local id <-> remote id correspondences
- FieldMapRepository: Persistence for field map configuration

Field maps never know about a particular remote schema: every coercion is
selected by the remote field's kind.
"""

from src.objectsync.mapping.ledger import PULL, PUSH, ObjectMapLedger
from src.objectsync.mapping.repository import FieldMapRepository
from src.objectsync.mapping.schemas import (
    FieldMapping,
    FieldRule,
    LocalField,
    MappedParams,
    RemoteField,
    RemoteFieldKind,
    SyncDirection,
    SyncEvent,
    SyncTriggerSet,
)
from src.objectsync.mapping.selection import (
    get_mapped_fields,
    get_mapped_record_types,
    select_fieldmaps,
)
from src.objectsync.mapping.transformer import FieldTransformer, map_params

__all__ = [
    "FieldMapping",
    "FieldRule",
    "LocalField",
    "RemoteField",
    "RemoteFieldKind",
    "SyncDirection",
    "SyncEvent",
    "SyncTriggerSet",
    "MappedParams",
    "FieldTransformer",
    "map_params",
    "select_fieldmaps",
    "get_mapped_fields",
    "get_mapped_record_types",
    "ObjectMapLedger",
    "FieldMapRepository",
    "PUSH",
    "PULL",
]
