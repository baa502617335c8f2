"""Field mapping schemas -- events, directions, field rules, field maps and ledger rows.

Provides the rule model the transformer reads (LocalField, RemoteField,
FieldRule, FieldMapping), the structured transformer result (MappedParams
with dedicated key/prematch descriptors), and the Pydantic payloads for
object map (ledger) rows.

Field maps are frozen: the transformer and coordinator only ever read them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.objectsync.mapping.errors import InvalidRuleDefinition

# Record type sentinel meaning "no record type restriction".
DEFAULT_RECORD_TYPE = "default"

# Remote field carrying the record type, requested whenever a map restricts record types.
RECORD_TYPE_FIELD = "RecordTypeId"


# ── Events & Directions ─────────────────────────────────────────────────────


class SyncEvent(str, Enum):
    """Atomic event that can trigger a field map."""

    LOCAL_CREATE = "local_create"
    LOCAL_UPDATE = "local_update"
    LOCAL_DELETE = "local_delete"
    REMOTE_CREATE = "remote_create"
    REMOTE_UPDATE = "remote_update"
    REMOTE_DELETE = "remote_delete"

    @property
    def is_local(self) -> bool:
        return self in LOCAL_EVENTS

    @property
    def is_remote(self) -> bool:
        return self in REMOTE_EVENTS

    @property
    def bit(self) -> int:
        return EVENT_BITS[self]


LOCAL_EVENTS = frozenset(
    {SyncEvent.LOCAL_CREATE, SyncEvent.LOCAL_UPDATE, SyncEvent.LOCAL_DELETE}
)
REMOTE_EVENTS = frozenset(
    {SyncEvent.REMOTE_CREATE, SyncEvent.REMOTE_UPDATE, SyncEvent.REMOTE_DELETE}
)

# Persistence encoding only; nothing outside to_bits/from_bits looks at these.
SYNC_OFF = 0x0000
EVENT_BITS: dict[SyncEvent, int] = {
    SyncEvent.LOCAL_CREATE: 0x0001,
    SyncEvent.LOCAL_UPDATE: 0x0002,
    SyncEvent.LOCAL_DELETE: 0x0004,
    SyncEvent.REMOTE_CREATE: 0x0008,
    SyncEvent.REMOTE_UPDATE: 0x0010,
    SyncEvent.REMOTE_DELETE: 0x0020,
}


class SyncTriggerSet(frozenset):
    """Set of SyncEvent values a field map responds to."""

    @classmethod
    def none(cls) -> SyncTriggerSet:
        return cls()

    @classmethod
    def all(cls) -> SyncTriggerSet:
        return cls(SyncEvent)

    @classmethod
    def from_bits(cls, bits: int) -> SyncTriggerSet:
        return cls(event for event, bit in EVENT_BITS.items() if bits & bit)

    def to_bits(self) -> int:
        bits = SYNC_OFF
        for event in self:
            bits |= EVENT_BITS[SyncEvent(event)]
        return bits


class SyncDirection(str, Enum):
    """Which way a field rule is allowed to carry data."""

    LOCAL_TO_REMOTE = "wp_sf"
    REMOTE_TO_LOCAL = "sf_wp"
    BIDIRECTIONAL = "sync"

    @property
    def allows_push(self) -> bool:
        return self in (SyncDirection.LOCAL_TO_REMOTE, SyncDirection.BIDIRECTIONAL)

    @property
    def allows_pull(self) -> bool:
        return self in (SyncDirection.REMOTE_TO_LOCAL, SyncDirection.BIDIRECTIONAL)


class RemoteFieldKind(str, Enum):
    """Storage type of a remote field, used only to pick coercion."""

    TEXT = "text"
    MULTI_VALUE_TEXT = "multipicklist"
    DATE = "date"
    DATETIME = "datetime"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    URL = "url"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> RemoteFieldKind:
        # Remote describe calls report many types we have no coercion for.
        return cls.OTHER


# ── Field Rules ─────────────────────────────────────────────────────────────


class LocalFieldMethods(BaseModel):
    """Names of the local storage methods used to read and write a field."""

    model_config = ConfigDict(frozen=True)

    read: str | None = None
    create: str | None = None
    update: str | None = None
    delete: str | None = None
    match: str | None = None


class LocalField(BaseModel):
    """Local side of a field rule."""

    model_config = ConfigDict(frozen=True)

    label: str
    methods: LocalFieldMethods = Field(default_factory=LocalFieldMethods)
    kind: str = "text"


class RemoteField(BaseModel):
    """Remote side of a field rule, with the remote schema's write flags."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    kind: RemoteFieldKind = RemoteFieldKind.TEXT
    updateable: bool = True
    nillable: bool = True
    creatable: bool = True


class FieldRule(BaseModel):
    """One local/remote field correspondence plus its policy flags.

    A rule with an empty local or remote field name raises
    InvalidRuleDefinition on construction, so it can neither be saved nor
    reach the transformer.
    """

    model_config = ConfigDict(frozen=True)

    local_field: LocalField
    remote_field: RemoteField
    is_key: bool = False
    is_prematch: bool = False
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    marked_for_removal: bool = False

    @model_validator(mode="after")
    def _require_field_names(self) -> FieldRule:
        if not self.local_field.label.strip() or not self.remote_field.name.strip():
            raise InvalidRuleDefinition(self.local_field.label, self.remote_field.name)
        return self


class FieldMapping(BaseModel):
    """Ordered field rules between one local and one remote object type.

    Rule order is the transformation order; a later rule writing the same
    target key overwrites an earlier one.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    label: str
    local_object: str
    remote_object: str
    rules: tuple[FieldRule, ...] = ()
    sync_triggers: frozenset[SyncEvent] = Field(default_factory=SyncTriggerSet.none)
    allowed_record_types: frozenset[str] = frozenset({DEFAULT_RECORD_TYPE})
    default_record_type: str = DEFAULT_RECORD_TYPE
    pull_trigger_field: str = "LastModifiedDate"
    push_async: bool = False
    push_drafts: bool = False
    pull_to_drafts: bool = False
    weight: int = 0
    version: str | None = None

    @field_validator("sync_triggers", mode="before")
    @classmethod
    def _decode_trigger_bits(cls, value: Any) -> Any:
        if isinstance(value, int):
            return SyncTriggerSet.from_bits(value)
        return value

    @field_validator("sync_triggers", mode="after")
    @classmethod
    def _as_trigger_set(cls, value: frozenset[SyncEvent]) -> SyncTriggerSet:
        return SyncTriggerSet(value)

    @property
    def name(self) -> str:
        """Slug of the label."""
        return "-".join(self.label.lower().split())

    def active_rules(self) -> list[FieldRule]:
        """Rules not marked for removal, in mapping order."""
        return [rule for rule in self.rules if not rule.marked_for_removal]

    def responds_to(self, event: SyncEvent) -> bool:
        return event in self.sync_triggers


# ── Transformer Results ─────────────────────────────────────────────────────


class FieldDescriptor(BaseModel):
    """Field used to address a remote record: the upsert key or the prematch."""

    remote_field: str
    local_field: str
    value: Any = None


class PrematchDescriptor(FieldDescriptor):
    """Prematch descriptor for pulls, with the local lookup/write methods."""

    method_match: str | None = None
    method_read: str | None = None
    method_create: str | None = None
    method_update: str | None = None


class PulledValue(BaseModel):
    """A coerced remote value plus the local methods that apply it."""

    value: Any
    method_modify: str | None = None
    method_read: str | None = None


class MappedParams(BaseModel):
    """Output of map_params for one record and one field map.

    On a push, `fields` maps remote field identifiers to coerced values. On
    a pull, it maps local field labels to PulledValue instructions. The key
    and prematch descriptors are kept out of `fields`.
    """

    fields: dict[str, Any] = Field(default_factory=dict)
    key: FieldDescriptor | None = None
    prematch: FieldDescriptor | None = None
    is_new: bool = True
    missing_required_field: bool = False
    missing_fields: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields and self.key is None and self.prematch is None


# ── Object Map (Ledger) Schemas ─────────────────────────────────────────────


class ObjectMapCreate(BaseModel):
    """New correspondence between a local and a remote record.

    `action` is never stored. It acknowledges that `remote_id` is a push
    placeholder written while the remote create is in flight.
    """

    local_object: str = Field(min_length=1)
    local_id: str = Field(min_length=1)
    remote_id: str = Field(min_length=1)
    action: Literal["pending"] | None = None
    object_updated: datetime | None = None
    last_sync: datetime | None = None
    last_sync_action: str | None = None
    last_sync_status: int | None = None
    last_sync_message: str | None = None

    @field_validator("local_id", "remote_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class ObjectMapUpdate(BaseModel):
    """Partial update for a ledger row."""

    local_object: str | None = None
    local_id: str | None = Field(default=None, min_length=1)
    remote_id: str | None = Field(default=None, min_length=1)
    object_updated: datetime | None = None
    last_sync: datetime | None = None
    last_sync_action: str | None = None
    last_sync_status: int | None = None
    last_sync_message: str | None = None


class ObjectMapRead(BaseModel):
    """Ledger row as stored."""

    id: int
    local_object: str
    local_id: str
    remote_id: str
    created: datetime | None = None
    object_updated: datetime | None = None
    last_sync: datetime | None = None
    last_sync_action: str | None = None
    last_sync_status: int | None = None
    last_sync_message: str | None = None


class FailedObjectMaps(BaseModel):
    """Ledger rows still holding a temporary identifier."""

    push_errors: list[ObjectMapRead] = Field(default_factory=list)
    pull_errors: list[ObjectMapRead] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.push_errors and not self.pull_errors
