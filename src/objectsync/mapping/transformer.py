"""Value transformer -- converts a source record into target parameters for one field map.

Coercion is selected by RemoteFieldKind, never by field name, so the same
code handles any remote schema:

- Push (local event): sequences are joined with the array delimiter, dates
  are parsed and written as ISO 8601 (datetime) or YYYY-MM-DD (date), and
  booleans become strict bools. Key and prematch fields are reported in
  their own descriptors; non-updateable fields are stripped afterwards.
- Pull (remote event): multi-value text is split, datetimes are converted
  from UTC to the local time zone (dates never are), integers and booleans
  become ints, URLs are sanitized, and empty values are dropped so the local
  system is never told to blank a field.

A required (non-nillable) remote field with no local value blocks the whole
record: map_params returns no fields and sets missing_required_field. The
check looks at the value before the direction and updateable filters, so a
field stripped for transport reasons still blocks an invalid remote write.

map_params is pure and synchronous.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import structlog
from dateutil import parser as date_parser

from src.objectsync.config import SchemaCompatibilityMode, Settings, get_settings
from src.objectsync.mapping.sanitize import UrlSanitizer, sanitize_url
from src.objectsync.mapping.schemas import (
    FieldDescriptor,
    FieldMapping,
    FieldRule,
    MappedParams,
    PrematchDescriptor,
    PulledValue,
    RemoteFieldKind,
    SyncEvent,
)

logger = structlog.get_logger(__name__)

DATE_KINDS = frozenset({RemoteFieldKind.DATE, RemoteFieldKind.DATETIME})
INT_KINDS = frozenset({RemoteFieldKind.INTEGER, RemoteFieldKind.BOOLEAN})

# Only these strings cast to False; "false" or "no" are non-empty text.
_FALSE_STRINGS = frozenset({"", "0"})


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, set)) and not value)


class FieldTransformer:
    """Applies field maps to records with configuration resolved once.

    Args:
        settings: Delimiter, date formats, local time zone and the schema
            compatibility mode. Defaults to get_settings().
        sanitizer: Callable used for URL-kind values on pull.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sanitizer: UrlSanitizer | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._sanitizer = sanitizer or sanitize_url
        self._delimiter = self._settings.ARRAY_DELIMITER
        self._local_tz = self._settings.local_tz()
        self._use_labels = self._settings.SCHEMA_COMPAT_MODE == SchemaCompatibilityMode.LABEL

    def remote_key(self, rule: FieldRule) -> str:
        """Identifier of the rule's remote field in parameter sets."""
        if self._use_labels and rule.remote_field.label:
            return rule.remote_field.label
        return rule.remote_field.name

    def map_params(
        self,
        mapping: FieldMapping,
        source: dict[str, Any],
        trigger: SyncEvent,
        *,
        use_key_inline: bool = False,
        is_new: bool = True,
    ) -> MappedParams:
        """Map a source record to target parameters for one field map.

        Args:
            mapping: Field map to apply.
            source: Local record (push) or remote record (pull), keyed by
                local field label or remote field identifier respectively.
            trigger: Event that caused this sync; its origin picks push or pull.
            use_key_inline: The transport accepts the upsert key inside the
                record body, so key fields stay in `fields` as well.
            is_new: No ledger row exists yet for this record.

        Returns:
            MappedParams. When a required remote field is missing, `fields`
            is empty and `missing_required_field` is set.
        """
        result = MappedParams(is_new=is_new)

        for rule in mapping.rules:
            if rule.marked_for_removal:
                continue
            if trigger.is_local:
                self._push_rule(rule, source, result, use_key_inline)
            else:
                self._pull_rule(rule, source, trigger, result)

        if result.missing_fields:
            logger.info(
                "transformer.missing_required_field",
                mapping_id=mapping.id,
                remote_object=mapping.remote_object,
                fields=result.missing_fields,
            )
            return MappedParams(
                is_new=is_new,
                missing_required_field=True,
                missing_fields=result.missing_fields,
            )

        return result

    # ── Push ────────────────────────────────────────────────────────────────

    def _push_rule(
        self,
        rule: FieldRule,
        source: dict[str, Any],
        result: MappedParams,
        use_key_inline: bool,
    ) -> None:
        local_name = rule.local_field.label
        remote_name = self.remote_key(rule)
        raw = source.get(local_name)

        value = raw
        if isinstance(value, (list, tuple)):
            value = self._delimiter.join(str(item) for item in value)

        kind = rule.remote_field.kind
        if kind in DATE_KINDS:
            value = self._to_remote_date(value, kind)
        elif kind == RemoteFieldKind.BOOLEAN:
            value = self._to_bool(value)

        result.fields[remote_name] = value

        if rule.is_key:
            if not use_key_inline:
                del result.fields[remote_name]
            result.key = FieldDescriptor(
                remote_field=remote_name, local_field=local_name, value=value
            )

        if rule.is_prematch:
            result.prematch = FieldDescriptor(
                remote_field=remote_name, local_field=local_name, value=value
            )

        if not rule.direction.allows_push:
            result.fields.pop(remote_name, None)

        # Key and prematch descriptors survive; only the field itself is dropped.
        if not rule.remote_field.updateable:
            result.fields.pop(remote_name, None)

        if not rule.remote_field.nillable and _is_blank(raw):
            result.missing_fields.append(remote_name)

    def _to_remote_date(self, value: Any, kind: RemoteFieldKind) -> Any:
        if value is None or value == "":
            return None

        parsed = self._parse_local_datetime(value)
        if parsed is None:
            logger.warning("transformer.unparseable_date", value=value)
            return value

        if kind == RemoteFieldKind.DATETIME:
            return parsed.replace(microsecond=0).isoformat()
        return parsed.date().isoformat()

    def _parse_local_datetime(self, value: Any) -> datetime | None:
        """Parse a local value as a datetime in the local time zone."""
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=self._local_tz)
        else:
            text = str(value)
            try:
                parsed = date_parser.parse(text)
            except (ValueError, OverflowError):
                # Not a date string; the value may already be a unix timestamp.
                try:
                    return datetime.fromtimestamp(float(text), tz=self._local_tz)
                except (ValueError, OverflowError, OSError):
                    return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self._local_tz)
        return parsed

    @staticmethod
    def _to_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value not in _FALSE_STRINGS
        return bool(value)

    # ── Pull ────────────────────────────────────────────────────────────────

    def _pull_rule(
        self,
        rule: FieldRule,
        source: dict[str, Any],
        trigger: SyncEvent,
        result: MappedParams,
    ) -> None:
        local_name = rule.local_field.label
        remote_name = self.remote_key(rule)
        raw = source.get(remote_name)

        if _is_blank(raw):
            return

        value = self._from_remote(rule, raw)
        if _is_blank(value):
            return

        methods = rule.local_field.methods

        if rule.is_prematch:
            result.prematch = PrematchDescriptor(
                remote_field=remote_name,
                local_field=local_name,
                value=value,
                method_match=methods.match or methods.read,
                method_read=methods.read,
                method_create=methods.create,
                method_update=methods.update,
            )

        if not rule.direction.allows_pull:
            return

        if trigger == SyncEvent.REMOTE_CREATE:
            method_modify = methods.create
        elif trigger == SyncEvent.REMOTE_UPDATE:
            method_modify = methods.update
        else:
            method_modify = methods.delete

        result.fields[local_name] = PulledValue(
            value=value,
            method_modify=method_modify,
            method_read=methods.read,
        )

    def _from_remote(self, rule: FieldRule, raw: Any) -> Any:
        kind = rule.remote_field.kind

        if kind == RemoteFieldKind.MULTI_VALUE_TEXT:
            if isinstance(raw, str):
                return raw.split(self._delimiter)
            return list(raw)

        if kind in DATE_KINDS:
            return self._to_local_date(rule, raw)

        if kind in INT_KINDS:
            return self._to_int(raw)

        if kind == RemoteFieldKind.TEXT:
            return str(raw)

        if kind == RemoteFieldKind.URL:
            return self._sanitizer(str(raw))

        return raw

    def _to_local_date(self, rule: FieldRule, raw: Any) -> Any:
        if rule.local_field.kind == "datetime":
            fmt = self._settings.DATETIME_FORMAT
        else:
            fmt = self._settings.DATE_FORMAT

        if isinstance(raw, datetime):
            parsed = raw
        elif isinstance(raw, date):
            parsed = datetime(raw.year, raw.month, raw.day)
        else:
            try:
                parsed = date_parser.parse(str(raw))
            except (ValueError, OverflowError):
                logger.warning(
                    "transformer.unparseable_remote_date",
                    field=rule.remote_field.name,
                    value=raw,
                )
                return raw

        if rule.remote_field.kind == RemoteFieldKind.DATETIME:
            # Remote datetimes arrive in UTC.
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            parsed = parsed.astimezone(self._local_tz)
        # A date is a calendar day stored as midnight; shifting it would change the day.

        return parsed.strftime(fmt)

    @staticmethod
    def _to_int(raw: Any) -> int:
        if isinstance(raw, bool):
            return int(raw)
        if isinstance(raw, (int, float)):
            return int(raw)
        text = str(raw).strip().lower()
        if text == "true":
            return 1
        try:
            return int(float(text))
        except ValueError:
            return 0


def map_params(
    mapping: FieldMapping,
    source: dict[str, Any],
    trigger: SyncEvent,
    *,
    use_key_inline: bool = False,
    is_new: bool = True,
    settings: Settings | None = None,
    sanitizer: UrlSanitizer | None = None,
) -> MappedParams:
    """Map a source record through a field map. See FieldTransformer.map_params."""
    transformer = FieldTransformer(settings=settings, sanitizer=sanitizer)
    return transformer.map_params(
        mapping, source, trigger, use_key_inline=use_key_inline, is_new=is_new
    )
