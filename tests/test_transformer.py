"""Unit tests for the value transformer.

Covers push coercion (delimiters, dates, booleans), key and prematch
descriptors, direction and updateable filtering, the required-field block,
and pull coercion (splitting, time zone conversion, URL sanitizing).
"""

from __future__ import annotations

from datetime import date

import pytest

from src.objectsync.config import SchemaCompatibilityMode
from src.objectsync.mapping.schemas import (
    FieldMapping,
    FieldRule,
    LocalField,
    LocalFieldMethods,
    PrematchDescriptor,
    PulledValue,
    RemoteField,
    RemoteFieldKind,
    SyncDirection,
    SyncEvent,
    SyncTriggerSet,
)
from src.objectsync.mapping.transformer import FieldTransformer, map_params


# ── Helpers ────────────────────────────────────────────────────────────────


def _rule(
    local: str,
    remote: str,
    kind: RemoteFieldKind = RemoteFieldKind.TEXT,
    *,
    local_kind: str = "text",
    remote_label: str = "",
    methods: LocalFieldMethods | None = None,
    **flags,
) -> FieldRule:
    remote_flags = {
        key: flags.pop(key) for key in ("updateable", "nillable", "creatable") if key in flags
    }
    return FieldRule(
        local_field=LocalField(
            label=local, kind=local_kind, methods=methods or LocalFieldMethods()
        ),
        remote_field=RemoteField(name=remote, label=remote_label, kind=kind, **remote_flags),
        **flags,
    )


def _mapping(*rules: FieldRule) -> FieldMapping:
    return FieldMapping(
        id=1,
        label="Contacts",
        local_object="user",
        remote_object="Contact",
        rules=rules,
        sync_triggers=SyncTriggerSet.all(),
    )


@pytest.fixture
def transformer(settings) -> FieldTransformer:
    return FieldTransformer(settings=settings)


# ── Push Tests ─────────────────────────────────────────────────────────────


class TestPush:
    """Local record -> remote parameters."""

    def test_maps_local_labels_to_remote_names(self, transformer):
        """Each rule writes the local value under the remote field name."""
        mapping = _mapping(_rule("first_name", "FirstName"), _rule("last_name", "LastName"))

        result = transformer.map_params(
            mapping, {"first_name": "Ada", "last_name": "Lovelace"}, SyncEvent.LOCAL_CREATE
        )

        assert result.fields == {"FirstName": "Ada", "LastName": "Lovelace"}
        assert result.key is None
        assert result.prematch is None
        assert not result.missing_required_field

    def test_key_field_excluded_from_fields(self, transformer):
        """A key rule is reported in `key` and stripped from `fields`."""
        mapping = _mapping(
            _rule("email", "Email"),
            _rule("user_id", "External_Id__c", is_key=True),
        )

        result = transformer.map_params(
            mapping, {"email": "a@example.com", "user_id": "42"}, SyncEvent.LOCAL_UPDATE
        )

        assert "External_Id__c" not in result.fields
        assert result.key.remote_field == "External_Id__c"
        assert result.key.local_field == "user_id"
        assert result.key.value == "42"

    def test_key_field_kept_inline_when_transport_allows(self, transformer):
        """With use_key_inline the key stays in `fields` as well."""
        mapping = _mapping(_rule("user_id", "External_Id__c", is_key=True))

        result = transformer.map_params(
            mapping, {"user_id": "42"}, SyncEvent.LOCAL_UPDATE, use_key_inline=True
        )

        assert result.fields == {"External_Id__c": "42"}
        assert result.key.value == "42"

    def test_prematch_descriptor_reported(self, transformer):
        """A prematch rule produces a descriptor and stays in `fields`."""
        mapping = _mapping(_rule("email", "Email", is_prematch=True))

        result = transformer.map_params(mapping, {"email": "a@example.com"}, SyncEvent.LOCAL_CREATE)

        assert result.prematch.remote_field == "Email"
        assert result.prematch.value == "a@example.com"
        assert result.fields == {"Email": "a@example.com"}

    def test_sequence_joined_with_delimiter(self, transformer):
        """List values become one delimited string."""
        mapping = _mapping(_rule("interests", "Interests__c", RemoteFieldKind.MULTI_VALUE_TEXT))

        result = transformer.map_params(
            mapping, {"interests": ["golf", "chess", "jazz"]}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields["Interests__c"] == "golf;chess;jazz"

    def test_multi_value_round_trip(self, transformer):
        """Joining on push and splitting on pull gives back the original values."""
        mapping = _mapping(_rule("interests", "Interests__c", RemoteFieldKind.MULTI_VALUE_TEXT))
        values = ["golf", "chess", "jazz"]

        pushed = transformer.map_params(mapping, {"interests": values}, SyncEvent.LOCAL_UPDATE)
        pulled = transformer.map_params(mapping, pushed.fields, SyncEvent.REMOTE_UPDATE)

        assert pulled.fields["interests"].value == values

    def test_date_written_as_calendar_day(self, transformer):
        """A date field is sent as YYYY-MM-DD."""
        mapping = _mapping(_rule("birthday", "Birthdate", RemoteFieldKind.DATE))

        result = transformer.map_params(mapping, {"birthday": "March 5, 1990"}, SyncEvent.LOCAL_UPDATE)

        assert result.fields["Birthdate"] == "1990-03-05"

    def test_date_object_accepted(self, transformer):
        mapping = _mapping(_rule("birthday", "Birthdate", RemoteFieldKind.DATE))

        result = transformer.map_params(mapping, {"birthday": date(1990, 3, 5)}, SyncEvent.LOCAL_UPDATE)

        assert result.fields["Birthdate"] == "1990-03-05"

    def test_datetime_written_as_iso8601(self, transformer):
        """Naive local datetimes are placed in the local time zone before formatting."""
        mapping = _mapping(_rule("signed_up", "Signup__c", RemoteFieldKind.DATETIME))

        result = transformer.map_params(
            mapping, {"signed_up": "2024-03-05 10:30:00"}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields["Signup__c"] == "2024-03-05T10:30:00+00:00"

    def test_datetime_truncated_to_seconds(self, transformer):
        """Fractional seconds are dropped from pushed datetimes."""
        mapping = _mapping(_rule("signed_up", "Signup__c", RemoteFieldKind.DATETIME))

        result = transformer.map_params(
            mapping, {"signed_up": "2024-03-05 10:30:15.123456"}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields["Signup__c"] == "2024-03-05T10:30:15+00:00"

    def test_empty_date_sent_as_none(self, transformer):
        mapping = _mapping(_rule("birthday", "Birthdate", RemoteFieldKind.DATE))

        result = transformer.map_params(mapping, {"birthday": ""}, SyncEvent.LOCAL_UPDATE)

        assert result.fields["Birthdate"] is None

    @pytest.mark.parametrize(
        "raw,expected",
        [("1", True), ("yes", True), ("false", True), ("0", False), ("", False), (1, True), (0, False)],
    )
    def test_boolean_coercion(self, transformer, raw, expected):
        """Boolean remote fields receive strict bools; only "" and "0" are false strings."""
        mapping = _mapping(_rule("opt_in", "HasOptedIn__c", RemoteFieldKind.BOOLEAN))

        result = transformer.map_params(mapping, {"opt_in": raw}, SyncEvent.LOCAL_UPDATE)

        assert result.fields["HasOptedIn__c"] is expected

    def test_pull_only_rule_not_pushed(self, transformer):
        """A remote-to-local rule never appears in push fields."""
        mapping = _mapping(
            _rule("email", "Email"),
            _rule("score", "Score__c", direction=SyncDirection.REMOTE_TO_LOCAL),
        )

        result = transformer.map_params(
            mapping, {"email": "a@example.com", "score": "9"}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields == {"Email": "a@example.com"}

    def test_non_updateable_field_stripped_but_key_kept(self, transformer):
        """Non-updateable fields are removed from `fields`; their key descriptor survives."""
        mapping = _mapping(
            _rule("user_id", "External_Id__c", is_key=True, updateable=False),
            _rule("created", "CreatedDate", updateable=False),
            _rule("email", "Email"),
        )

        result = transformer.map_params(
            mapping,
            {"user_id": "42", "created": "2024-01-01", "email": "a@example.com"},
            SyncEvent.LOCAL_UPDATE,
            use_key_inline=True,
        )

        assert result.fields == {"Email": "a@example.com"}
        assert result.key.value == "42"

    def test_marked_for_removal_rule_ignored(self, transformer):
        mapping = _mapping(_rule("email", "Email"), _rule("phone", "Phone", marked_for_removal=True))

        result = transformer.map_params(
            mapping, {"email": "a@example.com", "phone": "555"}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields == {"Email": "a@example.com"}

    def test_later_rule_overwrites_same_target(self, transformer):
        """Rule order is transformation order."""
        mapping = _mapping(_rule("email", "Email"), _rule("work_email", "Email"))

        result = transformer.map_params(
            mapping, {"email": "home@example.com", "work_email": "work@example.com"}, SyncEvent.LOCAL_UPDATE
        )

        assert result.fields == {"Email": "work@example.com"}

    def test_label_compatibility_mode(self, settings):
        """In LABEL mode parameters are keyed by the remote field label."""
        settings = settings.model_copy(update={"SCHEMA_COMPAT_MODE": SchemaCompatibilityMode.LABEL})
        transformer = FieldTransformer(settings=settings)
        mapping = _mapping(_rule("email", "Email", remote_label="Email Address"))

        result = transformer.map_params(mapping, {"email": "a@example.com"}, SyncEvent.LOCAL_UPDATE)

        assert result.fields == {"Email Address": "a@example.com"}


# ── Required Field Tests ───────────────────────────────────────────────────


class TestRequiredFields:
    """A missing required remote field blocks the whole record."""

    def test_missing_required_field_blocks_record(self, transformer):
        mapping = _mapping(
            _rule("email", "Email"),
            _rule("last_name", "LastName", nillable=False),
        )

        result = transformer.map_params(mapping, {"email": "a@example.com"}, SyncEvent.LOCAL_CREATE)

        assert result.missing_required_field is True
        assert result.missing_fields == ["LastName"]
        assert result.fields == {}

    def test_empty_string_counts_as_missing(self, transformer):
        mapping = _mapping(_rule("last_name", "LastName", nillable=False))

        result = transformer.map_params(mapping, {"last_name": ""}, SyncEvent.LOCAL_CREATE)

        assert result.missing_required_field is True

    def test_required_check_ignores_updateable(self, transformer):
        """A non-updateable required field still blocks when empty."""
        mapping = _mapping(
            _rule("email", "Email"),
            _rule("last_name", "LastName", nillable=False, updateable=False),
        )

        result = transformer.map_params(mapping, {"email": "a@example.com"}, SyncEvent.LOCAL_UPDATE)

        assert result.missing_required_field is True
        assert result.fields == {}

    def test_required_field_present_passes(self, transformer):
        mapping = _mapping(_rule("last_name", "LastName", nillable=False))

        result = transformer.map_params(mapping, {"last_name": "Lovelace"}, SyncEvent.LOCAL_CREATE)

        assert result.missing_required_field is False
        assert result.fields == {"LastName": "Lovelace"}

    def test_required_check_not_applied_on_pull(self, transformer):
        """Pulls skip empty values instead of blocking."""
        mapping = _mapping(_rule("last_name", "LastName", nillable=False))

        result = transformer.map_params(mapping, {"LastName": ""}, SyncEvent.REMOTE_UPDATE)

        assert result.missing_required_field is False
        assert result.fields == {}


# ── Pull Tests ─────────────────────────────────────────────────────────────


class TestPull:
    """Remote record -> local instructions."""

    def test_pulled_value_carries_methods(self, transformer):
        """Each pulled field names the local write method for the trigger."""
        methods = LocalFieldMethods(
            read="get_user_meta", create="add_user_meta", update="update_user_meta", delete="delete_user_meta"
        )
        mapping = _mapping(_rule("email", "Email", methods=methods))

        created = transformer.map_params(mapping, {"Email": "a@example.com"}, SyncEvent.REMOTE_CREATE)
        updated = transformer.map_params(mapping, {"Email": "a@example.com"}, SyncEvent.REMOTE_UPDATE)

        assert created.fields["email"] == PulledValue(
            value="a@example.com", method_modify="add_user_meta", method_read="get_user_meta"
        )
        assert updated.fields["email"].method_modify == "update_user_meta"

    def test_empty_remote_value_absent(self, transformer):
        """Empty and missing remote values never reach the local system."""
        mapping = _mapping(_rule("email", "Email"), _rule("phone", "Phone"), _rule("title", "Title"))

        result = transformer.map_params(
            mapping, {"Email": "", "Phone": None}, SyncEvent.REMOTE_UPDATE
        )

        assert result.fields == {}

    def test_datetime_converted_to_local_time_zone(self, settings):
        """Remote datetimes are UTC and shown in the local zone."""
        settings = settings.model_copy(update={"LOCAL_TIMEZONE": "America/New_York"})
        transformer = FieldTransformer(settings=settings)
        mapping = _mapping(
            _rule("signed_up", "Signup__c", RemoteFieldKind.DATETIME, local_kind="datetime")
        )

        result = transformer.map_params(
            mapping, {"Signup__c": "2024-01-01T00:00:00Z"}, SyncEvent.REMOTE_UPDATE
        )

        assert result.fields["signed_up"].value == "2023-12-31 19:00:00"

    def test_date_never_shifted(self, settings):
        """A calendar date keeps its day regardless of the local zone."""
        settings = settings.model_copy(update={"LOCAL_TIMEZONE": "America/New_York"})
        transformer = FieldTransformer(settings=settings)
        mapping = _mapping(_rule("birthday", "Birthdate", RemoteFieldKind.DATE))

        result = transformer.map_params(mapping, {"Birthdate": "2024-01-01"}, SyncEvent.REMOTE_UPDATE)

        assert result.fields["birthday"].value == "2024-01-01"

    def test_integer_and_boolean_become_ints(self, transformer):
        mapping = _mapping(
            _rule("visits", "Visits__c", RemoteFieldKind.INTEGER),
            _rule("opt_in", "HasOptedIn__c", RemoteFieldKind.BOOLEAN),
        )

        result = transformer.map_params(
            mapping, {"Visits__c": "12", "HasOptedIn__c": True}, SyncEvent.REMOTE_UPDATE
        )

        assert result.fields["visits"].value == 12
        assert result.fields["opt_in"].value == 1

    def test_url_sanitized(self, transformer):
        mapping = _mapping(_rule("website", "Website", RemoteFieldKind.URL))

        safe = transformer.map_params(mapping, {"Website": "example.com/about"}, SyncEvent.REMOTE_UPDATE)
        unsafe = transformer.map_params(mapping, {"Website": "javascript:alert(1)"}, SyncEvent.REMOTE_UPDATE)

        assert safe.fields["website"].value == "http://example.com/about"
        assert "website" not in unsafe.fields

    def test_injected_sanitizer_used(self, settings):
        transformer = FieldTransformer(settings=settings, sanitizer=lambda url: url.upper())
        mapping = _mapping(_rule("website", "Website", RemoteFieldKind.URL))

        result = transformer.map_params(mapping, {"Website": "http://x.io"}, SyncEvent.REMOTE_UPDATE)

        assert result.fields["website"].value == "HTTP://X.IO"

    def test_push_only_rule_not_pulled_but_prematch_kept(self, transformer):
        """A local-to-remote prematch rule still yields a prematch descriptor."""
        methods = LocalFieldMethods(read="get_email", match="find_by_email")
        mapping = _mapping(
            _rule(
                "email",
                "Email",
                is_prematch=True,
                direction=SyncDirection.LOCAL_TO_REMOTE,
                methods=methods,
            ),
        )

        result = transformer.map_params(mapping, {"Email": "a@example.com"}, SyncEvent.REMOTE_CREATE)

        assert result.fields == {}
        assert isinstance(result.prematch, PrematchDescriptor)
        assert result.prematch.method_match == "find_by_email"
        assert result.prematch.method_read == "get_email"

    def test_prematch_match_method_falls_back_to_read(self, transformer):
        methods = LocalFieldMethods(read="get_email")
        mapping = _mapping(_rule("email", "Email", is_prematch=True, methods=methods))

        result = transformer.map_params(mapping, {"Email": "a@example.com"}, SyncEvent.REMOTE_CREATE)

        assert result.prematch.method_match == "get_email"


class TestMapParamsFunction:
    """Module-level map_params wrapper."""

    def test_wrapper_matches_transformer(self, settings):
        mapping = _mapping(_rule("email", "Email"))

        result = map_params(mapping, {"email": "a@example.com"}, SyncEvent.LOCAL_CREATE, settings=settings, is_new=False)

        assert result.fields == {"Email": "a@example.com"}
        assert result.is_new is False
