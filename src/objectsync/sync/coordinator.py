"""Reconciliation coordinator -- sequences field map selection, transformation and ledger updates.

For each field map that applies to an incoming event:

1. Look up the ledger row for the record (by local id on push, by remote
   id on pull).
2. Run the transformer. A missing required remote field blocks the record:
   it is flagged in the ledger and nothing is written remotely.
3. Hand the parameters to the remote transport (push) or local storage
   (pull) and record the outcome in the ledger.

New records get a temporary id in the ledger before the write so an
interrupted create stays visible in the failure inventory. Transport
failures become `failed` outcomes; the caller's job scheduler decides
whether and when to retry.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.objectsync.config import Settings, get_settings
from src.objectsync.core.diagnostics import Diagnostics, Severity, StructlogDiagnostics
from src.objectsync.mapping.errors import MissingRequiredRemoteField, TransportFailure
from src.objectsync.mapping.ledger import PULL, PUSH, ObjectMapLedger
from src.objectsync.mapping.repository import FieldMapRepository
from src.objectsync.mapping.schemas import (
    FieldMapping,
    MappedParams,
    ObjectMapCreate,
    ObjectMapRead,
    ObjectMapUpdate,
    SyncEvent,
)
from src.objectsync.mapping.selection import get_mapped_fields
from src.objectsync.mapping.transformer import FieldTransformer
from src.objectsync.sync.adapter import LocalStorage, RemoteTransport
from src.objectsync.sync.schemas import (
    STATUS_ERROR,
    STATUS_SUCCESS,
    MappingOutcome,
    OutcomeStatus,
    ReconcileResult,
    SyncRequest,
    TransportResult,
)

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationCoordinator:
    """Entry point for reconciling one event across all applicable field maps.

    Args:
        fieldmaps: Source of field maps.
        ledger: Object map ledger.
        transport: Remote system client.
        local: Local record store.
        diagnostics: Sink for blocked records and transport failures.
        settings: Transformer configuration.
    """

    def __init__(
        self,
        fieldmaps: FieldMapRepository,
        ledger: ObjectMapLedger,
        transport: RemoteTransport,
        local: LocalStorage,
        diagnostics: Diagnostics | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._fieldmaps = fieldmaps
        self._ledger = ledger
        self._transport = transport
        self._local = local
        self._diagnostics = diagnostics or StructlogDiagnostics()
        self._settings = settings or get_settings()
        self._transformer = FieldTransformer(settings=self._settings)

    async def handle_event(self, request: SyncRequest) -> ReconcileResult:
        """Reconcile one event.

        Args:
            request: The triggering event, its object type and record.

        Returns:
            ReconcileResult with one outcome per applicable field map. No
            applicable field map yields an empty result.
        """
        trigger = request.trigger
        if trigger.is_local:
            mappings = await self._fieldmaps.get_fieldmaps(
                local_object=request.object_type, record_type=request.record_type
            )
        else:
            mappings = await self._fieldmaps.get_fieldmaps(
                remote_object=request.object_type, record_type=request.record_type
            )

        result = ReconcileResult(
            trigger=trigger,
            object_type=request.object_type,
            record_id=request.record_id,
        )

        for mapping in mappings:
            if not mapping.responds_to(trigger):
                continue
            if trigger.is_local and request.is_draft and not mapping.push_drafts:
                result.outcomes.append(
                    MappingOutcome(
                        mapping_id=mapping.id,
                        status=OutcomeStatus.SKIPPED,
                        local_id=request.record_id,
                        message="Drafts are not pushed for this field map",
                    )
                )
                continue

            if trigger.is_local:
                outcome = await self._push(mapping, request)
            else:
                outcome = await self._pull(mapping, request)
            result.outcomes.append(outcome)

        logger.info(
            "sync.event_handled",
            trigger=trigger.value,
            object_type=request.object_type,
            record_id=request.record_id,
            synced=result.synced,
            blocked=result.blocked,
            failed=result.failed,
        )
        return result

    # ── Push ────────────────────────────────────────────────────────────────

    async def _push(self, mapping: FieldMapping, request: SyncRequest) -> MappingOutcome:
        local_id = request.record_id
        object_map = await self._ledger.load_by_local(mapping.local_object, local_id)

        if request.trigger == SyncEvent.LOCAL_DELETE:
            return await self._push_delete(mapping, local_id, object_map)

        record = request.record or await self._local.get(mapping.local_object, local_id) or {}
        is_new = object_map is None or self._ledger.is_temporary_remote_id(object_map.remote_id)
        params = self._transformer.map_params(
            mapping,
            record,
            request.trigger,
            use_key_inline=self._transport.supports_inline_key,
            is_new=is_new,
        )

        if params.missing_required_field:
            return await self._block(mapping, local_id, params)

        if is_new:
            return await self._push_create(mapping, local_id, params, object_map)

        try:
            if params.key is not None:
                response = await self._transport.upsert(mapping.remote_object, params.key, params.fields)
            else:
                response = await self._transport.update(
                    mapping.remote_object, object_map.remote_id, params.fields
                )
            self._raise_for_result(response, "update")
        except TransportFailure as exc:
            return await self._push_failed(mapping, local_id, object_map.id, object_map.remote_id, exc)

        remote_id = response.remote_id or object_map.remote_id
        await self._ledger.update_object_map(
            object_map.id,
            ObjectMapUpdate(
                remote_id=remote_id,
                last_sync=_now(),
                last_sync_action="push",
                last_sync_status=STATUS_SUCCESS,
                last_sync_message="Updated remote record",
            ),
        )
        await self._ledger.clear_missing_required_data(mapping.local_object, local_id)
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.SYNCED,
            local_id=local_id,
            remote_id=remote_id,
            object_map_id=object_map.id,
        )

    async def _push_create(
        self,
        mapping: FieldMapping,
        local_id: str,
        params: MappedParams,
        object_map: ObjectMapRead | None,
    ) -> MappingOutcome:
        if object_map is not None:
            # Re-driving a push that never completed: reuse its placeholder row.
            object_map_id = object_map.id
            placeholder = object_map.remote_id
        else:
            placeholder = self._ledger.generate_temporary_id(PUSH)
            object_map_id = await self._ledger.create_object_map(
                ObjectMapCreate(
                    local_object=mapping.local_object,
                    local_id=local_id,
                    remote_id=placeholder,
                    action="pending",
                    last_sync_action="push",
                )
            )

        try:
            matched_id = None
            if params.prematch is not None:
                matched_id = await self._transport.match(mapping.remote_object, params.prematch)

            if matched_id is not None:
                response = await self._transport.update(mapping.remote_object, matched_id, params.fields)
            elif params.key is not None:
                response = await self._transport.upsert(mapping.remote_object, params.key, params.fields)
            else:
                response = await self._transport.create(mapping.remote_object, params.fields)
            self._raise_for_result(response, "create")

            remote_id = response.remote_id or matched_id
            if not remote_id:
                raise TransportFailure(
                    "Remote create succeeded without returning an id", operation="create"
                )
        except TransportFailure as exc:
            return await self._push_failed(mapping, local_id, object_map_id, placeholder, exc)

        await self._ledger.update_object_map(
            object_map_id,
            ObjectMapUpdate(
                remote_id=remote_id,
                last_sync=_now(),
                last_sync_action="push",
                last_sync_status=STATUS_SUCCESS,
                last_sync_message="Created remote record" if matched_id is None else "Matched remote record",
            ),
        )
        await self._ledger.clear_missing_required_data(mapping.local_object, local_id)
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.SYNCED,
            local_id=local_id,
            remote_id=remote_id,
            object_map_id=object_map_id,
        )

    async def _push_delete(
        self,
        mapping: FieldMapping,
        local_id: str,
        object_map: ObjectMapRead | None,
    ) -> MappingOutcome:
        if object_map is None:
            return MappingOutcome(
                mapping_id=mapping.id,
                status=OutcomeStatus.SKIPPED,
                local_id=local_id,
                message="No remote record is mapped to this local record",
            )

        if not self._ledger.is_temporary_remote_id(object_map.remote_id):
            try:
                response = await self._transport.delete(mapping.remote_object, object_map.remote_id)
                self._raise_for_result(response, "delete")
            except TransportFailure as exc:
                return await self._push_failed(
                    mapping, local_id, object_map.id, object_map.remote_id, exc
                )

        await self._ledger.delete_object_map(object_map.id)
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.SYNCED,
            local_id=local_id,
            remote_id=object_map.remote_id,
            message="Deleted remote record",
        )

    async def _push_failed(
        self,
        mapping: FieldMapping,
        local_id: str,
        object_map_id: int,
        remote_id: str,
        exc: TransportFailure,
    ) -> MappingOutcome:
        await self._ledger.update_object_map(
            object_map_id,
            ObjectMapUpdate(
                last_sync=_now(),
                last_sync_action="push",
                last_sync_status=STATUS_ERROR,
                last_sync_message=str(exc),
            ),
        )
        self._diagnostics.record(
            f"Push failed for local {mapping.local_object} {local_id}: {exc}",
            {
                "mapping_id": mapping.id,
                "operation": exc.operation,
                "remote_id": remote_id,
                "details": exc.details,
            },
            Severity.ERROR,
        )
        logger.error(
            "sync.push_failed",
            mapping_id=mapping.id,
            local_id=local_id,
            error=str(exc),
        )
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.FAILED,
            local_id=local_id,
            remote_id=remote_id,
            object_map_id=object_map_id,
            message=str(exc),
        )

    async def _block(self, mapping: FieldMapping, local_id: str, params: MappedParams) -> MappingOutcome:
        await self._ledger.mark_missing_required_data(
            mapping.local_object, local_id, params.missing_fields
        )
        blocked = MissingRequiredRemoteField(mapping.id, local_id, params.missing_fields)
        self._diagnostics.record(
            str(blocked),
            {"mapping_id": mapping.id, "local_object": mapping.local_object, "local_id": local_id},
            Severity.WARNING,
        )
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.BLOCKED,
            local_id=local_id,
            message=str(blocked),
        )

    # ── Pull ────────────────────────────────────────────────────────────────

    async def _pull(self, mapping: FieldMapping, request: SyncRequest) -> MappingOutcome:
        remote_id = request.record_id
        object_map = await self._ledger.load_by_remote(remote_id, mapping.local_object)

        if request.trigger == SyncEvent.REMOTE_DELETE:
            return await self._pull_delete(mapping, remote_id, object_map)

        record = request.record
        if not record:
            try:
                fields = list(get_mapped_fields(mapping, mode=self._settings.SCHEMA_COMPAT_MODE))
                record = await self._transport.read(mapping.remote_object, remote_id, fields) or {}
            except TransportFailure as exc:
                return self._pull_failed(mapping, remote_id, exc)

        is_new = object_map is None or self._ledger.is_temporary_local_id(object_map.local_id)
        params = self._transformer.map_params(mapping, record, request.trigger, is_new=is_new)
        if not params.fields:
            return MappingOutcome(
                mapping_id=mapping.id,
                status=OutcomeStatus.SKIPPED,
                remote_id=remote_id,
                message="No pulled values to apply",
            )

        if not is_new:
            await self._local.update(mapping.local_object, object_map.local_id, params.fields)
            await self._ledger.update_object_map(
                object_map.id,
                ObjectMapUpdate(
                    last_sync=_now(),
                    last_sync_action="pull",
                    last_sync_status=STATUS_SUCCESS,
                    last_sync_message="Updated local record",
                ),
            )
            return MappingOutcome(
                mapping_id=mapping.id,
                status=OutcomeStatus.SYNCED,
                local_id=object_map.local_id,
                remote_id=remote_id,
                object_map_id=object_map.id,
            )

        return await self._pull_create(mapping, remote_id, params, object_map)

    async def _pull_create(
        self,
        mapping: FieldMapping,
        remote_id: str,
        params: MappedParams,
        object_map: ObjectMapRead | None,
    ) -> MappingOutcome:
        if object_map is not None:
            object_map_id = object_map.id
        else:
            object_map_id = await self._ledger.create_object_map(
                ObjectMapCreate(
                    local_object=mapping.local_object,
                    local_id=self._ledger.generate_temporary_id(PULL),
                    remote_id=remote_id,
                    last_sync_action="pull",
                )
            )

        local_id = None
        if params.prematch is not None:
            local_id = await self._local.match(mapping.local_object, params.prematch)

        if local_id is not None:
            await self._local.update(mapping.local_object, local_id, params.fields)
            message = "Matched local record"
        else:
            local_id = await self._local.create(
                mapping.local_object, params.fields, draft=mapping.pull_to_drafts
            )
            message = "Created local record"

        await self._ledger.update_object_map(
            object_map_id,
            ObjectMapUpdate(
                local_id=str(local_id),
                last_sync=_now(),
                last_sync_action="pull",
                last_sync_status=STATUS_SUCCESS,
                last_sync_message=message,
            ),
        )
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.SYNCED,
            local_id=str(local_id),
            remote_id=remote_id,
            object_map_id=object_map_id,
            message=message,
        )

    async def _pull_delete(
        self,
        mapping: FieldMapping,
        remote_id: str,
        object_map: ObjectMapRead | None,
    ) -> MappingOutcome:
        if object_map is None:
            return MappingOutcome(
                mapping_id=mapping.id,
                status=OutcomeStatus.SKIPPED,
                remote_id=remote_id,
                message="No local record is mapped to this remote record",
            )

        if not self._ledger.is_temporary_local_id(object_map.local_id):
            await self._local.delete(mapping.local_object, object_map.local_id)
        await self._ledger.delete_object_map(object_map.id)
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.SYNCED,
            local_id=object_map.local_id,
            remote_id=remote_id,
            message="Deleted local record",
        )

    def _pull_failed(
        self, mapping: FieldMapping, remote_id: str, exc: TransportFailure
    ) -> MappingOutcome:
        self._diagnostics.record(
            f"Pull failed for remote {mapping.remote_object} {remote_id}: {exc}",
            {"mapping_id": mapping.id, "operation": exc.operation, "details": exc.details},
            Severity.ERROR,
        )
        return MappingOutcome(
            mapping_id=mapping.id,
            status=OutcomeStatus.FAILED,
            remote_id=remote_id,
            message=str(exc),
        )

    @staticmethod
    def _raise_for_result(response: TransportResult, operation: str) -> None:
        if not response.success:
            raise TransportFailure(
                "; ".join(response.errors) or f"Remote {operation} failed",
                operation=operation,
                details=response.errors,
            )
