"""
Audit log storage on top of the key-value store.

Audit events are appended to their own collection; the collection is never
rewritten except to add an event.
"""

from uuid import UUID

import structlog

from settleup.models.audit import AuditEvent
from settleup.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStore,
    StorageError,
)
from settleup.services.storage.records import AUDIT_KEY, RecordStore


logger = structlog.get_logger(__name__)


class KeyValueAuditStorage(AuditStorageInterface):
    """Append-only audit log kept under AUDIT_KEY."""

    def __init__(self, kv_store: KeyValueStore):
        self._records = RecordStore(kv_store, id_field="event_id")

    async def _load_events(self) -> list[AuditEvent]:
        events = []
        for record in await self._records.load(AUDIT_KEY):
            try:
                events.append(AuditEvent.model_validate(record))
            except ValueError:
                logger.warning("audit_record_malformed", event_id=record.get("event_id"))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            await self._records.insert(AUDIT_KEY, event.model_dump(mode="json"))
            return True
        except StorageError as e:
            # Audit logging should not break the main flow
            logger.error("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events
