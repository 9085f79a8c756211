"""
Abstract Storage Interface

DESIGN DECISION: Persistence is a flat key-value blob store: a string key
maps to a JSON-serializable array. This allows us to:
1. Keep data in local JSON files for a single user
2. Use in-memory storage for testing
3. Swap to Google Sheets without touching ledger logic

The interface is intentionally tiny. Anything smarter (lookup by id,
replace, remove) lives in the RecordStore built on top of it.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from settleup.models.audit import AuditEvent


class KeyValueStore(ABC):
    """
    Abstract interface for the key-value blob store.

    Values are always lists of JSON-serializable dicts.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[list[Any]]:
        """
        Read the array stored under `key`.

        Returns:
            The stored array, or None if the key has never been written

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: list[Any]) -> None:
        """
        Replace the array stored under `key`.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove `key` entirely.

        Returns:
            True if the key existed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one bill split).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
