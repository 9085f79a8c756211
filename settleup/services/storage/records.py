"""
Record Store

Generic get/put/delete over named collections on top of a KeyValueStore.

DESIGN DECISION: Every mutation is a full read-modify-write of one
collection (load the array, change it, store the array). Anything that must
change atomically therefore has to live in a single collection and be
written with a single `save`.
"""

from typing import Any, Callable, Optional, Union
from uuid import UUID

from settleup.services.storage.interface import (
    DuplicateError,
    KeyValueStore,
    NotFoundError,
)


# Fixed keys of the persisted collections
USERS_KEY = "settleup_users"
TRANSACTIONS_KEY = "settleup_transactions"
AUDIT_KEY = "settleup_audit_log"

Record = dict[str, Any]


class RecordStore:
    """
    Collections of JSON records keyed by their "id" field.

    Ids are compared by their string form so UUIDs and their serialized
    form are interchangeable.
    """

    def __init__(self, kv_store: KeyValueStore, id_field: str = "id"):
        self._kv = kv_store
        self._id_field = id_field

    @property
    def kv_store(self) -> KeyValueStore:
        return self._kv

    def _matches(self, record: Record, record_id: Union[UUID, str]) -> bool:
        return str(record.get(self._id_field)) == str(record_id)

    async def load(self, collection: str) -> list[Record]:
        """Load a whole collection, initializing it to [] on first use."""
        records = await self._kv.get(collection)
        if records is None:
            await self._kv.set(collection, [])
            return []
        return records

    async def save(self, collection: str, records: list[Record]) -> None:
        """Replace a whole collection."""
        await self._kv.set(collection, records)

    async def find(
        self,
        collection: str,
        record_id: Union[UUID, str],
    ) -> Optional[Record]:
        for record in await self.load(collection):
            if self._matches(record, record_id):
                return record
        return None

    async def find_where(
        self,
        collection: str,
        predicate: Callable[[Record], bool],
    ) -> list[Record]:
        return [r for r in await self.load(collection) if predicate(r)]

    async def insert(self, collection: str, record: Record) -> None:
        """
        Append a record.

        Raises:
            DuplicateError: If a record with the same id exists
        """
        records = await self.load(collection)
        record_id = record.get(self._id_field)
        if any(self._matches(r, record_id) for r in records):
            raise DuplicateError(f"{collection}: record {record_id} already exists")
        records.append(record)
        await self.save(collection, records)

    async def replace(self, collection: str, record: Record) -> None:
        """
        Overwrite the record with the same id, keeping its position.

        Raises:
            NotFoundError: If no record has that id
        """
        records = await self.load(collection)
        record_id = record.get(self._id_field)
        for idx, existing in enumerate(records):
            if self._matches(existing, record_id):
                records[idx] = record
                await self.save(collection, records)
                return
        raise NotFoundError(f"{collection}: record {record_id} not found")

    async def remove(self, collection: str, record_id: Union[UUID, str]) -> bool:
        """Delete a record by id. Returns False if it did not exist."""
        records = await self.load(collection)
        remaining = [r for r in records if not self._matches(r, record_id)]
        if len(remaining) == len(records):
            return False
        await self.save(collection, remaining)
        return True
