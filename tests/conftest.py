"""
Shared fixtures.

Every test gets a fresh in-memory store; nothing touches the disk or the
network unless a test asks for it explicitly.
"""

from typing import Any, Optional

import pytest
import pytest_asyncio

from settleup.audit import AuditLogger
from settleup.directory import UserDirectory
from settleup.ledger import LedgerEngine, SplitAllocator
from settleup.services.storage import (
    InMemoryKeyValueStore,
    KeyValueAuditStorage,
    RecordStore,
    StorageError,
)


class FlakyKeyValueStore(InMemoryKeyValueStore):
    """In-memory store that can be told to fail reads or writes per key."""

    def __init__(self):
        super().__init__()
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.write_count = 0

    async def get(self, key: str) -> Optional[list[Any]]:
        if key in self.fail_reads:
            raise StorageError(f"read of {key} failed")
        return await super().get(key)

    async def set(self, key: str, value: list[Any]) -> None:
        if key in self.fail_writes:
            raise StorageError(f"write of {key} failed")
        self.write_count += 1
        await super().set(key, value)


@pytest.fixture
def kv_store():
    return FlakyKeyValueStore()


@pytest.fixture
def records(kv_store):
    return RecordStore(kv_store)


@pytest.fixture
def audit_storage(kv_store):
    return KeyValueAuditStorage(kv_store)


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def directory(records, audit_logger):
    return UserDirectory(records, audit_logger=audit_logger)


@pytest.fixture
def engine(records, directory, audit_logger):
    return LedgerEngine(records, directory, audit_logger=audit_logger)


@pytest.fixture
def allocator(engine):
    return SplitAllocator(engine)


@pytest_asyncio.fixture
async def alice(directory):
    return await directory.register_user("Alice", "alice@example.com")


@pytest_asyncio.fixture
async def bob(directory):
    return await directory.register_user("Bob", "bob@example.com")


@pytest_asyncio.fixture
async def carol(directory):
    return await directory.register_user("Carol", "carol@example.com")


@pytest_asyncio.fixture
async def dave(directory):
    return await directory.register_user("Dave", "dave@example.com")


@pytest_asyncio.fixture
async def friends(directory, alice, bob, carol, dave):
    """Alice is friends with Bob, Carol and Dave."""
    for other in (bob, carol, dave):
        assert await directory.add_friend(alice.id, other.id)
    return alice, bob, carol, dave
