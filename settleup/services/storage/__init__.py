"""
Storage Services Package

Provides the key-value store interface, its implementations (memory, JSON
files, Google Sheets) and the record store built on top of it.
"""

from settleup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    KeyValueStore,
    NotFoundError,
    StorageError,
)
from settleup.services.storage.memory import InMemoryKeyValueStore
from settleup.services.storage.json_file import JsonFileKeyValueStore
from settleup.services.storage.records import (
    AUDIT_KEY,
    TRANSACTIONS_KEY,
    USERS_KEY,
    RecordStore,
)
from settleup.services.storage.audit_storage import KeyValueAuditStorage
from settleup.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStore",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Record layer
    "AUDIT_KEY",
    "TRANSACTIONS_KEY",
    "USERS_KEY",
    "RecordStore",
    "KeyValueAuditStorage",
    # Implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
]
