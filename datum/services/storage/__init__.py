"""
Storage Services Package

Provides the abstract remote record store interface and its
implementations. Google Sheets is the hosted backend; the in-memory
store backs tests and offline sessions.
"""

from datum.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    Record,
    RecordQuery,
    RecordStoreInterface,
    StorageError,
    UnsupportedQueryError,
    is_encrypted_column,
)
from datum.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)
from datum.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Record",
    "RecordQuery",
    "RecordStoreInterface",
    "is_encrypted_column",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "UnsupportedQueryError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
