"""
Services package.

Storage backends live in ``datum.services.storage``; the transaction
CRUD service in ``datum.services.transactions``.
"""

from datum.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordQuery,
    RecordStoreInterface,
    StorageError,
    UnsupportedQueryError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordQuery",
    "RecordStoreInterface",
    "StorageError",
    "UnsupportedQueryError",
]
