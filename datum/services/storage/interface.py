"""
Abstract Storage Interface

DESIGN DECISION: The remote record store is an untrusted collaborator.
We define the narrow interface the encryption core needs from it:
insert / update / delete / select on opaque storage-shaped records.

This allows us to:
1. Swap the hosted backend (Google Sheets today) without touching the core
2. Use in-memory storage for testing
3. Keep the store ignorant of plaintext - it only ever receives rows
   whose sensitive columns are (ciphertext, nonce) text pairs

The store can only filter and order by plaintext columns. Any query on
an encrypted column is rejected; value filters like "amount > X" run
client-side after decryption.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from datum.models.audit import AuditEvent


ENCRYPTED_COLUMN_PREFIXES = ("encrypted_", "iv_")

Record = dict[str, Any]


def is_encrypted_column(column: str) -> bool:
    return column.startswith(ENCRYPTED_COLUMN_PREFIXES)


class RecordQuery(BaseModel):
    """
    Select parameters for the remote store.

    Filters compare plaintext columns for equality, plus an optional
    inclusive date range on one date column.
    """

    equals: dict[str, Any] = Field(default_factory=dict)
    date_column: str = "transaction_date"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    order_by: Optional[str] = "transaction_date"
    descending: bool = True
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def reject_encrypted_columns(self) -> 'RecordQuery':
        columns = list(self.equals) + [self.date_column]
        if self.order_by:
            columns.append(self.order_by)
        for column in columns:
            if is_encrypted_column(column):
                raise UnsupportedQueryError(
                    f"Cannot filter or order by encrypted column '{column}'"
                )
        return self


class RecordStoreInterface(ABC):
    """
    Abstract interface for the remote record store.

    Any storage implementation (Google Sheets, hosted Postgres, etc.)
    must implement these methods. Records are plain dicts of JSON-safe
    values; the store never interprets encrypted columns.
    """

    @abstractmethod
    async def insert(self, table: str, record: Record) -> Record:
        """
        Insert a record.

        Returns:
            The record as stored

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        """
        Apply a partial update.

        Returns:
            The full record after the update

        Raises:
            NotFoundError: If no record has this id
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """
        Delete a record by id.

        Raises:
            NotFoundError: If no record has this id
        """
        pass

    @abstractmethod
    async def select(self, table: str, query: Optional[RecordQuery] = None) -> list[Record]:
        """
        Select records matching a query.

        Returns:
            Records in the requested order, paginated
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
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
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


class UnsupportedQueryError(StorageError):
    """Query filters or orders by a column the store cannot see into."""
    pass
