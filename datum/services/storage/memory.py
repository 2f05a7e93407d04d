"""
In-Memory Storage Implementation

Used in tests and for offline sessions. Behaves like a remote store:
it stores and returns copies, so callers can never mutate stored rows
in place.
"""

import copy
from datetime import date
from typing import Optional

from datum.models.audit import AuditEvent
from datum.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    Record,
    RecordQuery,
    RecordStoreInterface,
)


def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def matches(record: Record, query: RecordQuery) -> bool:
    """Plaintext filter evaluation shared by the in-process stores."""
    for column, expected in query.equals.items():
        if expected is None:
            continue
        if str(record.get(column)) != str(getattr(expected, "value", expected)):
            return False

    if query.date_from or query.date_to:
        value = _as_date(record.get(query.date_column))
        if value is None:
            return False
        if query.date_from and value < query.date_from:
            return False
        if query.date_to and value > query.date_to:
            return False

    return True


def apply_query(records: list[Record], query: RecordQuery) -> list[Record]:
    """Filter, order and paginate."""
    selected = [r for r in records if matches(r, query)]

    if query.order_by:
        # Missing values sort last regardless of direction
        present = [r for r in selected if r.get(query.order_by) not in (None, "")]
        missing = [r for r in selected if r.get(query.order_by) in (None, "")]
        present.sort(key=lambda r: str(r[query.order_by]), reverse=query.descending)
        selected = present + missing

    end = query.offset + query.limit if query.limit else None
    return selected[query.offset:end]


class InMemoryRecordStore(RecordStoreInterface):
    """Dict-backed record store keyed by table, then record id."""

    def __init__(self):
        self._tables: dict[str, dict[str, Record]] = {}

    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    def raw_rows(self, table: str) -> list[Record]:
        """Exactly what the storage operator can see."""
        return copy.deepcopy(list(self._table(table).values()))

    async def insert(self, table: str, record: Record) -> Record:
        rows = self._table(table)
        record_id = str(record["id"])
        if record_id in rows:
            raise DuplicateError(f"Record already exists: {record_id}")
        rows[record_id] = copy.deepcopy(record)
        return copy.deepcopy(rows[record_id])

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        rows = self._table(table)
        record_id = str(record_id)
        if record_id not in rows:
            raise NotFoundError(f"Record not found: {record_id}")
        rows[record_id].update(copy.deepcopy(patch))
        return copy.deepcopy(rows[record_id])

    async def delete(self, table: str, record_id: str) -> None:
        rows = self._table(table)
        record_id = str(record_id)
        if record_id not in rows:
            raise NotFoundError(f"Record not found: {record_id}")
        del rows[record_id]

    async def select(self, table: str, query: Optional[RecordQuery] = None) -> list[Record]:
        query = query or RecordQuery()
        return copy.deepcopy(apply_query(list(self._table(table).values()), query))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
