"""
Transaction Service

Encrypted CRUD over the remote record store.

DESIGN DECISION: The key is an explicit argument to every operation that
touches a sensitive attribute. The service holds a store handle and an
optional audit logger, nothing else. There is no ambient key.

Flow for writes:
    draft/patch -> mapper (encrypt) -> storage shape -> store

Flow for reads:
    store (plaintext filters only) -> mapper (decrypt, per record)
        -> client-side filters on decrypted values -> outcomes

A record that fails to decrypt is never dropped from a listing. The caller
gets a failed DecryptionOutcome in its position and decides what to show.

Categories and tags are plaintext reference data in their own tables.
Tag names used on a transaction are added to the tags table on write.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from datum.audit.logger import AuditLogger, create_correlation_id
from datum.crypto.keys import EncryptionKey
from datum.models.transaction import (
    Category,
    Mood,
    Tag,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
    normalize_tags,
)
from datum.records import mapper
from datum.records.outcome import DecryptionOutcome
from datum.services.storage.interface import (
    NotFoundError,
    RecordQuery,
    RecordStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

TABLE = "transactions"
CATEGORY_TABLE = "categories"
TAG_TABLE = "tags"


class TransactionFilter(BaseModel):
    """
    Listing filters.

    category_id, type, mood and the date range are pushed down to the
    store. tags and the amount bounds need decrypted (or per-record)
    values and are applied client-side.
    """

    category_id: Optional[UUID] = None
    type: Optional[TransactionType] = None
    mood: Optional[Mood] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    tags: list[str] = Field(
        default_factory=list,
        description="Keep records carrying at least one of these tags"
    )
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)

    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator('tags')
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        return normalize_tags(v)

    @model_validator(mode='after')
    def check_ranges(self) -> 'TransactionFilter':
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount must not exceed max_amount")
        return self

    def to_query(self) -> RecordQuery:
        """The part of the filter the store can evaluate."""
        equals = {
            "category_id": str(self.category_id) if self.category_id else None,
            "type": self.type.value if self.type else None,
            "mood": self.mood.value if self.mood else None,
        }
        return RecordQuery(
            equals={k: v for k, v in equals.items() if v is not None},
            date_from=self.start_date,
            date_to=self.end_date,
            order_by="transaction_date",
            descending=True,
            limit=self.limit,
            offset=self.offset,
        )

    def keeps(self, transaction: Transaction) -> bool:
        """Client-side filters on a decrypted transaction."""
        if self.tags and not set(self.tags) & set(transaction.tags):
            return False
        if self.min_amount is not None and transaction.amount < self.min_amount:
            return False
        if self.max_amount is not None and transaction.amount > self.max_amount:
            return False
        return True


class TransactionService:
    """
    Create, read, update and delete encrypted transactions.

    Storage errors are audited and re-raised. Crypto errors on single-record
    reads propagate; on listings they become per-record outcomes.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        batch_workers: Optional[int] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._batch_workers = batch_workers

    async def create_transaction(
        self,
        draft: TransactionDraft,
        key: EncryptionKey,
    ) -> Transaction:
        """Encrypt and insert a new transaction; returns the decrypted view."""
        stored = mapper.to_storage_shape(draft, key)
        try:
            await self._store.insert(TABLE, stored.to_record())
            await self._register_tags(draft.tags)
        except StorageError as e:
            await self._audit.log_storage_error("create_transaction", str(e))
            raise

        await self._audit.log_transaction_created(stored.id)
        return Transaction(
            id=stored.id,
            amount=draft.amount,
            type=draft.type,
            transaction_date=draft.transaction_date,
            category_id=draft.category_id,
            mood=draft.mood,
            notes=draft.notes,
            tags=list(draft.tags),
            created_at=stored.created_at,
            updated_at=stored.updated_at,
        )

    async def update_transaction(
        self,
        transaction_id: UUID,
        patch: TransactionPatch,
        key: EncryptionKey,
    ) -> Transaction:
        """
        Apply a partial update and return the full decrypted record.

        Raises:
            NotFoundError: No transaction with this id
        """
        update = mapper.to_storage_patch(patch, key)
        try:
            record = await self._store.update(TABLE, str(transaction_id), update)
            await self._register_tags(patch.tags or [])
        except NotFoundError:
            raise
        except StorageError as e:
            await self._audit.log_storage_error("update_transaction", str(e))
            raise

        await self._audit.log_transaction_updated(
            transaction_id,
            fields=sorted(patch.changes()),
        )
        return mapper.from_storage_shape(record, key)

    async def delete_transaction(self, transaction_id: UUID) -> None:
        """
        Delete a transaction. No key is needed.

        Raises:
            NotFoundError: No transaction with this id
        """
        try:
            await self._store.delete(TABLE, str(transaction_id))
        except NotFoundError:
            raise
        except StorageError as e:
            await self._audit.log_storage_error("delete_transaction", str(e))
            raise

        await self._audit.log_transaction_deleted(transaction_id)

    async def get_transaction(
        self,
        transaction_id: UUID,
        key: EncryptionKey,
    ) -> Optional[Transaction]:
        """
        Fetch and decrypt one transaction.

        Returns None if it does not exist. Decryption failures raise
        (AuthenticationError, ParseError, MappingError).
        """
        query = RecordQuery(equals={"id": str(transaction_id)}, order_by=None, limit=1)
        try:
            records = await self._store.select(TABLE, query)
        except StorageError as e:
            await self._audit.log_storage_error("get_transaction", str(e))
            raise

        if not records:
            return None
        return mapper.from_storage_shape(records[0], key)

    async def list_transactions(
        self,
        key: EncryptionKey,
        filters: Optional[TransactionFilter] = None,
    ) -> list[DecryptionOutcome]:
        """
        List transactions newest first.

        Every fetched record yields an outcome. Failed outcomes are kept
        whatever the client-side filters say, since their values are
        unknown. Outcome indexes refer to the store's result order.
        """
        filters = filters or TransactionFilter()
        correlation_id = create_correlation_id()

        try:
            records = await self._store.select(TABLE, filters.to_query())
        except StorageError as e:
            await self._audit.log_storage_error("list_transactions", str(e), correlation_id)
            raise

        outcomes = mapper.from_storage_shape_many(records, key, self._batch_workers)

        kept = [o for o in outcomes if not o.ok or filters.keeps(o.transaction)]
        failed = [o for o in kept if not o.ok]

        for outcome in failed:
            await self._audit.log_decryption_failed(
                outcome.record_id,
                error_kind=outcome.error_kind.value,
                field=outcome.error_field,
                correlation_id=correlation_id,
            )
        await self._audit.log_transactions_listed(
            result_count=len(kept),
            failed_count=len(failed),
            correlation_id=correlation_id,
        )

        logger.debug(
            "transactions_listed",
            fetched=len(records),
            returned=len(kept),
            failed=len(failed),
        )
        return kept

    # =========================================================================
    # REFERENCE DATA (plaintext, no key needed)
    # =========================================================================

    async def list_categories(self) -> list[Category]:
        """All spending categories, ordered by name."""
        rows = await self._select_reference(CATEGORY_TABLE, "list_categories")
        return self._parse_reference(rows, Category)

    async def list_tags(self) -> list[Tag]:
        """All known tag names, ordered by name."""
        rows = await self._select_reference(TAG_TABLE, "list_tags")
        return self._parse_reference(rows, Tag)

    async def _select_reference(self, table: str, operation: str) -> list[dict]:
        query = RecordQuery(order_by="name", descending=False)
        try:
            return await self._store.select(table, query)
        except StorageError as e:
            await self._audit.log_storage_error(operation, str(e))
            raise

    def _parse_reference(self, rows: list[dict], model):
        items = []
        for row in rows:
            try:
                items.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "reference_row_skipped",
                    model=model.__name__,
                    row_id=row.get("id"),
                    error_count=e.error_count(),
                )
        return items

    async def _register_tags(self, names: list[str]) -> None:
        """Add tag names the tags table has not seen yet."""
        if not names:
            return
        known = {row.get("name") for row in await self._store.select(TAG_TABLE)}
        for name in names:
            if name not in known:
                await self._store.insert(TAG_TABLE, Tag(name=name).to_record())
                known.add(name)
