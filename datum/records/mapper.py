"""
Encrypted Record Mapper

Converts between the decrypted domain view (Transaction) and the
storage shape (StoredTransaction), encrypting sensitive attributes on
the way out and decrypting them on the way in.

GUARANTEES:
- Pure transformation, no I/O
- Every encrypted field gets its own fresh nonce
- A missing or malformed encrypted field fails loudly, naming the field;
  no partial record is ever returned with guessed values
- Batch decryption keeps input order and isolates failures per record
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional, Union
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from datum.config import get_settings
from datum.crypto import cipher, codec
from datum.crypto.codec import FieldKind, FieldValue
from datum.crypto.errors import (
    AuthenticationError,
    EncryptionError,
    MappingError,
    ParseError,
)
from datum.crypto.keys import EncryptionKey
from datum.models.transaction import (
    ENCRYPTED_COLUMNS,
    EncryptedField,
    StoredTransaction,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    utcnow,
)
from datum.records.outcome import DecryptionOutcome


logger = structlog.get_logger(__name__)

# Sensitive attributes of a transaction and how they are encoded
SENSITIVE_FIELDS: dict[str, FieldKind] = {
    "amount": FieldKind.DECIMAL,
    "notes": FieldKind.TEXT,
}
REQUIRED_SENSITIVE_FIELDS = frozenset({"amount"})

StorageInput = Union[StoredTransaction, dict[str, Any]]


# =============================================================================
# FIELD LEVEL
# =============================================================================

def encrypt_field(value: FieldValue, kind: FieldKind, key: EncryptionKey) -> EncryptedField:
    """Encode a value and encrypt it under key."""
    ciphertext, nonce = cipher.encrypt(codec.encode(value, kind), key)
    return EncryptedField(
        ciphertext=codec.to_text(ciphertext),
        nonce=codec.to_text(nonce),
    )


def decrypt_field(
    field: EncryptedField,
    kind: FieldKind,
    key: EncryptionKey,
    name: str,
) -> FieldValue:
    """
    Decrypt and decode one EncryptedField.

    Raises:
        MappingError: Ciphertext or nonce is not valid base64
        AuthenticationError: Wrong key or tampered data
        ParseError: Decrypted bytes don't match the kind
    """
    try:
        ciphertext = codec.from_text(field.ciphertext)
        nonce = codec.from_text(field.nonce)
    except ParseError as e:
        raise MappingError(f"Encrypted field '{name}' is malformed: {e}", field=name)

    try:
        plaintext = cipher.decrypt(ciphertext, nonce, key)
    except AuthenticationError as e:
        raise AuthenticationError(f"Field '{name}': {e}", field=name)

    try:
        return codec.decode(plaintext, kind)
    except ParseError as e:
        raise ParseError(f"Field '{name}': {e}", field=name)


def _read_encrypted_field(
    stored: StoredTransaction,
    name: str,
) -> Optional[EncryptedField]:
    ciphertext, nonce = stored.encrypted_field(name)

    if ciphertext is None and nonce is None:
        if name in REQUIRED_SENSITIVE_FIELDS:
            raise MappingError(f"Required encrypted field '{name}' is missing", field=name)
        return None

    if ciphertext is None or nonce is None:
        missing = ENCRYPTED_COLUMNS[name][0 if ciphertext is None else 1]
        raise MappingError(
            f"Encrypted field '{name}' is incomplete (missing {missing})",
            field=name,
        )

    try:
        return EncryptedField(ciphertext=ciphertext, nonce=nonce)
    except ValidationError:
        raise MappingError(f"Encrypted field '{name}' is empty", field=name)


def _columns_for(name: str, field: Optional[EncryptedField]) -> dict[str, Optional[str]]:
    ciphertext_column, nonce_column = ENCRYPTED_COLUMNS[name]
    return {
        ciphertext_column: field.ciphertext if field else None,
        nonce_column: field.nonce if field else None,
    }


# =============================================================================
# RECORD LEVEL
# =============================================================================

def to_storage_shape(
    record: Union[Transaction, TransactionDraft],
    key: EncryptionKey,
    record_id: Optional[UUID] = None,
) -> StoredTransaction:
    """
    Build the storage-ready shape of a record.

    Accepts either a fresh draft (a new id and timestamps are assigned)
    or an existing Transaction (identity and timestamps are kept).
    """
    columns: dict[str, Any] = {}
    for name, kind in SENSITIVE_FIELDS.items():
        value = getattr(record, name)
        field = encrypt_field(value, kind, key) if value is not None else None
        columns.update(_columns_for(name, field))

    plaintext = {
        "type": record.type,
        "transaction_date": record.transaction_date,
        "category_id": record.category_id,
        "mood": record.mood,
        "tags": list(record.tags),
    }

    if isinstance(record, Transaction):
        plaintext.update(
            id=record.id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
    else:
        now = utcnow()
        plaintext.update(id=record_id or uuid4(), created_at=now, updated_at=now)

    return StoredTransaction(**plaintext, **columns)


def to_storage_patch(patch: TransactionPatch, key: EncryptionKey) -> dict[str, Any]:
    """
    Build a partial storage update.

    Only explicitly set fields are included. Sensitive fields are
    re-encrypted with a fresh nonce; ``notes=None`` clears both notes
    columns. ``updated_at`` is always refreshed.
    """
    update: dict[str, Any] = {}
    for name, value in patch.changes().items():
        if name in SENSITIVE_FIELDS:
            field = encrypt_field(value, SENSITIVE_FIELDS[name], key) if value is not None else None
            update.update(_columns_for(name, field))
        elif isinstance(value, date):
            update[name] = value.isoformat()
        elif isinstance(value, Enum):
            update[name] = value.value
        elif isinstance(value, UUID):
            update[name] = str(value)
        else:
            update[name] = value

    update["updated_at"] = utcnow().isoformat()
    return update


def _coerce_stored(stored: StorageInput) -> StoredTransaction:
    if isinstance(stored, StoredTransaction):
        return stored
    try:
        return StoredTransaction.model_validate(stored)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise MappingError(f"Stored record is malformed: {first['msg']}", field=field)


def from_storage_shape(stored: StorageInput, key: EncryptionKey) -> Transaction:
    """
    Decrypt a storage-shaped record into a Transaction.

    Raises:
        MappingError: A required encrypted field is missing or malformed
        AuthenticationError: A field does not verify under key
        ParseError: A decrypted field is not a valid value
    """
    stored = _coerce_stored(stored)

    values: dict[str, Any] = {}
    for name, kind in SENSITIVE_FIELDS.items():
        field = _read_encrypted_field(stored, name)
        values[name] = decrypt_field(field, kind, key, name) if field else None

    return Transaction(
        id=stored.id,
        amount=values["amount"],
        notes=values["notes"],
        type=stored.type,
        transaction_date=stored.transaction_date,
        category_id=stored.category_id,
        mood=stored.mood,
        tags=list(stored.tags),
        created_at=stored.created_at,
        updated_at=stored.updated_at,
    )


def _record_id(stored: StorageInput) -> Optional[UUID]:
    if isinstance(stored, StoredTransaction):
        raw = stored.id
    elif isinstance(stored, dict):
        raw = stored.get("id")
    else:
        return None
    if raw is None:
        return None
    try:
        return raw if isinstance(raw, UUID) else UUID(str(raw))
    except ValueError:
        return None


def _decrypt_one(index: int, stored: StorageInput, key: EncryptionKey) -> DecryptionOutcome:
    try:
        return DecryptionOutcome.success(index, from_storage_shape(stored, key))
    except EncryptionError as e:
        record_id = _record_id(stored)
        logger.warning(
            "record_decryption_failed",
            index=index,
            record_id=str(record_id) if record_id else None,
            error_kind=e.kind.value if e.kind else None,
            field=e.field,
        )
        return DecryptionOutcome.failure(index, record_id, e)


def from_storage_shape_many(
    stored_records: Iterable[StorageInput],
    key: EncryptionKey,
    max_workers: Optional[int] = None,
) -> list[DecryptionOutcome]:
    """
    Decrypt a batch of records.

    One record's failure never aborts the others; each record gets its
    own outcome. The returned list is in input order even when records
    are decrypted in parallel.

    Args:
        stored_records: Storage-shaped records (models or raw dicts)
        key: The loaded encryption key
        max_workers: Thread count; defaults to the configured value.
            1 decrypts sequentially.
    """
    records = list(stored_records)
    if not records:
        return []

    if max_workers is None:
        max_workers = get_settings().crypto.batch_workers

    if max_workers <= 1 or len(records) == 1:
        return [_decrypt_one(i, r, key) for i, r in enumerate(records)]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(records))) as pool:
        # map() yields results in submission order
        return list(pool.map(
            lambda item: _decrypt_one(item[0], item[1], key),
            enumerate(records),
        ))
