"""
Core Data Models for DATUM

These models define the strict schemas for everything that crosses a
boundary in the system:
1. What the UI hands the core (TransactionDraft / TransactionPatch)
2. What callers get back (Transaction - the decrypted, transient view)
3. What the remote store holds (StoredTransaction - ciphertext only for
   sensitive attributes)

DESIGN DECISION: Decrypted and storage-shaped records are different types.
A Transaction can never be handed to the store by accident because the
store only accepts StoredTransaction rows.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money movement."""
    EXPENSE = "expense"
    INCOME = "income"
    INVESTMENT = "investment"


class Mood(str, Enum):
    """
    How the user felt about a transaction.

    Stored in plaintext so the store can filter on it.
    """
    HAPPY = "happy"            # Happy / Worth It
    NECESSARY = "necessary"    # Necessary / Planned
    IMPULSE = "impulse"        # Impulse / Unplanned
    REGRET = "regret"          # Regret / Stress


# Sensitive attribute -> (ciphertext column, nonce column)
ENCRYPTED_COLUMNS: dict[str, tuple[str, str]] = {
    "amount": ("encrypted_amount", "iv_amount"),
    "notes": ("encrypted_notes", "iv_notes"),
}


def normalize_tags(tags: list[str]) -> list[str]:
    """Lowercase, strip and de-duplicate tag names, keeping first-seen order."""
    seen: list[str] = []
    for tag in tags:
        name = tag.strip().lower()
        if name and name not in seen:
            seen.append(name)
    return seen


# =============================================================================
# REFERENCE DATA (plaintext)
# =============================================================================

class Category(BaseModel):
    """
    Spending category.

    Names and colors are non-sensitive metadata and stay in plaintext.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(
        default=None,
        pattern=r"^#[0-9a-fA-F]{6}$",
        description="Hex color used by the dashboard"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Tag(BaseModel):
    """Free-form label attached to transactions (plaintext)."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('name')
    @classmethod
    def lowercase_name(cls, v: str) -> str:
        return v.lower()

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# =============================================================================
# ENCRYPTED FIELD
# =============================================================================

class EncryptedField(BaseModel):
    """
    One encrypted attribute as it crosses the storage boundary.

    All parts are standard base64 text. ``salt`` is only set for one-off
    password encryption; fields encrypted under the stored key never
    carry one.
    """
    model_config = ConfigDict(frozen=True)

    ciphertext: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)
    salt: Optional[str] = None


# =============================================================================
# UI BOUNDARY
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A fully validated form submission.

    The UI converts raw form strings into this before calling the core.
    The core never sees raw form input.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Annotated[
        Decimal,
        Field(gt=0, description="Positive amount (exact decimal)")
    ]
    type: TransactionType
    transaction_date: date
    category_id: Optional[UUID] = None
    mood: Optional[Mood] = None
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text notes (encrypted at rest)"
    )
    tags: list[str] = Field(default_factory=list)

    @field_validator('tags')
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        return normalize_tags(v)

    @field_validator('notes')
    @classmethod
    def empty_notes_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class TransactionPatch(BaseModel):
    """
    Partial update.

    Only fields that were explicitly set are applied. Setting ``notes``
    to None erases the stored notes.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Annotated[Decimal, Field(gt=0)]] = None
    type: Optional[TransactionType] = None
    transaction_date: Optional[date] = None
    category_id: Optional[UUID] = None
    mood: Optional[Mood] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[list[str]] = None

    @field_validator('tags')
    @classmethod
    def clean_tags(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return normalize_tags(v) if v is not None else None

    @field_validator('notes')
    @classmethod
    def empty_notes_to_none(cls, v: Optional[str]) -> Optional[str]:
        # Blank notes clear the stored notes, as on create
        return v or None

    @model_validator(mode='after')
    def reject_null_required(self) -> 'TransactionPatch':
        """Amount, type and date can be changed but never removed."""
        for name in ("amount", "type", "transaction_date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """The explicitly set fields, as Python values."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# =============================================================================
# DECRYPTED VIEW
# =============================================================================

class Transaction(BaseModel):
    """
    A transaction with sensitive attributes decrypted.

    TRANSIENT: owned by the caller that requested it. Never persisted;
    persistence always goes through the mapper.
    """

    id: UUID
    amount: Decimal
    type: TransactionType
    transaction_date: date
    category_id: Optional[UUID] = None
    mood: Optional[Mood] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


# =============================================================================
# STORAGE SHAPE
# =============================================================================

class StoredTransaction(BaseModel):
    """
    The at-rest representation of a transaction.

    Sensitive attributes are (ciphertext, nonce) column pairs of base64
    text. Encrypted columns are optional here: a row with a
    missing column must still load so the mapper can report exactly which
    field is missing.
    """
    model_config = ConfigDict(extra="ignore")

    id: UUID = Field(default_factory=uuid4)

    # Encrypted columns (opaque to the store)
    encrypted_amount: Optional[str] = None
    iv_amount: Optional[str] = None
    encrypted_notes: Optional[str] = None
    iv_notes: Optional[str] = None

    # Plaintext columns
    type: TransactionType
    transaction_date: date
    category_id: Optional[UUID] = None
    mood: Optional[Mood] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator(
        'encrypted_amount', 'iv_amount', 'encrypted_notes', 'iv_notes',
        'category_id', 'mood',
        mode='before',
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        # Sheet-style stores hand back "" for empty cells
        return None if v == "" else v

    def encrypted_field(self, attribute: str) -> tuple[Optional[str], Optional[str]]:
        """(ciphertext, nonce) column values for a sensitive attribute."""
        ciphertext_column, nonce_column = ENCRYPTED_COLUMNS[attribute]
        return getattr(self, ciphertext_column), getattr(self, nonce_column)

    def to_record(self) -> dict[str, Any]:
        """Plain dict of JSON-safe scalars for the remote store."""
        return self.model_dump(mode="json")


# =============================================================================
# ANALYSIS MODELS
# =============================================================================

class CashFlowSummary(BaseModel):
    """Totals computed client-side after decryption."""

    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    investments: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)
    undecryptable_count: int = Field(
        default=0,
        ge=0,
        description="Records left out of the totals because they failed to decrypt"
    )

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses - self.investments


class SpendingBucket(BaseModel):
    """Spending grouped under one key (category id, mood, tag)."""

    key: str
    amount: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)
