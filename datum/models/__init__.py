"""
Data Models Package

This package contains all Pydantic models used in DATUM.
All data flowing through the system must conform to these schemas.
"""

from datum.models.transaction import (
    ENCRYPTED_COLUMNS,
    CashFlowSummary,
    Category,
    EncryptedField,
    Mood,
    SpendingBucket,
    StoredTransaction,
    Tag,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
)
from datum.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "ENCRYPTED_COLUMNS",
    "CashFlowSummary",
    "Category",
    "EncryptedField",
    "Mood",
    "SpendingBucket",
    "StoredTransaction",
    "Tag",
    "Transaction",
    "TransactionDraft",
    "TransactionPatch",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
