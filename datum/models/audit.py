"""
Audit Models for DATUM

Every significant key and record operation is logged for audit purposes.
This provides:
1. Traceability of key lifecycle events (created, loaded, cleared)
2. Debugging information when records fail to decrypt
3. A history the user can inspect

CRITICAL: Audit events never contain plaintext amounts, notes,
passwords or key material. Only identifiers, counts and error kinds.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Key lifecycle
    KEY_GENERATED = "key_generated"
    KEY_DERIVED = "key_derived"
    KEY_LOADED = "key_loaded"
    KEY_CLEARED = "key_cleared"

    # Record lifecycle
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTIONS_LISTED = "transactions_listed"

    # Failures
    DECRYPTION_FAILED = "decryption_failed"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Identifiers and counts only; the builder below is the usual way in.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Event id"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC time the event was created"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Subject of the event
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'key')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="Transaction id, when the event is about one"
    )

    # Groups the events of one user action
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one listing request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Short summary shown in the audit view"
    )

    # Additional data (event-specific, never plaintext values)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific ids, counts and field names"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="True for events caused directly by the user"
    )

    def to_log_dict(self) -> dict:
        """
        Flat dict for the structlog renderer.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        One audit sheet row (strings, empty for missing).

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_code,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Factory methods for every audit event the core emits.

    Usage:
        event = AuditEventBuilder.key_generated(method="random")
        event = AuditEventBuilder.transaction_created(transaction_id, correlation_id)
    """

    @staticmethod
    def key_generated(method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_GENERATED,
            entity_type="key",
            description=f"Encryption key set up ({method})",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def key_derived(new_salt: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_DERIVED,
            entity_type="key",
            description="Encryption key derived from password",
            details={"new_salt": new_salt},
            is_user_action=True,
        )

    @staticmethod
    def key_loaded(password_derived: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_LOADED,
            entity_type="key",
            description="Encryption key loaded from local custody",
            details={"password_derived": password_derived},
        )

    @staticmethod
    def key_cleared() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="key",
            description="Encryption key removed from local custody",
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Encrypted transaction saved",
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({len(fields)} fields)",
            details={"fields": sorted(fields)},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def transactions_listed(
        result_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_LISTED,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Listed {result_count} transactions ({failed_count} undecryptable)",
            details={
                "result_count": result_count,
                "failed_count": failed_count,
            },
        )

    @staticmethod
    def decryption_failed(
        transaction_id: Optional[UUID],
        error_kind: str,
        field: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECRYPTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction could not be decrypted: {error_kind}",
            error_code=error_kind,
            details={"field": field} if field else {},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Remote store error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
