"""
Audit Logger

DESIGN DECISION: Key lifecycle and record operations leave an audit trail
that never contains the data it protects. Events carry ids, counts,
field names and error kinds only.

A failed audit write is reported locally and swallowed here: losing an
audit row must not lose the user's transaction. Related events from one
user action share a correlation id.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from datum.models.audit import AuditEvent, AuditEventBuilder
from datum.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes AuditEvents to the structured log and, when configured, to
    an append-only audit store.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("datum.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False when the audit store raised or declined the write;
        True otherwise, including when there is no store.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                stored = await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
            if not stored:
                self._logger.error(
                    "audit_storage_failed",
                    event_id=str(event.event_id),
                )
            return stored

        return True

    async def log_key_generated(self, method: str) -> None:
        await self.log(AuditEventBuilder.key_generated(method=method))

    async def log_key_derived(self, new_salt: bool) -> None:
        await self.log(AuditEventBuilder.key_derived(new_salt=new_salt))

    async def log_key_loaded(self, password_derived: bool) -> None:
        await self.log(AuditEventBuilder.key_loaded(password_derived=password_derived))

    async def log_key_cleared(self) -> None:
        await self.log(AuditEventBuilder.key_cleared())

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log transaction creation (no amount, no notes)."""
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log which fields changed, never their values."""
        event = AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_listed(
        self,
        result_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transactions_listed(
            result_count=result_count,
            failed_count=failed_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_decryption_failed(
        self,
        transaction_id: Optional[UUID],
        error_kind: str,
        field: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a record that failed to decrypt."""
        event = AuditEventBuilder.decryption_failed(
            transaction_id=transaction_id,
            error_kind=error_kind,
            field=field,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log remote store error."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """One id per user action (e.g. a dashboard load), shared by its events."""
    return uuid4()
