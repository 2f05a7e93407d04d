"""
Tests for DATUM

Test strategy:
1. Unit tests for individual components (models, codec, mapper)
2. Integration tests for flows (real crypto, in-memory stores)
3. No real API calls in tests (fake worksheets instead)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from datum.crypto.errors import ErrorKind, MappingError
from datum.models.transaction import (
    CashFlowSummary,
    Category,
    EncryptedField,
    Mood,
    StoredTransaction,
    Tag,
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
from datum.records.outcome import DecryptionOutcome


class TestTransactionModels:
    """Tests for transaction-related Pydantic models."""

    def test_draft_creation(self):
        """Test TransactionDraft model creation."""
        draft = TransactionDraft(
            amount=Decimal("42.50"),
            type=TransactionType.EXPENSE,
            transaction_date=date(2024, 3, 14),
            mood=Mood.NECESSARY,
        )
        assert draft.amount == Decimal("42.50")
        assert draft.notes is None
        assert draft.tags == []

    def test_draft_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in ("0", "-10.00"):
            with pytest.raises(ValueError):
                TransactionDraft(
                    amount=Decimal(amount),
                    type=TransactionType.EXPENSE,
                    transaction_date=date(2024, 3, 14),
                )

    def test_draft_normalizes_tags(self):
        """Test that tags are lowercased, stripped and de-duplicated."""
        draft = TransactionDraft(
            amount=Decimal("1"),
            type=TransactionType.INCOME,
            transaction_date=date(2024, 3, 14),
            tags=[" Food ", "food", "TRAVEL", ""],
        )
        assert draft.tags == ["food", "travel"]

    def test_draft_blank_notes_become_none(self):
        """Test that whitespace-only notes are dropped."""
        draft = TransactionDraft(
            amount=Decimal("1"),
            type=TransactionType.INCOME,
            transaction_date=date(2024, 3, 14),
            notes="   ",
        )
        assert draft.notes is None

    def test_patch_tracks_explicit_fields(self):
        """Test that only explicitly set fields count as changes."""
        patch = TransactionPatch(mood=Mood.HAPPY, notes=None)
        assert patch.changes() == {"mood": Mood.HAPPY, "notes": None}

    def test_patch_cannot_clear_type(self):
        """Test that required fields cannot be removed by a patch."""
        with pytest.raises(ValueError):
            TransactionPatch(type=None)

    def test_stored_transaction_blank_cells(self):
        """Test that empty strings from sheet cells become None."""
        stored = StoredTransaction(
            type=TransactionType.EXPENSE,
            transaction_date=date(2024, 3, 14),
            encrypted_notes="",
            iv_notes="",
            mood="",
        )
        assert stored.encrypted_field("notes") == (None, None)
        assert stored.mood is None

    def test_stored_record_is_json_safe(self):
        """Test that to_record produces plain strings for the store."""
        record = StoredTransaction(
            type=TransactionType.INVESTMENT,
            transaction_date=date(2024, 3, 14),
        ).to_record()
        assert record["type"] == "investment"
        assert record["transaction_date"] == "2024-03-14"
        assert isinstance(record["id"], str)

    def test_encrypted_field_is_frozen(self):
        """Test that EncryptedField cannot be modified."""
        field = EncryptedField(ciphertext="YQ==", nonce="Yg==")
        with pytest.raises(ValueError):
            field.ciphertext = "Yw=="

    def test_category_color_validation(self):
        """Test that category colors must be hex."""
        assert Category(name="Groceries", color="#00ff00").color == "#00ff00"
        with pytest.raises(ValueError):
            Category(name="Groceries", color="green")

    def test_tag_lowercased(self):
        """Test that tag names are lowercased."""
        assert Tag(name="  Coffee ").name == "coffee"

    def test_cash_flow_net(self):
        """Test the net property."""
        summary = CashFlowSummary(
            income=Decimal("100"),
            expenses=Decimal("30.5"),
            investments=Decimal("20"),
        )
        assert summary.net == Decimal("49.5")


class TestDecryptionOutcome:
    """Tests for per-record outcomes."""

    def test_needs_exactly_one_result(self):
        """Test that an outcome is either a success or a failure."""
        with pytest.raises(ValueError):
            DecryptionOutcome(index=0)

    def test_failure_outcome(self):
        """Test failure outcomes carry kind, field and user message."""
        record_id = uuid4()
        outcome = DecryptionOutcome.failure(
            2, record_id, MappingError("missing", field="amount"),
        )
        assert not outcome.ok
        assert outcome.index == 2
        assert outcome.error_kind == ErrorKind.MAPPING_FAILURE
        assert outcome.error_field == "amount"
        assert outcome.user_message == MappingError.user_message


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.KEY_LOADED,
            description="Key loaded",
        )
        assert event.event_type == AuditEventType.KEY_LOADED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.transactions_listed(result_count=5, failed_count=1)
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transactions_listed"
        assert log_dict["details"]["failed_count"] == 1

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.decryption_failed(
            transaction_id=uuid4(),
            error_kind="authentication_failure",
            field="amount",
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "decryption_failed"  # event_type
        assert row[3] == "error"  # severity
        assert row[9] == "authentication_failure"  # error_code
        assert row[11] == "False"  # is_user_action

    def test_audit_event_builder_transaction_created(self):
        """Test AuditEventBuilder.transaction_created."""
        correlation_id = uuid4()
        transaction_id = uuid4()

        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == transaction_id
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_key_cleared(self):
        """Test AuditEventBuilder.key_cleared is a warning."""
        event = AuditEventBuilder.key_cleared()
        assert event.event_type == AuditEventType.KEY_CLEARED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_type == "key"


class TestTransactionTypes:
    """Tests for enum values stored in plaintext."""

    def test_all_types_exist(self):
        """Test that all expected transaction types exist."""
        assert {t.value for t in TransactionType} == {"expense", "income", "investment"}

    def test_mood_values(self):
        """Test mood values."""
        assert Mood("impulse") == Mood.IMPULSE
        assert len(Mood) == 4
