"""
Shared fixtures.

No test touches the network or the real key custody file: stores and
custody backends are in-memory, and file-backend tests use tmp_path.
"""

from datetime import date
from decimal import Decimal

import pytest

from datum.audit.logger import AuditLogger
from datum.config import get_settings
from datum.crypto.keys import generate_random_key
from datum.custody.store import InMemoryKeyValueBackend, KeyCustodyStore
from datum.models.transaction import TransactionDraft, TransactionType
from datum.services.storage.memory import InMemoryAuditStorage, InMemoryRecordStore


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    """Each test sees settings built from its own environment."""
    monkeypatch.setenv("DATUM_CUSTODY_STORAGE_PATH", str(tmp_path / "keystore.json"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def key():
    return generate_random_key()


@pytest.fixture
def other_key():
    return generate_random_key()


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(storage=audit_storage)


@pytest.fixture
def custody():
    return KeyCustodyStore(backend=InMemoryKeyValueBackend(), namespace="test")


@pytest.fixture
def coffee_draft():
    return TransactionDraft(
        amount=Decimal("42.50"),
        type=TransactionType.EXPENSE,
        transaction_date=date(2024, 3, 14),
        notes="coffee with Jo",
        tags=["Cafe", "social"],
    )
