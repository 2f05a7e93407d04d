"""
Client-Side Summaries

DESIGN DECISION: Aggregation is DETERMINISTIC and runs after decryption.
The store cannot sum amounts it cannot read, so every total here is
computed in the client from decrypted transactions, in Decimal.

Failed outcomes never contribute a guessed value. They are counted in
``undecryptable_count`` so the dashboard can say the totals are partial.
"""

from decimal import Decimal
from typing import Callable, Iterable, Optional

from datum.models.transaction import (
    CashFlowSummary,
    SpendingBucket,
    Transaction,
    TransactionType,
)
from datum.records.outcome import DecryptionOutcome


UNCATEGORIZED = "uncategorized"
NO_MOOD = "none"


def summarize(outcomes: Iterable[DecryptionOutcome]) -> CashFlowSummary:
    """Income, expense and investment totals over decrypted records."""
    totals = {
        TransactionType.INCOME: Decimal("0"),
        TransactionType.EXPENSE: Decimal("0"),
        TransactionType.INVESTMENT: Decimal("0"),
    }
    count = 0
    undecryptable = 0

    for outcome in outcomes:
        if not outcome.ok:
            undecryptable += 1
            continue
        totals[outcome.transaction.type] += outcome.transaction.amount
        count += 1

    return CashFlowSummary(
        income=totals[TransactionType.INCOME],
        expenses=totals[TransactionType.EXPENSE],
        investments=totals[TransactionType.INVESTMENT],
        transaction_count=count,
        undecryptable_count=undecryptable,
    )


def _expenses(outcomes: Iterable[DecryptionOutcome]) -> list[Transaction]:
    return [
        o.transaction for o in outcomes
        if o.ok and o.transaction.type == TransactionType.EXPENSE
    ]


def _group_spending(
    transactions: list[Transaction],
    key_of: Callable[[Transaction], Optional[str]],
    default: str,
) -> list[SpendingBucket]:
    groups: dict[str, SpendingBucket] = {}

    for transaction in transactions:
        key = key_of(transaction) or default
        bucket = groups.setdefault(key, SpendingBucket(key=key))
        bucket.amount += transaction.amount
        bucket.count += 1

    # Largest spend first; ties by key for a stable order
    return sorted(groups.values(), key=lambda b: (-b.amount, b.key))


def spending_by_category(outcomes: Iterable[DecryptionOutcome]) -> list[SpendingBucket]:
    """Expense totals per category id."""
    return _group_spending(
        _expenses(outcomes),
        lambda t: str(t.category_id) if t.category_id else None,
        UNCATEGORIZED,
    )


def spending_by_mood(outcomes: Iterable[DecryptionOutcome]) -> list[SpendingBucket]:
    """Expense totals per mood."""
    return _group_spending(
        _expenses(outcomes),
        lambda t: t.mood.value if t.mood else None,
        NO_MOOD,
    )
