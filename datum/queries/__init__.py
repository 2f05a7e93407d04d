"""Client-side summaries package."""

from datum.queries.summary import (
    NO_MOOD,
    UNCATEGORIZED,
    spending_by_category,
    spending_by_mood,
    summarize,
)

__all__ = [
    "NO_MOOD",
    "UNCATEGORIZED",
    "spending_by_category",
    "spending_by_mood",
    "summarize",
]
