"""Recurring transaction templates and their daily materializer."""

from src.ledger.schedule import MAX_OCCURRENCES, advance, count_occurrences, step
from src.recurring.materializer import RecurringMaterializer

__all__ = [
    "MAX_OCCURRENCES",
    "RecurringMaterializer",
    "advance",
    "count_occurrences",
    "step",
]
