"""
Recurrence date arithmetic.

Month-based steps clamp to the last day of the target month
(Jan 31 + 1 month = Feb 28/29), which relativedelta does natively.
"""

from datetime import date

from dateutil.relativedelta import relativedelta

from src.models.ledger import RecurringFrequency


MAX_OCCURRENCES = 1000


def step(frequency, interval: int = 1) -> relativedelta:
    """The relativedelta of one recurrence; unknown frequencies step monthly."""
    try:
        frequency = RecurringFrequency(frequency)
    except ValueError:
        frequency = RecurringFrequency.MONTHLY

    if frequency == RecurringFrequency.WEEKLY:
        return relativedelta(weeks=interval)
    if frequency == RecurringFrequency.QUARTERLY:
        return relativedelta(months=3 * interval)
    if frequency == RecurringFrequency.YEARLY:
        return relativedelta(years=interval)
    return relativedelta(months=interval)


def advance(from_date: date, frequency, interval: int = 1) -> date:
    return from_date + step(frequency, interval)


def count_occurrences(start: date, end: date, frequency, interval: int = 1) -> int:
    """
    Number of occurrences from start to end inclusive, the first included.

    Each occurrence is derived from the previous one, the way the
    materializer advances templates, so clamped month ends stay clamped.
    """
    occurrences = 1
    current = start
    while occurrences < MAX_OCCURRENCES:
        current = advance(current, frequency, interval)
        if current > end:
            break
        occurrences += 1
    return occurrences
