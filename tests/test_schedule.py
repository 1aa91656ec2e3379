"""Tests for recurrence date arithmetic."""

from datetime import date

import pytest

from src.ledger.schedule import MAX_OCCURRENCES, advance, count_occurrences
from src.models.ledger import RecurringFrequency


class TestAdvance:
    """Tests for advance()."""

    @pytest.mark.parametrize(
        "frequency, interval, expected",
        [
            (RecurringFrequency.WEEKLY, 1, date(2025, 1, 8)),
            (RecurringFrequency.WEEKLY, 2, date(2025, 1, 15)),
            (RecurringFrequency.MONTHLY, 1, date(2025, 2, 1)),
            (RecurringFrequency.MONTHLY, 3, date(2025, 4, 1)),
            (RecurringFrequency.QUARTERLY, 1, date(2025, 4, 1)),
            (RecurringFrequency.QUARTERLY, 2, date(2025, 7, 1)),
            (RecurringFrequency.YEARLY, 1, date(2026, 1, 1)),
        ],
    )
    def test_steps(self, frequency, interval, expected):
        assert advance(date(2025, 1, 1), frequency, interval) == expected

    def test_month_end_clamps(self):
        assert advance(date(2025, 1, 31), "monthly") == date(2025, 2, 28)
        assert advance(date(2024, 1, 31), "monthly") == date(2024, 2, 29)

    def test_leap_day_yearly(self):
        assert advance(date(2024, 2, 29), "yearly") == date(2025, 2, 28)

    def test_unknown_frequency_steps_monthly(self):
        assert advance(date(2025, 1, 15), "fortnightly") == date(2025, 2, 15)


class TestCountOccurrences:
    """Tests for count_occurrences()."""

    def test_inclusive_of_both_ends(self):
        assert count_occurrences(date(2025, 1, 1), date(2025, 3, 1), "monthly") == 3

    def test_end_before_second_occurrence(self):
        assert count_occurrences(date(2025, 1, 1), date(2025, 1, 20), "monthly") == 1

    def test_weekly(self):
        assert count_occurrences(date(2025, 1, 1), date(2025, 1, 29), "weekly") == 5

    def test_capped(self):
        assert count_occurrences(date(2000, 1, 1), date(2100, 1, 1), "weekly") == MAX_OCCURRENCES


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
