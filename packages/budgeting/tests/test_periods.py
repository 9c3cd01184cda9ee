"""Tests for budget period boundaries."""

from datetime import date, datetime, timezone

import pytest

from packages.budgeting.periods import (
    BudgetPeriod,
    current_period,
    local_date_of,
    period_containing,
)


class TestPeriodContaining:
    def test_day_one_belongs_to_previous_month(self):
        period = period_containing(date(2025, 1, 1))
        assert period.as_dict() == {"start": "2024-12-03", "end": "2025-01-02"}

    def test_day_two_belongs_to_previous_month(self):
        period = period_containing(date(2025, 3, 2))
        assert period.as_dict() == {"start": "2025-02-03", "end": "2025-03-02"}

    def test_day_three_starts_new_period(self):
        period = period_containing(date(2025, 1, 3))
        assert period.as_dict() == {"start": "2025-01-03", "end": "2025-02-02"}

    def test_end_of_month(self):
        period = period_containing(date(2025, 1, 31))
        assert period.start == date(2025, 1, 3)
        assert period.end == date(2025, 2, 2)

    def test_december_rolls_into_next_year(self):
        period = period_containing(date(2024, 12, 15))
        assert period.as_dict() == {"start": "2024-12-03", "end": "2025-01-02"}

    def test_every_day_is_inside_its_period(self):
        day = date(2024, 1, 1)
        while day < date(2025, 1, 1):
            assert period_containing(day).contains(day)
            day = date.fromordinal(day.toordinal() + 1)


class TestCurrentPeriod:
    def test_uses_ledger_timezone(self):
        # 2025-01-02 20:00 UTC is already the 3rd in Jakarta (UTC+7)
        now = datetime(2025, 1, 2, 20, 0, tzinfo=timezone.utc)
        assert current_period(now).start_iso == "2025-01-03"

    def test_naive_datetime_is_local(self):
        assert current_period(datetime(2025, 1, 2, 23, 59)).start_iso == "2024-12-03"


class TestBudgetPeriod:
    def test_previous_and_next(self):
        period = BudgetPeriod.starting(date(2025, 1, 3))
        assert period.previous().as_dict() == {"start": "2024-12-03", "end": "2025-01-02"}
        assert period.next().as_dict() == {"start": "2025-02-03", "end": "2025-03-02"}

    def test_from_iso_accepts_timestamps(self):
        period = BudgetPeriod.from_iso("2025-01-03T00:00:00", "2025-02-02")
        assert period.start == date(2025, 1, 3)

    def test_from_iso_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            BudgetPeriod.from_iso("2025-02-03", "2025-01-02")

    def test_contains_is_inclusive(self):
        period = BudgetPeriod.starting(date(2025, 1, 3))
        assert period.contains(date(2025, 1, 3))
        assert period.contains(date(2025, 2, 2))
        assert not period.contains(date(2025, 2, 3))


class TestLocalDateOf:
    def test_plain_date_string(self):
        assert local_date_of("2025-01-05") == date(2025, 1, 5)

    def test_timestamp_converted_to_jakarta(self):
        assert local_date_of("2025-01-02T18:30:00+00:00") == date(2025, 1, 3)

    def test_zulu_suffix(self):
        assert local_date_of("2025-01-02T10:00:00Z") == date(2025, 1, 2)

    def test_garbage_is_none(self):
        assert local_date_of("not a date") is None
        assert local_date_of(None) is None
        assert local_date_of("") is None
