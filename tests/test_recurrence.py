from datetime import date, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from models import IncomeFrequency, IncomeSource
from recurrence import (
    is_due,
    matches,
    occurrences_in_range,
    sunday_based_weekday,
    validate_recurrence,
)
from schemas import IncomeSourceIn


def _source(frequency: IncomeFrequency, **fields) -> IncomeSource:
    source = IncomeSource(
        id=1,
        user_id=1,
        name="Salary",
        amount_cents=100_000,
        frequency=frequency,
        start_date=fields.pop("start_date", date(2024, 1, 1)),
        auto_add=True,
        is_active=fields.pop("is_active", True),
    )
    for name, value in fields.items():
        setattr(source, name, value)
    return source


def test_sunday_is_day_zero():
    assert sunday_based_weekday(date(2024, 1, 7)) == 0
    assert sunday_based_weekday(date(2024, 1, 1)) == 1
    assert sunday_based_weekday(date(2024, 1, 6)) == 6


@pytest.mark.parametrize("day_of_week", range(7))
def test_weekly_matches_exactly_one_day_per_week(day_of_week):
    source = _source(IncomeFrequency.weekly, day_of_week=day_of_week)
    week = [date(2024, 3, 4) + timedelta(days=offset) for offset in range(7)]
    hits = [day for day in week if matches(day, source)]
    assert len(hits) == 1
    assert sunday_based_weekday(hits[0]) == day_of_week


def test_weekly_wednesday():
    source = _source(IncomeFrequency.weekly, day_of_week=3)
    assert occurrences_in_range(source, date(2024, 1, 1), date(2024, 1, 31)) == [
        date(2024, 1, 3),
        date(2024, 1, 10),
        date(2024, 1, 17),
        date(2024, 1, 24),
        date(2024, 1, 31),
    ]


def test_biweekly_is_anchored_to_start_date():
    source = _source(IncomeFrequency.biweekly, start_date=date(2024, 1, 5))
    dates = occurrences_in_range(source, date(2024, 1, 1), date(2024, 3, 31))
    assert dates[0] == date(2024, 1, 5)
    assert dates[-1] == date(2024, 3, 29)
    assert len(dates) == 7
    gaps = {(later - earlier).days for earlier, later in zip(dates, dates[1:])}
    assert gaps == {14}


def test_biweekly_never_matches_before_start():
    source = _source(IncomeFrequency.biweekly, start_date=date(2024, 1, 15))
    assert not matches(date(2024, 1, 1), source)
    assert matches(date(2024, 1, 29), source)


def test_monthly_31st_skips_short_months():
    source = _source(IncomeFrequency.monthly, day_of_month=31)
    dates = occurrences_in_range(source, date(2024, 1, 1), date(2024, 12, 31))
    assert len(dates) == 7
    assert [d.month for d in dates] == [1, 3, 5, 7, 8, 10, 12]
    assert date(2024, 2, 29) not in dates
    assert date(2024, 4, 30) not in dates


def test_monthly_30th_has_no_february_occurrence():
    source = _source(IncomeFrequency.monthly, day_of_month=30)
    dates = occurrences_in_range(source, date(2023, 2, 1), date(2023, 3, 31))
    assert dates == [date(2023, 3, 30)]


def test_custom_dates_match_day_of_month():
    source = _source(IncomeFrequency.custom, custom_dates=[30, 15, 15])
    assert source.custom_dates == [15, 30]
    dates = occurrences_in_range(source, date(2024, 1, 1), date(2024, 3, 31))
    assert dates == [
        date(2024, 1, 15),
        date(2024, 1, 30),
        date(2024, 2, 15),
        date(2024, 3, 15),
        date(2024, 3, 30),
    ]


def test_manual_never_matches():
    source = _source(IncomeFrequency.manual)
    assert occurrences_in_range(source, date(2024, 1, 1), date(2024, 12, 31)) == []


def test_enumeration_starts_at_source_start():
    source = _source(
        IncomeFrequency.monthly, day_of_month=10, start_date=date(2024, 2, 11)
    )
    dates = occurrences_in_range(source, date(2024, 1, 1), date(2024, 4, 30))
    assert dates == [date(2024, 3, 10), date(2024, 4, 10)]


def test_enumeration_is_repeatable_and_empty_for_inverted_window():
    source = _source(IncomeFrequency.weekly, day_of_week=5)
    first = occurrences_in_range(source, date(2024, 5, 1), date(2024, 5, 31))
    assert first == occurrences_in_range(source, date(2024, 5, 1), date(2024, 5, 31))
    assert occurrences_in_range(source, date(2024, 5, 31), date(2024, 5, 1)) == []


def test_is_due_requires_active_and_started_source():
    source = _source(
        IncomeFrequency.monthly, day_of_month=15, start_date=date(2024, 2, 1)
    )
    assert matches(date(2024, 1, 15), source)
    assert not is_due(date(2024, 1, 15), source)
    assert is_due(date(2024, 2, 15), source)

    source.is_active = False
    assert not is_due(date(2024, 2, 15), source)


@pytest.mark.parametrize(
    "frequency, fields, message",
    [
        (IncomeFrequency.monthly, {}, "day_of_month"),
        (IncomeFrequency.monthly, {"day_of_month": 32}, "day_of_month"),
        (IncomeFrequency.weekly, {"day_of_week": 7}, "day_of_week"),
        (IncomeFrequency.custom, {"custom_dates": []}, "custom date"),
        (IncomeFrequency.custom, {"custom_dates": [0, 15]}, "between 1 and 31"),
        (
            IncomeFrequency.weekly,
            {"day_of_week": 1, "day_of_month": 1},
            "must not set day_of_month",
        ),
        (IncomeFrequency.biweekly, {"day_of_week": 2}, "must not set day_of_week"),
        (IncomeFrequency.manual, {"custom_dates": [1]}, "must not set custom_dates"),
    ],
)
def test_validate_recurrence_rejects_malformed_definitions(frequency, fields, message):
    with pytest.raises(ValidationError, match=message):
        validate_recurrence(frequency, **fields)


def test_validate_recurrence_accepts_matching_fields():
    validate_recurrence(IncomeFrequency.weekly, day_of_week=0)
    validate_recurrence(IncomeFrequency.monthly, day_of_month=31)
    validate_recurrence(IncomeFrequency.custom, custom_dates=[1, 31])
    validate_recurrence(IncomeFrequency.biweekly)
    validate_recurrence(IncomeFrequency.manual)


def test_income_source_payload_is_validated_on_creation():
    with pytest.raises(PydanticValidationError, match="day_of_month"):
        IncomeSourceIn(
            name="Salary",
            amount_cents=100_000,
            frequency=IncomeFrequency.monthly,
            start_date=date(2024, 1, 1),
        )
