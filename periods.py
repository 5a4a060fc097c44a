from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from errors import ValidationError

EPOCH = date(1970, 1, 1)
# Ten years of daily points.
MAX_TRAILING_DAYS = 3660


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError("Start date must not be after end date")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def month_period(day: date, slug: str = "this_month") -> Period:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return Period(slug, first, next_month - date.resolution)


def trailing_days(today: date, days: int) -> Period:
    if days < 1:
        raise ValidationError("History window must cover at least one day")
    if days > MAX_TRAILING_DAYS:
        raise ValidationError(
            f"History window must not exceed {MAX_TRAILING_DAYS} days"
        )
    return Period("trailing", today - timedelta(days=days - 1), today)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "all":
        return Period("all", EPOCH, today)
    if period == "last_month":
        last_month_end = today.replace(day=1) - date.resolution
        return month_period(last_month_end, "last_month")
    if period == "custom":
        if not start or not end:
            raise ValidationError("Custom period requires start and end dates")
        try:
            start_date = date.fromisoformat(start)
            end_date = date.fromisoformat(end)
        except ValueError as exc:
            raise ValidationError(f"Invalid period date: {exc}") from exc
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValidationError(f"Unknown period: {period}")
    return month_period(today)
