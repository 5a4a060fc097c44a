import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, assert_never
from zoneinfo import ZoneInfo

from config import get_settings
from errors import DuplicateEntry, RepositoryError, ValidationError
from models import IncomeFrequency, IncomeSource, IncomeTransaction
from repository import LedgerRepository

logger = logging.getLogger(__name__)

BIWEEKLY_PERIOD_DAYS = 14


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def sunday_based_weekday(day: date) -> int:
    """Day of week with Sunday = 0 through Saturday = 6."""
    return day.isoweekday() % 7


def validate_recurrence(
    frequency: IncomeFrequency,
    *,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    custom_dates: Optional[Iterable[int]] = None,
) -> None:
    """Reject a recurrence whose populated fields do not match its frequency.

    Exactly the field belonging to ``frequency`` may be set; BIWEEKLY and
    MANUAL sources carry none of them.
    """
    custom = list(custom_dates) if custom_dates is not None else None
    populated = {
        name
        for name, value in (
            ("day_of_week", day_of_week),
            ("day_of_month", day_of_month),
            ("custom_dates", custom),
        )
        if value is not None
    }

    if frequency is IncomeFrequency.weekly:
        required = "day_of_week"
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise ValidationError("WEEKLY sources need day_of_week between 0 and 6")
    elif frequency is IncomeFrequency.monthly:
        required = "day_of_month"
        if day_of_month is None or not 1 <= day_of_month <= 31:
            raise ValidationError("MONTHLY sources need day_of_month between 1 and 31")
    elif frequency is IncomeFrequency.custom:
        required = "custom_dates"
        if not custom:
            raise ValidationError("CUSTOM sources need at least one custom date")
        if any(not 1 <= day <= 31 for day in custom):
            raise ValidationError("Custom dates must be days of month between 1 and 31")
    elif frequency is IncomeFrequency.biweekly or frequency is IncomeFrequency.manual:
        required = None
    else:
        assert_never(frequency)

    unexpected = populated - {required}
    if unexpected:
        fields = ", ".join(sorted(unexpected))
        raise ValidationError(f"{frequency.value} sources must not set {fields}")


def matches(day: date, source: IncomeSource) -> bool:
    """Return whether ``day`` is an occurrence date of ``source``.

    Pure date predicate: activation state and the start date are the
    caller's concern (see ``is_due``). BIWEEKLY cadence is anchored to the
    source's start date. A MONTHLY day that a month does not have (the 31st
    in April) yields no occurrence that month rather than snapping to the
    month end.
    """
    frequency = IncomeFrequency(source.frequency)
    if frequency is IncomeFrequency.weekly:
        return sunday_based_weekday(day) == source.day_of_week
    elif frequency is IncomeFrequency.biweekly:
        elapsed = (day - source.start_date).days
        return elapsed >= 0 and elapsed % BIWEEKLY_PERIOD_DAYS == 0
    elif frequency is IncomeFrequency.monthly:
        return day.day == source.day_of_month
    elif frequency is IncomeFrequency.custom:
        return day.day in (source.custom_dates or ())
    elif frequency is IncomeFrequency.manual:
        return False
    else:
        assert_never(frequency)


def is_due(day: date, source: IncomeSource) -> bool:
    return source.is_active and day >= source.start_date and matches(day, source)


def occurrences_in_range(source: IncomeSource, start: date, end: date) -> list[date]:
    current = max(source.start_date, start)
    dates: list[date] = []
    while current <= end:
        if matches(current, source):
            dates.append(current)
        current += timedelta(days=1)
    return dates


@dataclass(frozen=True)
class SourceFailure:
    source_id: int
    source_name: str
    message: str


@dataclass
class DailyCheckResult:
    today: date
    created: list[IncomeTransaction] = field(default_factory=list)
    errors: list[SourceFailure] = field(default_factory=list)


class IncomeScheduler:
    """Materializes today's auto-postings, at most one per source per day.

    Each source's posting is committed on its own, so a storage failure for
    one source never discards the postings already made for others.
    """

    def __init__(self, repository: LedgerRepository) -> None:
        self.repository = repository

    def run_daily_check(self, today: Optional[date] = None) -> DailyCheckResult:
        today = today or local_today()
        result = DailyCheckResult(today=today)
        for source in self.repository.list_active_income_sources():
            if not source.auto_add or source.start_date > today:
                continue
            if not is_due(today, source):
                continue
            source_id, source_name = source.id, source.name
            try:
                entry = self._post_occurrence(source, today)
                self.repository.commit()
            except RepositoryError as exc:
                # Only this source is undone; it is left for the next run.
                self.repository.rollback()
                logger.warning(
                    f"daily_check: source_id={source_id} today={today} "
                    f"outcome=failed error={exc}"
                )
                result.errors.append(
                    SourceFailure(
                        source_id=source_id,
                        source_name=source_name,
                        message=str(exc),
                    )
                )
                continue
            if entry is not None:
                result.created.append(entry)
        logger.info(
            f"daily_check: today={today} posted={len(result.created)} "
            f"failed={len(result.errors)}"
        )
        return result

    def _post_occurrence(
        self, source: IncomeSource, occurrence_date: date
    ) -> Optional[IncomeTransaction]:
        existing = self.repository.find_income_transaction(
            source.id, occurrence_date, auto_added=True
        )
        if existing is not None:
            return None

        entry = IncomeTransaction(
            user_id=source.user_id,
            income_source_id=source.id,
            amount_cents=source.amount_cents,
            date=occurrence_date,
            description=source.name,
            auto_added=True,
            original_amount_cents=source.original_amount_cents,
            original_currency=source.original_currency,
        )
        try:
            created = self.repository.insert_income_transaction(entry)
        except DuplicateEntry:
            logger.info(
                f"daily_check: source_id={source.id} today={occurrence_date} "
                "outcome=already_posted"
            )
            return None
        logger.info(
            f"daily_check: source_id={source.id} today={occurrence_date} "
            f"outcome=posted amount_cents={created.amount_cents}"
        )
        return created
