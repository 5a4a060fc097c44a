"""Read-side computations over the materialized ledger.

All amounts are integer cents. Totals come only from persisted rows;
projected occurrences live in ``IncomeProjection`` and are never added to a
realized total.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from errors import ArithmeticInvariantViolation, ValidationError
from periods import Period, month_period, trailing_days
from recurrence import local_today, occurrences_in_range
from repository import LedgerRepository

logger = logging.getLogger(__name__)


def _require_cents(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer amount of cents")
    return value


def _checked_sum(value: int, label: str) -> int:
    # Amount columns carry non-negative check constraints.
    if value < 0:
        raise ArithmeticInvariantViolation(f"{label} sum is negative: {value}")
    return value


@dataclass(frozen=True)
class PeriodTotals:
    start: date
    end: date
    income_cents: int
    expense_cents: int

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents


class PeriodAggregator:
    def __init__(self, repository: LedgerRepository) -> None:
        self.repository = repository

    def totals_for_period(self, start: date, end: date) -> PeriodTotals:
        period = Period("custom", start, end)
        income = self.repository.sum_income_cents(period.start, period.end)
        expenses = self.repository.sum_expense_cents(period.start, period.end)
        return PeriodTotals(
            start=period.start,
            end=period.end,
            income_cents=_checked_sum(income, "Income"),
            expense_cents=_checked_sum(expenses, "Expense"),
        )

    def monthly_totals(self, today: Optional[date] = None) -> PeriodTotals:
        period = month_period(today or local_today())
        return self.totals_for_period(period.start, period.end)


@dataclass(frozen=True)
class ProjectedOccurrence:
    source_id: int
    source_name: str
    date: date
    amount_cents: int


@dataclass
class IncomeProjection:
    start: date
    end: date
    occurrences: list[ProjectedOccurrence] = field(default_factory=list)
    projected: bool = True

    @property
    def total_cents(self) -> int:
        return sum(item.amount_cents for item in self.occurrences)


class IncomeProjector:
    """Forward-looking income from the recurrence rules of auto-adding sources."""

    def __init__(self, repository: LedgerRepository) -> None:
        self.repository = repository

    def project(
        self, start: date, end: date, *, include_materialized: bool = False
    ) -> IncomeProjection:
        period = Period("projection", start, end)
        projection = IncomeProjection(start=period.start, end=period.end)
        for source in self.repository.list_active_income_sources():
            if not source.auto_add:
                continue
            dates = occurrences_in_range(source, period.start, period.end)
            if not dates:
                continue
            if not include_materialized:
                posted = {
                    txn.date
                    for txn in self.repository.query_income_transactions(
                        period.start, period.end, source_id=source.id
                    )
                    if txn.auto_added
                }
                dates = [day for day in dates if day not in posted]
            projection.occurrences.extend(
                ProjectedOccurrence(
                    source_id=source.id,
                    source_name=source.name,
                    date=day,
                    amount_cents=source.amount_cents,
                )
                for day in dates
            )
        projection.occurrences.sort(key=lambda item: (item.date, item.source_id))
        return projection


@dataclass(frozen=True)
class BalancePoint:
    date: date
    balance_cents: int


class BalanceEngine:
    def __init__(self, repository: LedgerRepository) -> None:
        self.repository = repository

    def current_balance(self) -> int:
        starting = self.repository.get_starting_balance()
        income = _checked_sum(self.repository.sum_income_cents(), "Income")
        expenses = _checked_sum(self.repository.sum_expense_cents(), "Expense")
        return starting + income - expenses

    def set_starting_balance(self, value: int) -> None:
        value = _require_cents(value, "Starting balance")
        self.repository.set_starting_balance(value)
        logger.info(f"starting_balance_set: value_cents={value}")

    def correct_balance_to(self, new_balance: int) -> int:
        """Make the current balance equal ``new_balance``.

        Only the starting balance moves; no ledger entry is created or
        removed. Returns the new starting balance.
        """
        new_balance = _require_cents(new_balance, "Balance")
        delta = new_balance - self.current_balance()
        starting = self.repository.get_starting_balance() + delta
        self.repository.set_starting_balance(starting)

        resulting = self.current_balance()
        if resulting != new_balance:
            raise ArithmeticInvariantViolation(
                f"Balance is {resulting} after correcting to {new_balance}"
            )
        logger.info(
            f"balance_corrected: target_cents={new_balance} delta_cents={delta} "
            f"starting_balance_cents={starting}"
        )
        return starting

    def balance_history(
        self, today: Optional[date] = None, days: int = 30
    ) -> list[BalancePoint]:
        """End-of-day balances for the trailing ``days`` days, oldest first.

        Walks backwards from the balance at the end of ``today``:
        balance(d - 1) = balance(d) - income(d) + expenses(d).
        """
        window = trailing_days(today or local_today(), days)
        after = window.end + timedelta(days=1)
        balance = (
            self.current_balance()
            - self.repository.sum_income_cents(start=after)
            + self.repository.sum_expense_cents(start=after)
        )

        net_by_day: dict[date, int] = defaultdict(int)
        for txn in self.repository.query_income_transactions(window.start, window.end):
            net_by_day[txn.date] += txn.amount_cents
        for expense in self.repository.query_expenses(window.start, window.end):
            net_by_day[expense.date] -= expense.amount_cents

        points: list[BalancePoint] = []
        day = window.end
        while day >= window.start:
            points.append(BalancePoint(date=day, balance_cents=balance))
            balance -= net_by_day[day]
            day -= timedelta(days=1)
        points.reverse()
        return points
