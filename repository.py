"""Storage boundary for the income scheduler and the balance ledger.

``LedgerRepository`` is the contract the scheduler and the aggregators are
written against; ``SqlLedgerRepository`` implements it on a SQLAlchemy
session. Every SQLAlchemy failure leaves this module as ``RepositoryError``
(or ``DuplicateEntry`` for the one-posting-per-day index), so callers never
handle driver exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from errors import DuplicateEntry, RepositoryError
from models import Expense, IncomeSource, IncomeTransaction, LedgerAccount

AUTO_POSTING_INDEX = "uq_income_txn_auto_posting"


def get_current_user_id() -> int:
    return 1


class LedgerRepository(ABC):
    @abstractmethod
    def list_active_income_sources(self) -> list[IncomeSource]:
        ...

    @abstractmethod
    def find_income_transaction(
        self, source_id: int, day: date, auto_added: bool
    ) -> Optional[IncomeTransaction]:
        ...

    @abstractmethod
    def insert_income_transaction(self, entry: IncomeTransaction) -> IncomeTransaction:
        """Persist ``entry``; raise ``DuplicateEntry`` if it is a second
        auto-posting for the same source and day."""

    @abstractmethod
    def query_income_transactions(
        self, start: date, end: date, source_id: Optional[int] = None
    ) -> list[IncomeTransaction]:
        ...

    @abstractmethod
    def query_expenses(self, start: date, end: date) -> list[Expense]:
        ...

    @abstractmethod
    def sum_income_cents(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> int:
        """Total income in the inclusive window; open bounds mean all time."""

    @abstractmethod
    def sum_expense_cents(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> int:
        ...

    @abstractmethod
    def count_ledger_entries(self) -> int:
        ...

    @abstractmethod
    def commit(self) -> None:
        """Make everything written since the last commit durable."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard everything written since the last commit."""

    @abstractmethod
    def get_starting_balance(self) -> int:
        ...

    @abstractmethod
    def set_starting_balance(self, value: int) -> None:
        ...


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise RepositoryError(f"Failed to {action}: {exc}") from exc


def _is_unique_violation(exc: IntegrityError) -> bool:
    # psycopg2 exposes pgcode, psycopg 3 sqlstate; SQLite only has the message.
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code == "23505"
    message = str(orig)
    return "UNIQUE constraint failed" in message or AUTO_POSTING_INDEX in message


class SqlLedgerRepository(LedgerRepository):
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_active_income_sources(self) -> list[IncomeSource]:
        stmt = (
            select(IncomeSource)
            .where(
                IncomeSource.user_id == self.user_id,
                IncomeSource.is_active.is_(True),
            )
            .order_by(IncomeSource.id)
        )
        with _storage_errors("list income sources"):
            return list(self.session.scalars(stmt).all())

    def find_income_transaction(
        self, source_id: int, day: date, auto_added: bool
    ) -> Optional[IncomeTransaction]:
        stmt = (
            select(IncomeTransaction)
            .where(
                IncomeTransaction.user_id == self.user_id,
                IncomeTransaction.income_source_id == source_id,
                IncomeTransaction.date == day,
                IncomeTransaction.auto_added.is_(auto_added),
            )
            .limit(1)
        )
        with _storage_errors(f"look up postings for source {source_id}"):
            return self.session.scalar(stmt)

    def insert_income_transaction(self, entry: IncomeTransaction) -> IncomeTransaction:
        entry.user_id = self.user_id
        try:
            # SAVEPOINT: a rejected row leaves the outer transaction usable.
            with self.session.begin_nested():
                self.session.add(entry)
                self.session.flush()
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise RepositoryError(
                    f"Storage rejected posting for source {entry.income_source_id}: "
                    f"{exc.orig}"
                ) from exc
            raise DuplicateEntry(
                f"Source {entry.income_source_id} already posted on {entry.date}"
            ) from exc
        except SQLAlchemyError as exc:
            raise RepositoryError(
                f"Failed to insert posting for source {entry.income_source_id}: {exc}"
            ) from exc
        return entry

    def query_income_transactions(
        self, start: date, end: date, source_id: Optional[int] = None
    ) -> list[IncomeTransaction]:
        stmt = (
            select(IncomeTransaction)
            .where(
                IncomeTransaction.user_id == self.user_id,
                IncomeTransaction.date.between(start, end),
            )
            .order_by(IncomeTransaction.date, IncomeTransaction.id)
        )
        if source_id is not None:
            stmt = stmt.where(IncomeTransaction.income_source_id == source_id)
        with _storage_errors("query income transactions"):
            return list(self.session.scalars(stmt).all())

    def query_expenses(self, start: date, end: date) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id, Expense.date.between(start, end))
            .order_by(Expense.date, Expense.id)
        )
        with _storage_errors("query expenses"):
            return list(self.session.scalars(stmt).all())

    def sum_income_cents(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> int:
        stmt = select(func.coalesce(func.sum(IncomeTransaction.amount_cents), 0)).where(
            IncomeTransaction.user_id == self.user_id
        )
        if start is not None:
            stmt = stmt.where(IncomeTransaction.date >= start)
        if end is not None:
            stmt = stmt.where(IncomeTransaction.date <= end)
        with _storage_errors("sum income"):
            return int(self.session.execute(stmt).scalar_one() or 0)

    def sum_expense_cents(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> int:
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            Expense.user_id == self.user_id
        )
        if start is not None:
            stmt = stmt.where(Expense.date >= start)
        if end is not None:
            stmt = stmt.where(Expense.date <= end)
        with _storage_errors("sum expenses"):
            return int(self.session.execute(stmt).scalar_one() or 0)

    def count_ledger_entries(self) -> int:
        income = select(func.count(IncomeTransaction.id)).where(
            IncomeTransaction.user_id == self.user_id
        )
        expenses = select(func.count(Expense.id)).where(
            Expense.user_id == self.user_id
        )
        with _storage_errors("count ledger entries"):
            return int(self.session.execute(income).scalar_one()) + int(
                self.session.execute(expenses).scalar_one()
            )

    def _account(self) -> Optional[LedgerAccount]:
        return self.session.scalar(
            select(LedgerAccount).where(LedgerAccount.user_id == self.user_id)
        )

    def get_starting_balance(self) -> int:
        with _storage_errors("read starting balance"):
            account = self._account()
        return int(account.starting_balance_cents) if account else 0

    def set_starting_balance(self, value: int) -> None:
        with _storage_errors("write starting balance"):
            account = self._account()
            if not account:
                account = LedgerAccount(user_id=self.user_id, starting_balance_cents=0)
                self.session.add(account)
            account.starting_balance_cents = int(value)
            self.session.flush()

    def commit(self) -> None:
        with _storage_errors("commit"):
            self.session.commit()

    def rollback(self) -> None:
        with _storage_errors("roll back"):
            self.session.rollback()
