from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from errors import NotFoundError, ValidationError
from models import Category, Expense, IncomeSource, IncomeTransaction
from recurrence import validate_recurrence
from repository import get_current_user_id
from schemas import CategoryIn, ExpenseIn, IncomeSourceIn, IncomeTransactionIn

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, include_archived: bool = False) -> list[Category]:
        stmt = select(Category).where(Category.user_id == self.user_id)
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        stmt = stmt.order_by(Category.order, Category.name)
        return self.session.scalars(stmt).all()

    def create(self, data: CategoryIn) -> Category:
        exists = self.session.scalar(
            select(Category.id).where(
                Category.user_id == self.user_id, Category.name == data.name
            )
        )
        if exists:
            raise ValidationError("Category already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name,
            color=data.color,
            order=data.order,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class IncomeSourceService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, source_id: int) -> IncomeSource:
        source = self.session.get(IncomeSource, source_id)
        if not source or source.user_id != self.user_id:
            raise NotFoundError("Income source not found")
        return source

    def list(self, include_inactive: bool = True) -> list[IncomeSource]:
        stmt = select(IncomeSource).where(IncomeSource.user_id == self.user_id)
        if not include_inactive:
            stmt = stmt.where(IncomeSource.is_active.is_(True))
        return self.session.scalars(stmt.order_by(IncomeSource.name)).all()

    def create(self, data: IncomeSourceIn) -> IncomeSource:
        self._validate(data)
        source = IncomeSource(user_id=self.user_id)
        self._apply(source, data)
        self.session.add(source)
        self.session.commit()
        self.session.refresh(source)
        logger.info(
            f"income_source_created: id={source.id} frequency={source.frequency.value}"
        )
        return source

    def update(self, source_id: int, data: IncomeSourceIn) -> IncomeSource:
        # Already materialized entries keep their amount, date and link.
        source = self.get(source_id)
        self._validate(data)
        self._apply(source, data)
        self.session.commit()
        self.session.refresh(source)
        return source

    def set_active(self, source_id: int, is_active: bool) -> IncomeSource:
        source = self.get(source_id)
        source.is_active = is_active
        self.session.commit()
        return source

    def set_auto_add(self, source_id: int, auto_add: bool) -> IncomeSource:
        source = self.get(source_id)
        source.auto_add = auto_add
        self.session.commit()
        return source

    def delete(self, source_id: int) -> None:
        source = self.get(source_id)
        self.session.execute(
            update(IncomeTransaction)
            .where(
                IncomeTransaction.user_id == self.user_id,
                IncomeTransaction.income_source_id == source.id,
            )
            .values(income_source_id=None)
        )
        self.session.delete(source)
        self.session.commit()
        logger.info(f"income_source_deleted: id={source_id}")

    @staticmethod
    def _validate(data: IncomeSourceIn) -> None:
        # Model-level validation can be bypassed with model_construct().
        validate_recurrence(
            data.frequency,
            day_of_week=data.day_of_week,
            day_of_month=data.day_of_month,
            custom_dates=data.custom_dates,
        )
        if data.amount_cents < 0:
            raise ValidationError("Amount must not be negative")

    @staticmethod
    def _apply(source: IncomeSource, data: IncomeSourceIn) -> None:
        for field, value in data.model_dump().items():
            setattr(source, field, value)


class IncomeTransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: IncomeTransactionIn) -> IncomeTransaction:
        if data.income_source_id is not None:
            IncomeSourceService(self.session, self.user_id).get(data.income_source_id)
        txn = IncomeTransaction(
            user_id=self.user_id,
            income_source_id=data.income_source_id,
            amount_cents=data.amount_cents,
            date=data.date,
            description=data.description,
            auto_added=False,
            original_amount_cents=data.original_amount_cents,
            original_currency=data.original_currency,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> IncomeTransaction:
        txn = self.session.get(IncomeTransaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFoundError("Income transaction not found")
        return txn

    def list(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        source_id: Optional[int] = None,
    ) -> list[IncomeTransaction]:
        stmt = select(IncomeTransaction).where(
            IncomeTransaction.user_id == self.user_id
        )
        if start is not None:
            stmt = stmt.where(IncomeTransaction.date >= start)
        if end is not None:
            stmt = stmt.where(IncomeTransaction.date <= end)
        if source_id is not None:
            stmt = stmt.where(IncomeTransaction.income_source_id == source_id)
        stmt = stmt.order_by(IncomeTransaction.date.desc(), IncomeTransaction.id.desc())
        return self.session.scalars(stmt).all()

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: ExpenseIn) -> Expense:
        if data.category_id is not None:
            category = self.session.get(Category, data.category_id)
            if not category or category.user_id != self.user_id:
                raise NotFoundError("Category not found")
        expense = Expense(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            date=data.date,
            category_id=data.category_id,
            description=data.description,
            original_amount_cents=data.original_amount_cents,
            original_currency=data.original_currency,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def list(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[Expense]:
        stmt = select(Expense).where(Expense.user_id == self.user_id)
        if start is not None:
            stmt = stmt.where(Expense.date >= start)
        if end is not None:
            stmt = stmt.where(Expense.date <= end)
        stmt = stmt.order_by(Expense.date.desc(), Expense.id.desc())
        return self.session.scalars(stmt).all()

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
