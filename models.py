import json
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class IncomeFrequency(str, Enum):
    weekly = "WEEKLY"
    biweekly = "BIWEEKLY"
    monthly = "MONTHLY"
    custom = "CUSTOM"
    manual = "MANUAL"


INCOME_FREQUENCY_ENUM = SAEnum(
    IncomeFrequency,
    name="incomefrequency",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )


class IncomeSource(Base, TimestampMixin):
    __tablename__ = "income_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[IncomeFrequency] = mapped_column(
        INCOME_FREQUENCY_ENUM, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    custom_dates_json: Mapped[Optional[str]] = mapped_column(Text)
    auto_add: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    original_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    original_currency: Mapped[Optional[str]] = mapped_column(String(10))

    transactions: Mapped[list["IncomeTransaction"]] = relationship(
        "IncomeTransaction", back_populates="income_source"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_income_source_amount_positive"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week BETWEEN 0 AND 6)",
            name="ck_income_source_day_of_week",
        ),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month BETWEEN 1 AND 31)",
            name="ck_income_source_day_of_month",
        ),
        Index("ix_income_sources_user_active", "user_id", "is_active"),
    )

    @property
    def custom_dates(self) -> Optional[list[int]]:
        if self.custom_dates_json is None:
            return None
        return json.loads(self.custom_dates_json)

    @custom_dates.setter
    def custom_dates(self, days: Optional[list[int]]) -> None:
        if days is None:
            self.custom_dates_json = None
        else:
            self.custom_dates_json = json.dumps(sorted(set(days)))


class IncomeTransaction(Base):
    __tablename__ = "income_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    income_source_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("income_sources.id", ondelete="SET NULL")
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    auto_added: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    original_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    original_currency: Mapped[Optional[str]] = mapped_column(String(10))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    income_source: Mapped[Optional["IncomeSource"]] = relationship(
        "IncomeSource", back_populates="transactions"
    )

    __table_args__ = (
        # At most one auto-posting per source per day; manual entries are free.
        Index(
            "uq_income_txn_auto_posting",
            "user_id",
            "income_source_id",
            "date",
            unique=True,
            sqlite_where=text("auto_added = 1"),
            postgresql_where=text("auto_added"),
        ),
        Index("ix_income_transactions_user_date", "user_id", "date"),
        Index(
            "ix_income_transactions_user_source_date",
            "user_id",
            "income_source_id",
            "date",
        ),
        CheckConstraint(
            "amount_cents >= 0", name="ck_income_transactions_amount_positive"
        ),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    original_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    original_currency: Mapped[Optional[str]] = mapped_column(String(10))

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="expenses"
    )

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )


class LedgerAccount(Base, TimestampMixin):
    __tablename__ = "ledger_accounts"
    __table_args__ = (UniqueConstraint("user_id", name="uq_ledger_account_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    starting_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
