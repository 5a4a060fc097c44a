from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import IncomeFrequency
from recurrence import validate_recurrence


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=7)
    order: int = 0


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: Optional[str]
    order: int


class IncomeSourceIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    frequency: IncomeFrequency
    start_date: date
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    custom_dates: Optional[list[int]] = None
    auto_add: bool = True
    is_active: bool = True
    original_amount_cents: Optional[int] = None
    original_currency: Optional[str] = Field(default=None, max_length=10)

    @model_validator(mode="after")
    def check_recurrence(self) -> "IncomeSourceIn":
        validate_recurrence(
            self.frequency,
            day_of_week=self.day_of_week,
            day_of_month=self.day_of_month,
            custom_dates=self.custom_dates,
        )
        return self


class IncomeSourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    frequency: IncomeFrequency
    start_date: date
    day_of_week: Optional[int]
    day_of_month: Optional[int]
    custom_dates: Optional[list[int]]
    auto_add: bool
    is_active: bool
    original_amount_cents: Optional[int]
    original_currency: Optional[str]
    created_at: datetime
    updated_at: datetime


class IncomeTransactionIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    date: date
    description: Optional[str] = Field(default=None, max_length=200)
    income_source_id: Optional[int] = None
    original_amount_cents: Optional[int] = None
    original_currency: Optional[str] = Field(default=None, max_length=10)


class IncomeTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    income_source_id: Optional[int]
    amount_cents: int
    date: date
    description: Optional[str]
    auto_added: bool
    original_amount_cents: Optional[int]
    original_currency: Optional[str]
    created_at: datetime


class ExpenseIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    date: date
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    original_amount_cents: Optional[int] = None
    original_currency: Optional[str] = Field(default=None, max_length=10)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    date: date
    category_id: Optional[int]
    description: Optional[str]
    original_amount_cents: Optional[int]
    original_currency: Optional[str]


class BalanceIn(BaseModel):
    balance_cents: int


class BalanceOut(BaseModel):
    balance_cents: int
    starting_balance_cents: int


class BalancePointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    balance_cents: int


class PeriodTotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date
    income_cents: int
    expense_cents: int
    net_cents: int


class ProjectedOccurrenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    source_id: int
    source_name: str
    date: date
    amount_cents: int


class IncomeProjectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date
    projected: bool
    total_cents: int
    occurrences: list[ProjectedOccurrenceOut]


class SourceFailureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    source_id: int
    source_name: str
    message: str


class DailyCheckOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    today: date
    created: list[IncomeTransactionOut]
    errors: list[SourceFailureOut]
