from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer

from models import Mark

# Decimal in Python, a plain JSON number on the wire
Number = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


class UserIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    hourly_wage: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )


class HourlyWageIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hourly_wage: Optional[Decimal] = Field(..., ge=0, max_digits=12, decimal_places=2)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ExpenseIn(BaseModel):
    category_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    occurred_on: date
    description: Optional[str] = Field(default=None, max_length=200)


class IncomeIn(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    received_on: date
    source: Optional[str] = Field(default=None, max_length=120)
    is_work_income: bool = False
    notes: Optional[str] = None


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    occurred_on: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=200)


class IncomeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    received_on: Optional[date] = None
    source: Optional[str] = Field(default=None, max_length=120)
    is_work_income: Optional[bool] = None
    notes: Optional[str] = None


class MonthlyReviewCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    month: Optional[date] = None


class MonthlyReviewUpdate(BaseModel):
    """Only notes and the completed flag are writable; totals belong to rebuild."""

    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = None
    completed: Optional[bool] = None


class CategoryReflectionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    received_fulfillment: Optional[Mark] = None
    aligned_with_values: Optional[Mark] = None
    would_change_post_fi: Optional[Mark] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    hourly_wage: Optional[Number] = None


class RegisteredUserOut(UserOut):
    token: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_default: bool


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount: Number
    occurred_on: date
    description: Optional[str] = None


class IncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Number
    received_on: date
    source: Optional[str] = None
    is_work_income: bool
    notes: Optional[str] = None


class MonthlyCategoryReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    category_name: str
    month_start: date
    total_spent: Number
    total_life_energy_hours: Number
    received_fulfillment: Mark
    aligned_with_values: Mark
    would_change_post_fi: Mark
    created_at: datetime
    updated_at: datetime


class MonthlyReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    month_start: date
    month_code: str
    total_income: Number
    total_expenses: Number
    total_life_energy_hours: Number
    completed: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: UserOut
    monthly_category_reviews: list[MonthlyCategoryReviewOut] = Field(
        default_factory=list,
        validation_alias=AliasChoices("monthly_category_reviews", "category_reviews"),
    )
