from datetime import date, datetime, timezone
from decimal import Decimal
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
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from money import from_cents, optional_from_cents


DEFAULT_CATEGORY_NAMES = (
    "Housing",
    "Food",
    "Transportation",
    "Utilities",
    "Insurance",
    "Healthcare",
    "Savings",
    "Debt",
    "Personal",
    "Entertainment",
    "Taxes",
)


class Mark(str, Enum):
    negative = "-"
    neutral = "0"
    positive = "+"

    @classmethod
    def _missing_(cls, value):
        # also accept the member names, e.g. "positive"
        if isinstance(value, str):
            return cls.__members__.get(value.strip().lower())
        return None


MARK_ENUM = SAEnum(
    Mark,
    name="mark_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

HOURS = Numeric(18, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    hourly_wage_cents: Mapped[Optional[int]] = mapped_column(Integer)

    categories: Mapped[list["Category"]] = relationship(
        "Category", back_populates="user", cascade="all"
    )
    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="user", cascade="all"
    )
    incomes: Mapped[list["Income"]] = relationship(
        "Income", back_populates="user", cascade="all"
    )
    monthly_reviews: Mapped[list["MonthlyReview"]] = relationship(
        "MonthlyReview", back_populates="user", cascade="all"
    )

    __table_args__ = (
        CheckConstraint(
            "hourly_wage_cents IS NULL OR hourly_wage_cents >= 0",
            name="ck_users_hourly_wage_non_negative",
        ),
    )

    @property
    def hourly_wage(self) -> Optional[Decimal]:
        return optional_from_cents(self.hourly_wage_cents)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="categories")
    # rows referencing a category block its deletion
    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="category", passive_deletes="all"
    )
    category_reviews: Mapped[list["MonthlyCategoryReview"]] = relationship(
        "MonthlyCategoryReview",
        back_populates="category",
        passive_deletes="all",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200))
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="expenses")
    category: Mapped["Category"] = relationship("Category", back_populates="expenses")

    __table_args__ = (
        Index("ix_expenses_user_occurred_on", "user_id", "occurred_on"),
        Index(
            "ix_expenses_user_category_occurred_on",
            "user_id",
            "category_id",
            "occurred_on",
        ),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[Optional[str]] = mapped_column(String(120))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    received_on: Mapped[date] = mapped_column(Date, nullable=False)
    is_work_income: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    user: Mapped["User"] = relationship("User", back_populates="incomes")

    __table_args__ = (
        Index("ix_incomes_user_received_on", "user_id", "received_on"),
        CheckConstraint("amount_cents > 0", name="ck_incomes_amount_positive"),
    )

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class MonthlyReview(Base, TimestampMixin):
    __tablename__ = "monthly_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    month_code: Mapped[str] = mapped_column(String(6), nullable=False)
    month_start: Mapped[date] = mapped_column(Date, nullable=False)
    total_income_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_expenses_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_life_energy_hours: Mapped[Decimal] = mapped_column(
        HOURS, default=Decimal("0.00"), nullable=False
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    user: Mapped["User"] = relationship("User", back_populates="monthly_reviews")
    category_reviews: Mapped[list["MonthlyCategoryReview"]] = relationship(
        "MonthlyCategoryReview",
        back_populates="monthly_review",
        cascade="all, delete-orphan",
        order_by="MonthlyCategoryReview.id",
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "month_code", name="uq_monthly_review_user_month_code"
        ),
        Index("ix_monthly_reviews_user_month_start", "user_id", "month_start"),
    )

    @property
    def total_income(self) -> Decimal:
        return from_cents(self.total_income_cents)

    @property
    def total_expenses(self) -> Decimal:
        return from_cents(self.total_expenses_cents)


class MonthlyCategoryReview(Base, TimestampMixin):
    __tablename__ = "monthly_category_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    monthly_review_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_reviews.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    month_start: Mapped[date] = mapped_column(Date, nullable=False)
    total_spent_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_life_energy_hours: Mapped[Decimal] = mapped_column(
        HOURS, default=Decimal("0.00"), nullable=False
    )
    received_fulfillment: Mapped[Mark] = mapped_column(
        MARK_ENUM, default=Mark.neutral, nullable=False
    )
    aligned_with_values: Mapped[Mark] = mapped_column(
        MARK_ENUM, default=Mark.neutral, nullable=False
    )
    would_change_post_fi: Mapped[Mark] = mapped_column(
        MARK_ENUM, default=Mark.neutral, nullable=False
    )

    monthly_review: Mapped["MonthlyReview"] = relationship(
        "MonthlyReview", back_populates="category_reviews"
    )
    category: Mapped["Category"] = relationship(
        "Category", back_populates="category_reviews"
    )

    __table_args__ = (
        Index("ix_monthly_category_reviews_review", "monthly_review_id"),
        CheckConstraint(
            "total_spent_cents > 0", name="ck_monthly_category_reviews_spent_positive"
        ),
    )

    @property
    def total_spent(self) -> Decimal:
        return from_cents(self.total_spent_cents)

    @property
    def category_name(self) -> str:
        return self.category.name
