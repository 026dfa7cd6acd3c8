from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import MonthAggregator
from errors import ConflictError, NotFoundError, ValidationError
from models import (
    DEFAULT_CATEGORY_NAMES,
    Category,
    Expense,
    Income,
    Mark,
    MonthlyCategoryReview,
    MonthlyReview,
    User,
)
from money import to_cents
from periods import local_today, month_window, parse_month_code
from schemas import (
    CategoryIn,
    ExpenseIn,
    ExpenseUpdate,
    IncomeIn,
    IncomeUpdate,
    UserIn,
)
from stores import LedgerStore, ReviewStore


logger = logging.getLogger(__name__)

REVIEW_METADATA_FIELDS = frozenset({"notes", "completed"})
REFLECTION_FIELDS = frozenset(
    {"received_fulfillment", "aligned_with_values", "would_change_post_fi"}
)


def _wage_cents(hourly_wage: Optional[Decimal]) -> Optional[int]:
    if hourly_wage is None:
        return None
    cents = to_cents(hourly_wage)
    if cents < 0:
        raise ValidationError("Hourly wage must not be negative")
    return cents


def _positive_cents(amount: Decimal) -> int:
    cents = to_cents(amount)
    if cents <= 0:
        raise ValidationError("Amount must be greater than zero")
    return cents


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def create(self, data: UserIn) -> User:
        email = data.email.strip().lower()
        existing = self.session.scalar(
            select(User).where(func.lower(User.email) == email)
        )
        if existing:
            raise ConflictError("User with this email already exists")
        user = User(email=email, hourly_wage_cents=_wage_cents(data.hourly_wage))
        user.categories = [
            Category(name=name, is_default=True) for name in DEFAULT_CATEGORY_NAMES
        ]
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("User with this email already exists") from exc
        self.session.refresh(user)
        logger.info(f"user_created: user_id={user.id}")
        return user

    def update_hourly_wage(self, user_id: int, hourly_wage: Optional[Decimal]) -> User:
        user = self.get(user_id)
        user.hourly_wage_cents = _wage_cents(hourly_wage)
        self.session.commit()
        return user

    def delete(self, user_id: int) -> None:
        user = self.get(user_id)
        self.session.delete(user)
        self.session.commit()
        logger.info(f"user_deleted: user_id={user_id}")


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> Sequence[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if self._name_taken(name):
            raise ConflictError("Category with this name already exists")
        category = Category(user_id=self.user_id, name=name, is_default=False)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def rename(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        if self._name_taken(name, exclude_id=category.id):
            raise ConflictError("Category with this name already exists")
        category.name = name
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ValidationError("Default categories can't be deleted")
        in_use = self.session.scalar(
            select(func.count(Expense.id)).where(Expense.category_id == category.id)
        )
        if in_use:
            raise ConflictError("Category still has expenses")
        reviewed = self.session.scalar(
            select(func.count(MonthlyCategoryReview.id)).where(
                MonthlyCategoryReview.category_id == category.id
            )
        )
        if reviewed:
            raise ConflictError(
                "Category is part of a monthly review; rebuild that month first"
            )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: user_id={self.user_id} category_id={category_id}")


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: ExpenseIn) -> Expense:
        CategoryService(self.session, self.user_id).get(data.category_id)
        cents = _positive_cents(data.amount)
        expense = Expense(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=cents,
            occurred_on=data.occurred_on,
            description=data.description,
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

    def update(self, expense_id: int, data: ExpenseUpdate) -> Expense:
        changes = data.model_dump(exclude_unset=True)
        for field in ("category_id", "amount", "occurred_on"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} can't be blank")
        expense = self.get(expense_id)
        if "category_id" in changes:
            CategoryService(self.session, self.user_id).get(changes["category_id"])
            expense.category_id = changes["category_id"]
        if "amount" in changes:
            expense.amount_cents = _positive_cents(changes["amount"])
        if "occurred_on" in changes:
            expense.occurred_on = changes["occurred_on"]
        if "description" in changes:
            expense.description = changes["description"]
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def list(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> Sequence[Expense]:
        stmt = select(Expense).where(Expense.user_id == self.user_id)
        if start:
            stmt = stmt.where(Expense.occurred_on >= start)
        if end:
            stmt = stmt.where(Expense.occurred_on <= end)
        stmt = stmt.order_by(Expense.occurred_on.desc(), Expense.id.desc())
        return self.session.scalars(stmt).all()


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: IncomeIn) -> Income:
        cents = _positive_cents(data.amount)
        income = Income(
            user_id=self.user_id,
            amount_cents=cents,
            received_on=data.received_on,
            source=data.source,
            is_work_income=data.is_work_income,
            notes=data.notes,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def get(self, income_id: int) -> Income:
        income = self.session.get(Income, income_id)
        if not income or income.user_id != self.user_id:
            raise NotFoundError("Income not found")
        return income

    def update(self, income_id: int, data: IncomeUpdate) -> Income:
        changes = data.model_dump(exclude_unset=True)
        for field in ("amount", "received_on", "is_work_income"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} can't be blank")
        income = self.get(income_id)
        if "amount" in changes:
            income.amount_cents = _positive_cents(changes.pop("amount"))
        for field, value in changes.items():
            setattr(income, field, value)
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()

    def list(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> Sequence[Income]:
        stmt = select(Income).where(Income.user_id == self.user_id)
        if start:
            stmt = stmt.where(Income.received_on >= start)
        if end:
            stmt = stmt.where(Income.received_on <= end)
        stmt = stmt.order_by(Income.received_on.desc(), Income.id.desc())
        return self.session.scalars(stmt).all()


class MonthlyReviewService:
    """One review per user and calendar month.

    ``find_or_create`` is a read path: an existing review is returned as
    stored. Only ``rebuild`` recomputes totals and category children, and it
    does so inside a single transaction so readers see either the old or the
    new set of children.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.reviews = ReviewStore(session)
        self.aggregator = MonthAggregator(LedgerStore(session), self.reviews)

    def _hourly_wage(self) -> Optional[Decimal]:
        return UserService(self.session).get(self.user_id).hourly_wage

    def list_all(self) -> Sequence[MonthlyReview]:
        return self.reviews.list_reviews(self.user_id)

    def get(self, review_id: int) -> MonthlyReview:
        return self.reviews.get_review(self.user_id, review_id)

    def find_or_create(
        self, on_date: Optional[date] = None
    ) -> tuple[MonthlyReview, bool]:
        window = month_window(on_date or local_today())
        review = self.reviews.find_review(self.user_id, window.code)
        if review:
            return review, False

        hourly_wage = self._hourly_wage()
        try:
            review = self.reviews.create_review(
                self.user_id, window.start, window.code
            )
        except ConflictError:
            # another request inserted the same month first
            review = self.reviews.find_review(self.user_id, window.code)
            if not review:
                raise
            logger.info(
                f"review_create_race: user_id={self.user_id} "
                f"month_code={window.code} review_id={review.id}"
            )
            return review, False

        try:
            self.aggregator.rebuild(review, hourly_wage)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"review_created: user_id={self.user_id} month_code={window.code} "
            f"review_id={review.id} categories={len(review.category_reviews)}"
        )
        return review, True

    def find_by_month_code(self, month_code: str) -> MonthlyReview:
        try:
            month_start = parse_month_code(month_code)
        except ValueError as exc:
            raise NotFoundError(str(exc)) from exc
        review, _ = self.find_or_create(month_start)
        return review

    def rebuild(self, review_id: int) -> MonthlyReview:
        review = self.get(review_id)
        try:
            self.aggregator.rebuild(review, self._hourly_wage())
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"review_rebuild: user_id={self.user_id} month_code={review.month_code} "
            f"review_id={review.id} categories={len(review.category_reviews)}"
        )
        return review

    def toggle_complete(self, review_id: int) -> MonthlyReview:
        review = self.get(review_id)
        if not review.completed:
            self.reviews.update_metadata(review, {"completed": True})
            self.session.commit()
            logger.info(
                f"review_completed: user_id={self.user_id} review_id={review.id}"
            )
        return review

    def update_metadata(
        self, review_id: int, changes: Mapping[str, object]
    ) -> MonthlyReview:
        disallowed = sorted(set(changes) - REVIEW_METADATA_FIELDS)
        if disallowed:
            raise ValidationError(
                f"Only notes and completed can be updated, got: {', '.join(disallowed)}"
            )
        notes = changes.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("Notes must be text")
        completed = changes.get("completed")
        if "completed" in changes and not isinstance(completed, bool):
            raise ValidationError("Completed must be true or false")

        review = self.get(review_id)
        if review.completed and completed is False:
            raise ValidationError("A completed review cannot be reopened")
        self.reviews.update_metadata(review, changes)
        self.session.commit()
        logger.info(
            f"review_metadata_updated: user_id={self.user_id} review_id={review.id} "
            f"fields={','.join(sorted(changes))}"
        )
        return review


class CategoryReviewService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, category_review_id: int) -> MonthlyCategoryReview:
        item = self.session.get(MonthlyCategoryReview, category_review_id)
        if not item or item.user_id != self.user_id:
            raise NotFoundError("Monthly category review not found")
        return item

    def update(
        self, category_review_id: int, changes: Mapping[str, object]
    ) -> MonthlyCategoryReview:
        disallowed = sorted(set(changes) - REFLECTION_FIELDS)
        if disallowed:
            raise ValidationError(
                f"Only reflections can be updated, got: {', '.join(disallowed)}"
            )
        marks: dict[str, Mark] = {}
        for field, value in changes.items():
            if value is None:
                continue
            try:
                marks[field] = Mark(value)
            except ValueError as exc:
                raise ValidationError(f"Invalid value for {field}: {value!r}") from exc

        item = self.get(category_review_id)
        for field, mark in marks.items():
            setattr(item, field, mark)
        self.session.commit()
        return item
