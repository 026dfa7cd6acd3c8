from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from errors import ConflictError, NotFoundError
from models import Category, Expense, Income, MonthlyCategoryReview, MonthlyReview
from money import from_cents, to_cents

if TYPE_CHECKING:  # pragma: no cover
    from aggregation import CategoryBreakdown


class LedgerStore:
    """Read-only range queries over a user's categories, expenses and incomes."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def sum_income(self, user_id: int, start: date, end: date) -> Decimal:
        cents = self.session.execute(
            select(func.coalesce(func.sum(Income.amount_cents), 0)).where(
                Income.user_id == user_id,
                Income.received_on.between(start, end),
            )
        ).scalar_one()
        return from_cents(int(cents or 0))

    def expenses_by_category(
        self, user_id: int, start: date, end: date
    ) -> list[tuple[Category, Decimal]]:
        """Spend per category inside [start, end], in category order.

        Categories without spend in the window are absent, never zero.
        """
        spent = func.sum(Expense.amount_cents).label("spent")
        rows = self.session.execute(
            select(Category, spent)
            .join(Expense, Expense.category_id == Category.id)
            .where(
                Category.user_id == user_id,
                Expense.user_id == user_id,
                Expense.occurred_on.between(start, end),
            )
            .group_by(Category.id)
            .having(spent > 0)
            .order_by(Category.id)
        ).all()
        return [(row[0], from_cents(int(row[1]))) for row in rows]


class ReviewStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_review(self, user_id: int, month_code: str) -> Optional[MonthlyReview]:
        return self.session.scalar(
            select(MonthlyReview)
            .options(selectinload(MonthlyReview.category_reviews))
            .where(
                MonthlyReview.user_id == user_id,
                MonthlyReview.month_code == month_code,
            )
        )

    def get_review(self, user_id: int, review_id: int) -> MonthlyReview:
        review = self.session.scalar(
            select(MonthlyReview)
            .options(selectinload(MonthlyReview.category_reviews))
            .where(MonthlyReview.user_id == user_id, MonthlyReview.id == review_id)
        )
        if not review:
            raise NotFoundError("Monthly review not found")
        return review

    def list_reviews(self, user_id: int) -> Sequence[MonthlyReview]:
        stmt = (
            select(MonthlyReview)
            .options(selectinload(MonthlyReview.category_reviews))
            .where(MonthlyReview.user_id == user_id)
            .order_by(MonthlyReview.month_start.desc())
        )
        return self.session.scalars(stmt).all()

    def create_review(
        self, user_id: int, month_start: date, month_code: str
    ) -> MonthlyReview:
        """Insert an empty review.

        A (user, month_code) collision rolls the session back and raises
        ConflictError; nothing else may be pending when this is called.
        """
        review = MonthlyReview(
            user_id=user_id,
            month_code=month_code,
            month_start=month_start,
            total_income_cents=0,
            total_expenses_cents=0,
            total_life_energy_hours=Decimal("0.00"),
            completed=False,
        )
        self.session.add(review)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(
                f"Monthly review {month_code} already exists for user {user_id}"
            ) from exc
        return review

    def replace_category_children(
        self, review: MonthlyReview, breakdowns: Sequence["CategoryBreakdown"]
    ) -> None:
        # old and new children go out in the caller's transaction
        review.category_reviews.clear()
        self.session.flush()
        review.category_reviews.extend(
            MonthlyCategoryReview(
                user_id=review.user_id,
                category_id=item.category.id,
                month_start=review.month_start,
                total_spent_cents=to_cents(item.total_spent),
                total_life_energy_hours=item.total_life_energy_hours,
            )
            for item in breakdowns
        )
        self.session.flush()

    def update_totals(
        self,
        review: MonthlyReview,
        income: Decimal,
        expenses: Decimal,
        hours: Decimal,
    ) -> None:
        review.total_income_cents = to_cents(income)
        review.total_expenses_cents = to_cents(expenses)
        review.total_life_energy_hours = hours
        self.session.flush()

    def update_metadata(
        self, review: MonthlyReview, changes: Mapping[str, object]
    ) -> None:
        if "notes" in changes:
            review.notes = changes["notes"]  # type: ignore[assignment]
        if "completed" in changes:
            review.completed = bool(changes["completed"])
        self.session.flush()
