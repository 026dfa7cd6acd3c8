"""Month aggregation: income, spend per category and life energy hours.

All amounts are ``Decimal``. Hours are rounded half-up to two places once,
when derived from a spend amount; the month total is the running sum of the
already rounded category values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, DivisionByZero, InvalidOperation
from typing import Optional

from errors import ComputationError
from models import Category, MonthlyReview
from money import CENT
from periods import month_window
from stores import LedgerStore, ReviewStore


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CategoryBreakdown:
    category: Category
    total_spent: Decimal
    total_life_energy_hours: Decimal


@dataclass(frozen=True)
class AggregateResult:
    total_income: Decimal
    total_expenses: Decimal
    total_life_energy_hours: Decimal
    categories: tuple[CategoryBreakdown, ...]


def life_energy_hours(spent: Decimal, hourly_wage: Optional[Decimal]) -> Decimal:
    if hourly_wage is None or hourly_wage <= 0:
        return ZERO
    try:
        return (spent / hourly_wage).quantize(CENT, rounding=ROUND_HALF_UP)
    except (DivisionByZero, InvalidOperation) as exc:
        raise ComputationError(
            f"Cannot convert {spent} at hourly wage {hourly_wage} to hours"
        ) from exc


class MonthAggregator:
    def __init__(self, ledger: LedgerStore, reviews: ReviewStore) -> None:
        self.ledger = ledger
        self.reviews = reviews

    def aggregate(
        self,
        user_id: int,
        month_start: date,
        month_end: date,
        hourly_wage: Optional[Decimal],
    ) -> AggregateResult:
        total_income = self.ledger.sum_income(user_id, month_start, month_end)

        breakdowns: list[CategoryBreakdown] = []
        total_spent = ZERO
        total_hours = ZERO
        for category, spent in self.ledger.expenses_by_category(
            user_id, month_start, month_end
        ):
            if spent <= 0:
                continue
            hours = life_energy_hours(spent, hourly_wage)
            breakdowns.append(CategoryBreakdown(category, spent, hours))
            total_spent += spent
            total_hours += hours

        return AggregateResult(
            total_income=total_income,
            total_expenses=total_spent,
            total_life_energy_hours=total_hours,
            categories=tuple(breakdowns),
        )

    def rebuild(
        self, review: MonthlyReview, hourly_wage: Optional[Decimal]
    ) -> AggregateResult:
        """Recompute ``review`` from the ledger and replace its children.

        Only flushes; the caller owns the transaction.
        """
        window = month_window(review.month_start)
        result = self.aggregate(review.user_id, window.start, window.end, hourly_wage)
        self.reviews.replace_category_children(review, result.categories)
        self.reviews.update_totals(
            review,
            result.total_income,
            result.total_expenses,
            result.total_life_energy_hours,
        )
        logger.debug(
            f"aggregate: user_id={review.user_id} month_code={window.code} "
            f"income={result.total_income} expenses={result.total_expenses} "
            f"hours={result.total_life_energy_hours} "
            f"categories={len(result.categories)}"
        )
        return result
