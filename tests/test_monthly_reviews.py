from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from database import Base, create_db_engine
from errors import ConflictError, NotFoundError, ValidationError
from models import Mark, MonthlyCategoryReview, MonthlyReview, User
from schemas import CategoryIn, ExpenseIn, ExpenseUpdate, IncomeIn, IncomeUpdate, UserIn
from services import (
    CategoryReviewService,
    CategoryService,
    ExpenseService,
    IncomeService,
    MonthlyReviewService,
    UserService,
)
from stores import ReviewStore


def make_session() -> Session:
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_user(session: Session, email: str = "saver@example.com") -> User:
    return UserService(session).create(UserIn(email=email, hourly_wage=Decimal("25")))


def spend(session: Session, user: User, name: str, amount: str, on: date) -> None:
    category = next(c for c in user.categories if c.name == name)
    ExpenseService(session, user.id).create(
        ExpenseIn(category_id=category.id, amount=Decimal(amount), occurred_on=on)
    )


def snapshot(review: MonthlyReview) -> tuple:
    return (
        review.total_income,
        review.total_expenses,
        review.total_life_energy_hours,
        sorted(
            (c.category_id, c.total_spent, c.total_life_energy_hours)
            for c in review.category_reviews
        ),
    )


def review_count(session: Session) -> int:
    return session.scalar(select(func.count(MonthlyReview.id)))


def test_find_or_create_builds_new_review_from_ledger() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "200", date(2024, 3, 5))
    spend(session, user, "Food", "150", date(2024, 3, 20))
    spend(session, user, "Housing", "1200", date(2024, 3, 1))
    IncomeService(session, user.id).create(
        IncomeIn(amount=Decimal("3000"), received_on=date(2024, 3, 15))
    )

    review, created = MonthlyReviewService(session, user.id).find_or_create(
        date(2024, 3, 15)
    )

    assert created
    assert review.month_start == date(2024, 3, 1)
    assert review.month_code == "032024"
    assert review.total_income == Decimal("3000")
    assert review.total_expenses == Decimal("1550")
    assert review.total_life_energy_hours == Decimal("62.00")
    assert review.completed is False
    assert len(review.category_reviews) == 2
    assert all(c.received_fulfillment == Mark.neutral for c in review.category_reviews)
    assert all(c.month_start == date(2024, 3, 1) for c in review.category_reviews)


def test_find_or_create_empty_month_has_zero_totals() -> None:
    session = make_session()
    user = make_user(session)

    review, created = MonthlyReviewService(session, user.id).find_or_create(
        date(2024, 3, 31)
    )

    assert created
    assert review.total_income == 0
    assert review.total_expenses == 0
    assert review.total_life_energy_hours == 0
    assert review.category_reviews == []


def test_find_or_create_returns_existing_review_without_recomputing() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "100", date(2024, 3, 5))
    service = MonthlyReviewService(session, user.id)
    first, _ = service.find_or_create(date(2024, 3, 5))

    spend(session, user, "Food", "900", date(2024, 3, 6))
    second, created = service.find_or_create(date(2024, 3, 28))

    assert not created
    assert second.id == first.id
    assert second.total_expenses == Decimal("100")
    assert review_count(session) == 1


def test_rebuild_picks_up_ledger_changes_and_keeps_metadata() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "100", date(2024, 3, 5))
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 5))
    service.update_metadata(review.id, {"notes": "tight month"})
    service.toggle_complete(review.id)

    spend(session, user, "Housing", "250", date(2024, 3, 31))
    rebuilt = service.rebuild(review.id)

    assert rebuilt.id == review.id
    assert rebuilt.total_expenses == Decimal("350")
    assert rebuilt.total_life_energy_hours == Decimal("14.00")
    assert rebuilt.notes == "tight month"
    assert rebuilt.completed is True
    stored = session.scalar(
        select(func.count(MonthlyCategoryReview.id)).where(
            MonthlyCategoryReview.monthly_review_id == review.id
        )
    )
    assert stored == 2


def test_rebuild_is_idempotent() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "33.33", date(2024, 3, 5))
    spend(session, user, "Debt", "410", date(2024, 3, 9))
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 5))

    first = snapshot(service.rebuild(review.id))
    second = snapshot(service.rebuild(review.id))

    assert first == second
    assert review_count(session) == 1


def test_rebuild_resets_reflections_with_the_children() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "60", date(2024, 3, 5))
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 5))
    child = review.category_reviews[0]
    CategoryReviewService(session, user.id).update(
        child.id, {"received_fulfillment": Mark.positive}
    )

    rebuilt = service.rebuild(review.id)

    assert rebuilt.category_reviews[0].received_fulfillment == Mark.neutral


def test_failed_rebuild_leaves_previous_rows_in_place(monkeypatch) -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "100", date(2024, 3, 5))
    spend(session, user, "Debt", "50", date(2024, 3, 6))
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 5))
    before = snapshot(review)
    child_ids = sorted(c.id for c in review.category_reviews)

    spend(session, user, "Housing", "900", date(2024, 3, 7))

    def fail_update_totals(*_args, **_kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(service.reviews, "update_totals", fail_update_totals)

    with pytest.raises(RuntimeError):
        service.rebuild(review.id)

    stored = session.scalars(
        select(MonthlyCategoryReview.id).where(
            MonthlyCategoryReview.monthly_review_id == review.id
        )
    ).all()
    assert sorted(stored) == child_ids
    assert snapshot(service.get(review.id)) == before


def test_rebuild_of_unknown_review_is_not_found() -> None:
    session = make_session()
    user = make_user(session)
    other = make_user(session, email="other@example.com")
    review, _ = MonthlyReviewService(session, other.id).find_or_create(
        date(2024, 3, 5)
    )

    with pytest.raises(NotFoundError):
        MonthlyReviewService(session, user.id).rebuild(review.id)
    with pytest.raises(NotFoundError):
        MonthlyReviewService(session, user.id).rebuild(9999)


def test_create_review_rejects_duplicate_month() -> None:
    session = make_session()
    user = make_user(session)
    store = ReviewStore(session)
    store.create_review(user.id, date(2024, 3, 1), "032024")
    session.commit()

    with pytest.raises(ConflictError):
        store.create_review(user.id, date(2024, 3, 1), "032024")


def test_find_or_create_recovers_from_concurrent_insert(monkeypatch) -> None:
    session = make_session()
    user = make_user(session)
    service = MonthlyReviewService(session, user.id)
    existing, _ = service.find_or_create(date(2024, 3, 15))
    existing_id = existing.id

    real_find = service.reviews.find_review
    calls: list[str] = []

    def find_after_race(user_id: int, month_code: str):
        calls.append(month_code)
        if len(calls) == 1:
            # the row was not there yet when this request looked
            return None
        return real_find(user_id, month_code)

    monkeypatch.setattr(service.reviews, "find_review", find_after_race)

    review, created = service.find_or_create(date(2024, 3, 2))

    assert not created
    assert review.id == existing_id
    assert calls == ["032024", "032024"]
    assert review_count(session) == 1


def test_find_by_month_code_builds_missing_month() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "45", date(2024, 4, 30))
    service = MonthlyReviewService(session, user.id)

    review = service.find_by_month_code("042024")

    assert review.month_start == date(2024, 4, 1)
    assert review.total_expenses == Decimal("45")
    assert service.find_by_month_code("042024").id == review.id
    empty = service.find_by_month_code("011999")
    assert empty.total_expenses == 0


@pytest.mark.parametrize("code", ["2024-04", "132024", "4-2024", "abcdef"])
def test_find_by_month_code_malformed_is_not_found(code: str) -> None:
    session = make_session()
    user = make_user(session)

    with pytest.raises(NotFoundError):
        MonthlyReviewService(session, user.id).find_by_month_code(code)
    assert review_count(session) == 0


def test_toggle_complete_is_one_directional() -> None:
    session = make_session()
    user = make_user(session)
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 1))

    assert service.toggle_complete(review.id).completed is True
    assert service.toggle_complete(review.id).completed is True


def test_update_metadata_whitelists_notes_and_completed() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "10", date(2024, 3, 1))
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 1))

    with pytest.raises(ValidationError):
        service.update_metadata(review.id, {"total_expenses": Decimal("1")})
    with pytest.raises(ValidationError):
        service.update_metadata(review.id, {"notes": "x", "month_start": date(2020, 1, 1)})

    updated = service.update_metadata(review.id, {"notes": "groceries crept up"})
    assert updated.notes == "groceries crept up"
    assert updated.total_expenses == Decimal("10")
    assert updated.month_start == date(2024, 3, 1)

    updated = service.update_metadata(review.id, {"completed": True})
    assert updated.completed is True
    with pytest.raises(ValidationError):
        service.update_metadata(review.id, {"completed": False})


def test_category_reflections_accept_marks_only() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "10", date(2024, 3, 1))
    review, _ = MonthlyReviewService(session, user.id).find_or_create(date(2024, 3, 1))
    child_id = review.category_reviews[0].id
    reflections = CategoryReviewService(session, user.id)

    item = reflections.update(
        child_id, {"aligned_with_values": "-", "would_change_post_fi": "positive"}
    )
    assert item.aligned_with_values == Mark.negative
    assert item.would_change_post_fi == Mark.positive
    assert item.received_fulfillment == Mark.neutral

    with pytest.raises(ValidationError):
        reflections.update(child_id, {"received_fulfillment": "great"})
    with pytest.raises(ValidationError):
        reflections.update(child_id, {"total_spent": 1})

    other = make_user(session, email="other@example.com")
    with pytest.raises(NotFoundError):
        CategoryReviewService(session, other.id).update(child_id, {})


def test_deleting_user_removes_reviews() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "10", date(2024, 3, 1))
    MonthlyReviewService(session, user.id).find_or_create(date(2024, 3, 1))

    UserService(session).delete(user.id)

    assert review_count(session) == 0
    assert session.scalar(select(func.count(MonthlyCategoryReview.id))) == 0


def test_category_with_expenses_cannot_be_deleted() -> None:
    session = make_session()
    user = make_user(session)
    hobby = CategoryService(session, user.id).create(CategoryIn(name="Hobby"))
    ExpenseService(session, user.id).create(
        ExpenseIn(category_id=hobby.id, amount=Decimal("100"), occurred_on=date(2024, 3, 9))
    )
    review, _ = MonthlyReviewService(session, user.id).find_or_create(date(2024, 3, 9))

    with pytest.raises(ConflictError):
        CategoryService(session, user.id).delete(hobby.id)

    assert len(ExpenseService(session, user.id).list()) == 1
    review = MonthlyReviewService(session, user.id).get(review.id)
    assert review.total_expenses == sum(c.total_spent for c in review.category_reviews)
    assert review.total_expenses == Decimal("100")


def test_category_left_in_a_review_is_released_by_rebuild() -> None:
    session = make_session()
    user = make_user(session)
    categories = CategoryService(session, user.id)
    hobby = categories.create(CategoryIn(name="Hobby"))
    expenses = ExpenseService(session, user.id)
    expense = expenses.create(
        ExpenseIn(category_id=hobby.id, amount=Decimal("40"), occurred_on=date(2024, 3, 9))
    )
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 9))

    expenses.delete(expense.id)
    with pytest.raises(ConflictError):
        categories.delete(hobby.id)

    rebuilt = service.rebuild(review.id)
    assert rebuilt.category_reviews == []
    assert rebuilt.total_expenses == 0
    categories.delete(hobby.id)
    assert all(c.name != "Hobby" for c in categories.list_all())


def test_category_rename_keeps_names_unique() -> None:
    session = make_session()
    user = make_user(session)
    categories = CategoryService(session, user.id)
    hobby = categories.create(CategoryIn(name="Hobby"))

    assert categories.rename(hobby.id, CategoryIn(name=" Crafts ")).name == "Crafts"
    assert categories.rename(hobby.id, CategoryIn(name="crafts")).name == "crafts"
    with pytest.raises(ConflictError):
        categories.rename(hobby.id, CategoryIn(name="food"))

    other = make_user(session, email="other@example.com")
    with pytest.raises(NotFoundError):
        CategoryService(session, other.id).rename(hobby.id, CategoryIn(name="Mine"))


def test_expense_edits_reach_the_review_on_rebuild() -> None:
    session = make_session()
    user = make_user(session)
    food = next(c for c in user.categories if c.name == "Food")
    housing = next(c for c in user.categories if c.name == "Housing")
    expenses = ExpenseService(session, user.id)
    expense = expenses.create(
        ExpenseIn(category_id=food.id, amount=Decimal("100"), occurred_on=date(2024, 3, 9))
    )
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 9))

    updated = expenses.update(
        expense.id, ExpenseUpdate(amount=Decimal("50"), category_id=housing.id)
    )
    assert updated.amount == Decimal("50.00")
    assert updated.occurred_on == date(2024, 3, 9)

    # a find does not pick the edit up, a rebuild does
    assert service.find_or_create(date(2024, 3, 9))[0].total_expenses == Decimal("100")
    rebuilt = service.rebuild(review.id)
    assert rebuilt.total_expenses == Decimal("50")
    assert [c.category_id for c in rebuilt.category_reviews] == [housing.id]

    expenses.update(expense.id, ExpenseUpdate(occurred_on=date(2024, 4, 1)))
    assert service.rebuild(review.id).category_reviews == []


def test_expense_update_rejects_blank_and_foreign_values() -> None:
    session = make_session()
    user = make_user(session)
    spend(session, user, "Food", "10", date(2024, 3, 1))
    expenses = ExpenseService(session, user.id)
    expense_id = expenses.list()[0].id

    with pytest.raises(ValidationError):
        expenses.update(expense_id, ExpenseUpdate(amount=None))
    with pytest.raises(NotFoundError):
        expenses.update(expense_id, ExpenseUpdate(category_id=9999))

    other = make_user(session, email="other@example.com")
    with pytest.raises(NotFoundError):
        ExpenseService(session, other.id).update(expense_id, ExpenseUpdate(description="x"))
    with pytest.raises(NotFoundError):
        ExpenseService(session, other.id).delete(expense_id)
    assert expenses.get(expense_id).amount == Decimal("10.00")


def test_income_update_and_delete() -> None:
    session = make_session()
    user = make_user(session)
    incomes = IncomeService(session, user.id)
    income = incomes.create(
        IncomeIn(amount=Decimal("3000"), received_on=date(2024, 3, 1), source="salary")
    )
    service = MonthlyReviewService(session, user.id)
    review, _ = service.find_or_create(date(2024, 3, 1))
    assert review.total_income == Decimal("3000")

    updated = incomes.update(
        income.id, IncomeUpdate(amount=Decimal("3200.50"), notes="raise")
    )
    assert updated.amount == Decimal("3200.50")
    assert updated.source == "salary"
    assert updated.notes == "raise"
    assert service.rebuild(review.id).total_income == Decimal("3200.50")

    with pytest.raises(ValidationError):
        incomes.update(income.id, IncomeUpdate(received_on=None))

    incomes.delete(income.id)
    assert incomes.list() == []
    assert service.rebuild(review.id).total_income == 0
    with pytest.raises(NotFoundError):
        incomes.get(income.id)
