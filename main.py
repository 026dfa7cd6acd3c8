import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from errors import ComputationError, ConflictError, NotFoundError, ValidationError
from identity import issue_user_token, resolve_user_token
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryReflectionUpdate,
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdate,
    HourlyWageIn,
    IncomeIn,
    IncomeOut,
    IncomeUpdate,
    MonthlyCategoryReviewOut,
    MonthlyReviewCreate,
    MonthlyReviewOut,
    MonthlyReviewUpdate,
    RegisteredUserOut,
    UserIn,
    UserOut,
)
from services import (
    CategoryReviewService,
    CategoryService,
    ExpenseService,
    IncomeService,
    MonthlyReviewService,
    UserService,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Life Energy Reviews")
bearer = HTTPBearer(auto_error=False)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(_request: Request, exc: ConflictError):
    return _error(409, exc)


@app.exception_handler(ValidationError)
async def validation_handler(_request: Request, exc: ValidationError):
    return _error(422, exc)


@app.exception_handler(ComputationError)
async def computation_handler(request: Request, exc: ComputationError):
    logger.error(f"computation_error: path={request.url.path} error={exc}")
    return _error(500, exc)


def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> int:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user_id = resolve_user_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid bearer token")
    try:
        UserService(db).get(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=401, detail="Unknown user") from exc
    return user_id


def _review_out(review) -> MonthlyReviewOut:
    return MonthlyReviewOut.model_validate(review)


@app.post("/api/users", response_model=RegisteredUserOut, status_code=201)
def register_user(payload: UserIn, db: Session = Depends(get_db)):
    user = UserService(db).create(payload)
    return RegisteredUserOut(
        id=user.id,
        email=user.email,
        hourly_wage=user.hourly_wage,
        token=issue_user_token(user.id),
    )


@app.get("/api/me", response_model=UserOut)
def read_me(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return UserOut.model_validate(UserService(db).get(user_id))


@app.patch("/api/me", response_model=UserOut)
def update_me(
    payload: HourlyWageIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    user = UserService(db).update_hourly_wage(user_id, payload.hourly_wage)
    return UserOut.model_validate(user)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [CategoryOut.model_validate(c) for c in CategoryService(db, user_id).list_all()]


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryOut.model_validate(CategoryService(db, user_id).create(payload))


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def show_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryOut.model_validate(CategoryService(db, user_id).get(category_id))


@app.patch("/api/categories/{category_id}", response_model=CategoryOut)
def rename_category(
    category_id: int,
    payload: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user_id).rename(category_id, payload)
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    start: Optional[date] = None,
    end: Optional[date] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    items = ExpenseService(db, user_id).list(start, end)
    return [ExpenseOut.model_validate(e) for e in items]


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    payload: ExpenseIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return ExpenseOut.model_validate(ExpenseService(db, user_id).create(payload))


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def show_expense(
    expense_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return ExpenseOut.model_validate(ExpenseService(db, user_id).get(expense_id))


@app.patch("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    payload: ExpenseUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, user_id).update(expense_id, payload)
    return ExpenseOut.model_validate(expense)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    ExpenseService(db, user_id).delete(expense_id)
    return Response(status_code=204)


@app.get("/api/incomes", response_model=list[IncomeOut])
def list_incomes(
    start: Optional[date] = None,
    end: Optional[date] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    items = IncomeService(db, user_id).list(start, end)
    return [IncomeOut.model_validate(i) for i in items]


@app.post("/api/incomes", response_model=IncomeOut, status_code=201)
def create_income(
    payload: IncomeIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return IncomeOut.model_validate(IncomeService(db, user_id).create(payload))


@app.get("/api/incomes/{income_id}", response_model=IncomeOut)
def show_income(
    income_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return IncomeOut.model_validate(IncomeService(db, user_id).get(income_id))


@app.patch("/api/incomes/{income_id}", response_model=IncomeOut)
def update_income(
    income_id: int,
    payload: IncomeUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    income = IncomeService(db, user_id).update(income_id, payload)
    return IncomeOut.model_validate(income)


@app.delete("/api/incomes/{income_id}", status_code=204)
def delete_income(
    income_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    IncomeService(db, user_id).delete(income_id)
    return Response(status_code=204)


@app.get("/api/monthly-reviews", response_model=list[MonthlyReviewOut])
def list_monthly_reviews(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [_review_out(r) for r in MonthlyReviewService(db, user_id).list_all()]


@app.post("/api/monthly-reviews", response_model=MonthlyReviewOut)
def get_or_create_month(
    response: Response,
    payload: Optional[MonthlyReviewCreate] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    month = payload.month if payload else None
    review, created = MonthlyReviewService(db, user_id).find_or_create(month)
    response.status_code = 201 if created else 200
    return _review_out(review)


@app.get(
    "/api/monthly-reviews/by-month-code/{month_code}",
    response_model=MonthlyReviewOut,
)
def get_by_month_code(
    month_code: str,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    review = MonthlyReviewService(db, user_id).find_by_month_code(month_code)
    return _review_out(review)


@app.get("/api/monthly-reviews/{review_id}", response_model=MonthlyReviewOut)
def show_monthly_review(
    review_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return _review_out(MonthlyReviewService(db, user_id).get(review_id))


@app.post("/api/monthly-reviews/{review_id}/rebuild", response_model=MonthlyReviewOut)
def rebuild_month(
    review_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return _review_out(MonthlyReviewService(db, user_id).rebuild(review_id))


@app.patch(
    "/api/monthly-reviews/{review_id}/toggle-complete",
    response_model=MonthlyReviewOut,
)
def toggle_complete(
    review_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return _review_out(MonthlyReviewService(db, user_id).toggle_complete(review_id))


@app.patch("/api/monthly-reviews/{review_id}", response_model=MonthlyReviewOut)
def update_monthly_review(
    review_id: int,
    payload: MonthlyReviewUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    review = MonthlyReviewService(db, user_id).update_metadata(review_id, changes)
    return _review_out(review)


@app.get(
    "/api/monthly-category-reviews/{category_review_id}",
    response_model=MonthlyCategoryReviewOut,
)
def show_category_review(
    category_review_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    item = CategoryReviewService(db, user_id).get(category_review_id)
    return MonthlyCategoryReviewOut.model_validate(item)


@app.patch(
    "/api/monthly-category-reviews/{category_review_id}",
    response_model=MonthlyCategoryReviewOut,
)
def update_category_review(
    category_review_id: int,
    payload: CategoryReflectionUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    item = CategoryReviewService(db, user_id).update(category_review_id, changes)
    return MonthlyCategoryReviewOut.model_validate(item)
