import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from currency import format_cents
from database import dispose_engine, get_db
from errors import (
    BusinessRuleError,
    DuplicateAccountError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from forms import (
    goal_from_form,
    plan_from_form,
    recurring_from_form,
    register_from_form,
    text,
    transaction_from_form,
)
from fx_rates import FxRateService, RateData, time_ago
from models import BudgetPlan, PaymentMethod, RecurringTransaction, Transaction, TransactionType
from periods import resolve_period
from recurrence import local_today
from services import (
    BudgetPlanService,
    ConfigService,
    CSVService,
    DashboardService,
    MonthTotals,
    RecurringTransactionService,
    SavingsGoalService,
    TagService,
    TransactionFilters,
    TransactionService,
    UserService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Centa")
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie="centa_session",
    same_site="lax",
)

DASHBOARD_CHANGED = "dashboard-changed"
CONFIG_CHANGED = "config-changed"
TRANSACTIONS_CHANGED = "transactions-changed"

ERROR_STATUS: dict[type, int] = {
    ValidationError: 400,
    NotFoundError: 404,
    BusinessRuleError: 409,
    DuplicateAccountError: 409,
    PersistenceError: 500,
}


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)
    )
    return JSONResponse({"success": False, "error": str(exc)}, status_code=status)


for _error_cls in ERROR_STATUS:
    app.add_exception_handler(_error_cls, _error_response)


@app.on_event("shutdown")
def shutdown_event():
    dispose_engine()


def current_user_id(request: Request) -> int:
    user_id = request.session.get("user_id")
    if not isinstance(user_id, int):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def get_fx() -> FxRateService:
    return FxRateService()


async def checked_form(request: Request, user_id: int):
    form = await request.form()
    if not validate_csrf_token(text(form, "csrf_token"), user_id):
        raise ValidationError("Invalid CSRF token.")
    return form


def action_ok(request: Request, *triggers: str) -> Response:
    headers = {"HX-Trigger": ", ".join(triggers)} if triggers else {}
    if request.headers.get("HX-Request"):
        return Response(status_code=204, headers=headers)
    return JSONResponse({"success": True}, headers=headers)


def money(cents: int) -> float:
    return cents / 100


def _totals_payload(totals: MonthTotals) -> dict[str, float]:
    return {
        "income": money(totals.income_cents),
        "expenses": money(totals.expenses_cents),
        "savings": money(totals.savings_cents),
        "remaining": money(totals.remaining_cents),
    }


def _transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "amount": money(txn.amount_cents),
        "category": (
            {"id": txn.category.id, "name": txn.category.name} if txn.category else None
        ),
        "note": txn.note,
        "paymentMethod": txn.payment_method.value if txn.payment_method else None,
        "paymentMethodNote": txn.payment_method_note,
        "isRecurring": txn.is_recurring,
        "tags": [{"id": tag.id, "name": tag.name} for tag in txn.tags],
    }


def _plan_payload(plan: BudgetPlan, active_plan_id: Optional[int]) -> dict[str, object]:
    return {
        "id": plan.id,
        "name": plan.name,
        "isDefault": plan.is_default,
        "isCustom": plan.is_custom,
        "isActive": plan.id == active_plan_id,
        "categories": [
            {
                "id": cat.id,
                "name": cat.name,
                "percentage": cat.percentage,
                "isSavings": cat.is_savings,
            }
            for cat in plan.categories
        ],
    }


def _rule_payload(rule: RecurringTransaction) -> dict[str, object]:
    return {
        "id": rule.id,
        "amount": money(rule.amount_cents),
        "type": rule.type.value,
        "category": (
            {"id": rule.category.id, "name": rule.category.name}
            if rule.category
            else None
        ),
        "note": rule.note,
        "dayOfMonth": rule.day_of_month,
        "isActive": rule.is_active,
    }


def _rates_payload(rate_data: RateData) -> dict[str, object]:
    return {
        "rates": rate_data.rates,
        "updatedAt": rate_data.updated_at,
        "updatedAgo": time_ago(rate_data.updated_at),
        "fallback": rate_data.fallback,
    }


# ---- auth ---------------------------------------------------------------


@app.post("/register")
async def register(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    UserService(db).register(register_from_form(form))
    return JSONResponse({"success": True})


@app.post("/login")
async def login(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    user = UserService(db).authenticate(text(form, "email"), text(form, "password"))
    if not user:
        return JSONResponse(
            {"success": False, "error": "Invalid email or password."}, status_code=401
        )
    request.session.clear()
    request.session["user_id"] = user.id
    return JSONResponse({"success": True})


@app.post("/logout")
def logout(request: Request):
    request.session.clear()
    return JSONResponse({"success": True})


@app.get("/api/csrf-token")
def csrf_token(user_id: int = Depends(current_user_id)):
    return {"csrf_token": generate_csrf_token(user_id)}


# ---- setup & config -----------------------------------------------------


@app.post("/setup")
async def setup(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    try:
        plan_index = int(text(form, "planIndex"))
    except ValueError as exc:
        raise ValidationError("Invalid plan selection.") from exc
    ConfigService(db, user_id).initialize(plan_index)
    return RedirectResponse(url="/", status_code=303)


@app.post("/setup/custom")
async def setup_custom(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    ConfigService(db, user_id).initialize_with_custom_plan(plan_from_form(form))
    return RedirectResponse(url="/", status_code=303)


@app.get("/api/config")
def get_config(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    config = ConfigService(db, user_id).get_or_create()
    if not config:
        return {"configured": False}
    return {
        "configured": True,
        "currency": config.currency.value,
        "activePlanId": config.active_plan_id,
    }


@app.post("/config/currency")
async def update_currency(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    ConfigService(db, user_id).update_currency(text(form, "currency"))
    return action_ok(request, DASHBOARD_CHANGED, CONFIG_CHANGED, TRANSACTIONS_CHANGED)


@app.get("/api/rates")
def get_rates(fx: FxRateService = Depends(get_fx)):
    return _rates_payload(fx.latest())


# ---- dashboard & summary -----------------------------------------------


@app.get("/")
@app.get("/api/dashboard")
def dashboard(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    fx: FxRateService = Depends(get_fx),
):
    today = local_today()
    RecurringTransactionService(db, user_id).process(today)
    stats = DashboardService(db, user_id).stats(today)
    if stats is None:
        return RedirectResponse(url="/setup", status_code=303)

    config = ConfigService(db, user_id).get_or_create()
    rate_data = fx.latest()

    def display(cents: int) -> str:
        return format_cents(
            cents, config.currency, rate_data.rates, base=settings.base_currency
        )

    return {
        "plan": {"id": stats.plan_id, "name": stats.plan_name},
        "currency": config.currency.value,
        "month": {
            "start": stats.period.start.isoformat(),
            "end": stats.period.end.isoformat(),
        },
        "current": _totals_payload(stats.current),
        "previous": _totals_payload(stats.previous),
        "display": {
            "income": display(stats.current.income_cents),
            "expenses": display(stats.current.expenses_cents),
            "savings": display(stats.current.savings_cents),
            "remaining": display(stats.current.remaining_cents),
        },
        "breakdown": [
            {
                "categoryId": row.category_id,
                "name": row.name,
                "percentage": row.percentage,
                "isSavings": row.is_savings,
                "budgeted": money(row.budgeted_cents),
                "spent": money(row.spent_cents),
                "budgetedDisplay": display(row.budgeted_cents),
                "spentDisplay": display(row.spent_cents),
            }
            for row in stats.breakdown
        ],
        "rates": _rates_payload(rate_data),
    }


@app.get("/api/summary")
def monthly_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    years = TransactionService(db, user_id).monthly_summary()
    return [
        {
            "year": year.year,
            "months": [
                {
                    "month": month.month,
                    "income": money(month.income_cents),
                    "expenses": money(month.expenses_cents),
                    "savings": money(month.savings_cents),
                    "transactions": [
                        {
                            "id": item.id,
                            "amount": money(item.amount_cents),
                            "type": item.type.value,
                            "note": item.note,
                            "date": item.date.isoformat(),
                            "categoryName": item.category_name,
                        }
                        for item in month.transactions
                    ],
                }
                for month in year.months
            ],
        }
        for year in years
    ]


# ---- plans --------------------------------------------------------------


@app.get("/api/plans")
def list_plans(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    config = ConfigService(db, user_id).get_or_create()
    active_plan_id = config.active_plan_id if config else None
    plans = BudgetPlanService(db, user_id).list()
    return [_plan_payload(plan, active_plan_id) for plan in plans]


@app.post("/plans")
async def create_plan(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    BudgetPlanService(db, user_id).create_custom(plan_from_form(form))
    return action_ok(request, CONFIG_CHANGED)


@app.post("/plans/{plan_id}")
async def update_plan(
    plan_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    BudgetPlanService(db, user_id).update(plan_id, plan_from_form(form))
    return action_ok(request, DASHBOARD_CHANGED, CONFIG_CHANGED, TRANSACTIONS_CHANGED)


@app.post("/plans/{plan_id}/activate")
async def activate_plan(
    plan_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    BudgetPlanService(db, user_id).set_active(plan_id)
    return action_ok(request, DASHBOARD_CHANGED, CONFIG_CHANGED, TRANSACTIONS_CHANGED)


@app.post("/plans/{plan_id}/delete")
async def delete_plan(
    plan_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    BudgetPlanService(db, user_id).delete(plan_id)
    return action_ok(request, DASHBOARD_CHANGED, CONFIG_CHANGED)


# ---- transactions -------------------------------------------------------


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    try:
        period = resolve_period(
            params.get("period"), params.get("start"), params.get("end"), today=local_today()
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    txn_type = None
    if params.get("type"):
        try:
            txn_type = TransactionType(params["type"].upper())
        except ValueError:
            txn_type = None
    method = None
    if params.get("method"):
        try:
            method = PaymentMethod(params["method"].upper())
        except ValueError:
            method = None

    def int_param(name: str) -> Optional[int]:
        try:
            return int(params[name]) if params.get(name) else None
        except ValueError:
            return None

    return TransactionFilters(
        date_from=period.start if period else None,
        date_to=period.end if period else None,
        type=txn_type,
        category_id=int_param("category"),
        tag_id=int_param("tag"),
        payment_method=method,
    )


def _int_query(request: Request, name: str, default: int) -> int:
    try:
        return int(request.query_params.get(name) or default)
    except ValueError:
        return default


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = filters_from_request(request)
    page = max(_int_query(request, "page", 1), 1)
    limit = min(max(_int_query(request, "limit", 50), 1), 200)
    offset = (page - 1) * limit
    items = TransactionService(db, user_id).list(filters, limit=limit + 1, offset=offset)
    has_more = len(items) > limit
    return {
        "items": [_transaction_payload(txn) for txn in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/transactions")
async def create_transaction(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    TransactionService(db, user_id).create(transaction_from_form(form))
    return action_ok(request, DASHBOARD_CHANGED, TRANSACTIONS_CHANGED)


@app.post("/transactions/{transaction_id}/delete")
async def delete_transaction(
    transaction_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    TransactionService(db, user_id).delete(transaction_id)
    return action_ok(request, DASHBOARD_CHANGED, TRANSACTIONS_CHANGED)


@app.get("/api/tags")
def list_tags(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return [{"id": tag.id, "name": tag.name} for tag in TagService(db, user_id).list_all()]


@app.get("/api/export-csv")
def export_csv(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    content = CSVService(db, user_id).export()
    filename = f"centa-transactions-{local_today().isoformat()}.csv"
    return Response(
        content=content,
        headers={
            "Content-Type": "text/csv",
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


# ---- savings goals ------------------------------------------------------


@app.get("/api/goals")
def list_goals(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return [
        {
            "id": item.goal.id,
            "name": item.goal.name,
            "targetAmount": money(item.goal.target_amount_cents),
            "currentAmount": money(item.current_cents),
            "progress": round(item.progress_percent, 2),
            "category": (
                {"id": item.goal.category.id, "name": item.goal.category.name}
                if item.goal.category
                else None
            ),
            "deadline": item.goal.deadline.isoformat() if item.goal.deadline else None,
        }
        for item in SavingsGoalService(db, user_id).list()
    ]


@app.post("/goals")
async def create_goal(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    SavingsGoalService(db, user_id).create(goal_from_form(form))
    return action_ok(request, DASHBOARD_CHANGED)


@app.post("/goals/{goal_id}/delete")
async def delete_goal(
    goal_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    SavingsGoalService(db, user_id).delete(goal_id)
    return action_ok(request, DASHBOARD_CHANGED)


# ---- recurring ----------------------------------------------------------


@app.get("/api/recurring")
def list_recurring(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [_rule_payload(rule) for rule in RecurringTransactionService(db, user_id).list()]


@app.post("/recurring")
async def create_recurring(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    form = await checked_form(request, user_id)
    RecurringTransactionService(db, user_id).create(recurring_from_form(form))
    return action_ok(request, DASHBOARD_CHANGED, TRANSACTIONS_CHANGED)


@app.post("/recurring/{rule_id}/toggle")
async def toggle_recurring(
    rule_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    RecurringTransactionService(db, user_id).toggle(rule_id)
    return action_ok(request, DASHBOARD_CHANGED, TRANSACTIONS_CHANGED)


@app.post("/recurring/{rule_id}/delete")
async def delete_recurring(
    rule_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    await checked_form(request, user_id)
    RecurringTransactionService(db, user_id).delete(rule_id)
    return action_ok(request, DASHBOARD_CHANGED, TRANSACTIONS_CHANGED)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
