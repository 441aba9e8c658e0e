"""Turn submitted form fields into validated payloads.

Every parser raises :class:`errors.ValidationError` (or a subclass) with the
message shown to the user; nothing here touches the database.
"""

import json
from datetime import date
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from csv_utils import parse_amount
from errors import InvalidCategoriesPayload, NotFoundError, ValidationError
from models import PaymentMethod, TransactionType
from schemas import (
    BudgetPlanIn,
    CategoryIn,
    RecurringTransactionIn,
    RegisterIn,
    SavingsGoalIn,
    TransactionIn,
)


def text(form: Mapping[str, Any], name: str) -> str:
    value = form.get(name)
    return value if isinstance(value, str) else ""


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    ctx_error = (error.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    return error.get("msg", "Invalid input.")


def _optional_category_id(raw: str) -> Optional[int]:
    raw = raw.strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise NotFoundError("Category not found.") from exc


def _parse_date(raw: str, label: str = "Date") -> date:
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"{label} is invalid.") from exc


def parse_categories_json(raw: str) -> list[CategoryIn]:
    try:
        items = json.loads(raw or "")
    except json.JSONDecodeError as exc:
        raise InvalidCategoriesPayload("Invalid categories data.") from exc
    if not isinstance(items, list):
        raise InvalidCategoriesPayload("Invalid categories data.")
    if not items:
        raise ValidationError("At least one category is required.")
    try:
        return [CategoryIn.model_validate(item) for item in items]
    except PydanticValidationError as exc:
        raise InvalidCategoriesPayload("Invalid categories data.") from exc


def plan_from_form(form: Mapping[str, Any]) -> BudgetPlanIn:
    name = text(form, "name").strip()
    if not name:
        raise ValidationError("Plan name is required.")
    categories = parse_categories_json(text(form, "categories"))
    try:
        return BudgetPlanIn(name=name, categories=categories)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def _amount(raw: str, message: str) -> int:
    try:
        return parse_amount(raw)
    except ValueError as exc:
        raise ValidationError(message) from exc


def _transaction_type(raw: str, message: str) -> TransactionType:
    try:
        return TransactionType(raw.strip().upper())
    except ValueError as exc:
        raise ValidationError(message) from exc


def transaction_from_form(form: Mapping[str, Any]) -> TransactionIn:
    amount_cents = _amount(text(form, "amount"), "Amount must be a positive number.")
    txn_type = _transaction_type(
        text(form, "type"), "Type must be INCOME, EXPENSE, or SAVINGS."
    )
    category_raw = text(form, "categoryId")
    if txn_type != TransactionType.income and not category_raw.strip():
        raise ValidationError("Category is required for expenses and savings.")
    date_raw = text(form, "date")
    if not date_raw.strip():
        raise ValidationError("Date is required.")

    method_raw = text(form, "paymentMethod").strip().upper()
    payment_method = (
        PaymentMethod(method_raw)
        if method_raw in {m.value for m in PaymentMethod}
        else None
    )
    tags = [t.strip() for t in text(form, "tags").split(",") if t.strip()]
    try:
        return TransactionIn(
            date=_parse_date(date_raw),
            type=txn_type,
            amount_cents=amount_cents,
            category_id=(
                None
                if txn_type == TransactionType.income
                else _optional_category_id(category_raw)
            ),
            note=text(form, "note").strip() or None,
            tags=tags,
            payment_method=payment_method,
            payment_method_note=text(form, "paymentMethodNote").strip() or None,
        )
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def recurring_from_form(form: Mapping[str, Any]) -> RecurringTransactionIn:
    amount_cents = _amount(text(form, "amount"), "Amount must be positive.")
    txn_type = _transaction_type(text(form, "type"), "Invalid type.")
    category_raw = text(form, "categoryId")
    if txn_type != TransactionType.income and not category_raw.strip():
        raise ValidationError("Category is required.")
    try:
        day_of_month = int(text(form, "dayOfMonth").strip())
    except ValueError as exc:
        raise ValidationError("Day must be 1-28.") from exc
    if day_of_month < 1 or day_of_month > 28:
        raise ValidationError("Day must be 1-28.")
    try:
        return RecurringTransactionIn(
            amount_cents=amount_cents,
            type=txn_type,
            category_id=_optional_category_id(category_raw),
            note=text(form, "note").strip() or None,
            day_of_month=day_of_month,
        )
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def goal_from_form(form: Mapping[str, Any]) -> SavingsGoalIn:
    name = text(form, "name").strip()
    if not name:
        raise ValidationError("Name is required.")
    target_cents = _amount(
        text(form, "targetAmount"), "Target must be a positive number."
    )
    deadline_raw = text(form, "deadline").strip()
    try:
        return SavingsGoalIn(
            name=name,
            target_amount_cents=target_cents,
            category_id=_optional_category_id(text(form, "categoryId")),
            deadline=_parse_date(deadline_raw, "Deadline") if deadline_raw else None,
        )
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def register_from_form(form: Mapping[str, Any]) -> RegisterIn:
    return RegisterIn(
        name=text(form, "name"),
        email=text(form, "email"),
        password=text(form, "password"),
        confirm_password=text(form, "confirmPassword"),
    )
