from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import PaymentMethod, TransactionType


class CategoryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    percentage: float = Field(..., ge=0, le=100)
    is_savings: bool = Field(default=False, alias="isSavings")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required.")
        return value


class BudgetPlanIn(BaseModel):
    name: str = Field(..., max_length=100)
    categories: list[CategoryIn]

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class TransactionIn(BaseModel):
    date: date
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)
    payment_method: Optional[PaymentMethod] = None
    payment_method_note: Optional[str] = Field(default=None, max_length=120)


class RecurringTransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=500)
    day_of_month: int = Field(..., ge=1, le=28)


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    category_id: Optional[int] = None
    deadline: Optional[date] = None


class RegisterIn(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
