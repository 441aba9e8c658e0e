from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Iterator, Optional, Sequence

import bcrypt
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from csv_utils import export_transactions
from currency import parse_currency
from errors import (
    BusinessRuleError,
    DuplicateAccountError,
    InvalidCategoriesPayload,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from models import (
    BudgetCategory,
    BudgetPlan,
    PaymentMethod,
    RecurringTransaction,
    SavingsGoal,
    Tag,
    Transaction,
    TransactionType,
    User,
    UserConfig,
)
from periods import Period, month_period, previous_month_period
from recurrence import RecurringEngine, local_today
from schemas import (
    BudgetPlanIn,
    CategoryIn,
    RecurringTransactionIn,
    RegisterIn,
    SavingsGoalIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

PERCENTAGE_TOLERANCE = 0.01
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
SPENDING_TYPES = (TransactionType.expense, TransactionType.savings)


@dataclass(frozen=True)
class PlanTemplate:
    name: str
    is_default: bool
    categories: tuple[tuple[str, float, bool], ...]


PLAN_TEMPLATES: tuple[PlanTemplate, ...] = (
    PlanTemplate(
        "50 / 30 / 20",
        True,
        (("Needs", 50, False), ("Wants", 30, False), ("Savings", 20, True)),
    ),
    PlanTemplate(
        "70 / 20 / 10",
        False,
        (("Essentials", 70, False), ("Leisure", 20, False), ("Savings", 10, True)),
    ),
    PlanTemplate(
        "80 / 20",
        False,
        (("Spending", 80, False), ("Savings", 20, True)),
    ),
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


@contextmanager
def persistence_guard(session: Session, message: str) -> Iterator[None]:
    """Roll back and surface ``message`` when the database refuses a write."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("persistence_failed: %s", message)
        raise PersistenceError(message) from exc


def validate_plan_input(data: BudgetPlanIn) -> None:
    if not data.name.strip():
        raise ValidationError("Plan name is required.")
    if not data.categories:
        raise ValidationError("At least one category is required.")
    ids = [c.id for c in data.categories if c.id is not None]
    if len(ids) != len(set(ids)):
        raise InvalidCategoriesPayload("Invalid categories data.")
    total = sum(Decimal(str(c.percentage)) for c in data.categories)
    if abs(total - Decimal(100)) > Decimal(str(PERCENTAGE_TOLERANCE)):
        raise BusinessRuleError("Percentages must sum to 100.")


def budgeted_cents(percentage: float, income_cents: int) -> int:
    """Share of income for a category, truncated to whole cents."""
    share = Decimal(str(percentage)) * Decimal(income_cents) / Decimal(100)
    return int(share.to_integral_value(rounding=ROUND_FLOOR))


def owned_category(session: Session, user_id: int, category_id: int) -> BudgetCategory:
    stmt = (
        select(BudgetCategory)
        .join(BudgetPlan, BudgetPlan.id == BudgetCategory.plan_id)
        .where(BudgetCategory.id == category_id, BudgetPlan.user_id == user_id)
    )
    category = session.scalar(stmt)
    if not category:
        raise NotFoundError("Category not found.")
    return category


def _build_categories(categories: Sequence[CategoryIn]) -> list[BudgetCategory]:
    return [
        BudgetCategory(name=c.name, percentage=c.percentage, is_savings=c.is_savings)
        for c in categories
    ]


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        name = data.name.strip()
        email = data.email.strip().lower()
        if not name:
            raise ValidationError("Name is required.")
        if not email:
            raise ValidationError("Email is required.")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format.")
        if len(data.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 8 characters.")
        if data.password != data.confirm_password:
            raise ValidationError("Passwords do not match.")

        if self.session.scalar(select(User.id).where(User.email == email)):
            raise DuplicateAccountError("An account with this email already exists.")

        user = User(name=name, email=email, password_hash=hash_password(data.password))
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            self.session.rollback()
            raise DuplicateAccountError(
                "An account with this email already exists."
            ) from exc
        self.session.refresh(user)
        logger.info("user_registered: user_id=%s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.session.scalar(
            select(User).where(User.email == (email or "").strip().lower())
        )
        if not user or not verify_password(password or "", user.password_hash):
            return None
        return user


class ConfigService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _load(self) -> Optional[UserConfig]:
        stmt = (
            select(UserConfig)
            .options(
                joinedload(UserConfig.active_plan).selectinload(BudgetPlan.categories)
            )
            .where(UserConfig.user_id == self.user_id)
        )
        return self.session.scalar(stmt)

    def get_or_create(self) -> Optional[UserConfig]:
        config = self._load()
        if config:
            return config

        default_plan = self.session.scalar(
            select(BudgetPlan)
            .where(BudgetPlan.user_id == self.user_id, BudgetPlan.is_default.is_(True))
            .order_by(BudgetPlan.id)
            .limit(1)
        )
        if not default_plan:
            return None

        self.session.add(
            UserConfig(user_id=self.user_id, active_plan_id=default_plan.id)
        )
        try:
            self.session.commit()
        except IntegrityError:
            # Another request created it first; use theirs.
            self.session.rollback()
        return self._load()

    def is_configured(self) -> bool:
        return (
            self.session.scalar(
                select(UserConfig.id).where(UserConfig.user_id == self.user_id)
            )
            is not None
        )

    def initialize(self, plan_index: int) -> UserConfig:
        if plan_index < 0 or plan_index >= len(PLAN_TEMPLATES):
            raise ValidationError("Invalid plan selection.")
        if self.is_configured():
            return self._load()

        with persistence_guard(self.session, "Failed to initialize budget."):
            plans: list[BudgetPlan] = []
            for template in PLAN_TEMPLATES:
                plan = BudgetPlan(
                    user_id=self.user_id,
                    name=template.name,
                    is_default=template.is_default,
                    categories=[
                        BudgetCategory(name=n, percentage=p, is_savings=s)
                        for n, p, s in template.categories
                    ],
                )
                self.session.add(plan)
                plans.append(plan)
            self.session.flush()
            self.session.add(
                UserConfig(user_id=self.user_id, active_plan_id=plans[plan_index].id)
            )
            self.session.commit()
        logger.info(
            "config_initialized: user_id=%s plan=%s",
            self.user_id,
            PLAN_TEMPLATES[plan_index].name,
        )
        return self._load()

    def initialize_with_custom_plan(self, data: BudgetPlanIn) -> UserConfig:
        validate_plan_input(data)
        if self.is_configured():
            return self._load()

        with persistence_guard(self.session, "Failed to initialize budget."):
            plan = BudgetPlan(
                user_id=self.user_id,
                name=data.name,
                is_custom=True,
                categories=_build_categories(data.categories),
            )
            self.session.add(plan)
            self.session.flush()
            self.session.add(UserConfig(user_id=self.user_id, active_plan_id=plan.id))
            self.session.commit()
        return self._load()

    def update_currency(self, currency: str) -> UserConfig:
        try:
            code = parse_currency(currency)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        config = self.get_or_create()
        if not config:
            raise NotFoundError("No configuration found.")
        with persistence_guard(self.session, "Failed to update currency."):
            config.currency = code
            self.session.commit()
        return config


@dataclass(frozen=True)
class ReconcileResult:
    removed: int
    retyped: int
    created: int
    updated: int


class BudgetPlanService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[BudgetPlan]:
        stmt = (
            select(BudgetPlan)
            .options(selectinload(BudgetPlan.categories))
            .where(BudgetPlan.user_id == self.user_id)
            .order_by(BudgetPlan.created_at, BudgetPlan.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, plan_id: int) -> BudgetPlan:
        plan = self.session.scalar(
            select(BudgetPlan).where(
                BudgetPlan.id == plan_id, BudgetPlan.user_id == self.user_id
            )
        )
        if not plan:
            raise NotFoundError("Plan not found.")
        return plan

    def set_active(self, plan_id: int) -> UserConfig:
        config = ConfigService(self.session, self.user_id).get_or_create()
        if not config:
            raise NotFoundError("No configuration found.")
        plan = self.get(plan_id)
        with persistence_guard(self.session, "Failed to update active plan."):
            config.active_plan_id = plan.id
            self.session.commit()
        self.session.refresh(config)
        return config

    def create_custom(self, data: BudgetPlanIn) -> BudgetPlan:
        validate_plan_input(data)
        with persistence_guard(self.session, "Failed to create custom plan."):
            plan = BudgetPlan(
                user_id=self.user_id,
                name=data.name,
                is_custom=True,
                categories=_build_categories(data.categories),
            )
            self.session.add(plan)
            self.session.commit()
        self.session.refresh(plan)
        return plan

    def _detach_categories(self, category_ids: Sequence[int]) -> None:
        if not category_ids:
            return
        for model in (Transaction, SavingsGoal, RecurringTransaction):
            self.session.execute(
                update(model)
                .where(model.user_id == self.user_id, model.category_id.in_(category_ids))
                .values(category_id=None)
            )

    def update(self, plan_id: int, data: BudgetPlanIn) -> ReconcileResult:
        """Reconcile the plan's categories with the submitted list.

        Categories missing from ``data`` are removed after their transactions
        are detached, submitted ids are updated in place (retyping their
        transactions when the savings flag flips) and entries without an id
        are created. Everything happens in a single database transaction.
        """
        if not data.name.strip():
            raise ValidationError("Plan name is required.")
        plan = self.get(plan_id)
        validate_plan_input(data)

        existing = {
            c.id: c
            for c in self.session.scalars(
                select(BudgetCategory).where(BudgetCategory.plan_id == plan.id)
            )
        }
        submitted = [c for c in data.categories if c.id is not None]
        unknown = {c.id for c in submitted} - set(existing)
        if unknown:
            raise NotFoundError("Category not found.")
        removed_ids = sorted(set(existing) - {c.id for c in submitted})

        retyped = 0
        with persistence_guard(self.session, "Failed to update plan."):
            self._detach_categories(removed_ids)
            for category_id in removed_ids:
                self.session.delete(existing[category_id])
            self.session.flush()

            for item in submitted:
                category = existing[item.id]
                flag_changed = category.is_savings != item.is_savings
                category.name = item.name
                category.percentage = item.percentage
                category.is_savings = item.is_savings
                if flag_changed:
                    retyped += self._retype(category.id, item.is_savings)

            for item in data.categories:
                if item.id is None:
                    self.session.add(
                        BudgetCategory(
                            plan_id=plan.id,
                            name=item.name,
                            percentage=item.percentage,
                            is_savings=item.is_savings,
                        )
                    )
            self.session.flush()

            plan.name = data.name
            self.session.commit()
        self.session.refresh(plan)

        result = ReconcileResult(
            removed=len(removed_ids),
            retyped=retyped,
            created=len(data.categories) - len(submitted),
            updated=len(submitted),
        )
        logger.info(
            "plan_reconciled: user_id=%s plan_id=%s removed=%s updated=%s created=%s retyped=%s",
            self.user_id,
            plan.id,
            result.removed,
            result.updated,
            result.created,
            result.retyped,
        )
        return result

    def _retype(self, category_id: int, is_savings: bool) -> int:
        new_type = TransactionType.savings if is_savings else TransactionType.expense
        result = self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category_id,
                Transaction.type.in_(SPENDING_TYPES),
            )
            .values(type=new_type)
        )
        self.session.execute(
            update(RecurringTransaction)
            .where(
                RecurringTransaction.user_id == self.user_id,
                RecurringTransaction.category_id == category_id,
                RecurringTransaction.type.in_(SPENDING_TYPES),
            )
            .values(type=new_type)
        )
        return result.rowcount or 0

    def delete(self, plan_id: int) -> None:
        config = ConfigService(self.session, self.user_id).get_or_create()
        if not config:
            raise NotFoundError("No configuration found.")
        if config.active_plan_id == plan_id:
            raise BusinessRuleError("Cannot delete the active plan.")
        plan = self.get(plan_id)
        if plan.is_default:
            raise BusinessRuleError("Cannot delete a default plan.")

        with persistence_guard(self.session, "Failed to delete plan."):
            category_ids = self.session.scalars(
                select(BudgetCategory.id).where(BudgetCategory.plan_id == plan.id)
            ).all()
            self._detach_categories(category_ids)
            self.session.delete(plan)
            self.session.commit()
        logger.info(
            "plan_deleted: user_id=%s plan_id=%s categories=%s",
            self.user_id,
            plan_id,
            len(category_ids),
        )


class TagService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Tag]:
        stmt = select(Tag).where(Tag.user_id == self.user_id).order_by(Tag.name)
        return self.session.scalars(stmt).all()

    def get_or_create(self, name: str) -> Tag:
        clean_name = name.strip()
        if not clean_name:
            raise ValidationError("Tag name cannot be empty")

        stmt = select(Tag).where(
            Tag.user_id == self.user_id, func.lower(Tag.name) == clean_name.lower()
        )
        existing = self.session.scalar(stmt)
        if existing:
            return existing

        tag = Tag(user_id=self.user_id, name=clean_name)
        self.session.add(tag)
        self.session.flush()
        return tag


@dataclass
class TransactionFilters:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    tag_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True)
class MonthTransaction:
    id: int
    amount_cents: int
    type: TransactionType
    note: Optional[str]
    date: date
    category_name: Optional[str]


@dataclass
class MonthSummary:
    month: int
    income_cents: int = 0
    expenses_cents: int = 0
    savings_cents: int = 0
    transactions: list[MonthTransaction] = field(default_factory=list)


@dataclass
class YearSummary:
    year: int
    months: list[MonthSummary]


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: TransactionIn) -> Transaction:
        category_id: Optional[int] = None
        if data.type != TransactionType.income:
            if data.category_id is None:
                raise ValidationError("Category is required for expenses and savings.")
            category = owned_category(self.session, self.user_id, data.category_id)
            if category.is_savings != (data.type == TransactionType.savings):
                raise ValidationError("Category type mismatch.")
            category_id = category.id

        payment_note = None
        if data.payment_method == PaymentMethod.other and data.payment_method_note:
            payment_note = data.payment_method_note.strip() or None

        with persistence_guard(self.session, "Failed to create transaction."):
            txn = Transaction(
                user_id=self.user_id,
                date=data.date,
                type=data.type,
                amount_cents=data.amount_cents,
                category_id=category_id,
                note=(data.note or "").strip() or None,
                payment_method=data.payment_method,
                payment_method_note=payment_note,
            )
            if data.tags:
                tag_service = TagService(self.session, self.user_id)
                tags: list[Tag] = []
                tag_ids: set[int] = set()
                for name in data.tags:
                    if not name.strip():
                        continue
                    tag = tag_service.get_or_create(name)
                    if tag.id not in tag_ids:
                        tags.append(tag)
                        tag_ids.add(tag.id)
                txn.tags = tags
            self.session.add(txn)
            self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), selectinload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found.")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.id == transaction_id, Transaction.user_id == self.user_id
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found.")
        with persistence_guard(self.session, "Failed to delete transaction."):
            self.session.delete(txn)
            self.session.commit()

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), selectinload(Transaction.tags))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.date_from:
            stmt = stmt.where(Transaction.date >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(Transaction.date <= filters.date_to)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.tag_id:
            stmt = stmt.where(Transaction.tags.any(Tag.id == filters.tag_id))
        if filters.payment_method:
            stmt = stmt.where(Transaction.payment_method == filters.payment_method)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).unique().all()

    def monthly_summary(self) -> list[YearSummary]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        buckets: dict[tuple[int, int], MonthSummary] = {}
        for txn in self.session.scalars(stmt):
            key = (txn.date.year, txn.date.month)
            entry = buckets.get(key)
            if entry is None:
                entry = buckets[key] = MonthSummary(month=txn.date.month)
            if txn.type == TransactionType.income:
                entry.income_cents += txn.amount_cents
            elif txn.type == TransactionType.savings:
                entry.savings_cents += txn.amount_cents
            else:
                entry.expenses_cents += txn.amount_cents
            entry.transactions.append(
                MonthTransaction(
                    id=txn.id,
                    amount_cents=txn.amount_cents,
                    type=txn.type,
                    note=txn.note,
                    date=txn.date,
                    category_name=txn.category.name if txn.category else None,
                )
            )

        by_year: dict[int, list[MonthSummary]] = {}
        for (year, _month), summary in buckets.items():
            by_year.setdefault(year, []).append(summary)
        return [
            YearSummary(year=year, months=sorted(months, key=lambda m: m.month))
            for year, months in sorted(by_year.items(), reverse=True)
        ]


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: int
    name: str
    percentage: float
    is_savings: bool
    budgeted_cents: int
    spent_cents: int


@dataclass(frozen=True)
class MonthTotals:
    income_cents: int
    expenses_cents: int
    savings_cents: int

    @property
    def remaining_cents(self) -> int:
        return self.income_cents - self.expenses_cents - self.savings_cents


@dataclass(frozen=True)
class DashboardStats:
    plan_id: int
    plan_name: str
    period: Period
    current: MonthTotals
    previous: MonthTotals
    breakdown: list[CategoryBreakdown]


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _totals(self, period: Period) -> MonthTotals:
        stmt = (
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount_cents), 0))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.type)
        )
        sums = {row[0]: int(row[1] or 0) for row in self.session.execute(stmt)}
        return MonthTotals(
            income_cents=sums.get(TransactionType.income, 0),
            expenses_cents=sums.get(TransactionType.expense, 0),
            savings_cents=sums.get(TransactionType.savings, 0),
        )

    def _spent_by_category(self, period: Period) -> dict[int, int]:
        stmt = (
            select(Transaction.category_id, func.sum(Transaction.amount_cents))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type.in_(SPENDING_TYPES),
                Transaction.category_id.isnot(None),
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category_id)
        )
        return {row[0]: int(row[1] or 0) for row in self.session.execute(stmt)}

    def stats(self, today: Optional[date] = None) -> Optional[DashboardStats]:
        config = ConfigService(self.session, self.user_id).get_or_create()
        if not config:
            return None

        today = today or local_today()
        current_period = month_period(today)
        current = self._totals(current_period)
        previous = self._totals(previous_month_period(today))
        spent = self._spent_by_category(current_period)

        plan = config.active_plan
        breakdown = [
            CategoryBreakdown(
                category_id=cat.id,
                name=cat.name,
                percentage=cat.percentage,
                is_savings=cat.is_savings,
                budgeted_cents=budgeted_cents(cat.percentage, current.income_cents),
                spent_cents=spent.get(cat.id, 0),
            )
            for cat in plan.categories
        ]
        return DashboardStats(
            plan_id=plan.id,
            plan_name=plan.name,
            period=current_period,
            current=current,
            previous=previous,
            breakdown=breakdown,
        )


@dataclass(frozen=True)
class GoalProgress:
    goal: SavingsGoal
    current_cents: int

    @property
    def progress_percent(self) -> float:
        if self.goal.target_amount_cents <= 0:
            return 0.0
        return min(100.0, self.current_cents / self.goal.target_amount_cents * 100)


class SavingsGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[GoalProgress]:
        goals = self.session.scalars(
            select(SavingsGoal)
            .options(joinedload(SavingsGoal.category))
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at, SavingsGoal.id)
        ).all()
        category_ids = {g.category_id for g in goals if g.category_id is not None}
        saved: dict[int, int] = {}
        if category_ids:
            stmt = (
                select(Transaction.category_id, func.sum(Transaction.amount_cents))
                .where(
                    Transaction.user_id == self.user_id,
                    Transaction.type == TransactionType.savings,
                    Transaction.category_id.in_(category_ids),
                )
                .group_by(Transaction.category_id)
            )
            saved = {row[0]: int(row[1] or 0) for row in self.session.execute(stmt)}
        return [
            GoalProgress(goal=g, current_cents=saved.get(g.category_id, 0))
            for g in goals
        ]

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        name = data.name.strip()
        if not name:
            raise ValidationError("Name is required.")
        if data.category_id is not None:
            owned_category(self.session, self.user_id, data.category_id)
        with persistence_guard(self.session, "Failed to create goal."):
            goal = SavingsGoal(
                user_id=self.user_id,
                name=name,
                target_amount_cents=data.target_amount_cents,
                category_id=data.category_id,
                deadline=data.deadline,
            )
            self.session.add(goal)
            self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.session.scalar(
            select(SavingsGoal).where(
                SavingsGoal.id == goal_id, SavingsGoal.user_id == self.user_id
            )
        )
        if not goal:
            raise NotFoundError("Goal not found.")
        with persistence_guard(self.session, "Failed to delete goal."):
            self.session.delete(goal)
            self.session.commit()


class RecurringTransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, rule_id: int) -> RecurringTransaction:
        rule = self.session.scalar(
            select(RecurringTransaction).where(
                RecurringTransaction.id == rule_id,
                RecurringTransaction.user_id == self.user_id,
            )
        )
        if not rule:
            raise NotFoundError("Not found.")
        return rule

    def list(self) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .options(joinedload(RecurringTransaction.category))
            .where(RecurringTransaction.user_id == self.user_id)
            .order_by(RecurringTransaction.day_of_month, RecurringTransaction.id)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        category_id: Optional[int] = None
        if data.type != TransactionType.income:
            if data.category_id is None:
                raise ValidationError("Category is required.")
            category_id = owned_category(
                self.session, self.user_id, data.category_id
            ).id
        with persistence_guard(self.session, "Failed to create recurring transaction."):
            rule = RecurringTransaction(
                user_id=self.user_id,
                amount_cents=data.amount_cents,
                type=data.type,
                category_id=category_id,
                note=(data.note or "").strip() or None,
                day_of_month=data.day_of_month,
                is_active=True,
            )
            self.session.add(rule)
            self.session.commit()
        self.session.refresh(rule)
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        with persistence_guard(self.session, "Failed to delete recurring transaction."):
            self.session.delete(rule)
            self.session.commit()

    def toggle(self, rule_id: int) -> bool:
        rule = self.get(rule_id)
        with persistence_guard(self.session, "Failed to toggle recurring transaction."):
            rule.is_active = not rule.is_active
            self.session.commit()
        return rule.is_active

    def process(self, today: Optional[date] = None) -> int:
        with persistence_guard(self.session, "Failed to process recurring transactions."):
            return RecurringEngine(self.session).process(self.user_id, today)


class CSVService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def export(self) -> str:
        transactions = TransactionService(self.session, self.user_id).list()
        return export_transactions(transactions)
