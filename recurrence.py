import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import RecurringTransaction, Transaction, TransactionType
from periods import month_period

logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


class RecurringEngine:
    """Posts at most one transaction per active rule per calendar month.

    A rule becomes due once today's day-of-month reaches its ``day_of_month``.
    Days the user never visits are not backfilled: only the current month is
    considered on each run.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def process(self, user_id: int, today: Optional[date] = None) -> int:
        today = today or local_today()
        stmt = (
            select(RecurringTransaction)
            .where(
                RecurringTransaction.user_id == user_id,
                RecurringTransaction.is_active.is_(True),
            )
            .order_by(RecurringTransaction.day_of_month, RecurringTransaction.id)
        )
        rules = self.session.scalars(stmt).all()
        created = 0
        for rule in rules:
            if self._post_for_month(rule, today):
                created += 1
        if created:
            self.session.commit()
        logger.info(
            "recurring_run: user_id=%s rules=%s created=%s", user_id, len(rules), created
        )
        return created

    def _post_for_month(self, rule: RecurringTransaction, today: date) -> bool:
        month = month_period(today)
        exists_stmt = (
            select(Transaction.id)
            .where(
                Transaction.user_id == rule.user_id,
                Transaction.recurring_id == rule.id,
                Transaction.date.between(month.start, month.end),
            )
            .limit(1)
        )
        if self.session.execute(exists_stmt).scalar_one_or_none():
            return False
        if today.day < rule.day_of_month:
            return False

        txn = Transaction(
            user_id=rule.user_id,
            date=date(today.year, today.month, rule.day_of_month),
            type=rule.type,
            amount_cents=rule.amount_cents,
            category_id=None if rule.type == TransactionType.income else rule.category_id,
            note=rule.note,
            is_recurring=True,
            recurring_id=rule.id,
        )
        self.session.add(txn)
        self.session.flush()
        return True
