from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType, User
from schemas import TransactionIn
from services import ConfigService, DashboardService, TransactionService


def _setup(session: Session):
    user = User(name="Ann", email="ann@example.com", password_hash="x")
    session.add(user)
    session.commit()
    plan = ConfigService(session, user.id).initialize(0).active_plan
    return user.id, {c.name: c.id for c in plan.categories}


def test_stats_without_configuration_is_none():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = User(name="Ann", email="ann@example.com", password_hash="x")
        session.add(user)
        session.commit()

        assert DashboardService(session, user.id).stats(date(2026, 3, 15)) is None


def test_stats_split_current_and_previous_month():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id, cats = _setup(session)
        txns = TransactionService(session, user_id)
        rows = [
            (date(2026, 2, 28), TransactionType.income, 1000000, None),
            (date(2026, 2, 28), TransactionType.expense, 25000, cats["Needs"]),
            (date(2026, 3, 1), TransactionType.income, 3333300, None),
            (date(2026, 3, 5), TransactionType.expense, 120000, cats["Needs"]),
            (date(2026, 3, 6), TransactionType.expense, 30000, cats["Wants"]),
            (date(2026, 3, 31), TransactionType.savings, 500000, cats["Savings"]),
            (date(2026, 4, 1), TransactionType.expense, 999, cats["Wants"]),
        ]
        for day, kind, amount, category_id in rows:
            txns.create(
                TransactionIn(
                    date=day, type=kind, amount_cents=amount, category_id=category_id
                )
            )

        stats = DashboardService(session, user_id).stats(date(2026, 3, 15))

        assert stats.plan_name == "50 / 30 / 20"
        assert (stats.period.start, stats.period.end) == (date(2026, 3, 1), date(2026, 3, 31))
        assert stats.current.income_cents == 3333300
        assert stats.current.expenses_cents == 150000
        assert stats.current.savings_cents == 500000
        assert stats.current.remaining_cents == 3333300 - 150000 - 500000
        assert stats.previous.income_cents == 1000000
        assert stats.previous.expenses_cents == 25000

        by_name = {row.name: row for row in stats.breakdown}
        assert [row.name for row in stats.breakdown] == ["Needs", "Wants", "Savings"]
        assert by_name["Needs"].budgeted_cents == 1666650
        assert by_name["Wants"].budgeted_cents == 999990
        assert by_name["Savings"].budgeted_cents == 666660
        assert by_name["Needs"].spent_cents == 120000
        assert by_name["Wants"].spent_cents == 30000
        assert by_name["Savings"].spent_cents == 500000
        assert by_name["Savings"].is_savings


def test_stats_for_empty_month_are_zero():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id, _ = _setup(session)
        stats = DashboardService(session, user_id).stats(date(2026, 1, 10))

        assert stats.current.remaining_cents == 0
        assert all(row.budgeted_cents == 0 for row in stats.breakdown)
        assert all(row.spent_cents == 0 for row in stats.breakdown)
