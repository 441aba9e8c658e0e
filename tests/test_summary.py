from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Transaction, TransactionType, User
from schemas import TransactionIn
from services import ConfigService, TransactionService


def test_many_small_amounts_sum_exactly():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = User(name="Ann", email="ann@example.com", password_hash="x")
        session.add(user)
        session.commit()
        session.add_all(
            Transaction(
                user_id=user.id,
                date=date(2026, 5, 1 + i % 28),
                type=TransactionType.income,
                amount_cents=1,
            )
            for i in range(200)
        )
        session.commit()

        (year,) = TransactionService(session, user.id).monthly_summary()

        assert year.year == 2026
        (month,) = year.months
        assert month.income_cents == 200
        assert month.income_cents / 100 == 2.0
        assert len(month.transactions) == 200


def test_years_descending_months_ascending():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = User(name="Ann", email="ann@example.com", password_hash="x")
        session.add(user)
        session.commit()
        cats = {
            c.name: c.id
            for c in ConfigService(session, user.id).initialize(0).active_plan.categories
        }
        service = TransactionService(session, user.id)
        for day, kind, amount, category in (
            (date(2025, 12, 24), TransactionType.expense, 500, cats["Wants"]),
            (date(2026, 3, 2), TransactionType.savings, 700, cats["Savings"]),
            (date(2026, 1, 5), TransactionType.income, 10000, None),
            (date(2026, 1, 6), TransactionType.expense, 300, cats["Needs"]),
        ):
            service.create(
                TransactionIn(date=day, type=kind, amount_cents=amount, category_id=category)
            )

        summary = service.monthly_summary()

        assert [y.year for y in summary] == [2026, 2025]
        assert [m.month for m in summary[0].months] == [1, 3]
        january = summary[0].months[0]
        assert (january.income_cents, january.expenses_cents, january.savings_cents) == (
            10000,
            300,
            0,
        )
        assert summary[0].months[1].savings_cents == 700
        assert summary[1].months[0].transactions[0].category_name == "Wants"
