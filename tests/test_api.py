import time
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from fx_rates import RateData
from main import app, get_fx
from recurrence import local_today


class StubRates:
    def latest(self) -> RateData:
        return RateData(
            rates={"THB": 1.0, "USD": 0.029, "JPY": 4.3}, updated_at=int(time.time())
        )


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    def override_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_fx] = StubRates
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def _sign_in(client: TestClient, email: str = "ann@example.com") -> str:
    resp = client.post(
        "/register",
        data={
            "name": "Ann",
            "email": email,
            "password": "correct horse",
            "confirmPassword": "correct horse",
        },
    )
    assert resp.json() == {"success": True}
    resp = client.post("/login", data={"email": email, "password": "correct horse"})
    assert resp.status_code == 200
    return client.get("/api/csrf-token").json()["csrf_token"]


def _configured(client: TestClient) -> str:
    token = _sign_in(client)
    resp = client.post(
        "/setup", data={"csrf_token": token, "planIndex": "0"}, follow_redirects=False
    )
    assert resp.status_code == 303
    assert resp.headers["location"] == "/"
    return token


def test_requires_login(client):
    assert client.get("/api/export-csv").status_code == 401
    assert client.get("/api/dashboard").status_code == 401


def test_bad_login_is_rejected(client):
    _sign_in(client)
    resp = client.post("/login", data={"email": "ann@example.com", "password": "nope"})

    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Invalid email or password."}


def test_duplicate_registration_conflicts(client):
    _sign_in(client)
    resp = client.post(
        "/register",
        data={
            "name": "Ann",
            "email": "ann@example.com",
            "password": "correct horse",
            "confirmPassword": "correct horse",
        },
    )

    assert resp.status_code == 409
    assert resp.json()["error"] == "An account with this email already exists."


def test_unconfigured_dashboard_redirects_to_setup(client):
    _sign_in(client)
    resp = client.get("/", follow_redirects=False)

    assert resp.status_code == 303
    assert resp.headers["location"] == "/setup"


def test_form_posts_need_csrf_token(client):
    _configured(client)
    resp = client.post("/transactions", data={"amount": "10", "type": "INCOME"})

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid CSRF token."}


def test_transaction_flow_updates_dashboard(client):
    token = _configured(client)
    today = local_today().isoformat()
    plan = client.get("/api/plans").json()[0]
    needs = next(c for c in plan["categories"] if c["name"] == "Needs")

    for amount in ("0.10", "0.20"):
        resp = client.post(
            "/transactions",
            data={"csrf_token": token, "amount": amount, "type": "INCOME", "date": today},
        )
        assert resp.status_code == 200
        assert "dashboard-changed" in resp.headers["HX-Trigger"]
    resp = client.post(
        "/transactions",
        data={
            "csrf_token": token,
            "amount": "0.05",
            "type": "EXPENSE",
            "categoryId": str(needs["id"]),
            "date": today,
            "tags": "snacks",
        },
        headers={"HX-Request": "true"},
    )
    assert resp.status_code == 204

    dashboard = client.get("/api/dashboard").json()
    assert dashboard["plan"]["name"] == "50 / 30 / 20"
    assert dashboard["current"]["income"] == 0.3
    assert dashboard["current"]["expenses"] == 0.05
    assert dashboard["display"]["income"] == "฿0.30"
    needs_row = next(r for r in dashboard["breakdown"] if r["name"] == "Needs")
    assert needs_row["budgeted"] == 0.15
    assert needs_row["spent"] == 0.05

    listing = client.get("/api/transactions", params={"period": "this_month"}).json()
    assert [t["amount"] for t in listing["items"]] == [0.05, 0.2, 0.1]
    assert listing["items"][0]["tags"][0]["name"] == "snacks"
    assert client.get("/api/tags").json()[0]["name"] == "snacks"


def test_validation_errors_are_reported(client):
    token = _configured(client)
    resp = client.post(
        "/transactions", data={"csrf_token": token, "amount": "abc", "type": "INCOME"}
    )

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Amount must be a positive number."}


def test_deleting_active_plan_conflicts(client):
    token = _configured(client)
    config = client.get("/api/config").json()

    resp = client.post(f"/plans/{config['activePlanId']}/delete", data={"csrf_token": token})

    assert resp.status_code == 409
    assert resp.json()["error"] == "Cannot delete the active plan."


def test_currency_switch_changes_display(client):
    token = _configured(client)
    today = local_today().isoformat()
    client.post(
        "/transactions",
        data={"csrf_token": token, "amount": "1000", "type": "INCOME", "date": today},
    )

    resp = client.post("/config/currency", data={"csrf_token": token, "currency": "JPY"})
    assert resp.json() == {"success": True}

    dashboard = client.get("/").json()
    assert dashboard["currency"] == "JPY"
    assert dashboard["display"]["income"] == "¥4,300"

    bad = client.post("/config/currency", data={"csrf_token": token, "currency": "EUR"})
    assert bad.status_code == 400


def test_export_csv(client):
    token = _configured(client)
    yesterday = (local_today() - timedelta(days=1)).isoformat()
    client.post(
        "/transactions",
        data={
            "csrf_token": token,
            "amount": "12.5",
            "type": "INCOME",
            "date": yesterday,
            "note": "Tip",
        },
    )

    resp = client.get("/api/export-csv")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "text/csv"
    assert resp.headers["content-disposition"] == (
        f'attachment; filename="centa-transactions-{local_today().isoformat()}.csv"'
    )
    assert resp.text == f'Date,Type,Category,Amount,Note\n{yesterday},INCOME,,12.50,"Tip"'


def test_monthly_summary_and_goals(client):
    token = _configured(client)
    plan = client.get("/api/plans").json()[0]
    savings = next(c for c in plan["categories"] if c["isSavings"])
    today = local_today().isoformat()

    resp = client.post(
        "/goals",
        data={
            "csrf_token": token,
            "name": "Trip",
            "targetAmount": "100",
            "categoryId": str(savings["id"]),
        },
    )
    assert resp.status_code == 200
    client.post(
        "/transactions",
        data={
            "csrf_token": token,
            "amount": "25",
            "type": "SAVINGS",
            "categoryId": str(savings["id"]),
            "date": today,
        },
    )

    (goal,) = client.get("/api/goals").json()
    assert goal["currentAmount"] == 25.0
    assert goal["progress"] == 25.0

    (year,) = client.get("/api/summary").json()
    assert year["months"][0]["savings"] == 25.0


def test_recurring_rules_post_on_dashboard_load(client):
    token = _configured(client)
    resp = client.post(
        "/recurring",
        data={"csrf_token": token, "amount": "500", "type": "INCOME", "dayOfMonth": "1"},
    )
    assert resp.status_code == 200

    client.get("/")
    client.get("/")

    (rule,) = client.get("/api/recurring").json()
    assert rule["dayOfMonth"] == 1
    items = client.get("/api/transactions").json()["items"]
    assert len(items) == 1
    assert items[0]["isRecurring"]
    assert items[0]["date"] == local_today().replace(day=1).isoformat()
