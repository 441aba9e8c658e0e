import time
from decimal import Decimal

import pytest

import fx_rates
from currency import FALLBACK_RATES, convert, format_amount, format_cents, parse_currency
from fx_rates import FxRateService, RateData, time_ago
from models import CurrencyCode


def test_format_amount_in_base_currency():
    assert format_amount(1234.5, "THB", FALLBACK_RATES) == "฿1,234.50"
    assert format_amount(0, CurrencyCode.thb, FALLBACK_RATES) == "฿0.00"
    assert format_cents(-12345, "THB", FALLBACK_RATES) == "฿-123.45"


def test_format_amount_converts_with_rates():
    assert format_amount(1000, "USD", FALLBACK_RATES) == "$29.00"
    assert format_amount(1000, "JPY", FALLBACK_RATES) == "¥4,300"
    assert format_amount(1000, "USD", {"USD": 0.0275}) == "$27.50"


def test_missing_rate_leaves_amount_unconverted():
    assert convert(10, "USD", {}) == Decimal("10")
    assert format_amount(10, "USD", {"THB": 1.0}) == "$10.00"


def test_parse_currency():
    assert parse_currency(" usd ") == CurrencyCode.usd
    with pytest.raises(ValueError, match="Invalid currency."):
        parse_currency("EUR")


def test_rates_fall_back_when_provider_fails(monkeypatch):
    fx_rates.clear_cache()

    def boom(url, *, timeout):
        raise RuntimeError("offline")

    monkeypatch.setattr(fx_rates, "_fetch_rates", boom)

    data = FxRateService().latest()

    assert data.fallback
    assert data.rates == FALLBACK_RATES
    assert abs(data.updated_at - time.time()) < 5


def test_rates_are_cached_between_calls(monkeypatch):
    fx_rates.clear_cache()
    calls = []

    def fetch(url, *, timeout):
        calls.append(url)
        return RateData(rates={"THB": 1.0, "USD": 0.03, "JPY": 4.1}, updated_at=1700000000)

    monkeypatch.setattr(fx_rates, "_fetch_rates", fetch)

    first = FxRateService().latest()
    second = FxRateService().latest()

    assert first == second
    assert first.rates["USD"] == 0.03
    assert len(calls) == 1
    fx_rates.clear_cache()


def test_time_ago():
    assert time_ago(1000, now=1030) == "just now"
    assert time_ago(1000, now=1000 + 5 * 60) == "5m ago"
    assert time_ago(1000, now=1000 + 3 * 3600) == "3h ago"
    assert time_ago(1000, now=1000 + 2 * 86400) == "2d ago"


def test_base_currency_ignores_its_rate():
    assert format_amount(10, "THB", {"THB": 2.0}) == "฿10.00"


class FakeResponse:
    def __init__(self, body=b"", error=None):
        self.body = body
        self.error = error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        if self.error:
            raise self.error
        return self.body


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(error=ConnectionResetError("peer reset")),
        FakeResponse(body=b"\xff\xfe\xfa"),
        FakeResponse(body=b"[1, 2]"),
        FakeResponse(body=b'{"rates": {"USD": "n/a"}}'),
    ],
)
def test_any_provider_failure_falls_back(monkeypatch, response):
    fx_rates.clear_cache()
    monkeypatch.setattr(fx_rates, "urlopen", lambda req, timeout: response)

    data = FxRateService().latest()

    assert data.fallback
    assert data.rates == FALLBACK_RATES


def test_malformed_provider_body_is_not_cached(monkeypatch):
    fx_rates.clear_cache()
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        return FakeResponse(body=b'{"rates": "oops"}')

    monkeypatch.setattr(fx_rates, "urlopen", fake_urlopen)

    assert FxRateService().latest().fallback
    assert FxRateService().latest().fallback
    assert len(calls) == 2


def test_provider_rates_are_parsed(monkeypatch):
    fx_rates.clear_cache()
    body = b'{"rates": {"thb": 1, "usd": 0.0281}, "time_last_update_unix": 1760000000}'
    monkeypatch.setattr(fx_rates, "urlopen", lambda req, timeout: FakeResponse(body=body))

    data = FxRateService().latest()

    assert not data.fallback
    assert data.rates == {"THB": 1.0, "USD": 0.0281}
    assert data.updated_at == 1760000000
    fx_rates.clear_cache()
