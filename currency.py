from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Union

from models import CurrencyCode


@dataclass(frozen=True)
class CurrencyInfo:
    code: CurrencyCode
    symbol: str
    decimals: int


CURRENCIES: dict[CurrencyCode, CurrencyInfo] = {
    CurrencyCode.thb: CurrencyInfo(CurrencyCode.thb, "฿", 2),
    CurrencyCode.usd: CurrencyInfo(CurrencyCode.usd, "$", 2),
    CurrencyCode.jpy: CurrencyInfo(CurrencyCode.jpy, "¥", 0),
}

FALLBACK_RATES: dict[str, float] = {"THB": 1.0, "USD": 0.029, "JPY": 4.3}


def parse_currency(value: str) -> CurrencyCode:
    try:
        return CurrencyCode((value or "").strip().upper())
    except ValueError as exc:
        raise ValueError("Invalid currency.") from exc


def convert(
    amount: Union[int, float, Decimal],
    currency: Union[CurrencyCode, str],
    rates: Mapping[str, float],
    *,
    base: str = "THB",
) -> Decimal:
    code = CurrencyCode(currency)
    value = Decimal(str(amount))
    if code.value == base:
        return value
    rate = rates.get(code.value)
    if rate is None:
        rate = 1
    return value * Decimal(str(rate))


def format_amount(
    amount: Union[int, float, Decimal],
    currency: Union[CurrencyCode, str],
    rates: Mapping[str, float],
    *,
    base: str = "THB",
) -> str:
    """Render a base-currency amount in ``currency``.

    ``amount`` is in base-currency units (not cents). The rate table maps a
    currency code to units of that currency per one unit of the base.
    """
    info = CURRENCIES[CurrencyCode(currency)]
    converted = convert(amount, info.code, rates, base=base)
    quantum = Decimal(1).scaleb(-info.decimals)
    rounded = converted.quantize(quantum, rounding=ROUND_HALF_UP)
    return f"{info.symbol}{rounded:,.{info.decimals}f}"


def format_cents(
    cents: int,
    currency: Union[CurrencyCode, str],
    rates: Mapping[str, float],
    *,
    base: str = "THB",
) -> str:
    return format_amount(Decimal(cents) / 100, currency, rates, base=base)
