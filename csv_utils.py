import re
from decimal import Decimal, InvalidOperation
from typing import Sequence

from models import Transaction

CSV_HEADER = "Date,Type,Category,Amount,Note"


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def quote_csv_field(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _category_field(name: str) -> str:
    clean = sanitize_csv_value(name)
    if any(ch in clean for ch in (",", '"', "\n", "\r")):
        return quote_csv_field(clean)
    return clean


def parse_amount(value: str) -> int:
    """Parse user-entered money text into positive cents."""
    clean = (value or "").strip().replace(",", "").replace(" ", "")
    for symbol in ("฿", "$", "¥"):
        clean = clean.replace(symbol, "")
    if not clean:
        raise ValueError("Amount must be a positive number.")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Amount must be a positive number.") from exc
    if not amount.is_finite():
        raise ValueError("Amount must be a positive number.")
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents <= 0:
        raise ValueError("Amount must be a positive number.")
    return cents


def export_transactions(transactions: Sequence[Transaction]) -> str:
    lines = [CSV_HEADER]
    for txn in transactions:
        category = txn.category.name if txn.category else ""
        note = quote_csv_field(sanitize_csv_value(txn.note)) if txn.note else ""
        lines.append(
            ",".join(
                [
                    txn.date.isoformat(),
                    txn.type.value,
                    _category_field(category),
                    f"{txn.amount_cents / 100:.2f}",
                    note,
                ]
            )
        )
    return "\n".join(lines)
