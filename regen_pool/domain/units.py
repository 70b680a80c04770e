"""
Fixed-point helpers for money, token amounts and timestamps.

Money is integer USD cents. Credit quantities and token amounts are integer
micro units (10^-6 of a whole unit). One USD cent is 10,000 micro USDC.
Nothing in here touches floating point.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from regen_pool.errors import ValidationError

MICRO_FACTOR = 1_000_000
USD_CENT_TO_MICRO = 10_000
PPM = 1_000_000
BPS_DENOMINATOR = 10_000

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")

# Display denom -> bank denom
_BANK_DENOMS = {
    "USDC": "uusdc",
    "REGEN": "uregen",
}


def validate_month(month: str) -> str:
    """Raise ValidationError unless `month` looks like YYYY-MM."""
    if not isinstance(month, str) or not MONTH_PATTERN.match(month):
        raise ValidationError("month must be in YYYY-MM format")
    return month


def usd_to_cents(value: Union[Decimal, int, float, str]) -> int:
    """
    Convert a positive USD amount to integer cents, rounding half-up.

    Floats are routed through `str()` so 0.1 becomes exactly 10 cents.
    """
    if isinstance(value, bool):
        raise ValidationError("USD amount must be a positive number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid USD amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("USD amount must be a positive number")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_micro(cents: int) -> int:
    return cents * USD_CENT_TO_MICRO


def bank_denom(denom: str) -> str:
    """Resolve a display denom (USDC) to its bank denom (uusdc); bank denoms pass through."""
    return _BANK_DENOMS.get(denom.upper(), denom) if denom else denom


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def format_micro(amount_micro: int, exponent: int = 6) -> str:
    """Render micro units as a fixed 6-decimal string, e.g. 1250000 -> '1.250000'."""
    sign = "-" if amount_micro < 0 else ""
    magnitude = abs(amount_micro)
    divisor = 10**exponent
    return f"{sign}{magnitude // divisor}.{magnitude % divisor:0{exponent}d}"


def parse_micro(quantity: str, exponent: int = 6) -> int:
    """Parse a decimal string like '1.25' into micro units, truncating extra digits."""
    text = quantity.strip()
    if not re.fullmatch(r"\d+(\.\d*)?|\.\d+", text):
        raise ValidationError(f"Invalid decimal quantity: {quantity!r}")
    whole, _, frac = text.partition(".")
    return int(whole or "0") * 10**exponent + int((frac + "0" * exponent)[:exponent])


def format_usd(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) // 100}.{abs(cents) % 100:02d}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a `Z` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Optional[str]) -> str:
    """Normalize an optional timestamp string; empty means now."""
    if value is None or not value.strip():
        return to_iso(utc_now())
    return to_iso(parse_iso(value))


def month_of(iso_timestamp: str) -> str:
    return iso_timestamp[:7]


__all__ = [
    "MICRO_FACTOR",
    "USD_CENT_TO_MICRO",
    "PPM",
    "BPS_DENOMINATOR",
    "MONTH_PATTERN",
    "validate_month",
    "usd_to_cents",
    "cents_to_micro",
    "bank_denom",
    "ceil_div",
    "format_micro",
    "parse_micro",
    "format_usd",
    "utc_now",
    "to_iso",
    "parse_iso",
    "normalize_timestamp",
    "month_of",
]
