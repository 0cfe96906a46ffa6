"""Currency amount parsing - decimal amounts on the wire, integer minor units inside"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from household_budget.config import settings
from household_budget.domain.exceptions import ValidationError

AmountInput = Union[int, float, str, Decimal]


def normalize_separators(raw: str) -> str:
    """
    Normalize a user-entered amount to dot-decimal notation.

    Examples:
        "12,50"     -> "12.50"
        "1.234,56"  -> "1234.56"
        "1,234.56"  -> "1234.56"
        "1.234.567" -> "1234567"
    """
    text = raw.strip().replace(" ", "").replace("\u00a0", "")

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal separator
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")

    if "," in text:
        if text.count(",") == 1:
            return text.replace(",", ".")
        return text.replace(",", "")

    if text.count(".") > 1:
        return text.replace(".", "")

    return text


def to_cents(value: AmountInput, decimals: int | None = None) -> int:
    """
    Convert a decimal currency amount to integer minor units.

    Raises:
        ValidationError: On unparseable, non-finite or negative amounts
    """
    if decimals is None:
        decimals = settings.currency_decimals

    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")

    try:
        if isinstance(value, str):
            amount = Decimal(normalize_separators(value))
        elif isinstance(value, float):
            amount = Decimal(repr(value))
        else:
            amount = Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValidationError("Amount must be non-negative")

    return int((amount.scaleb(decimals)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_cents(cents: int, decimals: int | None = None) -> float:
    """Render minor units as a decimal number for API responses"""
    if decimals is None:
        decimals = settings.currency_decimals
    return float(Decimal(cents).scaleb(-decimals))
