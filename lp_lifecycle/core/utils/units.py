from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from lp_lifecycle.core.constants.base import MAX_TOKEN_DECIMALS


class InvalidDecimals(ValueError):
    """Token decimals outside ``[0, 18]`` or not an integer."""

    def __init__(self, decimals: object):
        self.decimals = decimals
        super().__init__(
            f"Invalid token decimals: {decimals!r} (expected integer in [0, {MAX_TOKEN_DECIMALS}])"
        )


def validate_decimals(decimals: object) -> int:
    # bool is an int subclass; True would silently mean 1 decimal
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidDecimals(decimals)
    if decimals < 0 or decimals > MAX_TOKEN_DECIMALS:
        raise InvalidDecimals(decimals)
    return decimals


def _to_decimal(value: str | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def to_raw(display_amount: str | int | Decimal, decimals: int) -> int:
    """Convert a human amount (``"0.1"``) into raw integer units, rounding down."""
    decimals = validate_decimals(decimals)
    if isinstance(display_amount, float):
        raise ValueError("Pass display amounts as strings, not floats")
    try:
        amt = _to_decimal(display_amount)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {display_amount}") from exc
    if not amt.is_finite():
        raise ValueError(f"Invalid token amount: {display_amount}")
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    scale = Decimal(10) ** decimals
    return int((amt * scale).to_integral_value(rounding=ROUND_DOWN))


def to_display(raw_amount: int, decimals: int) -> str:
    """Format raw units for logs. Display only: never feed the result back into a tx."""
    decimals = validate_decimals(decimals)
    value = Decimal(int(raw_amount)).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
