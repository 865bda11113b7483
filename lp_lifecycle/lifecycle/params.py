from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_FLOOR, Decimal

from lp_lifecycle.core.constants.base import (
    DEFAULT_DEADLINE_WINDOW_SECONDS,
    DEFAULT_SLIPPAGE_TOLERANCE,
    DEFAULT_TOKEN_DECIMALS,
)
from lp_lifecycle.lifecycle.types import TokenDescriptor


def _tolerance(tolerance: Decimal | float | str) -> Decimal:
    value = tolerance if isinstance(tolerance, Decimal) else Decimal(str(tolerance))
    if not value.is_finite() or value < 0 or value >= 1:
        raise ValueError(f"Slippage tolerance must be in [0, 1), got {tolerance}")
    return value


def min_amount(
    desired: int,
    tolerance: Decimal | float | str = DEFAULT_SLIPPAGE_TOLERANCE,
) -> int:
    """``floor(desired * (1 - tolerance))`` in exact arithmetic."""
    desired = int(desired)
    if desired < 0:
        raise ValueError("desired amount must be non-negative")
    scaled = Decimal(desired) * (Decimal(1) - _tolerance(tolerance))
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def deadline(now: float, window: int = DEFAULT_DEADLINE_WINDOW_SECONDS) -> int:
    return int(now) + int(window)


def display_decimals(
    address: str,
    known: Iterable[TokenDescriptor] = (),
    primary: TokenDescriptor | None = None,
) -> int:
    """Decimals to format ``address`` with in logs.

    Pools may report their tokens in either order, so the primary stable token
    is matched on every call rather than assumed to sit at a fixed position.
    """
    if primary is not None and primary.matches(address):
        return primary.decimals
    for token in known:
        if token.matches(address):
            return token.decimals
    return DEFAULT_TOKEN_DECIMALS


def quote_remove_amounts(
    *,
    lp_amount: int,
    total_supply: int,
    reserve0: int,
    reserve1: int,
    token0: str,
    token_a: TokenDescriptor,
) -> tuple[int, int]:
    """Expected ``(amount_a, amount_b)`` for burning ``lp_amount`` of the pool.

    Reserves are indexed by the pool's token0/token1, which may be either
    member of the configured pair.
    """
    if total_supply <= 0:
        raise ValueError("pool has zero LP supply")
    share0 = int(lp_amount) * int(reserve0) // int(total_supply)
    share1 = int(lp_amount) * int(reserve1) // int(total_supply)
    if token_a.matches(token0):
        return share0, share1
    return share1, share0
