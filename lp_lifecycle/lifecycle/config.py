from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from eth_utils import to_checksum_address

from lp_lifecycle.core.constants.aerodrome import (
    AERODROME_POOL_FACTORY,
    AERODROME_ROUTER,
    BASE_AERO,
)
from lp_lifecycle.core.constants.base import (
    DEFAULT_DEADLINE_WINDOW_SECONDS,
    DEFAULT_REWARD_WAIT_SECONDS,
    DEFAULT_SLIPPAGE_TOLERANCE,
)
from lp_lifecycle.core.constants.chains import CHAIN_ID_BASE, SUPPORTED_CHAINS
from lp_lifecycle.core.constants.contracts import BASE_USDC, BASE_VIRTUAL, BASE_WETH
from lp_lifecycle.core.utils.units import to_raw, validate_decimals
from lp_lifecycle.lifecycle.types import TokenDescriptor, pool_name

USDC = TokenDescriptor(BASE_USDC, "USDC", 6)
WETH = TokenDescriptor(BASE_WETH, "WETH", 18)
AERO = TokenDescriptor(BASE_AERO, "AERO", 18)
VIRTUAL = TokenDescriptor(BASE_VIRTUAL, "VIRTUAL", 18)

DEFAULT_TOKENS = (USDC, WETH, AERO, VIRTUAL)


@dataclass(frozen=True)
class DepositTarget:
    token: TokenDescriptor
    amount: int  # raw units


@dataclass(frozen=True)
class PoolTarget:
    token_a: TokenDescriptor
    token_b: TokenDescriptor
    stable: bool = False

    @property
    def name(self) -> str:
        return pool_name(self.token_a, self.token_b, self.stable)


@dataclass(frozen=True)
class LifecycleConfig:
    """Everything a lifecycle run needs, passed explicitly into the orchestrator.

    Amounts are raw integers. ``deposits`` in a config file are display amounts
    and are converted with each token's decimals while parsing.
    """

    primary_stable_token: TokenDescriptor = USDC
    reward_token: TokenDescriptor = AERO
    router_address: str = AERODROME_ROUTER
    factory_address: str = AERODROME_POOL_FACTORY
    slippage_tolerance: Decimal = Decimal(str(DEFAULT_SLIPPAGE_TOLERANCE))
    deadline_window_seconds: int = DEFAULT_DEADLINE_WINDOW_SECONDS
    chain_id: int = CHAIN_ID_BASE
    manager_address: str | None = None
    wallet_address: str | None = None
    tokens: tuple[TokenDescriptor, ...] = DEFAULT_TOKENS
    deposits: tuple[DepositTarget, ...] = ()
    pools: tuple[PoolTarget, ...] = ()
    reward_wait_seconds: float = DEFAULT_REWARD_WAIT_SECONDS
    claim_rewards: bool = True
    allow_pool_creation: bool = False
    native_token: TokenDescriptor = field(default_factory=TokenDescriptor.native)

    def __post_init__(self) -> None:
        tolerance = Decimal(str(self.slippage_tolerance))
        if tolerance < 0 or tolerance >= 1:
            raise ValueError("slippage_tolerance must be in [0, 1)")
        object.__setattr__(self, "slippage_tolerance", tolerance)
        if int(self.deadline_window_seconds) <= 0:
            raise ValueError("deadline_window_seconds must be positive")
        if int(self.chain_id) not in SUPPORTED_CHAINS:
            raise ValueError(f"Unsupported chain_id {self.chain_id}")
        for name in ("manager_address", "wallet_address"):
            value = getattr(self, name)
            if value:
                object.__setattr__(self, name, to_checksum_address(value))

    @classmethod
    def default(cls) -> LifecycleConfig:
        return cls(
            deposits=(
                DepositTarget(USDC, to_raw("0.1", USDC.decimals)),
                DepositTarget(WETH, to_raw("0.001", WETH.decimals)),
                DepositTarget(AERO, to_raw("0.1", AERO.decimals)),
                DepositTarget(VIRTUAL, to_raw("0.1", VIRTUAL.decimals)),
            ),
            pools=(
                PoolTarget(USDC, AERO, stable=False),
                PoolTarget(VIRTUAL, WETH, stable=False),
            ),
        )

    # -----------------------------
    # Lookups
    # -----------------------------

    def all_tokens(self) -> tuple[TokenDescriptor, ...]:
        """Configured ERC20s plus the primary and reward tokens, deduplicated."""
        seen: dict[str, TokenDescriptor] = {}
        for token in (*self.tokens, self.primary_stable_token, self.reward_token):
            seen.setdefault(token.address.lower(), token)
        return tuple(seen.values())

    def token(self, key: str) -> TokenDescriptor:
        needle = str(key).strip()
        for token in self.all_tokens():
            if token.symbol.upper() == needle.upper() or token.matches(needle):
                return token
        raise KeyError(f"Unknown token: {key}")

    def find_token(self, address: str | None) -> TokenDescriptor | None:
        for token in self.all_tokens():
            if token.matches(address):
                return token
        return None

    def validate(self) -> None:
        """Raise ``InvalidDecimals`` for the first token with unusable decimals."""
        for token in (*self.all_tokens(), self.native_token):
            validate_decimals(token.decimals)
        for target in self.deposits:
            validate_decimals(target.token.decimals)
        for pool in self.pools:
            validate_decimals(pool.token_a.decimals)
            validate_decimals(pool.token_b.decimals)

    # -----------------------------
    # Parsing
    # -----------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LifecycleConfig:
        data = dict(data or {})
        defaults = cls.default()

        tokens = (
            tuple(_parse_token(t) for t in data["tokens"])
            if data.get("tokens")
            else defaults.tokens
        )
        by_key = _TokenIndex(tokens)

        primary = (
            by_key.resolve(data["primary_stable_token"])
            if data.get("primary_stable_token")
            else by_key.get(defaults.primary_stable_token)
        )
        reward = (
            by_key.resolve(data["reward_token"])
            if data.get("reward_token")
            else by_key.get(defaults.reward_token)
        )

        if "deposits" in data:
            deposits = tuple(
                by_key.deposit(entry) for entry in data["deposits"] or []
            )
        else:
            deposits = defaults.deposits

        if "pools" in data:
            pools = tuple(
                PoolTarget(
                    by_key.resolve(entry["token_a"]),
                    by_key.resolve(entry["token_b"]),
                    stable=bool(entry.get("stable", False)),
                )
                for entry in data["pools"] or []
            )
        else:
            pools = defaults.pools

        return cls(
            primary_stable_token=primary,
            reward_token=reward,
            router_address=to_checksum_address(
                data.get("router_address") or defaults.router_address
            ),
            factory_address=to_checksum_address(
                data.get("factory_address") or defaults.factory_address
            ),
            slippage_tolerance=Decimal(
                str(data.get("slippage_tolerance", DEFAULT_SLIPPAGE_TOLERANCE))
            ),
            deadline_window_seconds=int(
                data.get("deadline_window_seconds", DEFAULT_DEADLINE_WINDOW_SECONDS)
            ),
            chain_id=int(data.get("chain_id", CHAIN_ID_BASE)),
            manager_address=data.get("manager_address"),
            wallet_address=data.get("wallet_address"),
            tokens=tokens,
            deposits=deposits,
            pools=pools,
            reward_wait_seconds=float(
                data.get("reward_wait_seconds", DEFAULT_REWARD_WAIT_SECONDS)
            ),
            claim_rewards=bool(data.get("claim_rewards", True)),
            allow_pool_creation=bool(data.get("allow_pool_creation", False)),
        )


def _parse_token(entry: dict[str, Any]) -> TokenDescriptor:
    if "address" not in entry or "symbol" not in entry:
        raise ValueError(f"Token entry needs 'address' and 'symbol': {entry}")
    decimals = validate_decimals(entry.get("decimals", 18))
    return TokenDescriptor(
        address=str(entry["address"]),
        symbol=str(entry["symbol"]),
        decimals=decimals,
    )


class _TokenIndex:
    def __init__(self, tokens: tuple[TokenDescriptor, ...]):
        self._tokens = tokens

    def resolve(self, key: Any) -> TokenDescriptor:
        if isinstance(key, dict):
            return _parse_token(key)
        needle = str(key).strip()
        for token in self._tokens:
            if token.symbol.upper() == needle.upper() or token.matches(needle):
                return token
        raise ValueError(f"Token {key!r} is not listed under 'tokens'")

    def deposit(self, entry: dict[str, Any]) -> DepositTarget:
        token = self.resolve(entry.get("symbol") or entry.get("token"))
        return DepositTarget(token, to_raw(str(entry["amount"]), token.decimals))

    def get(self, token: TokenDescriptor) -> TokenDescriptor:
        for known in self._tokens:
            if known.matches(token.address):
                return known
        return token
