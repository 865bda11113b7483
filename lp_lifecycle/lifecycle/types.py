from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from eth_utils import to_checksum_address

from lp_lifecycle.core.constants.base import LP_TOKEN_DECIMALS
from lp_lifecycle.core.constants.contracts import ZERO_ADDRESS
from lp_lifecycle.core.utils.tokens import is_native_token

# ─────────────────────────────────────────────────────────────────────────────
# TOKENS & BALANCES
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenDescriptor:
    address: str
    symbol: str
    decimals: int

    def __post_init__(self) -> None:
        if not is_native_token(self.address):
            object.__setattr__(self, "address", to_checksum_address(self.address))

    @property
    def is_native(self) -> bool:
        return is_native_token(self.address)

    @classmethod
    def native(cls, symbol: str = "ETH") -> TokenDescriptor:
        return cls(address=ZERO_ADDRESS, symbol=symbol, decimals=18)

    def matches(self, address: str | None) -> bool:
        return address is not None and str(address).lower() == self.address.lower()


class Holder(Enum):
    WALLET = "wallet"  # owner EOA
    CUSTODY = "custody"  # manager contract
    STAKED = "staked"  # manager's gauge balance for an LP token


BalanceKey = tuple[Holder, TokenDescriptor]


@dataclass(frozen=True)
class BalanceSnapshot:
    balances: Mapping[BalanceKey, int]
    taken_at: float = field(default=0.0, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "balances", MappingProxyType(dict(self.balances)))

    def __hash__(self) -> int:
        return hash(frozenset(self.balances.items()))

    @classmethod
    def empty(cls) -> BalanceSnapshot:
        return cls({})

    def balance(self, token: TokenDescriptor, holder: Holder = Holder.CUSTODY) -> int:
        try:
            return self.balances[(holder, token)]
        except KeyError:
            raise KeyError(
                f"{token.symbol} ({holder.value}) is not part of this snapshot"
            ) from None

    def delta(
        self,
        earlier: BalanceSnapshot,
        token: TokenDescriptor,
        holder: Holder = Holder.CUSTODY,
    ) -> int:
        return self.balance(token, holder) - earlier.balance(token, holder)

    def tokens(self) -> set[TokenDescriptor]:
        return {token for _, token in self.balances}

    def as_dict(self) -> dict[str, int]:
        return {
            f"{holder.value}:{token.symbol}": amount
            for (holder, token), amount in self.balances.items()
        }


# ─────────────────────────────────────────────────────────────────────────────
# POOLS & GAUGES
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PoolDescriptor:
    token_a: TokenDescriptor
    token_b: TokenDescriptor
    stable: bool
    address: str | None = None  # None: pool does not exist (yet)

    @property
    def exists(self) -> bool:
        return self.address is not None

    @property
    def name(self) -> str:
        return pool_name(self.token_a, self.token_b, self.stable)

    @property
    def lp_token(self) -> TokenDescriptor:
        if self.address is None:
            raise ValueError(f"Pool {self.name} does not exist; no LP token")
        return TokenDescriptor(
            address=self.address,
            symbol=f"{self.name}-LP",
            decimals=LP_TOKEN_DECIMALS,
        )


@dataclass(frozen=True)
class PoolPair:
    stable: PoolDescriptor
    volatile: PoolDescriptor

    def select(self, stable: bool) -> PoolDescriptor:
        return self.stable if stable else self.volatile


@dataclass(frozen=True)
class GaugeDescriptor:
    pool_address: str
    gauge_address: str | None = None

    @property
    def exists(self) -> bool:
        return self.gauge_address is not None


def pool_name(token_a: TokenDescriptor, token_b: TokenDescriptor, stable: bool) -> str:
    return f"{token_a.symbol}-{token_b.symbol}-{'stable' if stable else 'volatile'}"


# ─────────────────────────────────────────────────────────────────────────────
# STEP RESULTS
# ─────────────────────────────────────────────────────────────────────────────


class StepStatus(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED_PRECONDITION = "skipped_precondition"
    SUBMISSION_FAILURE = "submission_failure"
    EXECUTION_FAILURE = "execution_failure"
    EFFECT_NOT_OBSERVED = "effect_not_observed"


@dataclass(frozen=True)
class StepResult:
    name: str
    status: StepStatus
    attempted: bool
    before: BalanceSnapshot
    after: BalanceSnapshot
    error_detail: str | None = None
    skip_reason: str | None = None
    tx_hash: str | None = None
    action: str | None = None
    outcome: Any = None
    annotations: Mapping[str, Any] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "annotations", MappingProxyType(dict(self.annotations))
        )

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.SUCCEEDED

    @property
    def skipped(self) -> bool:
        return self.status is StepStatus.SKIPPED_PRECONDITION

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "attempted": self.attempted,
            "action": self.action,
            "tx_hash": self.tx_hash,
            "skip_reason": self.skip_reason,
            "error_detail": self.error_detail,
            "warnings": list(self.warnings),
            "annotations": {k: str(v) for k, v in self.annotations.items()},
            "before": self.before.as_dict(),
            "after": self.after.as_dict(),
        }


@dataclass
class LifecycleReport:
    initial: BalanceSnapshot = field(default_factory=BalanceSnapshot.empty)
    _results: list[StepResult] = field(default_factory=list)

    def append(self, result: StepResult) -> None:
        self._results.append(result)

    @property
    def results(self) -> tuple[StepResult, ...]:
        return tuple(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self):
        return iter(self._results)

    def find(self, name: str) -> StepResult | None:
        for result in reversed(self._results):
            if result.name == name:
                return result
        return None

    def annotation(self, key: str, default: Any = None) -> Any:
        for result in reversed(self._results):
            if key in result.annotations:
                return result.annotations[key]
        return default

    def succeeded_steps(self) -> list[str]:
        return [r.name for r in self._results if r.succeeded]

    def summary(self) -> dict[str, int]:
        counts = Counter(r.status.value for r in self._results)
        return {status.value: counts.get(status.value, 0) for status in StepStatus}

    def to_dict(self) -> dict[str, Any]:
        return {
            "initial": self.initial.as_dict(),
            "summary": self.summary(),
            "steps": [r.to_dict() for r in self._results],
        }
