from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Protocol

from lp_lifecycle.lifecycle.errors import SnapshotError
from lp_lifecycle.lifecycle.types import (
    BalanceKey,
    BalanceSnapshot,
    Holder,
    TokenDescriptor,
)


class BalanceReader(Protocol):
    async def read_balance(self, holder: Holder, token: TokenDescriptor) -> int: ...


class BalanceSnapshotter:
    def __init__(self, reader: BalanceReader, clock=None):
        self.reader = reader
        self._now = clock.now if clock is not None else time.time

    async def snapshot(
        self,
        tokens: Iterable[TokenDescriptor],
        holders: Iterable[Holder] = (Holder.WALLET, Holder.CUSTODY),
    ) -> BalanceSnapshot:
        holders = tuple(holders)
        keys = [(holder, token) for token in dict.fromkeys(tokens) for holder in holders]
        return await self.snapshot_keys(keys)

    async def snapshot_keys(self, keys: Iterable[BalanceKey]) -> BalanceSnapshot:
        keys = list(dict.fromkeys(keys))
        # reads are independent of each other
        results = await asyncio.gather(
            *[self.reader.read_balance(holder, token) for holder, token in keys],
            return_exceptions=True,
        )
        balances: dict[BalanceKey, int] = {}
        for (holder, token), value in zip(keys, results, strict=True):
            if isinstance(value, BaseException):
                raise SnapshotError(
                    f"failed to read {token.symbol} balance for {holder.value}: {value}"
                ) from value
            balances[(holder, token)] = int(value)
        return BalanceSnapshot(balances, taken_at=self._now())
