from __future__ import annotations

from typing import Protocol

from eth_utils import to_checksum_address
from loguru import logger

from lp_lifecycle.lifecycle.errors import ResolutionError
from lp_lifecycle.lifecycle.types import (
    GaugeDescriptor,
    PoolDescriptor,
    PoolPair,
    TokenDescriptor,
)


class PoolDirectory(Protocol):
    async def get_aerodrome_pools(
        self, token_a: str, token_b: str
    ) -> tuple[str, str]: ...

    async def get_gauge_for_pool(self, pool: str) -> str: ...


def normalize_address(value: str | None) -> str | None:
    """Checksum ``value``, mapping any zero-valued identifier to ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        if int(text, 16) == 0:
            return None
    except ValueError as exc:
        raise ValueError(f"Not an address: {value!r}") from exc
    return to_checksum_address(text)


class PoolGaugeResolver:
    """Looks up pool and gauge addresses through the manager.

    Every call goes back to the chain; pools can be created between two
    steps of the same run.
    """

    def __init__(self, directory: PoolDirectory):
        self.directory = directory

    async def resolve_pools(
        self, token_a: TokenDescriptor, token_b: TokenDescriptor
    ) -> PoolPair:
        try:
            stable_addr, volatile_addr = await self.directory.get_aerodrome_pools(
                token_a.address, token_b.address
            )
            stable = normalize_address(stable_addr)
            volatile = normalize_address(volatile_addr)
        except Exception as exc:
            raise ResolutionError(
                f"pool lookup failed for {token_a.symbol}/{token_b.symbol}: {exc}"
            ) from exc
        return PoolPair(
            stable=PoolDescriptor(token_a, token_b, True, stable),
            volatile=PoolDescriptor(token_a, token_b, False, volatile),
        )

    async def resolve_gauge(self, pool_address: str) -> GaugeDescriptor:
        try:
            gauge = normalize_address(
                await self.directory.get_gauge_for_pool(pool_address)
            )
        except Exception as exc:
            raise ResolutionError(
                f"gauge lookup failed for pool {pool_address}: {exc}"
            ) from exc
        return GaugeDescriptor(pool_address=pool_address, gauge_address=gauge)

    async def pools_or_absent(
        self, token_a: TokenDescriptor, token_b: TokenDescriptor
    ) -> tuple[PoolPair, str | None]:
        try:
            return await self.resolve_pools(token_a, token_b), None
        except ResolutionError as exc:
            logger.warning(f"Pool resolution failed (treating as absent): {exc}")
            absent = PoolPair(
                stable=PoolDescriptor(token_a, token_b, True, None),
                volatile=PoolDescriptor(token_a, token_b, False, None),
            )
            return absent, str(exc)

    async def gauge_or_absent(
        self, pool_address: str
    ) -> tuple[GaugeDescriptor, str | None]:
        try:
            return await self.resolve_gauge(pool_address), None
        except ResolutionError as exc:
            logger.warning(f"Gauge resolution failed (treating as absent): {exc}")
            return GaugeDescriptor(pool_address=pool_address), str(exc)
