from __future__ import annotations

from abc import ABC
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from lp_lifecycle.core.constants.chains import CHAIN_ID_BASE


class BaseAdapter(ABC):
    """Chain-bound adapter acting on behalf of a single wallet."""

    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        chain_id: int | None = None,
        wallet_address: str | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.chain_id = int(chain_id or self.config.get("chain_id") or CHAIN_ID_BASE)
        wallet = wallet_address or self.config.get("wallet_address")
        self.wallet_address = to_checksum_address(wallet) if wallet else None
        self.logger = logger.bind(adapter=self.__class__.__name__, chain_id=self.chain_id)

    def _require_wallet(self) -> str:
        if not self.wallet_address:
            raise ValueError("wallet_address is required")
        return self.wallet_address
