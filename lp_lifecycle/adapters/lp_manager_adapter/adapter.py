from __future__ import annotations

from typing import Any

from eth_abi import decode as abi_decode
from eth_utils import keccak, to_checksum_address

from lp_lifecycle.core.adapters.BaseAdapter import BaseAdapter
from lp_lifecycle.core.adapters.models import (
    ClaimableFees,
    FeesClaimed,
    LiquidityAdded,
    LiquidityRemoved,
    Position,
    RewardsClaimed,
)
from lp_lifecycle.core.constants.aerodrome_abi import POOL_ABI
from lp_lifecycle.core.constants.contracts import LP_MANAGER_FACTORY, ZERO_ADDRESS
from lp_lifecycle.core.constants.lp_manager_abi import (
    FEES_CLAIMED_EVENT_INPUTS,
    LIQUIDITY_ADDED_EVENT_INPUTS,
    LIQUIDITY_REMOVED_EVENT_INPUTS,
    REWARDS_CLAIMED_EVENT_INPUTS,
    USER_LP_MANAGER_ABI,
    USER_LP_MANAGER_FACTORY_ABI,
)
from lp_lifecycle.core.utils.tokens import (
    build_approve_transaction,
    get_token_allowance,
    get_token_balance,
    is_native_token,
)
from lp_lifecycle.core.utils.transaction import encode_call
from lp_lifecycle.core.utils.web3 import web3_from_chain_id
from lp_lifecycle.lifecycle.params import quote_remove_amounts
from lp_lifecycle.lifecycle.types import Holder, TokenDescriptor

TRANSFER_TOPIC0 = keccak(text="Transfer(address,address,uint256)").hex().lower()


def _event_topic0(name: str, inputs: list[tuple[str, str]]) -> str:
    signature = f"{name}({','.join(t for _, t in inputs)})"
    return keccak(text=signature).hex().lower()


LIQUIDITY_ADDED_TOPIC0 = _event_topic0(
    "AerodromeLiquidityAdded", LIQUIDITY_ADDED_EVENT_INPUTS
)
LIQUIDITY_REMOVED_TOPIC0 = _event_topic0(
    "AerodromeLiquidityRemoved", LIQUIDITY_REMOVED_EVENT_INPUTS
)
REWARDS_CLAIMED_TOPIC0 = _event_topic0("RewardsClaimed", REWARDS_CLAIMED_EVENT_INPUTS)
FEES_CLAIMED_TOPIC0 = _event_topic0("FeesClaimed", FEES_CLAIMED_EVENT_INPUTS)


def _hex(value: Any) -> str:
    text = value.hex() if hasattr(value, "hex") and not isinstance(value, str) else str(value)
    return text.lower().removeprefix("0x")


def _address_or_zero(value: Any) -> str:
    if not value or int(str(value), 16) == 0:
        return ZERO_ADDRESS
    return to_checksum_address(value)


class LPManagerAdapter(BaseAdapter):
    """Reads from and builds transactions for one user's UserLPManager contract.

    Builders return unsigned transaction dicts; submission is left to the
    caller. The adapter also serves balance reads for lifecycle snapshots.
    """

    adapter_type = "LP_MANAGER"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        manager_address: str | None = None,
        wallet_address: str | None = None,
        chain_id: int | None = None,
    ) -> None:
        super().__init__(
            "lp_manager_adapter",
            config,
            chain_id=chain_id,
            wallet_address=wallet_address,
        )
        manager = manager_address or self.config.get("manager_address")
        self.manager_address = to_checksum_address(manager) if manager else None
        self.factory_address = to_checksum_address(
            self.config.get("manager_factory_address") or LP_MANAGER_FACTORY
        )

    def _require_manager(self) -> str:
        if not self.manager_address:
            raise ValueError("manager_address is required")
        return self.manager_address

    # -----------------------------
    # Manager reads
    # -----------------------------

    async def owner(self) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            return to_checksum_address(await c.functions.owner().call())

    async def get_token_balance(self, token: str) -> int:
        manager = self._require_manager()
        if is_native_token(token):
            return await get_token_balance(None, self.chain_id, manager)
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=manager, abi=USER_LP_MANAGER_ABI)
            return int(
                await c.functions.getTokenBalance(to_checksum_address(token)).call()
            )

    async def get_aerodrome_pools(self, token_a: str, token_b: str) -> tuple[str, str]:
        """(stable, volatile) pool addresses; the zero address means absent."""
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            stable, volatile = await c.functions.getAerodromePools(
                to_checksum_address(token_a), to_checksum_address(token_b)
            ).call()
            return _address_or_zero(stable), _address_or_zero(volatile)

    async def get_gauge_for_pool(self, pool: str) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            gauge = await c.functions.getGaugeForPool(to_checksum_address(pool)).call()
            return _address_or_zero(gauge)

    async def get_gauge_balance(self, lp_token: str) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            return int(
                await c.functions.getGaugeBalance(to_checksum_address(lp_token)).call()
            )

    async def get_earned_rewards(self, lp_token: str) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            return int(
                await c.functions.getEarnedRewards(to_checksum_address(lp_token)).call()
            )

    async def get_reward_token(self, lp_token: str) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            token = await c.functions.getRewardToken(to_checksum_address(lp_token)).call()
            return _address_or_zero(token)

    async def get_claimable_rewards(self, lp_token: str) -> tuple[int, str]:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            amount, token = await c.functions.getClaimableRewards(
                to_checksum_address(lp_token)
            ).call()
            return int(amount), _address_or_zero(token)

    async def get_claimable_fees(
        self, token_a: str, token_b: str, stable: bool
    ) -> ClaimableFees:
        """Trading fees the manager's LP position can claim, in token0/token1 order."""
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            lp_balance, claimable0, claimable1 = await c.functions.getClaimableFees(
                to_checksum_address(token_a), to_checksum_address(token_b), bool(stable)
            ).call()
        return ClaimableFees(
            lp_balance=int(lp_balance),
            claimable0=int(claimable0),
            claimable1=int(claimable1),
        )

    async def get_positions(self) -> list[Position]:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self._require_manager(), abi=USER_LP_MANAGER_ABI)
            rows = await c.functions.getPositions().call()
        return [
            Position(token_address=to_checksum_address(row[0]), balance=int(row[1]))
            for row in rows or []
        ]

    async def get_user_manager(self, user: str | None = None) -> str | None:
        """Manager deployed for ``user`` by the factory, or None if there is none."""
        user = to_checksum_address(user or self._require_wallet())
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(
                address=self.factory_address, abi=USER_LP_MANAGER_FACTORY_ABI
            )
            manager = _address_or_zero(await c.functions.getUserManager(user).call())
        return None if manager == ZERO_ADDRESS else manager

    # -----------------------------
    # Pool reads
    # -----------------------------

    async def get_pool_token0(self, pool: str) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=to_checksum_address(pool), abi=POOL_ABI)
            return to_checksum_address(await c.functions.token0().call())

    async def quote_remove_liquidity(
        self, pool: str, lp_amount: int, token_a: TokenDescriptor
    ) -> tuple[int, int]:
        """Expected (amount_a, amount_b) from the pool's reserves and LP share."""
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=to_checksum_address(pool), abi=POOL_ABI)
            token0 = await c.functions.token0().call()
            reserve0, reserve1, _ = await c.functions.getReserves().call()
            total_supply = await c.functions.totalSupply().call()
        return quote_remove_amounts(
            lp_amount=int(lp_amount),
            total_supply=int(total_supply),
            reserve0=int(reserve0),
            reserve1=int(reserve1),
            token0=str(token0),
            token_a=token_a,
        )

    # -----------------------------
    # Balances
    # -----------------------------

    async def get_allowance(self, token: TokenDescriptor) -> int:
        return await get_token_allowance(
            token.address,
            self.chain_id,
            self._require_wallet(),
            self._require_manager(),
        )

    async def read_balance(self, holder: Holder, token: TokenDescriptor) -> int:
        if holder is Holder.WALLET:
            address = None if token.is_native else token.address
            return await get_token_balance(
                address, self.chain_id, self._require_wallet()
            )
        if holder is Holder.CUSTODY:
            return await self.get_token_balance(token.address)
        if holder is Holder.STAKED:
            if token.is_native:
                return 0
            return await self.get_gauge_balance(token.address)
        raise ValueError(f"Unsupported holder: {holder}")

    # -----------------------------
    # Transaction builders
    # -----------------------------

    async def _manager_call(self, fn_name: str, args: list[Any]) -> dict[str, Any]:
        tx = await encode_call(
            target=self._require_manager(),
            abi=USER_LP_MANAGER_ABI,
            fn_name=fn_name,
            args=args,
            from_address=self._require_wallet(),
            chain_id=self.chain_id,
        )
        self.logger.debug(f"Built {fn_name} call to {tx['to']}")
        return tx

    async def build_approve(self, token: TokenDescriptor, amount: int) -> dict[str, Any]:
        return await build_approve_transaction(
            from_address=self._require_wallet(),
            chain_id=self.chain_id,
            token_address=token.address,
            spender_address=self._require_manager(),
            amount=int(amount),
        )

    async def build_deposit(self, token: TokenDescriptor, amount: int) -> dict[str, Any]:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await self._manager_call("depositTokens", [token.address, amount])

    async def build_withdraw_tokens(
        self, token: str, to_address: str, amount: int
    ) -> dict[str, Any]:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await self._manager_call(
            "withdrawTokens",
            [to_checksum_address(token), to_checksum_address(to_address), amount],
        )

    async def build_withdraw_eth(self, amount: int) -> dict[str, Any]:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await self._manager_call("withdrawETH", [amount])

    async def build_withdraw_native(self, amount: int) -> dict[str, Any]:
        """Generic ``withdraw(address,uint256)`` with the zero address as the asset."""
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await self._manager_call("withdraw", [ZERO_ADDRESS, amount])

    async def build_add_liquidity(
        self,
        *,
        token_a: str,
        token_b: str,
        stable: bool,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        deadline: int,
    ) -> dict[str, Any]:
        amount_a_desired = int(amount_a_desired)
        amount_b_desired = int(amount_b_desired)
        if amount_a_desired <= 0 or amount_b_desired <= 0:
            raise ValueError("amount_a_desired and amount_b_desired must be positive")
        return await self._manager_call(
            "addLiquidityAerodrome",
            [
                to_checksum_address(token_a),
                to_checksum_address(token_b),
                bool(stable),
                amount_a_desired,
                amount_b_desired,
                int(amount_a_min),
                int(amount_b_min),
                int(deadline),
            ],
        )

    async def build_remove_liquidity(
        self,
        *,
        token_a: str,
        token_b: str,
        stable: bool,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        deadline: int,
    ) -> dict[str, Any]:
        liquidity = int(liquidity)
        if liquidity <= 0:
            raise ValueError("liquidity must be positive")
        return await self._manager_call(
            "removeLiquidityAerodrome",
            [
                to_checksum_address(token_a),
                to_checksum_address(token_b),
                bool(stable),
                liquidity,
                int(amount_a_min),
                int(amount_b_min),
                int(deadline),
            ],
        )

    async def build_stake(self, lp_token: str, amount: int) -> dict[str, Any]:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await self._manager_call(
            "stakeLPTokens", [to_checksum_address(lp_token), amount]
        )

    async def build_unstake(self, lp_token: str, amount: int = 0) -> dict[str, Any]:
        amount = int(amount)
        if amount < 0:
            raise ValueError("amount must be non-negative (0 unstakes everything)")
        return await self._manager_call(
            "unstakeLPTokens", [to_checksum_address(lp_token), amount]
        )

    async def build_claim_rewards(self, lp_token: str) -> dict[str, Any]:
        return await self._manager_call("claimRewards", [to_checksum_address(lp_token)])

    async def build_claim_fees(
        self, token_a: str, token_b: str, stable: bool
    ) -> dict[str, Any]:
        return await self._manager_call(
            "claimFees",
            [to_checksum_address(token_a), to_checksum_address(token_b), bool(stable)],
        )

    # -----------------------------
    # Receipt decoding
    # -----------------------------

    def _event_rows(
        self,
        receipt: dict[str, Any],
        topic0: str,
        inputs: list[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        types = [t for _, t in inputs]
        names = [n for n, _ in inputs]
        manager = (self.manager_address or "").lower()
        rows = []
        for lg in receipt.get("logs") or []:
            if manager and str(lg.get("address", "")).lower() != manager:
                continue
            topics = lg.get("topics") or []
            if not topics or _hex(topics[0]) != topic0:
                continue
            data = bytes.fromhex(_hex(lg.get("data") or b""))
            rows.append(dict(zip(names, abi_decode(types, data), strict=True)))
        return rows

    def _single_event(
        self, receipt: dict[str, Any], event: str, topic0: str, inputs
    ) -> dict[str, Any]:
        rows = self._event_rows(receipt, topic0, inputs)
        if not rows:
            raise ValueError(f"{event} event not found in receipt")
        return rows[-1]

    @staticmethod
    def _tx_hash(receipt: dict[str, Any]) -> str | None:
        value = receipt.get("transactionHash")
        return f"0x{_hex(value)}" if value else None

    def _minted_pool(self, receipt: dict[str, Any]) -> str | None:
        # Solidly pools are their own LP token: the mint Transfer comes from the pool
        manager = (self.manager_address or "").lower()
        for lg in receipt.get("logs") or []:
            topics = lg.get("topics") or []
            if len(topics) < 3 or _hex(topics[0]) != TRANSFER_TOPIC0:
                continue
            from_addr = "0x" + _hex(topics[1])[-40:]
            to_addr = "0x" + _hex(topics[2])[-40:]
            if int(from_addr, 16) != 0:
                continue
            if manager and to_addr.lower() != manager:
                continue
            return to_checksum_address(lg["address"])
        return None

    def decode_liquidity_added(self, receipt: dict[str, Any]) -> LiquidityAdded:
        row = self._single_event(
            receipt,
            "AerodromeLiquidityAdded",
            LIQUIDITY_ADDED_TOPIC0,
            LIQUIDITY_ADDED_EVENT_INPUTS,
        )
        return LiquidityAdded(
            transaction_hash=self._tx_hash(receipt),
            token_a=to_checksum_address(row["tokenA"]),
            token_b=to_checksum_address(row["tokenB"]),
            stable=bool(row["stable"]),
            amount_a=int(row["amountA"]),
            amount_b=int(row["amountB"]),
            liquidity=int(row["liquidity"]),
            pool=self._minted_pool(receipt),
        )

    def decode_liquidity_removed(self, receipt: dict[str, Any]) -> LiquidityRemoved:
        row = self._single_event(
            receipt,
            "AerodromeLiquidityRemoved",
            LIQUIDITY_REMOVED_TOPIC0,
            LIQUIDITY_REMOVED_EVENT_INPUTS,
        )
        return LiquidityRemoved(
            transaction_hash=self._tx_hash(receipt),
            token_a=to_checksum_address(row["tokenA"]),
            token_b=to_checksum_address(row["tokenB"]),
            stable=bool(row["stable"]),
            amount_a=int(row["amountA"]),
            amount_b=int(row["amountB"]),
            liquidity=int(row["liquidity"]),
        )

    def decode_rewards_claimed(self, receipt: dict[str, Any]) -> RewardsClaimed:
        row = self._single_event(
            receipt, "RewardsClaimed", REWARDS_CLAIMED_TOPIC0, REWARDS_CLAIMED_EVENT_INPUTS
        )
        return RewardsClaimed(
            transaction_hash=self._tx_hash(receipt),
            lp_token=to_checksum_address(row["lpToken"]),
            reward_token=to_checksum_address(row["rewardToken"]),
            amount=int(row["amount"]),
        )

    def decode_fees_claimed(self, receipt: dict[str, Any]) -> FeesClaimed:
        row = self._single_event(
            receipt, "FeesClaimed", FEES_CLAIMED_TOPIC0, FEES_CLAIMED_EVENT_INPUTS
        )
        return FeesClaimed(
            transaction_hash=self._tx_hash(receipt),
            pool=to_checksum_address(row["pool"]),
            amount0=int(row["amount0"]),
            amount1=int(row["amount1"]),
        )
