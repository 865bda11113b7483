from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_abi import encode as abi_encode

from lp_lifecycle.adapters.lp_manager_adapter.adapter import (
    FEES_CLAIMED_TOPIC0,
    LIQUIDITY_ADDED_TOPIC0,
    LIQUIDITY_REMOVED_TOPIC0,
    REWARDS_CLAIMED_TOPIC0,
    TRANSFER_TOPIC0,
    LPManagerAdapter,
)
from lp_lifecycle.core.constants.contracts import ZERO_ADDRESS
from lp_lifecycle.core.constants.lp_manager_abi import (
    FEES_CLAIMED_EVENT_INPUTS,
    LIQUIDITY_ADDED_EVENT_INPUTS,
    LIQUIDITY_REMOVED_EVENT_INPUTS,
    REWARDS_CLAIMED_EVENT_INPUTS,
)
from lp_lifecycle.lifecycle.config import AERO, USDC, WETH
from lp_lifecycle.lifecycle.types import Holder, TokenDescriptor

MANAGER = "0x2222222222222222222222222222222222222222"
WALLET = "0x1111111111111111111111111111111111111111"
POOL = "0x3333333333333333333333333333333333333333"
OTHER = "0x4444444444444444444444444444444444444444"


def _topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


def _event_log(address, topic0, inputs, values) -> dict:
    return {
        "address": address,
        "topics": ["0x" + topic0],
        "data": "0x" + abi_encode([t for _, t in inputs], values).hex(),
    }


@pytest.fixture
def adapter():
    return LPManagerAdapter(manager_address=MANAGER, wallet_address=WALLET, chain_id=8453)


@pytest.fixture
def mock_contract():
    """Patch web3 so every contract call resolves through ``functions``."""
    with patch(
        "lp_lifecycle.adapters.lp_manager_adapter.adapter.web3_from_chain_id"
    ) as mock_ctx:
        web3 = MagicMock()
        contract = MagicMock()
        web3.eth.contract.return_value = contract
        mock_ctx.return_value.__aenter__.return_value = web3
        yield contract


def _returns(value):
    call = MagicMock()
    call.call = AsyncMock(return_value=value)
    return MagicMock(return_value=call)


class TestAdapterBasics:
    def test_adapter_type(self, adapter):
        assert adapter.adapter_type == "LP_MANAGER"
        assert adapter.manager_address == MANAGER

    def test_config_dict(self):
        adapter = LPManagerAdapter({"manager_address": MANAGER, "chain_id": 8453})
        assert adapter.manager_address == MANAGER
        assert adapter.wallet_address is None

    def test_topic0_matches_event_signature(self):
        assert TRANSFER_TOPIC0 == (
            "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        )


@pytest.mark.asyncio
class TestReads:
    async def test_pools_zero_address_normalized(self, adapter, mock_contract):
        mock_contract.functions.getAerodromePools = _returns(
            ["0x" + "00" * 20, POOL]
        )

        stable, volatile = await adapter.get_aerodrome_pools(USDC.address, AERO.address)

        assert stable == ZERO_ADDRESS
        assert volatile.lower() == POOL

    async def test_positions(self, adapter, mock_contract):
        mock_contract.functions.getPositions = _returns([(USDC.address, 5)])

        positions = await adapter.get_positions()

        assert positions[0].token_address == USDC.address
        assert positions[0].balance == 5

    async def test_user_manager_absent(self, adapter, mock_contract):
        mock_contract.functions.getUserManager = _returns(ZERO_ADDRESS)
        assert await adapter.get_user_manager() is None

    async def test_quote_remove_liquidity_orients_reserves(self, adapter, mock_contract):
        mock_contract.functions.token0 = _returns(WETH.address)
        mock_contract.functions.getReserves = _returns([1_000, 50, 0])
        mock_contract.functions.totalSupply = _returns(100)

        assert await adapter.quote_remove_liquidity(POOL, 10, AERO) == (5, 100)

    async def test_claimable_fees(self, adapter, mock_contract):
        mock_contract.functions.getClaimableFees = _returns([100, 7, 9])

        fees = await adapter.get_claimable_fees(USDC.address, AERO.address, False)

        assert (fees.lp_balance, fees.claimable0, fees.claimable1) == (100, 7, 9)
        mock_contract.functions.getClaimableFees.assert_called_once_with(
            USDC.address, AERO.address, False
        )

    async def test_claimable_rewards_without_gauge(self, adapter, mock_contract):
        mock_contract.functions.getClaimableRewards = _returns([0, "0x" + "00" * 20])
        assert await adapter.get_claimable_rewards(POOL) == (0, ZERO_ADDRESS)


@pytest.mark.asyncio
class TestReadBalance:
    async def test_wallet_reads_erc20(self, adapter):
        with patch(
            "lp_lifecycle.adapters.lp_manager_adapter.adapter.get_token_balance",
            new_callable=AsyncMock,
            return_value=7,
        ) as mock_balance:
            assert await adapter.read_balance(Holder.WALLET, USDC) == 7
        mock_balance.assert_awaited_once_with(USDC.address, 8453, WALLET)

    async def test_wallet_native(self, adapter):
        with patch(
            "lp_lifecycle.adapters.lp_manager_adapter.adapter.get_token_balance",
            new_callable=AsyncMock,
            return_value=3,
        ) as mock_balance:
            await adapter.read_balance(Holder.WALLET, TokenDescriptor.native())
        mock_balance.assert_awaited_once_with(None, 8453, WALLET)

    async def test_custody_uses_manager(self, adapter):
        with patch.object(
            adapter, "get_token_balance", new_callable=AsyncMock, return_value=9
        ) as mock_balance:
            assert await adapter.read_balance(Holder.CUSTODY, AERO) == 9
        mock_balance.assert_awaited_once_with(AERO.address)

    async def test_staked_uses_gauge_balance(self, adapter):
        with patch.object(
            adapter, "get_gauge_balance", new_callable=AsyncMock, return_value=4
        ) as mock_gauge:
            assert await adapter.read_balance(Holder.STAKED, AERO) == 4
            assert await adapter.read_balance(Holder.STAKED, TokenDescriptor.native()) == 0
        mock_gauge.assert_awaited_once()


@pytest.mark.asyncio
class TestBuilders:
    @pytest.fixture
    def mock_encode(self):
        with patch(
            "lp_lifecycle.adapters.lp_manager_adapter.adapter.encode_call",
            new_callable=AsyncMock,
        ) as mock_encode:
            mock_encode.return_value = {"to": MANAGER, "data": "0x"}
            yield mock_encode

    async def test_deposit(self, adapter, mock_encode):
        await adapter.build_deposit(USDC, 100)

        kwargs = mock_encode.await_args.kwargs
        assert kwargs["fn_name"] == "depositTokens"
        assert kwargs["args"] == [USDC.address, 100]
        assert kwargs["target"] == MANAGER
        assert kwargs["from_address"] == WALLET

    async def test_add_liquidity_argument_order(self, adapter, mock_encode):
        await adapter.build_add_liquidity(
            token_a=USDC.address,
            token_b=AERO.address,
            stable=False,
            amount_a_desired=100,
            amount_b_desired=200,
            amount_a_min=95,
            amount_b_min=190,
            deadline=1_700_001_200,
        )

        kwargs = mock_encode.await_args.kwargs
        assert kwargs["fn_name"] == "addLiquidityAerodrome"
        assert kwargs["args"] == [
            USDC.address, AERO.address, False, 100, 200, 95, 190, 1_700_001_200
        ]

    async def test_claim_fees(self, adapter, mock_encode):
        await adapter.build_claim_fees(AERO.address, USDC.address, True)

        kwargs = mock_encode.await_args.kwargs
        assert kwargs["fn_name"] == "claimFees"
        assert kwargs["args"] == [AERO.address, USDC.address, True]

    async def test_withdraw_native_uses_zero_address(self, adapter, mock_encode):
        await adapter.build_withdraw_native(5)

        kwargs = mock_encode.await_args.kwargs
        assert kwargs["fn_name"] == "withdraw"
        assert kwargs["args"] == [ZERO_ADDRESS, 5]

    async def test_unstake_zero_means_all(self, adapter, mock_encode):
        await adapter.build_unstake(POOL)
        assert mock_encode.await_args.kwargs["args"][1] == 0
        with pytest.raises(ValueError):
            await adapter.build_unstake(POOL, -1)

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_rejects_non_positive_amounts(self, adapter, mock_encode, amount):
        with pytest.raises(ValueError, match="positive"):
            await adapter.build_deposit(USDC, amount)
        with pytest.raises(ValueError, match="positive"):
            await adapter.build_withdraw_eth(amount)
        mock_encode.assert_not_awaited()

    async def test_builders_need_wallet(self, mock_encode):
        adapter = LPManagerAdapter(manager_address=MANAGER)
        with pytest.raises(ValueError, match="wallet_address"):
            await adapter.build_approve(USDC, 1)


class TestDecoders:
    def test_liquidity_added_with_minted_pool(self, adapter):
        receipt = {
            "transactionHash": "0xabc",
            "logs": [
                {
                    "address": POOL,
                    "topics": [
                        "0x" + TRANSFER_TOPIC0,
                        _topic(ZERO_ADDRESS),
                        _topic(MANAGER),
                    ],
                    "data": "0x" + abi_encode(["uint256"], [31]).hex(),
                },
                _event_log(
                    MANAGER,
                    LIQUIDITY_ADDED_TOPIC0,
                    LIQUIDITY_ADDED_EVENT_INPUTS,
                    [USDC.address, AERO.address, False, 100, 200, 31],
                ),
            ],
        }

        event = adapter.decode_liquidity_added(receipt)

        assert event.transaction_hash == "0xabc"
        assert event.token_a == USDC.address
        assert event.amount_b == 200
        assert event.liquidity == 31
        assert event.pool.lower() == POOL

    def test_events_from_other_contracts_ignored(self, adapter):
        receipt = {
            "logs": [
                _event_log(
                    OTHER,
                    LIQUIDITY_REMOVED_TOPIC0,
                    LIQUIDITY_REMOVED_EVENT_INPUTS,
                    [USDC.address, AERO.address, True, 1, 2, 3],
                )
            ]
        }

        with pytest.raises(ValueError, match="not found"):
            adapter.decode_liquidity_removed(receipt)

    def test_liquidity_removed(self, adapter):
        receipt = {
            "logs": [
                _event_log(
                    MANAGER,
                    LIQUIDITY_REMOVED_TOPIC0,
                    LIQUIDITY_REMOVED_EVENT_INPUTS,
                    [WETH.address, AERO.address, True, 1, 2, 3],
                )
            ]
        }

        event = adapter.decode_liquidity_removed(receipt)

        assert event.stable is True
        assert (event.amount_a, event.amount_b, event.liquidity) == (1, 2, 3)
        assert event.transaction_hash is None

    def test_rewards_claimed(self, adapter):
        receipt = {
            "transactionHash": bytes.fromhex("ab" * 32),
            "logs": [
                _event_log(
                    MANAGER,
                    REWARDS_CLAIMED_TOPIC0,
                    REWARDS_CLAIMED_EVENT_INPUTS,
                    [POOL, AERO.address, 42],
                )
            ],
        }

        event = adapter.decode_rewards_claimed(receipt)

        assert event.reward_token == AERO.address
        assert event.amount == 42
        assert event.transaction_hash == "0x" + "ab" * 32

    def test_fees_claimed(self, adapter):
        receipt = {
            "logs": [
                _event_log(
                    MANAGER,
                    FEES_CLAIMED_TOPIC0,
                    FEES_CLAIMED_EVENT_INPUTS,
                    [POOL, 7, 9],
                )
            ]
        }

        event = adapter.decode_fees_claimed(receipt)

        assert event.pool.lower() == POOL
        assert (event.amount0, event.amount1) == (7, 9)

    def test_fees_claimed_missing(self, adapter):
        with pytest.raises(ValueError, match="not found"):
            adapter.decode_fees_claimed({"logs": []})
