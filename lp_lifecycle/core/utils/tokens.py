from typing import Any

from web3 import AsyncWeb3

from lp_lifecycle.core.constants.contracts import ZERO_ADDRESS
from lp_lifecycle.core.constants.erc20_abi import ERC20_ABI
from lp_lifecycle.core.utils.transaction import encode_call
from lp_lifecycle.core.utils.web3 import web3_from_chain_id

# the zero address and the 0xEeee... placeholder both mean "native asset"
NATIVE_TOKEN_ADDRESSES: frozenset[str] = frozenset(
    {ZERO_ADDRESS, "0x" + "e" * 40}
)


def is_native_token(token_address: str | None) -> bool:
    normalized = str(token_address or "").strip().lower()
    return normalized in ("", "native") or normalized in NATIVE_TOKEN_ADDRESSES


def _erc20(web3: AsyncWeb3, token_address: str):
    return web3.eth.contract(
        address=web3.to_checksum_address(token_address), abi=ERC20_ABI
    )


async def _balance_of(
    web3: AsyncWeb3,
    token_address: str | None,
    holder: str,
    block_identifier: str | int,
) -> int:
    holder = web3.to_checksum_address(holder)
    if is_native_token(token_address):
        return int(await web3.eth.get_balance(holder, block_identifier=block_identifier))
    balance = await _erc20(web3, str(token_address)).functions.balanceOf(holder).call(
        block_identifier=block_identifier
    )
    return int(balance)


async def get_token_balance(
    token_address: str | None,
    chain_id: int,
    holder: str,
    *,
    web3: AsyncWeb3 | None = None,
    block_identifier: str | int = "latest",
) -> int:
    """Raw balance of ``holder``; ``None`` or a native placeholder reads the native asset."""
    if web3 is not None:
        return await _balance_of(web3, token_address, holder, block_identifier)
    async with web3_from_chain_id(chain_id) as w3:
        return await _balance_of(w3, token_address, holder, block_identifier)


async def get_token_allowance(
    token_address: str,
    chain_id: int,
    owner_address: str,
    spender_address: str,
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        # pending, so an approval broadcast a moment ago already counts
        allowance = await _erc20(web3, token_address).functions.allowance(
            web3.to_checksum_address(owner_address),
            web3.to_checksum_address(spender_address),
        ).call(block_identifier="pending")
    return int(allowance)


async def build_approve_transaction(
    *,
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict[str, Any]:
    if is_native_token(token_address):
        raise ValueError("the native asset has no allowance to approve")
    amount = int(amount)
    if amount < 0:
        raise ValueError("approval amount must be non-negative")
    return await encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="approve",
        args=[AsyncWeb3.to_checksum_address(spender_address), amount],
        from_address=from_address,
        chain_id=chain_id,
    )
