import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from lp_lifecycle.core.constants.base import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_RECEIPT_POLL_INTERVAL,
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from lp_lifecycle.core.utils.web3 import (
    get_transaction_chain_id,
    web3_from_chain_id,
    web3s_from_chain_id,
)

SignCallback = Callable[[dict], Awaitable[bytes]]

_FEE_HISTORY_BLOCKS = 10
_FEE_HISTORY_PERCENTILE = 80


class TransactionRevertedError(RuntimeError):
    """A transaction was mined with ``status == 0``; ``receipt`` still carries its gas."""

    def __init__(
        self,
        txn_hash: str,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}")


def _revert_error(
    txn_hash: str, receipt: dict[str, Any], transaction: dict[str, Any] | None = None
) -> TransactionRevertedError:
    gas_used = int(receipt.get("gasUsed") or 0)
    gas_limit = int((transaction or {}).get("gas") or 0)

    details = ""
    if gas_used or gas_limit:
        details = f" gasUsed={gas_used} gasLimit={gas_limit}"
        if gas_used and gas_limit and gas_used >= gas_limit:
            details += " (likely out of gas)"
    return TransactionRevertedError(
        txn_hash,
        receipt,
        message=f"Transaction reverted (status=0): {txn_hash}{details}",
    )


def _normalize_hash(txn_hash: str) -> str:
    if isinstance(txn_hash, str) and not txn_hash.startswith("0x"):
        return f"0x{txn_hash}"
    return txn_hash


def _get_transaction_from_address(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


def _receipt_int(value: Any) -> int:
    # OP-stack fee fields come back as hex strings from some RPCs
    if isinstance(value, str):
        return int(value, 0) if value else 0
    return int(value or 0)


def gas_cost_wei(receipt: dict[str, Any]) -> int:
    """Native asset a mined transaction cost its sender.

    Execution gas plus, on OP-stack chains such as Base, the ``l1Fee`` charged
    for posting the transaction data to L1. Missing fields count as zero.
    """
    execution = _receipt_int(receipt.get("gasUsed")) * _receipt_int(
        receipt.get("effectiveGasPrice")
    )
    return execution + _receipt_int(receipt.get("l1Fee"))


async def _across_rpcs(
    chain_id: int, read: Callable[[AsyncWeb3], Awaitable[Any]]
) -> list[Any]:
    async with web3s_from_chain_id(chain_id) as web3s:
        return list(await asyncio.gather(*(read(web3) for web3 in web3s)))


async def nonce_transaction(transaction: dict):
    sender = _get_transaction_from_address(transaction)
    nonces = await _across_rpcs(
        get_transaction_chain_id(transaction),
        lambda web3: web3.eth.get_transaction_count(sender, block_identifier="pending"),
    )
    # a lagging RPC would hand back an already-used nonce
    return {**transaction, "nonce": max(nonces)}


async def _fee_quote(web3: AsyncWeb3) -> tuple[int, int]:
    latest = await web3.eth.get_block("latest")
    history = await web3.eth.fee_history(
        _FEE_HISTORY_BLOCKS, "latest", [_FEE_HISTORY_PERCENTILE]
    )
    rewards = [row[0] for row in history["reward"]]
    return int(latest["baseFeePerGas"]), sum(rewards) // max(len(rewards), 1)


async def gas_price_transaction(transaction: dict):
    quotes = await _across_rpcs(get_transaction_chain_id(transaction), _fee_quote)
    base_fee = max(base for base, _ in quotes)
    priority_fee = max(priority for _, priority in quotes)

    tip = int(priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER)
    return {
        **transaction,
        "maxFeePerGas": int(base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER + tip),
        "maxPriorityFeePerGas": tip,
    }


async def gas_limit_transaction(transaction: dict):
    # a stale limit in the request caps what some RPCs are willing to estimate
    request = {k: v for k, v in transaction.items() if k != "gas"}

    async def _estimate(web3: AsyncWeb3) -> int:
        try:
            return await web3.eth.estimate_gas(request, block_identifier="latest")
        except Exception as e:
            logger.info(
                f"Failed to estimate gas using {web3.provider.endpoint_uri}. Error: {e}"
            )
            return 0

    estimate = max(await _across_rpcs(get_transaction_chain_id(request), _estimate))
    if estimate == 0:
        # estimation reverting is how most bad-parameter calls show up
        raise RuntimeError("Gas estimation failed on all RPCs")
    return {**request, "gas": int(math.ceil(estimate * GAS_BUFFER_MULTIPLIER))}


async def broadcast_transaction(chain_id: int, signed_transaction: bytes) -> str:
    async with web3_from_chain_id(chain_id) as web3:
        tx_hash = await web3.eth.send_raw_transaction(signed_transaction)
        return tx_hash.hex()


async def wait_for_transaction_receipt(
    chain_id: int,
    txn_hash: str,
    poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
    confirmations: int = DEFAULT_CONFIRMATIONS,
) -> dict:
    """First receipt any RPC reports, once ``confirmations`` blocks have passed.

    Raises ``TransactionRevertedError`` for a ``status == 0`` receipt.
    """
    txn_hash = _normalize_hash(txn_hash)

    async with web3s_from_chain_id(chain_id) as web3s:
        waiters = [
            asyncio.create_task(
                web3.eth.wait_for_transaction_receipt(
                    txn_hash, poll_latency=poll_interval, timeout=timeout
                )
            )
            for web3 in web3s
        ]
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        receipt = dict(done.pop().result())

        if receipt.get("status") == 0:
            raise _revert_error(txn_hash, receipt)

        target_block = receipt["blockNumber"] + confirmations - 1
        while True:
            heights = await asyncio.gather(*(w.eth.block_number for w in web3s))
            if max(heights) >= target_block:
                return receipt
            await asyncio.sleep(poll_interval)


async def send_transaction(
    transaction: dict, sign_callback: SignCallback, wait_for_receipt: bool = True
) -> str:
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    logger.info(f"Broadcasting transaction {transaction}...")
    chain_id = get_transaction_chain_id(transaction)
    for prepare in (gas_limit_transaction, nonce_transaction, gas_price_transaction):
        transaction = await prepare(transaction)
    signed_transaction = await sign_callback(transaction)
    txn_hash = _normalize_hash(await broadcast_transaction(chain_id, signed_transaction))
    logger.info(f"Transaction broadcasted: {txn_hash}")
    if not wait_for_receipt:
        return txn_hash

    try:
        receipt = await wait_for_transaction_receipt(chain_id, txn_hash)
    except TransactionRevertedError as exc:
        raise _revert_error(txn_hash, exc.receipt, transaction) from exc
    if int(receipt.get("status", 1)) == 0:
        raise _revert_error(txn_hash, receipt, transaction)
    return txn_hash


def local_sign_callback(private_key: str) -> SignCallback:
    account = Account.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        return account.sign_transaction(tx).raw_transaction

    return sign_callback


async def encode_call(
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    chain_id: int,
    value: int = 0,
) -> dict[str, Any]:
    """Unsigned transaction dict calling ``fn_name`` on ``target``; gas and nonce are filled at send time."""
    async with web3_from_chain_id(chain_id) as web3:
        try:
            contract = web3.eth.contract(
                address=web3.to_checksum_address(target), abi=abi
            )
            data = contract.encode_abi(fn_name, args)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc

    return {
        "chainId": int(chain_id),
        "from": AsyncWeb3.to_checksum_address(from_address),
        "to": AsyncWeb3.to_checksum_address(target),
        "data": data,
        "value": int(value),
    }


class TransactionSubmitter:
    """Two-phase submission: ``submit`` broadcasts, ``confirm`` blocks on the receipt.

    ``confirm`` raises ``TransactionRevertedError`` when the transaction was
    mined with ``status == 0``; any transport error (including receipt
    timeouts) propagates unchanged.
    """

    def __init__(
        self,
        sign_callback: SignCallback,
        *,
        chain_id: int,
        receipt_timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
        confirmations: int = DEFAULT_CONFIRMATIONS,
    ) -> None:
        self.sign_callback = sign_callback
        self.chain_id = int(chain_id)
        self.receipt_timeout = receipt_timeout
        self.confirmations = confirmations

    async def submit(self, transaction: dict) -> str:
        return await send_transaction(
            transaction, self.sign_callback, wait_for_receipt=False
        )

    async def confirm(self, txn_hash: str) -> dict:
        return await wait_for_transaction_receipt(
            self.chain_id,
            txn_hash,
            timeout=self.receipt_timeout,
            confirmations=self.confirmations,
        )
