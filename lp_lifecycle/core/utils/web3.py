from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3

from lp_lifecycle.core.config import get_rpc_urls


def _get_rpcs_for_chain_id(chain_id: int) -> list[str]:
    """Configured RPC endpoints for ``chain_id``, first one preferred.

    ``strategy.rpc_urls`` maps a chain id (string or int key) to one URL or a
    list of them.
    """
    mapping = get_rpc_urls()
    entry = mapping.get(str(chain_id), mapping.get(chain_id))
    urls = [entry] if isinstance(entry, str) else list(entry or [])
    urls = [u.strip() for u in urls if isinstance(u, str) and u.strip()]
    if not urls:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    return urls


def _connect(rpc: str) -> AsyncWeb3:
    headers = AsyncHTTPProvider.get_request_headers()
    return AsyncWeb3(AsyncHTTPProvider(rpc, request_kwargs={"headers": headers}))


def get_transaction_chain_id(transaction: dict) -> int:
    if "chainId" not in transaction:
        raise ValueError("Transaction does not contain chainId")
    return int(transaction["chainId"])


@asynccontextmanager
async def web3s_from_chain_id(chain_id: int):
    """One connection per configured RPC; used where reads are fanned out."""
    web3s = [_connect(rpc) for rpc in _get_rpcs_for_chain_id(chain_id)]
    try:
        yield web3s
    finally:
        for web3 in web3s:
            await web3.provider.disconnect()


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    web3 = _connect(_get_rpcs_for_chain_id(chain_id)[0])
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
