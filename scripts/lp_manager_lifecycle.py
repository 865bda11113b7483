#!/usr/bin/env python3

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json

from eth_account import Account
from loguru import logger

from lp_lifecycle.adapters.lp_manager_adapter.adapter import LPManagerAdapter
from lp_lifecycle.core.config import (
    get_lifecycle_section,
    get_wallet_private_key,
    load_config,
    set_rpc_urls,
)
from lp_lifecycle.core.utils.transaction import (
    TransactionSubmitter,
    local_sign_callback,
)
from lp_lifecycle.lifecycle import LifecycleConfig, LifecycleOrchestrator
from lp_lifecycle.lifecycle.stages import build_lifecycle_plan

_FAILURE_STATUSES = ("submission_failure", "execution_failure", "effect_not_observed")


async def main() -> int:
    p = argparse.ArgumentParser(
        description=(
            "Run the full UserLPManager lifecycle on Base: deposit, add liquidity, "
            "stake, harvest, unstake, claim fees, remove liquidity and recover every token."
        )
    )
    p.add_argument("--config", default=None, help="defaults to config.json")
    p.add_argument("--manager", default=None, help="UserLPManager address")
    p.add_argument(
        "--rpc-url",
        action="append",
        default=[],
        help="override the configured RPCs (repeatable)",
    )
    p.add_argument("--allow-pool-creation", action="store_true")
    p.add_argument("--no-claim", action="store_true", help="only read earned rewards")
    p.add_argument("--reward-wait", type=float, default=None)
    args = p.parse_args()

    load_config(args.config, require_exists=True)
    section = get_lifecycle_section(
        manager_address=args.manager,
        allow_pool_creation=True if args.allow_pool_creation else None,
        claim_rewards=False if args.no_claim else None,
        reward_wait_seconds=args.reward_wait,
    )
    config = LifecycleConfig.from_dict(section)
    if args.rpc_url:
        set_rpc_urls({str(config.chain_id): args.rpc_url})

    private_key = get_wallet_private_key()
    if not private_key:
        raise SystemExit(
            "No private key: set wallet.private_key in config.json "
            "or LP_LIFECYCLE_PRIVATE_KEY"
        )
    account = Account.from_key(private_key)
    if config.wallet_address and config.wallet_address != account.address:
        raise SystemExit(
            f"wallet_address {config.wallet_address} does not match the signing key"
        )

    adapter = LPManagerAdapter(
        manager_address=config.manager_address,
        wallet_address=account.address,
        chain_id=config.chain_id,
    )
    if adapter.manager_address is None:
        manager = await adapter.get_user_manager()
        if manager is None:
            raise SystemExit(f"No UserLPManager deployed for {account.address}")
        adapter.manager_address = manager
        logger.info(f"Using UserLPManager {manager} from the factory")

    owner = await adapter.owner()
    if owner != account.address:
        raise SystemExit(f"Manager {adapter.manager_address} is owned by {owner}")

    config = dataclasses.replace(
        config,
        manager_address=adapter.manager_address,
        wallet_address=account.address,
    )
    submitter = TransactionSubmitter(
        local_sign_callback(private_key), chain_id=config.chain_id
    )
    orchestrator = LifecycleOrchestrator.from_components(
        manager=adapter, submitter=submitter, config=config
    )

    report = await orchestrator.run(build_lifecycle_plan(config))
    print(json.dumps(report.to_dict(), indent=2))

    summary = report.summary()
    return 1 if any(summary[status] for status in _FAILURE_STATUSES) else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
