"""Stage builders for the standard liquidity lifecycle.

Each builder reads whatever it needs at the moment the stage is reached and
returns a ``StepSpec``. Builders never submit anything themselves; the
executor owns submission, confirmation and the balance checks.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from lp_lifecycle.core.utils.transaction import gas_cost_wei
from lp_lifecycle.core.utils.units import to_display
from lp_lifecycle.lifecycle.config import DepositTarget, LifecycleConfig, PoolTarget
from lp_lifecycle.lifecycle.executor import Action, StepSpec
from lp_lifecycle.lifecycle.orchestrator import (
    LifecycleContext,
    Pause,
    PlanEntry,
    Stage,
)
from lp_lifecycle.lifecycle.params import deadline, display_decimals, min_amount
from lp_lifecycle.lifecycle.resolver import normalize_address
from lp_lifecycle.lifecycle.types import (
    BalanceSnapshot,
    Holder,
    LifecycleReport,
    PoolDescriptor,
    TokenDescriptor,
)

# unstakeLPTokens treats a zero amount as "everything staked"
UNSTAKE_ALL = 0


def pool_key(name: str) -> str:
    return f"pool:{name}"


def gauge_key(name: str) -> str:
    return f"gauge:{name}"


def _fmt(ctx: LifecycleContext, token: TokenDescriptor, raw: int) -> str:
    cfg = ctx.config
    decimals = display_decimals(token.address, cfg.all_tokens(), cfg.primary_stable_token)
    return f"{to_display(raw, decimals)} {token.symbol}"


def _exact_deltas(
    expected: dict[tuple[Holder, TokenDescriptor], int],
):
    def check(before: BalanceSnapshot, after: BalanceSnapshot, _receipt: dict) -> str | None:
        mismatches = []
        for (holder, token), want in expected.items():
            got = after.delta(before, token, holder)
            if got != want:
                mismatches.append(
                    f"{holder.value} {token.symbol}: expected {want:+d}, observed {got:+d}"
                )
        return "; ".join(mismatches) or None

    return check


async def _known_pool(
    report: LifecycleReport, ctx: LifecycleContext, target: PoolTarget
) -> tuple[PoolDescriptor, dict[str, Any]]:
    """Pool address recorded earlier in the run, else a fresh lookup."""
    address = report.annotation(pool_key(target.name))
    if address:
        return (
            PoolDescriptor(target.token_a, target.token_b, target.stable, address),
            {},
        )
    pair, error = await ctx.resolver.pools_or_absent(target.token_a, target.token_b)
    annotations = {"resolution_error": error} if error else {}
    return pair.select(target.stable), annotations


def _pool_not_found(
    name: str, target: PoolTarget, annotations: dict[str, Any]
) -> StepSpec:
    return StepSpec.skip(
        name,
        "pool not found",
        annotations=annotations,
        warnings=(f"pool {target.name} does not exist",),
    )


# -----------------------------
# Deposit
# -----------------------------


def approve_stage(target: DepositTarget) -> Stage:
    name = f"approve:{target.token.symbol}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        token, amount = target.token, target.amount

        async def precondition() -> str | None:
            if amount <= 0:
                return "nothing to approve"
            if await manager.read_balance(Holder.WALLET, token) < amount:
                return "insufficient wallet balance"
            if await manager.get_allowance(token) >= amount:
                return "allowance already sufficient"
            return None

        return StepSpec(
            name=name,
            actions=(Action("approve", lambda: manager.build_approve(token, amount)),),
            watch=((Holder.WALLET, token),),
            precondition=precondition,
        )

    return Stage(name, build)


def deposit_stage(target: DepositTarget) -> Stage:
    name = f"deposit:{target.token.symbol}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        token, amount = target.token, target.amount

        async def precondition() -> str | None:
            if amount <= 0:
                return "nothing to deposit"
            if await manager.read_balance(Holder.WALLET, token) < amount:
                return "insufficient wallet balance"
            return None

        logger.info(f"Depositing {_fmt(ctx, token, amount)} into the manager")
        return StepSpec(
            name=name,
            actions=(
                Action("depositTokens", lambda: manager.build_deposit(token, amount)),
            ),
            watch=((Holder.WALLET, token), (Holder.CUSTODY, token)),
            precondition=precondition,
            postcondition=_exact_deltas(
                {(Holder.WALLET, token): -amount, (Holder.CUSTODY, token): amount}
            ),
        )

    return Stage(name, build)


# -----------------------------
# Liquidity
# -----------------------------


def add_liquidity_stage(target: PoolTarget) -> Stage:
    name = f"add_liquidity:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        cfg, manager = ctx.config, ctx.manager
        token_a, token_b = target.token_a, target.token_b
        watch: list[tuple[Holder, TokenDescriptor]] = [
            (Holder.CUSTODY, token_a),
            (Holder.CUSTODY, token_b),
        ]

        amount_a = await manager.read_balance(Holder.CUSTODY, token_a)
        amount_b = await manager.read_balance(Holder.CUSTODY, token_b)
        if amount_a == 0 or amount_b == 0:
            return StepSpec.skip(
                name, "insufficient custody balance", watch=tuple(watch)
            )

        pair, error = await ctx.resolver.pools_or_absent(token_a, token_b)
        pool = pair.select(target.stable)
        annotations: dict[str, Any] = {}
        warnings: list[str] = []
        if error:
            annotations["resolution_error"] = error

        if not pool.exists:
            if not cfg.allow_pool_creation:
                annotations["warning"] = f"pool {target.name} does not exist"
                return StepSpec.skip(
                    name,
                    "pool does not exist",
                    watch=tuple(watch),
                    annotations=annotations,
                    warnings=(f"pool {target.name} does not exist",),
                )
            warnings.append(f"pool {target.name} does not exist; adding will create it")
        else:
            watch.append((Holder.CUSTODY, pool.lp_token))
            annotations[pool_key(target.name)] = pool.address

        tolerance = cfg.slippage_tolerance
        min_a = min_amount(amount_a, tolerance)
        min_b = min_amount(amount_b, tolerance)
        expires = deadline(ctx.clock.now(), cfg.deadline_window_seconds)
        logger.info(
            f"Adding liquidity to {target.name}: {_fmt(ctx, token_a, amount_a)} + "
            f"{_fmt(ctx, token_b, amount_b)} (min {_fmt(ctx, token_a, min_a)} / "
            f"{_fmt(ctx, token_b, min_b)}, deadline {expires})"
        )

        def postcondition(
            before: BalanceSnapshot, after: BalanceSnapshot, _receipt: dict
        ) -> str | None:
            problems = [
                f"custody {token.symbol} did not decrease"
                for token in (token_a, token_b)
                if after.delta(before, token) >= 0
            ]
            if pool.exists and after.delta(before, pool.lp_token) <= 0:
                problems.append("custody LP balance did not increase")
            return "; ".join(problems) or None

        async def annotate(outcome: Any) -> dict[str, Any]:
            extra: dict[str, Any] = {}
            created = getattr(outcome, "pool", None)
            if created:
                extra[pool_key(target.name)] = created
            extra["positions"] = tuple(await manager.get_positions())
            return extra

        return StepSpec(
            name=name,
            actions=(
                Action(
                    "addLiquidityAerodrome",
                    lambda: manager.build_add_liquidity(
                        token_a=token_a.address,
                        token_b=token_b.address,
                        stable=target.stable,
                        amount_a_desired=amount_a,
                        amount_b_desired=amount_b,
                        amount_a_min=min_a,
                        amount_b_min=min_b,
                        deadline=expires,
                    ),
                    decode=manager.decode_liquidity_added,
                ),
            ),
            watch=tuple(watch),
            postcondition=postcondition,
            annotations=annotations,
            warnings=tuple(warnings),
            annotate_outcome=annotate,
        )

    return Stage(name, build)


def remove_liquidity_stage(target: PoolTarget) -> Stage:
    name = f"remove_liquidity:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        cfg, manager = ctx.config, ctx.manager
        token_a, token_b = target.token_a, target.token_b

        pool, annotations = await _known_pool(report, ctx, target)
        if not pool.exists:
            return _pool_not_found(name, target, annotations)
        lp = pool.lp_token
        watch = (
            (Holder.CUSTODY, lp),
            (Holder.CUSTODY, token_a),
            (Holder.CUSTODY, token_b),
        )

        lp_amount = await manager.read_balance(Holder.CUSTODY, lp)
        if lp_amount == 0:
            return StepSpec.skip(
                name, "no LP balance to withdraw", watch=watch, annotations=annotations
            )

        try:
            expected_a, expected_b = await manager.quote_remove_liquidity(
                pool.address, lp_amount, token_a
            )
        except Exception as exc:
            logger.warning(f"Could not quote withdrawal from {target.name}: {exc}")
            return StepSpec.skip(
                name,
                "unable to quote withdrawal amounts",
                watch=watch,
                annotations={**annotations, "quote_error": str(exc)},
            )

        tolerance = cfg.slippage_tolerance
        min_a = min_amount(expected_a, tolerance)
        min_b = min_amount(expected_b, tolerance)
        expires = deadline(ctx.clock.now(), cfg.deadline_window_seconds)
        logger.info(
            f"Removing {to_display(lp_amount, lp.decimals)} LP from {target.name}, "
            f"expecting {_fmt(ctx, token_a, expected_a)} + {_fmt(ctx, token_b, expected_b)}"
        )

        def postcondition(
            before: BalanceSnapshot, after: BalanceSnapshot, _receipt: dict
        ) -> str | None:
            problems = []
            burned = after.delta(before, lp)
            if burned != -lp_amount:
                problems.append(f"LP: expected {-lp_amount:+d}, observed {burned:+d}")
            problems.extend(
                f"custody {token.symbol} did not increase"
                for token in (token_a, token_b)
                if after.delta(before, token) <= 0
            )
            return "; ".join(problems) or None

        return StepSpec(
            name=name,
            actions=(
                Action(
                    "removeLiquidityAerodrome",
                    lambda: manager.build_remove_liquidity(
                        token_a=token_a.address,
                        token_b=token_b.address,
                        stable=target.stable,
                        liquidity=lp_amount,
                        amount_a_min=min_a,
                        amount_b_min=min_b,
                        deadline=expires,
                    ),
                    decode=manager.decode_liquidity_removed,
                ),
            ),
            watch=watch,
            postcondition=postcondition,
            annotations=annotations,
        )

    return Stage(name, build)


# -----------------------------
# Gauge
# -----------------------------


def stake_stage(target: PoolTarget) -> Stage:
    name = f"stake:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        pool, annotations = await _known_pool(report, ctx, target)
        if not pool.exists:
            return _pool_not_found(name, target, annotations)
        lp = pool.lp_token
        watch = ((Holder.CUSTODY, lp), (Holder.STAKED, lp))

        amount = await manager.read_balance(Holder.CUSTODY, lp)
        if amount == 0:
            return StepSpec.skip(
                name, "no LP balance to stake", watch=watch, annotations=annotations
            )

        gauge, error = await ctx.resolver.gauge_or_absent(pool.address)
        if error:
            annotations["resolution_error"] = error
        if not gauge.exists:
            return StepSpec.skip(
                name,
                "no gauge for pool",
                watch=watch,
                annotations=annotations,
                warnings=(f"pool {target.name} has no gauge",),
            )
        annotations[gauge_key(target.name)] = gauge.gauge_address

        return StepSpec(
            name=name,
            actions=(
                Action("stakeLPTokens", lambda: manager.build_stake(lp.address, amount)),
            ),
            watch=watch,
            postcondition=_exact_deltas(
                {(Holder.STAKED, lp): amount, (Holder.CUSTODY, lp): -amount}
            ),
            annotations=annotations,
        )

    return Stage(name, build)


def harvest_stage(target: PoolTarget) -> Stage:
    name = f"harvest:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        cfg, manager = ctx.config, ctx.manager
        pool, annotations = await _known_pool(report, ctx, target)
        if not pool.exists:
            return _pool_not_found(name, target, annotations)
        lp = pool.lp_token

        if await manager.read_balance(Holder.STAKED, lp) == 0:
            return StepSpec.skip(name, "nothing staked", annotations=annotations)

        earned, reward = await _claimable_rewards(ctx, lp)
        annotations[f"earned:{target.name}"] = earned
        watch = ((Holder.CUSTODY, reward),)
        logger.info(f"Earned on {target.name}: {_fmt(ctx, reward, earned)}")
        if earned == 0:
            return StepSpec.skip(
                name, "no rewards earned", watch=watch, annotations=annotations
            )
        if not cfg.claim_rewards:
            return StepSpec.skip(
                name, "reward claiming disabled", watch=watch, annotations=annotations
            )

        def postcondition(
            before: BalanceSnapshot, after: BalanceSnapshot, _receipt: dict
        ) -> str | None:
            if after.delta(before, reward) <= 0:
                return f"custody {reward.symbol} did not increase"
            return None

        return StepSpec(
            name=name,
            actions=(
                Action(
                    "claimRewards",
                    lambda: manager.build_claim_rewards(lp.address),
                    decode=manager.decode_rewards_claimed,
                ),
            ),
            watch=watch,
            postcondition=postcondition,
            annotations=annotations,
        )

    return Stage(name, build)


async def _claimable_rewards(
    ctx: LifecycleContext, lp: TokenDescriptor
) -> tuple[int, TokenDescriptor]:
    """(amount, reward token); older managers only expose the separate reads."""
    try:
        amount, address = await ctx.manager.get_claimable_rewards(lp.address)
    except Exception as exc:
        logger.warning(
            f"getClaimableRewards failed for {lp.symbol}, using getEarnedRewards: {exc}"
        )
        earned = await ctx.manager.get_earned_rewards(lp.address)
        return earned, await _reward_token(ctx, lp)
    return amount, _reward_descriptor(ctx, address)


async def _reward_token(ctx: LifecycleContext, lp: TokenDescriptor) -> TokenDescriptor:
    try:
        address = await ctx.manager.get_reward_token(lp.address)
    except Exception as exc:
        logger.warning(f"getRewardToken failed for {lp.symbol}, using configured: {exc}")
        return ctx.config.reward_token
    return _reward_descriptor(ctx, address)


def _reward_descriptor(ctx: LifecycleContext, address: str | None) -> TokenDescriptor:
    cfg = ctx.config
    address = normalize_address(address)
    if address is None:
        return cfg.reward_token
    return cfg.find_token(address) or TokenDescriptor(address, "REWARD", 18)


def claim_fees_stage(target: PoolTarget) -> Stage:
    """Collect the trading fees owed to the LP tokens held in custody."""
    name = f"claim_fees:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        pool, annotations = await _known_pool(report, ctx, target)
        if not pool.exists:
            return _pool_not_found(name, target, annotations)
        token_a, token_b = target.token_a, target.token_b
        watch = ((Holder.CUSTODY, token_a), (Holder.CUSTODY, token_b))

        fees = await manager.get_claimable_fees(
            token_a.address, token_b.address, target.stable
        )
        # claimable amounts follow the pool's token order, not the pair's
        token0 = await manager.get_pool_token0(pool.address)
        if token0.lower() == token_a.address.lower():
            claimable = {token_a: fees.claimable0, token_b: fees.claimable1}
        else:
            claimable = {token_a: fees.claimable1, token_b: fees.claimable0}
        annotations[f"claimable_fees:{target.name}"] = {
            t.symbol: amount for t, amount in claimable.items()
        }
        logger.info(
            f"Claimable fees on {target.name}: "
            + ", ".join(_fmt(ctx, t, amount) for t, amount in claimable.items())
        )
        if not any(claimable.values()):
            return StepSpec.skip(
                name, "no fees to claim", watch=watch, annotations=annotations
            )

        def postcondition(
            before: BalanceSnapshot, after: BalanceSnapshot, _receipt: dict
        ) -> str | None:
            missing = [
                f"custody {t.symbol} did not increase"
                for t, amount in claimable.items()
                if amount > 0 and after.delta(before, t) <= 0
            ]
            return "; ".join(missing) or None

        return StepSpec(
            name=name,
            actions=(
                Action(
                    "claimFees",
                    lambda: manager.build_claim_fees(
                        token_a.address, token_b.address, target.stable
                    ),
                    decode=manager.decode_fees_claimed,
                ),
            ),
            watch=watch,
            postcondition=postcondition,
            annotations=annotations,
        )

    return Stage(name, build)


def unstake_stage(target: PoolTarget, amount: int = UNSTAKE_ALL) -> Stage:
    name = f"unstake:{target.name}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        pool, annotations = await _known_pool(report, ctx, target)
        if not pool.exists:
            return _pool_not_found(name, target, annotations)
        lp = pool.lp_token
        watch = ((Holder.STAKED, lp), (Holder.CUSTODY, lp))

        staked = await manager.read_balance(Holder.STAKED, lp)
        if staked == 0:
            return StepSpec.skip(
                name, "nothing staked", watch=watch, annotations=annotations
            )
        if amount != UNSTAKE_ALL and amount > staked:
            return StepSpec.skip(
                name,
                "unstake amount exceeds staked balance",
                watch=watch,
                annotations=annotations,
            )
        expected = staked if amount == UNSTAKE_ALL else amount

        return StepSpec(
            name=name,
            actions=(
                Action(
                    "unstakeLPTokens",
                    lambda: manager.build_unstake(lp.address, amount),
                ),
            ),
            watch=watch,
            postcondition=_exact_deltas(
                {(Holder.STAKED, lp): -expected, (Holder.CUSTODY, lp): expected}
            ),
            annotations=annotations,
        )

    return Stage(name, build)


# -----------------------------
# Recovery
# -----------------------------


def recover_token_stage(token: TokenDescriptor) -> Stage:
    name = f"recover:{token.symbol}"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        watch = ((Holder.CUSTODY, token), (Holder.WALLET, token))
        balance = await manager.read_balance(Holder.CUSTODY, token)
        if balance == 0:
            return StepSpec.skip(name, "nothing to recover", watch=watch)

        logger.info(f"Recovering {_fmt(ctx, token, balance)} to the wallet")
        return StepSpec(
            name=name,
            actions=(
                Action(
                    "withdrawTokens",
                    lambda: manager.build_withdraw_tokens(
                        token.address, manager.wallet_address, balance
                    ),
                ),
            ),
            watch=watch,
            postcondition=_exact_deltas(
                {(Holder.CUSTODY, token): -balance, (Holder.WALLET, token): balance}
            ),
        )

    return Stage(name, build)


def recover_native_stage() -> Stage:
    name = "recover_native"

    async def build(report: LifecycleReport, ctx: LifecycleContext) -> StepSpec:
        manager = ctx.manager
        native = ctx.config.native_token
        watch = ((Holder.CUSTODY, native), (Holder.WALLET, native))
        balance = await manager.read_balance(Holder.CUSTODY, native)
        if balance == 0:
            return StepSpec.skip(name, "nothing to recover", watch=watch)

        def postcondition(
            before: BalanceSnapshot, after: BalanceSnapshot, receipt: dict
        ) -> str | None:
            problems = []
            custody = after.delta(before, native, Holder.CUSTODY)
            if custody != -balance:
                problems.append(f"custody: expected {-balance:+d}, observed {custody:+d}")
            # the wallet also paid for gas, including any reverted attempt
            gas = gas_cost_wei(receipt) + sum(
                gas_cost_wei(r) for r in receipt.get("revertedReceipts", ())
            )
            want = balance - gas
            wallet = after.delta(before, native, Holder.WALLET)
            if wallet != want:
                problems.append(f"wallet: expected {want:+d}, observed {wallet:+d}")
            return "; ".join(problems) or None

        return StepSpec(
            name=name,
            actions=(
                Action("withdrawETH", lambda: manager.build_withdraw_eth(balance)),
                Action("withdraw", lambda: manager.build_withdraw_native(balance)),
            ),
            watch=watch,
            postcondition=postcondition,
        )

    return Stage(name, build)


# -----------------------------
# Plan
# -----------------------------


def build_lifecycle_plan(config: LifecycleConfig) -> list[PlanEntry]:
    plan: list[PlanEntry] = []
    for target in config.deposits:
        plan.append(approve_stage(target))
        plan.append(deposit_stage(target))
    plan.extend(add_liquidity_stage(pool) for pool in config.pools)
    plan.extend(stake_stage(pool) for pool in config.pools)
    if config.pools and config.reward_wait_seconds > 0:
        plan.append(Pause(config.reward_wait_seconds, "reward accrual"))
    plan.extend(harvest_stage(pool) for pool in config.pools)
    plan.extend(unstake_stage(pool) for pool in config.pools)
    plan.extend(claim_fees_stage(pool) for pool in config.pools)
    plan.extend(remove_liquidity_stage(pool) for pool in config.pools)
    plan.extend(recover_token_stage(token) for token in config.all_tokens())
    plan.append(recover_native_stage())
    return plan
