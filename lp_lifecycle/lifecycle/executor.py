from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from lp_lifecycle.core.utils.transaction import TransactionRevertedError
from lp_lifecycle.lifecycle.snapshot import BalanceSnapshotter
from lp_lifecycle.lifecycle.types import (
    BalanceKey,
    BalanceSnapshot,
    StepResult,
    StepStatus,
)

Precondition = Callable[[], Awaitable[str | None]]
Postcondition = Callable[[BalanceSnapshot, BalanceSnapshot, dict], str | None]
OutcomeAnnotator = Callable[[Any], Awaitable[Mapping[str, Any]]]


class Submitter(Protocol):
    async def submit(self, transaction: dict) -> str: ...

    async def confirm(self, txn_hash: str) -> dict: ...


@dataclass(frozen=True)
class Action:
    """One way of performing a step: build the unsigned tx, decode its receipt."""

    name: str
    build: Callable[[], Awaitable[dict]]
    decode: Callable[[dict], Any] | None = None


@dataclass(frozen=True)
class StepSpec:
    name: str
    # alternatives, tried in order until one confirms
    actions: tuple[Action, ...] = ()
    watch: tuple[BalanceKey, ...] = ()
    precondition: Precondition | None = None
    postcondition: Postcondition | None = None
    annotations: Mapping[str, Any] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    annotate_outcome: OutcomeAnnotator | None = None

    @classmethod
    def skip(
        cls,
        name: str,
        reason: str,
        *,
        watch: tuple[BalanceKey, ...] = (),
        annotations: Mapping[str, Any] | None = None,
        warnings: tuple[str, ...] = (),
    ) -> StepSpec:
        """A step already known not to run when it is built."""

        async def _reason() -> str:
            return reason

        return cls(
            name=name,
            watch=watch,
            precondition=_reason,
            annotations=annotations or {},
            warnings=warnings,
        )


class StepExecutor:
    """Runs one StepSpec: precondition, snapshot, submit, confirm, snapshot, check.

    ``execute`` never raises; every failure is reported through the returned
    ``StepResult`` status.
    """

    def __init__(self, snapshotter: BalanceSnapshotter, submitter: Submitter):
        self.snapshotter = snapshotter
        self.submitter = submitter

    async def execute(self, step: StepSpec) -> StepResult:
        log = logger.bind(step=step.name)
        log.info(f"Step {step.name}: starting")
        for warning in step.warnings:
            log.warning(f"Step {step.name}: {warning}")

        reason: str | None = None
        error: str | None = None
        if step.precondition is not None:
            try:
                reason = await step.precondition()
            except Exception as exc:
                log.error(f"Step {step.name}: precondition check raised: {exc}")
                reason = "precondition check failed"
                error = str(exc)
        if reason is None and not step.actions:
            reason = "nothing to submit"
        if reason is not None:
            return await self._skipped(step, reason, error)

        try:
            before = await self.snapshotter.snapshot_keys(step.watch)
        except Exception as exc:
            log.error(f"Step {step.name}: balance snapshot failed: {exc}")
            empty = BalanceSnapshot.empty()
            return self._result(
                step,
                StepStatus.SUBMISSION_FAILURE,
                attempted=False,
                before=empty,
                after=empty,
                error_detail=f"balance snapshot failed before submission: {exc}",
            )

        failures: list[str] = []
        reverted: list[dict] = []
        broadcast = False
        txn_hash: str | None = None
        receipt: dict | None = None
        used: Action | None = None
        for action in step.actions:
            try:
                transaction = await action.build()
                txn_hash = await self.submitter.submit(transaction)
            except Exception as exc:
                failures.append(f"{action.name}: submission failed: {exc}")
                log.error(f"Step {step.name}: {action.name} submission failed: {exc}")
                continue
            log.info(f"Step {step.name}: {action.name} submitted {txn_hash}")
            broadcast = True

            try:
                receipt = await self.submitter.confirm(txn_hash)
            except TransactionRevertedError as exc:
                reverted.append(exc.receipt)
                failures.append(f"{action.name}: reverted: {exc}")
                log.error(f"Step {step.name}: {action.name} reverted: {exc}")
                continue
            except Exception as exc:
                failures.append(f"{action.name}: confirmation failed: {exc}")
                log.error(
                    f"Step {step.name}: {action.name} confirmation failed: {exc}"
                )
                continue
            used = action
            break

        if used is None or receipt is None:
            # a transaction that reached the chain outranks a later submission failure
            status = (
                StepStatus.EXECUTION_FAILURE
                if broadcast
                else StepStatus.SUBMISSION_FAILURE
            )
            return self._result(
                step,
                status,
                attempted=True,
                before=before,
                after=before,
                tx_hash=txn_hash,
                error_detail="; ".join(failures),
            )

        warnings = list(step.warnings)
        if failures:
            warnings.extend(failures)

        try:
            after = await self.snapshotter.snapshot_keys(step.watch)
        except Exception as exc:
            log.error(f"Step {step.name}: post-confirmation snapshot failed: {exc}")
            return self._result(
                step,
                StepStatus.EFFECT_NOT_OBSERVED,
                attempted=True,
                before=before,
                after=before,
                tx_hash=txn_hash,
                action=used.name,
                error_detail=f"transaction confirmed but balances could not be read: {exc}",
                warnings=tuple(warnings),
            )

        outcome = None
        if used.decode is not None:
            try:
                outcome = used.decode(receipt)
            except Exception as exc:
                log.warning(f"Step {step.name}: could not decode receipt: {exc}")
                warnings.append(f"receipt decode failed: {exc}")

        # reverted alternatives were mined too and paid gas
        checked = {**receipt, "revertedReceipts": tuple(reverted)} if reverted else receipt
        problem: str | None = None
        if step.postcondition is not None:
            try:
                problem = step.postcondition(before, after, checked)
            except Exception as exc:
                problem = f"postcondition check raised: {exc}"
        if problem is not None:
            log.warning(f"Step {step.name}: effect not observed: {problem}")
            return self._result(
                step,
                StepStatus.EFFECT_NOT_OBSERVED,
                attempted=True,
                before=before,
                after=after,
                tx_hash=txn_hash,
                action=used.name,
                outcome=outcome,
                error_detail=problem,
                warnings=tuple(warnings),
            )

        annotations = dict(step.annotations)
        if step.annotate_outcome is not None:
            try:
                annotations.update(await step.annotate_outcome(outcome))
            except Exception as exc:
                log.warning(f"Step {step.name}: could not annotate outcome: {exc}")
                warnings.append(f"annotation failed: {exc}")

        log.info(f"Step {step.name}: succeeded via {used.name} ({txn_hash})")
        return StepResult(
            name=step.name,
            status=StepStatus.SUCCEEDED,
            attempted=True,
            before=before,
            after=after,
            tx_hash=txn_hash,
            action=used.name,
            outcome=outcome,
            annotations=annotations,
            warnings=tuple(warnings),
        )

    async def _skipped(
        self, step: StepSpec, reason: str, error: str | None
    ) -> StepResult:
        warnings = list(step.warnings)
        try:
            observed = await self.snapshotter.snapshot_keys(step.watch)
        except Exception as exc:
            observed = BalanceSnapshot.empty()
            warnings.append(f"balance snapshot failed while skipping: {exc}")
        logger.bind(step=step.name).info(f"Step {step.name}: skipped ({reason})")
        return self._result(
            step,
            StepStatus.SKIPPED_PRECONDITION,
            attempted=False,
            before=observed,
            after=observed,
            skip_reason=reason,
            error_detail=error,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _result(step: StepSpec, status: StepStatus, **kwargs: Any) -> StepResult:
        kwargs.setdefault("warnings", step.warnings)
        return StepResult(
            name=step.name,
            status=status,
            annotations=step.annotations,
            **kwargs,
        )
