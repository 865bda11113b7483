from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from lp_lifecycle.lifecycle.config import LifecycleConfig
from lp_lifecycle.lifecycle.errors import LifecycleAbortedError
from lp_lifecycle.lifecycle.executor import StepExecutor, StepSpec, Submitter
from lp_lifecycle.lifecycle.resolver import PoolGaugeResolver
from lp_lifecycle.lifecycle.snapshot import BalanceSnapshotter
from lp_lifecycle.lifecycle.types import (
    BalanceSnapshot,
    Holder,
    LifecycleReport,
    StepResult,
    StepStatus,
)


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(frozen=True)
class LifecycleContext:
    """What stage builders may consult while turning a stage into a StepSpec."""

    config: LifecycleConfig
    manager: Any
    resolver: PoolGaugeResolver
    clock: Clock


StageBuilder = Callable[[LifecycleReport, LifecycleContext], Awaitable[StepSpec]]


@dataclass(frozen=True)
class Stage:
    name: str
    build: StageBuilder


@dataclass(frozen=True)
class Pause:
    seconds: float
    name: str = "pause"


PlanEntry = Stage | Pause


class LifecycleOrchestrator:
    def __init__(
        self,
        executor: StepExecutor,
        snapshotter: BalanceSnapshotter,
        config: LifecycleConfig,
        clock: Clock | None = None,
        *,
        manager: Any = None,
    ):
        self.executor = executor
        self.snapshotter = snapshotter
        self.config = config
        self.clock = clock or SystemClock()
        self.manager = manager
        self.context = LifecycleContext(
            config=config,
            manager=manager,
            resolver=PoolGaugeResolver(manager),
            clock=self.clock,
        )
        self._lock = asyncio.Lock()
        self.logger = logger.bind(orchestrator=self.__class__.__name__)

    @classmethod
    def from_components(
        cls,
        *,
        manager: Any,
        submitter: Submitter,
        config: LifecycleConfig,
        clock: Clock | None = None,
    ) -> LifecycleOrchestrator:
        """Wire the usual collaborators: the manager doubles as balance reader."""
        clock = clock or SystemClock()
        snapshotter = BalanceSnapshotter(manager, clock)
        return cls(
            StepExecutor(snapshotter, submitter),
            snapshotter,
            config,
            clock,
            manager=manager,
        )

    async def run(self, plan: Iterable[PlanEntry]) -> LifecycleReport:
        async with self._lock:
            return await self._run(list(plan))

    async def _run(self, plan: list[PlanEntry]) -> LifecycleReport:
        # InvalidDecimals propagates: no amount can be computed safely
        self.config.validate()

        try:
            initial = await self.snapshotter.snapshot(
                (*self.config.all_tokens(), self.config.native_token),
                (Holder.WALLET, Holder.CUSTODY),
            )
        except Exception as exc:
            raise LifecycleAbortedError(f"initial balance snapshot failed: {exc}") from exc

        report = LifecycleReport(initial=initial)
        self.logger.info(f"Lifecycle started with {len(plan)} plan entries")

        for entry in plan:
            if isinstance(entry, Pause):
                self.logger.info(f"Pausing {entry.seconds}s ({entry.name})")
                await self.clock.sleep(entry.seconds)
                continue

            try:
                step = await entry.build(report, self.context)
            except Exception as exc:
                self.logger.error(f"Stage {entry.name} could not be built: {exc}")
                report.append(_unbuildable(entry.name, exc))
                continue

            report.append(await self.executor.execute(step))

        self.logger.info(f"Lifecycle finished: {report.summary()}")
        return report


def _unbuildable(name: str, exc: Exception) -> StepResult:
    empty = BalanceSnapshot.empty()
    return StepResult(
        name=name,
        status=StepStatus.SKIPPED_PRECONDITION,
        attempted=False,
        before=empty,
        after=empty,
        skip_reason="stage could not be prepared",
        error_detail=str(exc),
    )
