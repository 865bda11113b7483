from lp_lifecycle.lifecycle.config import (
    DepositTarget,
    LifecycleConfig,
    PoolTarget,
)
from lp_lifecycle.lifecycle.errors import (
    InvalidDecimals,
    LifecycleAbortedError,
    LifecycleError,
    ResolutionError,
    SnapshotError,
)
from lp_lifecycle.lifecycle.executor import Action, StepExecutor, StepSpec
from lp_lifecycle.lifecycle.orchestrator import (
    Clock,
    LifecycleContext,
    LifecycleOrchestrator,
    Pause,
    Stage,
    SystemClock,
)
from lp_lifecycle.lifecycle.resolver import PoolGaugeResolver
from lp_lifecycle.lifecycle.snapshot import BalanceReader, BalanceSnapshotter
from lp_lifecycle.lifecycle.stages import UNSTAKE_ALL, build_lifecycle_plan
from lp_lifecycle.lifecycle.types import (
    BalanceSnapshot,
    GaugeDescriptor,
    Holder,
    LifecycleReport,
    PoolDescriptor,
    PoolPair,
    StepResult,
    StepStatus,
    TokenDescriptor,
)

__all__ = [
    "Action",
    "BalanceReader",
    "BalanceSnapshot",
    "BalanceSnapshotter",
    "Clock",
    "DepositTarget",
    "GaugeDescriptor",
    "Holder",
    "InvalidDecimals",
    "LifecycleAbortedError",
    "LifecycleConfig",
    "LifecycleContext",
    "LifecycleError",
    "LifecycleOrchestrator",
    "LifecycleReport",
    "Pause",
    "PoolDescriptor",
    "PoolGaugeResolver",
    "PoolPair",
    "PoolTarget",
    "ResolutionError",
    "SnapshotError",
    "Stage",
    "StepExecutor",
    "StepResult",
    "StepSpec",
    "StepStatus",
    "SystemClock",
    "TokenDescriptor",
    "UNSTAKE_ALL",
    "build_lifecycle_plan",
]
