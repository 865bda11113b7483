__version__ = "0.1.0"

from lp_lifecycle.lifecycle import (
    LifecycleOrchestrator,
    LifecycleReport,
    StepExecutor,
    StepResult,
    StepStatus,
)

__all__ = [
    "__version__",
    "LifecycleOrchestrator",
    "LifecycleReport",
    "StepExecutor",
    "StepResult",
    "StepStatus",
]
