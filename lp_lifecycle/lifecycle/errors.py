from lp_lifecycle.core.utils.units import InvalidDecimals


class LifecycleError(Exception):
    pass


class ResolutionError(LifecycleError):
    """A pool or gauge lookup failed (not the same as the pool being absent)."""


class SnapshotError(LifecycleError):
    pass


class LifecycleAbortedError(LifecycleError):
    """The run could not start; no step was executed."""


__all__ = [
    "InvalidDecimals",
    "LifecycleAbortedError",
    "LifecycleError",
    "ResolutionError",
    "SnapshotError",
]
