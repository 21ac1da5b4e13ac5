"""Exception hierarchy for the relaxation solver.

Every failure halts the run; nothing here is retried. Reaching the iteration
cap is reported through ``Status`` and is not an error.
"""

from __future__ import annotations


class RelaxationError(Exception):
    """Base class for all solver failures."""


class ConfigurationError(RelaxationError, ValueError):
    """Invalid problem size, decomposition or topology.

    Raised before any grid buffer is allocated.
    """


class AllocationFailure(RelaxationError, MemoryError):
    """A rank could not allocate its grid buffers."""

    def __init__(self, rank: int, shape: tuple[int, int], cause: Exception | None = None):
        self.rank = rank
        self.shape = shape
        msg = f"rank {rank}: failed to allocate grid buffers of shape {shape}"
        if cause is not None:
            msg += f" ({cause})"
        super().__init__(msg)


class TransportFailure(RelaxationError):
    """A halo send or receive failed at the messaging layer.

    Parameters
    ----------
    rank : int
        Rank that observed the failure.
    direction : str
        ``"up"``, ``"down"`` or ``"wait"`` when the failing request is unknown.
    """

    def __init__(self, rank: int, direction: str, cause: Exception | None = None):
        self.rank = rank
        self.direction = direction
        msg = f"rank {rank}: halo transfer failed (direction={direction})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
