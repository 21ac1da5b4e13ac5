"""Non-blocking ghost-row exchange between vertically adjacent ranks.

One halo round per iteration::

    IDLE/COMPLETED --post()--> POSTED --wait()--> COMPLETED

``post()`` issues every receive and send with ``Irecv``/``Isend`` and returns
immediately so the caller can run the interior stencil pass while messages
are in flight. Ghost rows may only be read after ``wait()``.

Two tags keep the directions apart, which matters when the rank above and
the rank below are the same process (ring topology with one or two ranks):

- ``TAG_DOWN``: a rank's bottom real row travelling to the rank below,
  landing in that rank's top ghost row.
- ``TAG_UP``: a rank's top real row travelling to the rank above, landing in
  that rank's bottom ghost row.
"""

from __future__ import annotations

import logging
from abc import ABC
from enum import Enum

from mpi4py import MPI

from ..datastructures import Partition
from ..errors import ConfigurationError, TransportFailure
from .grid import GridPair

log = logging.getLogger(__name__)

TAG_DOWN = 100
TAG_UP = 101


class HaloState(Enum):
    IDLE = "idle"
    POSTED = "posted"
    COMPLETED = "completed"


class HaloExchanger(ABC):
    """Two-phase halo exchange for one rank.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator shared by all ranks of the run.
    partition : Partition
        This rank's row band.
    """

    topology: str = ""

    def __init__(self, comm: MPI.Comm, partition: Partition):
        self.comm = comm
        self.rank = partition.rank
        self.size = comm.Get_size()
        self.above = partition.above
        self.below = partition.below
        self._check_neighbors()

        self.state = HaloState.IDLE
        self._requests: list = []

    def _check_neighbors(self):
        """Reject a partition built for another topology."""

    @property
    def n_neighbors(self) -> int:
        return sum(1 for n in (self.above, self.below) if n is not None)

    @property
    def pending_requests(self) -> int:
        return len(self._requests)

    def post(self, grids: GridPair):
        """Start receives into ghost rows and sends of the outermost real rows."""
        if self.state is HaloState.POSTED:
            raise RuntimeError("halo round already posted; call wait() first")

        # Receives first so matching sends find a posted buffer
        if self.above is not None:
            self._issue(self.comm.Irecv, grids.ghost_row("top"), self.above, TAG_DOWN, "down")
        if self.below is not None:
            self._issue(self.comm.Irecv, grids.ghost_row("bottom"), self.below, TAG_UP, "up")
        if self.below is not None:
            self._issue(self.comm.Isend, grids.edge_row("bottom"), self.below, TAG_DOWN, "down")
        if self.above is not None:
            self._issue(self.comm.Isend, grids.edge_row("top"), self.above, TAG_UP, "up")

        self.state = HaloState.POSTED

    def _issue(self, op, buf, peer: int, tag: int, direction: str):
        try:
            self._requests.append(op(buf, peer, tag))
        except MPI.Exception as exc:
            log.error(f"Rank {self.rank}: {op.__name__} to/from {peer} failed ({direction})")
            self._discard_requests()
            raise TransportFailure(self.rank, direction, exc) from exc

    def _discard_requests(self):
        """Cancel and free the requests of a round that could not be posted."""
        for request in self._requests:
            if request != MPI.REQUEST_NULL:
                request.Cancel()
                request.Free()
        self._requests = []

    def wait(self):
        """Block until every transfer of the current round has completed."""
        if self.state is not HaloState.POSTED:
            raise RuntimeError(f"wait() called in state {self.state.value}; post() first")
        try:
            MPI.Request.Waitall(self._requests)
        except MPI.Exception as exc:
            log.error(f"Rank {self.rank}: halo wait failed")
            raise TransportFailure(self.rank, "wait", exc) from exc
        finally:
            self._requests = []
        self.state = HaloState.COMPLETED

    def exchange(self, grids: GridPair):
        """Blocking round: post() then wait()."""
        self.post(grids)
        self.wait()


class LinearHaloExchanger(HaloExchanger):
    """First and last rank have fixed domain edges and skip those transfers."""

    topology = "linear"

    def _check_neighbors(self):
        wraps = (self.above is not None and self.above >= self.rank) or (
            self.below is not None and self.below <= self.rank
        )
        if wraps:
            raise ConfigurationError(
                f"rank {self.rank}: neighbours above={self.above}, below={self.below} "
                "wrap around; use the ring topology"
            )


class RingHaloExchanger(HaloExchanger):
    """First and last rank exchange with each other (periodic in rows)."""

    topology = "ring"

    def _check_neighbors(self):
        if self.above is None or self.below is None:
            raise ConfigurationError(
                f"rank {self.rank}: ring topology needs both neighbours, "
                f"got above={self.above}, below={self.below}"
            )


_EXCHANGERS = {
    "linear": LinearHaloExchanger,
    "ring": RingHaloExchanger,
}


def create_halo_exchanger(topology: str, comm: MPI.Comm, partition: Partition) -> HaloExchanger:
    """Factory: 'linear' for domain edges at the ends, 'ring' for wrap-around."""
    try:
        cls = _EXCHANGERS[topology]
    except KeyError:
        raise ConfigurationError(
            f"Unknown topology: {topology}. Use 'linear' or 'ring'."
        ) from None
    return cls(comm, partition)
