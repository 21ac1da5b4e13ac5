"""Shared fixtures: in-process mock communicators for protocol tests."""

from collections import defaultdict, deque

import numpy as np
import pytest
from mpi4py import MPI

from Laplace import GridPair, RowDecomposition, create_halo_exchanger


class LoopbackWorld:
    """Delivers Isend/Irecv between mock ranks living in one process.

    A message is copied as soon as both sides have been posted, so calling
    ``post()`` on every rank before any ``wait()`` completes all transfers.
    Requests handed back are null ``MPI.Request`` objects, which
    ``MPI.Request.Waitall`` completes immediately.
    """

    def __init__(self, size):
        self.size = size
        self._sends = defaultdict(deque)  # (src, dest, tag) -> payload copies
        self._recvs = defaultdict(deque)  # (src, dest, tag) -> receive buffers

    def comm(self, rank):
        return LoopbackComm(self, rank)

    @property
    def pending(self):
        return sum(len(q) for q in self._sends.values()) + sum(
            len(q) for q in self._recvs.values()
        )


class LoopbackComm:
    """Mock MPI communicator for one rank of a LoopbackWorld."""

    def __init__(self, world, rank):
        self.world = world
        self.rank = rank

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def Isend(self, buf, dest, tag):
        key = (self.rank, dest, tag)
        if self.world._recvs[key]:
            self.world._recvs[key].popleft()[...] = buf
        else:
            self.world._sends[key].append(np.array(buf, copy=True))
        return MPI.Request()

    def Irecv(self, buf, source, tag):
        key = (source, self.rank, tag)
        if self.world._sends[key]:
            buf[...] = self.world._sends[key].popleft()
        else:
            self.world._recvs[key].append(buf)
        return MPI.Request()


class FailingSendComm(LoopbackComm):
    """Mock communicator whose sends fail at the messaging layer."""

    def Isend(self, buf, dest, tag):
        raise MPI.Exception(MPI.ERR_OTHER)


def build_ranks(global_rows, columns, size, topology, world=None):
    """Grids and exchangers for every rank of a mock world.

    Real cells hold ``global_row * 1000 + column`` so each row is unique.
    """
    world = world or LoopbackWorld(size)
    decomp = RowDecomposition(global_rows, size, topology)
    ranks = []
    for partition in decomp.get_all_rank_info():
        grids = GridPair(partition.local_rows, columns, rank=partition.rank)
        grids.initialize(partition, global_rows)
        for i in range(1, partition.local_rows + 1):
            grids.current[i, 1:-1] = (partition.global_start_row + i) * 1000.0 + np.arange(
                1, columns + 1
            )
        halo = create_halo_exchanger(topology, world.comm(partition.rank), partition)
        ranks.append((partition, grids, halo))
    return world, ranks


@pytest.fixture
def world_comm():
    """MPI.COMM_WORLD when running as a single (singleton) process."""
    comm = MPI.COMM_WORLD
    if comm.Get_size() != 1:
        pytest.skip("in-process tests expect a single rank")
    return comm
