"""Helper script for multi-rank halo checks.

Invoked via: mpiexec -n X python -m Laplace.helpers.halo_check_helper <topology> <iterations>

Every iteration, before the halo round, all ranks share their outermost real
rows. After ``wait()`` each ghost row must equal the matching neighbour row
exactly. Exits non-zero on the first mismatch.
"""

import sys

import numpy as np
from mpi4py import MPI

from Laplace import RelaxationParams, RelaxationSolver


def check_ghost_rows(comm, topology: str, iterations: int) -> bool:
    rank = comm.Get_rank()
    params = RelaxationParams(
        global_rows=3 * comm.Get_size() + 1,
        columns=8,
        epsilon=0.0,
        max_iterations=iterations,
        topology=topology,
    )
    solver = RelaxationSolver(params, comm=comm)
    grids, halo, kernel = solver.grids, solver.halo, solver.kernel

    # Distinct values per global cell so misrouted rows are detected
    gs = solver.partition.global_start_row
    for i in range(1, grids.local_rows + 1):
        grids.current[i, 1:-1] = (gs + i) * 1000.0 + np.arange(1, params.columns + 1)

    success = True
    for it in range(iterations):
        edges = comm.allgather((grids.edge_row("top").copy(), grids.edge_row("bottom").copy()))
        prev, nxt = grids.current, grids.next

        halo.post(grids)
        kernel.interior(prev, nxt)
        halo.wait()

        if halo.above is not None and not np.array_equal(grids.ghost_row("top"), edges[halo.above][1]):
            print(f"Rank {rank}: top ghost mismatch at iteration {it}")
            success = False
        if halo.below is not None and not np.array_equal(grids.ghost_row("bottom"), edges[halo.below][0]):
            print(f"Rank {rank}: bottom ghost mismatch at iteration {it}")
            success = False

        kernel.boundary(prev, nxt)
        solver.reducer.reduce(prev, nxt)
        grids.swap()

    return success


if __name__ == "__main__":
    comm = MPI.COMM_WORLD
    topology = sys.argv[1] if len(sys.argv) > 1 else "linear"
    iterations = int(sys.argv[2]) if len(sys.argv) > 2 else 5

    ok = comm.allreduce(check_ghost_rows(comm, topology, iterations), op=MPI.LAND)
    if comm.Get_rank() == 0:
        print("Halo Exchange Test PASSED" if ok else "Halo Exchange Test FAILED")
    sys.exit(0 if ok else 1)
