"""Helper script for multi-rank fixed-boundary checks.

Invoked via: mpiexec -n X python -m Laplace.helpers.boundary_check_helper <iterations>

After ``iterations`` steps every rank compares both buffers with the global
initial field: left column, right-column gradient over its band (ghost rows
included), and the domain-edge ghost rows on the first and last rank.
"""

import sys

import numpy as np
from mpi4py import MPI

from Laplace import RelaxationParams, RelaxationSolver, initial_field


def check_fixed_boundaries(comm, iterations: int) -> bool:
    rank = comm.Get_rank()
    params = RelaxationParams(
        global_rows=3 * comm.Get_size() + 2,
        columns=7,
        epsilon=0.0,
        max_iterations=iterations,
        progress_interval=0,
    )
    solver = RelaxationSolver(params, comm=comm)
    solver.solve()

    reference = initial_field(params.global_rows, params.columns, params.boundary_temperature)
    start, end = solver.partition.global_start_row, solver.partition.global_end_row
    band = reference[start : end + 2]

    success = True
    for name, u in (("current", solver.grids.current), ("next", solver.grids.next)):
        checks = {
            "left column": np.all(u[:, 0] == 0.0),
            "right column": np.allclose(u[:, -1], band[:, -1], rtol=0, atol=1e-12),
        }
        if solver.partition.above is None:
            checks["top ghost row"] = np.array_equal(u[0, :], reference[0, :])
        if solver.partition.below is None:
            checks["bottom ghost row"] = np.allclose(u[-1, :], reference[-1, :], rtol=0, atol=1e-12)

        for what, ok in checks.items():
            if not ok:
                print(f"Rank {rank}: {what} changed in {name} buffer")
                success = False

    return success


if __name__ == "__main__":
    comm = MPI.COMM_WORLD
    iterations = int(sys.argv[1]) if len(sys.argv) > 1 else 9

    ok = comm.allreduce(check_fixed_boundaries(comm, iterations), op=MPI.LAND)
    if comm.Get_rank() == 0:
        print("Boundary Test PASSED" if ok else "Boundary Test FAILED")
    sys.exit(0 if ok else 1)
