"""MPI worker - invoked via: mpiexec -n X python -m Laplace.helpers.runner_helper '{config}'"""

import json
import logging
import sys
from dataclasses import fields

from mpi4py import MPI

from Laplace import RelaxationParams, RelaxationSolver

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

config = json.loads(sys.argv[1])
comm = MPI.COMM_WORLD

param_names = {f.name for f in fields(RelaxationParams) if f.init}
params = RelaxationParams(**{k: v for k, v in config.items() if k in param_names})

solver = RelaxationSolver(params, comm=comm)
solver.warmup()
solver.solve()

# Save results to HDF5 (collective gather, rank 0 writes)
output_path = config.get("output")
if output_path:
    solver.save_hdf5(output_path)

if comm.Get_rank() == 0:
    # Just print the path - runner.py will load the HDF5
    print(f"RESULT:{output_path}")
