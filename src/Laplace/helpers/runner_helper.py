"""MPI worker - invoked via: mpiexec -n X python -m Laplace.helpers.runner_helper '{config}'"""

import json
import logging
import sys

from mpi4py import MPI

from Laplace.cli import setup_logging
from Laplace.datastructures import SolverParams
from Laplace.errors import AllocationError, ConfigurationError
from Laplace.io import save_hdf5
from Laplace.solvers import JacobiMPISolver

log = logging.getLogger("Laplace.helpers.runner_helper")

config = json.loads(sys.argv[1])
comm = MPI.COMM_WORLD
rank = comm.Get_rank()
setup_logging(rank, config.pop("log_level", "WARNING"))

try:
    params = SolverParams(**config)
    solver = JacobiMPISolver(params, comm)
    if params.kernel == "numba":
        solver.warmup()
    solver.solve()
    u_global = solver.assemble()
except ConfigurationError as e:
    # Raised before any communication, identically on every rank
    log.error(f"ERROR: {e}")
    sys.exit(1)
except AllocationError as e:
    log.critical(f"{e}; aborting all ranks")
    comm.Abort(1)

if rank == 0:
    save_hdf5(params.hdf5, params, solver.metrics, u_global, solver.timeseries)
    # Just print the path - runner.py will load the HDF5
    print(f"RESULT:{params.hdf5}")
