"""MPI Laplace Solver package.

Jacobi relaxation for the 2D Laplace equation on an N x N grid with a fixed
boundary of -1, distributed over MPI processes. Supports two decompositions
(horizontal strips, square blocks) and two halo exchange strategies
(nonblocking, paired sendrecv).

Solvers
-------
Parallel (MPI):
- JacobiMPISolver: Jacobi with domain decomposition
"""

from .datastructures import (
    SolverParams,
    GlobalMetrics,
    LocalMetrics,
    LocalLayout,
)
from .errors import LaplaceError, ConfigurationError, AllocationError, ArgumentError
from .kernels import NumPyKernel, NumbaKernel
from .mpi import DistributedGrid, GridPartitioner
from .runner import run_solver
from .solvers import JacobiMPISolver

__all__ = [
    # Data structures
    "SolverParams",
    "GlobalMetrics",
    "LocalMetrics",
    "LocalLayout",
    # Errors
    "LaplaceError",
    "ConfigurationError",
    "AllocationError",
    "ArgumentError",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    # Solvers - MPI
    "JacobiMPISolver",
    # Grid
    "DistributedGrid",
    "GridPartitioner",
    # Utilities
    "run_solver",
]
