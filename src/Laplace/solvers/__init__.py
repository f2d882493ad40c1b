"""Laplace solvers.

Parallel (MPI):
- JacobiMPISolver: Jacobi relaxation with strip or block decomposition
"""

from .jacobi_mpi import JacobiMPISolver

__all__ = [
    "JacobiMPISolver",
]
