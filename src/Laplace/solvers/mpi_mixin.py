"""MPI mixin providing common parallel solver functionality."""

import time

import numpy as np


class MPISolverMixin:
    """Mixin providing common MPI functionality for parallel solvers.

    Provides shared implementations for:
    - MPI initialization (comm, rank, size)
    - Wall-clock timing
    - Root rank checking and barriers
    - Min/max/avg of a per-rank value on root

    Usage:
        class MyMPISolver(MPISolverMixin):
            def __init__(self, ..., comm=None):
                self._init_mpi(comm)
                ...
    """

    def _init_mpi(self, comm=None):
        """Initialize MPI attributes. Call early in subclass __init__."""
        if comm is None:
            from mpi4py import MPI

            comm = MPI.COMM_WORLD
        self.comm = comm
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        self._clock = _clock_for(comm)

    def _get_time(self) -> float:
        return self._clock()

    def _is_root(self) -> bool:
        """Only rank 0 logs metrics."""
        return self.rank == 0

    def _barrier(self):
        """Synchronize all ranks before timing."""
        self.comm.Barrier()

    def _gather_stats(self, value: float):
        """(min, max, avg) of a per-rank value on rank 0, None elsewhere."""
        values = self.comm.gather(value, root=0)
        if not self._is_root():
            return None
        arr = np.asarray(values, dtype=np.float64)
        return float(arr.min()), float(arr.max()), float(arr.mean())


def _clock_for(comm):
    """MPI.Wtime for mpi4py communicators, perf_counter for anything else."""
    if type(comm).__module__.startswith("mpi4py"):
        from mpi4py import MPI

        return MPI.Wtime
    return time.perf_counter
