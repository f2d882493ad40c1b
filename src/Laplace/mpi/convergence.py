"""Global convergence decision shared by every rank."""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

log = logging.getLogger(__name__)


class ConvergenceCoordinator:
    """Combine local squared errors into one decision made identically everywhere.

    The all-reduce delivers the same sum to every rank, so all ranks leave
    the iteration loop on the same sweep and the halo exchange never
    desynchronizes.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator of the participating ranks.
    precision : float
        Iterate while the global error is >= precision.
    max_iter : int, optional
        Opt-in cap on the number of sweeps. None (default) means no cap:
        a precision below what the arithmetic can resolve loops forever.
    """

    def __init__(self, comm, precision: float = 1.0e-2, max_iter: Optional[int] = None):
        self.comm = comm
        self.rank = comm.Get_rank()
        self.precision = precision
        self.max_iter = max_iter

        self.iterations = 0
        self.global_error = math.inf
        self.history: list[float] = []

        self._send = np.zeros(1, dtype=np.float64)
        self._recv = np.zeros(1, dtype=np.float64)

    def reduce(self, local_sq_error: float) -> float:
        """All-reduce SUM of the local squared error, return sqrt of the total."""
        self._send[0] = local_sq_error
        self.comm.Allreduce(self._send, self._recv)
        return math.sqrt(self._recv[0])

    def update(self, local_sq_error: float) -> bool:
        """Record one sweep and return True while iteration must continue."""
        self.iterations += 1
        self.global_error = self.reduce(local_sq_error)
        self.history.append(self.global_error)

        if self.rank == 0:
            log.debug(f"Iteration {self.iterations} - error = {self.global_error:e}")

        return self.should_continue()

    def should_continue(self) -> bool:
        if self.converged:
            return False
        if self.max_iter is not None and self.iterations >= self.max_iter:
            return False
        return True

    @property
    def converged(self) -> bool:
        return self.global_error < self.precision
