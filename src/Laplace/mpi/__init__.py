"""MPI domain decomposition and communication.

This package provides:
- GridPartitioner: Splits the N x N grid into strips or square blocks
- DistributedGrid / LocalGrid: Per-rank buffers with a one-cell margin
- HaloExchanger: Strategies for halo exchange (nonblocking/sendrecv)
- ConvergenceCoordinator: Global error by all-reduce
- ResultAssembler: Gather and reorder onto rank 0
"""

from .assembly import ResultAssembler
from .convergence import ConvergenceCoordinator
from .decomposition import GridPartitioner
from .grid import DistributedGrid, LocalGrid
from .halo import (
    HaloExchanger,
    NonblockingHaloExchanger,
    SendrecvHaloExchanger,
    create_halo_exchanger,
)
from ..datastructures import LocalLayout

__all__ = [
    "GridPartitioner",
    "DistributedGrid",
    "LocalGrid",
    "HaloExchanger",
    "NonblockingHaloExchanger",
    "SendrecvHaloExchanger",
    "create_halo_exchanger",
    "ConvergenceCoordinator",
    "ResultAssembler",
    "LocalLayout",
]
