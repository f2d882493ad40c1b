"""Distributed grid abstraction for parallel computation.

This module provides:
- LocalGrid: 2D accessor over one rank's contiguous buffer (interior plus a
  one-cell margin), with halo/edge views and column pack/unpack
- DistributedGrid: partition, halo exchange and allocation for this rank

Solvers interact with DistributedGrid rather than managing MPI details
directly.
"""

from __future__ import annotations

import logging

import numpy as np

from ..datastructures import BOUNDARY_VALUE, DIRECTIONS, LocalLayout
from ..errors import AllocationError
from .decomposition import GridPartitioner
from .halo import create_halo_exchanger

log = logging.getLogger(__name__)

# Margin cells of each side, corners excluded
_HALO_SLICES = {
    "up": (0, slice(1, -1)),
    "down": (-1, slice(1, -1)),
    "left": (slice(1, -1), 0),
    "right": (slice(1, -1), -1),
}

# Outermost interior row/column next to each side
_EDGE_SLICES = {
    "up": (1, slice(1, -1)),
    "down": (-2, slice(1, -1)),
    "left": (slice(1, -1), 1),
    "right": (slice(1, -1), -2),
}

# Rows are contiguous in C order, columns are strided
ROW_DIRECTIONS = ("up", "down")


class LocalGrid:
    """Row-major local subgrid with a one-cell margin on every side.

    Index (i, j) addresses the ghosted buffer: row 0 / column 0 are the
    margin, the interior is ``[1:-1, 1:-1]``.
    """

    def __init__(self, data: np.ndarray):
        if data.ndim != 2 or not data.flags.c_contiguous:
            raise ValueError("LocalGrid needs a C-contiguous 2D buffer")
        self.data = data

    @classmethod
    def allocate(cls, shape, dtype=np.float64, fill: float = BOUNDARY_VALUE):
        """Allocate a buffer with every cell set to ``fill``."""
        try:
            data = np.full(shape, fill, dtype=dtype)
        except MemoryError as e:
            raise AllocationError(
                f"Could not allocate local grid of shape {tuple(shape)} ({np.dtype(dtype).name})"
            ) from e
        return cls(data)

    @property
    def shape(self):
        return self.data.shape

    @property
    def dtype(self):
        return self.data.dtype

    @property
    def interior(self) -> np.ndarray:
        return self.data[1:-1, 1:-1]

    def __getitem__(self, index):
        return self.data[index]

    def __setitem__(self, index, value):
        self.data[index] = value

    def halo(self, direction: str) -> np.ndarray:
        """View of the margin cells on one side (corners excluded)."""
        return self.data[_HALO_SLICES[direction]]

    def edge(self, direction: str) -> np.ndarray:
        """View of the owned boundary row/column next to one side."""
        return self.data[_EDGE_SLICES[direction]]

    def pack(self, direction: str, out: np.ndarray) -> np.ndarray:
        """Return the edge on one side as a contiguous send buffer.

        Rows are already contiguous and are returned as views; columns are
        copied into ``out``.
        """
        if direction in ROW_DIRECTIONS:
            return self.edge(direction)
        np.copyto(out, self.edge(direction))
        return out

    def receive_buffer(self, direction: str, scratch: np.ndarray) -> np.ndarray:
        """Contiguous buffer a halo on one side is received into."""
        if direction in ROW_DIRECTIONS:
            return self.halo(direction)
        return scratch

    def unpack(self, direction: str, buf: np.ndarray):
        """Scatter a received column buffer into the halo column."""
        if direction not in ROW_DIRECTIONS:
            self.halo(direction)[:] = buf

    def copy(self) -> "LocalGrid":
        try:
            data = np.copy(self.data, order="C")
        except MemoryError as e:
            raise AllocationError(
                f"Could not allocate local grid of shape {self.shape} ({self.dtype.name})"
            ) from e
        return LocalGrid(data)


class DistributedGrid:
    """Per-rank view of the partitioned N x N grid.

    Parameters
    ----------
    N : int
        Global grid size.
    comm : MPI.Comm
        Communicator (or any object with the same point-to-point API).
    scheme : str
        'strip' (default) or 'block'.
    halo_exchange : str
        'nonblocking' (default) or 'sendrecv'.
    dtype : str or numpy dtype
        Element type of the local buffers.

    Example
    -------
    >>> grid = DistributedGrid(N=12, comm=MPI.COMM_WORLD, scheme='block')
    >>> u = grid.allocate()      # margin holds -1
    >>> grid.fill_interior(u, 0.0)
    >>> grid.sync_halos(u)       # exchange halo data
    """

    def __init__(
        self,
        N: int,
        comm,
        scheme: str = "strip",
        halo_exchange: str = "nonblocking",
        dtype=np.float64,
    ):
        self.N = N
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()
        self.scheme = scheme
        self.halo_exchange_type = halo_exchange
        self.dtype = np.dtype(dtype)

        # Domain decomposition (raises ConfigurationError on every rank alike)
        self.partitioner = GridPartitioner(N, self.size, scheme)
        self.layout: LocalLayout = self.partitioner.get_rank_info(self.rank)

        # Copy layout attributes for direct access
        self.dims = self.partitioner.dims
        self.neighbors = self.layout.neighbors
        self.local_shape = self.layout.local_shape
        self.ghosted_shape = self.layout.ghosted_shape
        self.global_start = self.layout.global_start
        self.global_end = self.layout.global_end

        # Halo exchange strategy
        self._halo_exchanger = create_halo_exchanger(halo_exchange)
        self._halo_exchanger.setup(self.layout, comm, self.dtype)
        log.debug(
            f"coords={self.layout.coords} local={self.local_shape} "
            f"neighbors={self.neighbors} halo={halo_exchange}"
        )

    def allocate(self) -> LocalGrid:
        """Allocate a local grid whose every cell holds the boundary value."""
        return LocalGrid.allocate(self.ghosted_shape, self.dtype, BOUNDARY_VALUE)

    def fill_interior(self, grid: LocalGrid, value: float):
        """Set every owned cell to ``value``; the margin is untouched."""
        grid.interior[...] = value

    def sync_halos(self, grid: LocalGrid):
        """Exchange halo data with all neighbors."""
        self._halo_exchanger.exchange(grid)

    def get_halo_size_bytes(self) -> int:
        """Bytes sent plus received per halo exchange."""
        rows, cols = self.local_shape
        itemsize = self.dtype.itemsize
        total = 0
        for direction in DIRECTIONS:
            if self.layout.has_neighbor(direction):
                length = cols if direction in ROW_DIRECTIONS else rows
                total += length * itemsize * 2
        return total
