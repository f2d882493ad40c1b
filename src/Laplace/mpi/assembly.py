"""Reassembly of the distributed solution on the coordinator rank."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ..errors import AllocationError
from .decomposition import GridPartitioner

log = logging.getLogger(__name__)


class ResultAssembler:
    """Gather every rank's interior and reorder it into the global N x N matrix.

    Row 0 of the result is the top physical row. Only ``root`` gets the
    matrix; every other rank gets None.

    Parameters
    ----------
    partitioner : GridPartitioner
        Partition shared by all ranks.
    comm : MPI.Comm
        Communicator of the participating ranks.
    root : int
        Coordinator rank (default 0).
    """

    def __init__(self, partitioner: GridPartitioner, comm, root: int = 0):
        self.partitioner = partitioner
        self.comm = comm
        self.root = root
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()

    def gather(self, interior: np.ndarray) -> Optional[np.ndarray]:
        """Collect the flattened interiors as one row per rank on root."""
        sendbuf = np.ascontiguousarray(interior).reshape(-1)
        recvbuf = None
        if self.rank == self.root:
            try:
                recvbuf = np.empty((self.size, sendbuf.size), dtype=sendbuf.dtype)
            except MemoryError as e:
                raise AllocationError("Could not allocate the gather buffer") from e
        self.comm.Gather(sendbuf, recvbuf, root=self.root)
        return recvbuf

    def assemble(self, interior: np.ndarray) -> Optional[np.ndarray]:
        """Gather and reorder. Collective: every rank must call it."""
        chunks = self.gather(interior)
        if self.rank != self.root:
            return None

        log.debug(f"Assembling {self.size} {self.partitioner.scheme} chunks of {chunks.shape[1]} values")
        if self.partitioner.scheme == "strip":
            return self._assemble_strip(chunks)
        return self._assemble_block(chunks)

    def _assemble_strip(self, chunks: np.ndarray) -> np.ndarray:
        """Chunks arrive in rank order, already consecutive row bands."""
        rows, cols = self.partitioner.block_size
        return np.concatenate([c.reshape(rows, cols) for c in chunks], axis=0)

    def _assemble_block(self, chunks: np.ndarray) -> np.ndarray:
        """Reorder block chunks in two stages.

        1. Group chunks by block column (rank mod S); each group lists that
           column's blocks top to bottom.
        2. Scatter every block into its (block row, block col) footprint.
        """
        N = self.partitioner.N
        S = self.partitioner.dims[1]
        b = self.partitioner.block_size[0]

        by_column = [[(rank, chunks[rank]) for rank in range(c, self.size, S)] for c in range(S)]

        result = np.empty((N, N), dtype=chunks.dtype)
        for bc, column in enumerate(by_column):
            for rank, chunk in column:
                br = rank // S
                block = chunk.reshape(b, b)
                for i in range(b):
                    result[br * b + i, bc * b:(bc + 1) * b] = block[i]
        return result

    def assemble_with_boundary(self, interior: np.ndarray, boundary_value: float) -> Optional[np.ndarray]:
        """Assembled matrix framed by the Dirichlet border, (N+2) x (N+2)."""
        inner = self.assemble(interior)
        if inner is None:
            return None
        framed = np.full((inner.shape[0] + 2, inner.shape[1] + 2), boundary_value, dtype=inner.dtype)
        framed[1:-1, 1:-1] = inner
        return framed
