"""Domain decomposition of the square grid across ranks.

Pure geometric logic with no MPI dependencies: every rank builds the same
partition from (N, P, scheme), so a constraint violation is detected
identically everywhere without communication.
"""

from __future__ import annotations

import math

from ..datastructures import SCHEMES, LocalLayout
from ..errors import ConfigurationError


class GridPartitioner:
    """Partition an N x N grid across P ranks.

    Parameters
    ----------
    N : int
        Global grid size (interior cells per dimension).
    size : int
        Number of ranks.
    scheme : str
        'strip' for 1D row strips (P divides N),
        'block' for S x S blocks (P = S², S divides N).

    Examples
    --------
    >>> part = GridPartitioner(N=12, size=9, scheme='block')
    >>> part.get_rank_info(4).neighbors
    {'up': 1, 'down': 7, 'left': 3, 'right': 5}
    """

    def __init__(self, N: int, size: int, scheme: str = "strip"):
        self.N = N
        self.size = size
        self.scheme = scheme

        if N < 1:
            raise ConfigurationError(f"Grid dimension must be positive, got N={N}")
        if size < 1:
            raise ConfigurationError(f"Process count must be positive, got P={size}")

        if scheme == "strip":
            self._decompose_strip()
        elif scheme == "block":
            self._decompose_block()
        else:
            raise ConfigurationError(
                f"Unknown scheme: {scheme}. Use {' or '.join(map(repr, SCHEMES))}."
            )

    # =========================================================================
    # Query Interface
    # =========================================================================

    def get_rank_info(self, rank: int) -> LocalLayout:
        """Layout for a specific rank."""
        return self._rank_info[rank]

    def get_all_rank_info(self) -> list[LocalLayout]:
        """Layouts for all ranks, indexed by rank."""
        return self._rank_info

    # =========================================================================
    # Internal Decomposition Logic
    # =========================================================================

    def _decompose_strip(self):
        """Row strips: rank r owns rows [r*N/P, (r+1)*N/P)."""
        N, P = self.N, self.size
        if N % P != 0:
            raise ConfigurationError(
                f"Strip decomposition requires the process count to divide N, "
                f"but N={N} is not a multiple of P={P}"
            )

        self.dims = (P, 1)
        self.block_size = (N // P, N)
        nrows = N // P

        self._rank_info = []
        for rank in range(P):
            neighbors = {
                "up": rank - 1 if rank > 0 else None,
                "down": rank + 1 if rank < P - 1 else None,
                "left": None,
                "right": None,
            }
            row0 = rank * nrows
            self._rank_info.append(
                LocalLayout(
                    rank=rank,
                    scheme="strip",
                    coords=(rank, 0),
                    local_shape=(nrows, N),
                    global_start=(row0, 0),
                    global_end=(row0 + nrows, N),
                    ghosted_shape=(nrows + 2, N + 2),
                    neighbors=neighbors,
                )
            )

    def _decompose_block(self):
        """S x S blocks, rank r at block row r // S, block col r % S."""
        N, P = self.N, self.size
        S = math.isqrt(P)
        if S * S != P:
            raise ConfigurationError(
                f"Block decomposition requires a perfect square number of "
                f"processes (4, 9, 16, ...), got P={P}"
            )
        if N % S != 0:
            raise ConfigurationError(
                f"Block decomposition requires sqrt(P) to divide N: "
                f"expected N = {S} x block, got N={N}"
            )

        self.dims = (S, S)
        b = N // S
        self.block_size = (b, b)

        self._rank_info = []
        for rank in range(P):
            br, bc = divmod(rank, S)
            neighbors = {
                "up": rank - S if br > 0 else None,
                "down": rank + S if br < S - 1 else None,
                "left": rank - 1 if bc > 0 else None,
                "right": rank + 1 if bc < S - 1 else None,
            }
            self._rank_info.append(
                LocalLayout(
                    rank=rank,
                    scheme="block",
                    coords=(br, bc),
                    local_shape=(b, b),
                    global_start=(br * b, bc * b),
                    global_end=((br + 1) * b, (bc + 1) * b),
                    ghosted_shape=(b + 2, b + 2),
                    neighbors=neighbors,
                )
            )
