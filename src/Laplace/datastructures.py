"""Data structures for solver configuration and results.

Architecture: 2x2 matrix of Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           SolverParams                  GlobalMetrics
(same across     N, scheme, precision,         converged, iterations,
ranks / agg)     dtype, kernel...              final_error, wall_time...

Local            LocalLayout                   LocalMetrics
(per-rank)       rank, block coords,           compute_times[],
                 neighbors, local_shape...     halo_times[]...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError

SCHEMES = ("strip", "block")
DTYPES = ("float64", "float32")
KERNELS = ("numpy", "numba")
HALO_EXCHANGES = ("nonblocking", "sendrecv")
INITS = ("zero", "rank")

# Only Dirichlet boundary supported
BOUNDARY_VALUE = -1.0

# Neighbor directions, in the order halos are exchanged
DIRECTIONS = ("up", "down", "left", "right")


def _check_choice(name: str, value: str, choices: tuple) -> str:
    value = str(value).lower()
    if value not in choices:
        raise ConfigurationError(
            f"Unknown {name}: {value!r}. Use one of {', '.join(choices)}."
        )
    return value


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class SolverParams:
    """Run configuration - layered by OmegaConf, identical on every rank.

    Immutable configuration set before the run.
    """

    # Required
    N: int

    # Decomposition
    scheme: str = "strip"  # "strip" | "block"

    # Convergence
    precision: float = 1.0e-2
    max_iter: Optional[int] = None  # None = iterate until converged

    # Numerics
    dtype: str = "float64"  # "float64" | "float32"
    kernel: str = "numpy"  # "numpy" | "numba"
    numba_threads: Optional[int] = None
    boundary_value: float = BOUNDARY_VALUE

    # Communication
    halo_exchange: str = "nonblocking"  # "nonblocking" | "sendrecv"

    # Initial interior values: zeros, or each rank's id (layout check).
    # Zero keeps the result independent of P; "rank" was the historical default.
    init: str = "zero"
    relax: bool = True

    # Outputs (rank 0 only)
    output: Optional[str] = None
    hdf5: Optional[str] = None
    print_local: bool = False
    print_final: bool = False

    def __post_init__(self):
        """Normalize enum-like fields and reject unsupported values."""
        self.N = int(self.N)
        self.scheme = _check_choice("scheme", self.scheme, SCHEMES)
        self.dtype = _check_choice("dtype", self.dtype, DTYPES)
        self.kernel = _check_choice("kernel", self.kernel, KERNELS)
        self.halo_exchange = _check_choice(
            "halo_exchange", self.halo_exchange, HALO_EXCHANGES
        )
        self.init = _check_choice("init", self.init, INITS)

        if self.N < 1:
            raise ConfigurationError(f"Grid dimension must be positive, got N={self.N}")
        if not self.precision > 0:
            raise ConfigurationError(f"Precision must be positive, got {self.precision}")
        if self.max_iter is not None and self.max_iter < 0:
            raise ConfigurationError(f"max_iter must be >= 0, got {self.max_iter}")
        if self.boundary_value != BOUNDARY_VALUE:
            raise ConfigurationError(
                f"Only the Dirichlet boundary value {BOUNDARY_VALUE} is supported"
            )

        if self.output is None:
            self.output = f"result_laplace_{self.scheme}.txt"


@dataclass
class GlobalMetrics:
    """Aggregated results.

    Final results computed/aggregated on rank 0.
    """

    converged: bool = False
    iterations: int = 0
    final_error: Optional[float] = None  # sqrt of global sum of squares
    wall_time: Optional[float] = None

    # Wall time spread across ranks
    min_time: Optional[float] = None
    max_time: Optional[float] = None
    avg_time: Optional[float] = None

    # Timing breakdown (sum across all iterations, rank 0)
    total_compute_time: Optional[float] = None
    total_halo_time: Optional[float] = None
    total_reduce_time: Optional[float] = None

    # Million lattice updates per second
    mlups: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to a flat dict (no None, bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass
class LocalLayout:
    """Partition of the global grid owned by a single rank.

    Extents are interior cells only; the local buffer adds a one-cell
    margin on every side (halo where a neighbor exists, Dirichlet value
    otherwise).
    """

    rank: int
    scheme: str

    # Position in the process topology (block row, block col)
    coords: Tuple[int, int]

    # Owned region: half-open [global_start, global_end) in (row, col)
    local_shape: Tuple[int, int]
    global_start: Tuple[int, int]
    global_end: Tuple[int, int]

    # Local buffer shape including the margin
    ghosted_shape: Tuple[int, int]

    # Direction -> neighbor rank, None at a domain edge
    neighbors: Dict[str, Optional[int]]

    @property
    def n_neighbors(self) -> int:
        return sum(1 for n in self.neighbors.values() if n is not None)

    def has_neighbor(self, direction: str) -> bool:
        return self.neighbors.get(direction) is not None


@dataclass
class LocalMetrics:
    """Per-rank timeseries.

    Accumulated during solve.
    """

    compute_times: List[float] = field(default_factory=list)
    halo_times: List[float] = field(default_factory=list)
    reduce_times: List[float] = field(default_factory=list)

    # Global error per iteration (identical on every rank)
    error_history: List[float] = field(default_factory=list)
