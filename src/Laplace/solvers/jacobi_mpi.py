"""MPI-parallel Jacobi solver for the 2D Laplace equation."""

import logging

import numpy as np

from .mpi_mixin import MPISolverMixin
from ..datastructures import SolverParams, GlobalMetrics, LocalMetrics
from ..kernels import create_kernel
from ..mpi.assembly import ResultAssembler
from ..mpi.convergence import ConvergenceCoordinator
from ..mpi.grid import DistributedGrid

log = logging.getLogger(__name__)


def _time_operation(operation, time_list, clock):
    """Time an operation, append the duration to time_list, return its result."""
    t_start = clock()
    result = operation()
    time_list.append(clock() - t_start)
    return result


class JacobiMPISolver(MPISolverMixin):
    """One rank of the parallel Jacobi solver.

    Every rank runs the same program; behaviour differs only through the
    rank's layout (owned region and neighbors).

    Parameters
    ----------
    params : SolverParams
        Run configuration, identical on every rank.
    comm : MPI.Comm, optional
        Communicator (default: MPI.COMM_WORLD).

    Examples
    --------
    Run with mpiexec -n 4:
    >>> solver = JacobiMPISolver(SolverParams(N=12, scheme="block"))
    >>> solver.solve()
    >>> u = solver.assemble()  # N x N on rank 0, None elsewhere
    """

    def __init__(self, params: SolverParams, comm=None):
        self._init_mpi(comm)
        self.params = params

        # Partition + halo exchange; raises ConfigurationError identically on all ranks
        self.grid = DistributedGrid(
            params.N,
            self.comm,
            scheme=params.scheme,
            halo_exchange=params.halo_exchange,
            dtype=params.dtype,
        )
        self.layout = self.grid.layout

        self.kernel = create_kernel(params.kernel, params.numba_threads)
        self.coordinator = ConvergenceCoordinator(
            self.comm, precision=params.precision, max_iter=params.max_iter
        )
        self.assembler = ResultAssembler(self.grid.partitioner, self.comm)

        self.metrics = GlobalMetrics()
        self.timeseries = LocalMetrics()

        self._init_arrays()

    def _init_arrays(self):
        """Allocate both Jacobi buffers: margin -1, interior zero or rank id."""
        value = float(self.rank) if self.params.init == "rank" else 0.0
        self.u = self.grid.allocate()
        self.grid.fill_interior(self.u, value)
        self.u_new = self.u.copy()

    def warmup(self, warmup_size: int = 10):
        """Warmup kernel (trigger Numba JIT if used)."""
        self.kernel.warmup(warmup_size=warmup_size)

    # ========================================================================
    # Solve interface
    # ========================================================================

    def solve(self) -> GlobalMetrics:
        """Relax until the global error drops below the precision threshold."""
        self._barrier()
        t_start = self._get_time()

        # First exchange so halos hold neighbor data before the first sweep
        self.grid.sync_halos(self.u)

        if self.params.relax and self.params.max_iter != 0:
            self._iterate()

        wall_time = self._get_time() - t_start
        self._finalize(wall_time)
        return self.metrics

    def _iterate(self):
        """Sweep, swap, exchange, reduce; until every rank agrees to stop."""
        uold, u = self.u, self.u_new
        clock = self._get_time

        while True:
            local_sq_error = _time_operation(
                lambda: self.kernel.step(uold.data, u.data),
                self.timeseries.compute_times, clock,
            )
            uold, u = u, uold
            _time_operation(
                lambda: self.grid.sync_halos(uold),
                self.timeseries.halo_times, clock,
            )
            keep_going = _time_operation(
                lambda: self.coordinator.update(local_sq_error),
                self.timeseries.reduce_times, clock,
            )
            if not keep_going:
                break

        self.u, self.u_new = uold, u
        self.timeseries.error_history[:] = self.coordinator.history

    def _finalize(self, wall_time: float):
        """Populate metrics; rank 0 gets the timing spread across ranks."""
        m = self.metrics
        m.iterations = self.coordinator.iterations
        m.converged = self.coordinator.converged
        if m.iterations > 0:
            m.final_error = self.coordinator.global_error
        m.wall_time = wall_time

        stats = self._gather_stats(wall_time)
        if self._is_root():
            m.min_time, m.max_time, m.avg_time = stats
            m.total_compute_time = sum(self.timeseries.compute_times)
            m.total_halo_time = sum(self.timeseries.halo_times)
            m.total_reduce_time = sum(self.timeseries.reduce_times)
            if m.iterations > 0 and wall_time > 0:
                m.mlups = self.params.N ** 2 * m.iterations / (wall_time * 1e6)
            log.info(
                f"Done: {m.iterations} iter, converged={m.converged}, "
                f"error={m.final_error if m.final_error is not None else float('nan'):.3e}"
            )
            log.info(f"Min: {m.min_time:f}  Max: {m.max_time:f}  Avg: {m.avg_time:f}")

    # ========================================================================
    # Results
    # ========================================================================

    def assemble(self, with_boundary: bool = False):
        """Global matrix on rank 0 (None elsewhere). Collective."""
        if with_boundary:
            result = self.assembler.assemble_with_boundary(
                self.u.interior, self.params.boundary_value
            )
        else:
            result = self.assembler.assemble(self.u.interior)
        if self._is_root():
            self.u_global = result
        return result

    @property
    def local_grid(self) -> np.ndarray:
        """Current local buffer, margin included."""
        return self.u.data
