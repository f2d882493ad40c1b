"""Tests for the JacobiMPISolver, run on in-process ranks."""

import time

import numpy as np
import pytest

import Laplace
from Laplace import ConfigurationError, JacobiMPISolver, SolverParams


def solve_on(spmd, size, **kwargs):
    """Solve on ``size`` ranks; return (root solver, assembled matrix, all metrics)."""
    params = SolverParams(**kwargs)

    def rank_main(comm):
        solver = JacobiMPISolver(params, comm)
        solver.solve()
        return solver, solver.assemble()

    results = spmd(size, rank_main)
    root, u_global = results[0]
    assert all(u is None for _, u in results[1:])
    return root, u_global, [s.metrics for s, _ in results]


# Run each scenario once, reuse results
@pytest.fixture(scope="module")
def scenarios(spmd):
    return {
        "strip": solve_on(spmd, 2, N=8, scheme="strip", precision=1e-2),
        "block": solve_on(spmd, 9, N=9, scheme="block", precision=1e-2),
        "strip_tight": solve_on(spmd, 2, N=8, scheme="strip", precision=1e-5),
        "block_tight": solve_on(spmd, 9, N=9, scheme="block", precision=1e-5),
    }


class TestEndToEnd:
    """Uniform -1 boundary relaxes towards -1 everywhere."""

    @pytest.mark.parametrize("name,N", [("strip", 8), ("block", 9)])
    def test_converges_near_boundary_value(self, scenarios, name, N):
        """Stopping at a step norm of 1e-2 leaves every cell close to -1."""
        solver, u, _ = scenarios[name]
        assert solver.metrics.converged
        assert solver.metrics.final_error < 1e-2
        assert u.shape == (N, N)
        np.testing.assert_allclose(u, -1.0, atol=0.1)

    @pytest.mark.parametrize("name", ["strip_tight", "block_tight"])
    def test_tight_precision_within_1e_2(self, scenarios, name):
        solver, u, _ = scenarios[name]
        assert solver.metrics.converged
        np.testing.assert_allclose(u, -1.0, atol=1e-2)

    @pytest.mark.parametrize("name", ["strip", "block"])
    def test_error_history_non_increasing(self, scenarios, name):
        solver, _, _ = scenarios[name]
        history = solver.timeseries.error_history
        assert len(history) == solver.metrics.iterations
        assert all(b <= a for a, b in zip(history, history[1:]))

    @pytest.mark.parametrize("name", ["strip", "block"])
    def test_all_ranks_agree(self, scenarios, name):
        """Every rank leaves the loop on the same sweep with the same error."""
        _, _, metrics = scenarios[name]
        assert len({m.iterations for m in metrics}) == 1
        assert len({m.final_error for m in metrics}) == 1

    def test_interior_cells_stay_above_boundary_value(self, scenarios):
        """Starting from zero the field approaches -1 from above."""
        _, u, _ = scenarios["block"]
        assert np.all(u > -1.0)

    def test_symmetric_solution(self, scenarios):
        _, u, _ = scenarios["block"]
        np.testing.assert_allclose(u, u.T, atol=1e-12)
        np.testing.assert_allclose(u, u[::-1, :], atol=1e-12)


class TestDecompositionIndependence:
    """Jacobi updates every cell from the previous sweep only, so the
    partition and the exchange strategy must not change the result."""

    @pytest.fixture(scope="class")
    def serial(self, spmd):
        return solve_on(spmd, 1, N=12, precision=1e-3)

    @pytest.mark.parametrize("size,scheme,halo_exchange", [
        (4, "strip", "nonblocking"),
        (4, "strip", "sendrecv"),
        (4, "block", "nonblocking"),
        (9, "block", "sendrecv"),
        (3, "strip", "sendrecv"),
    ])
    def test_matches_single_rank(self, spmd, serial, size, scheme, halo_exchange):
        ref_solver, ref_u, _ = serial
        solver, u, _ = solve_on(spmd, size, N=12, precision=1e-3, scheme=scheme, halo_exchange=halo_exchange)
        assert solver.metrics.iterations == ref_solver.metrics.iterations
        np.testing.assert_allclose(u, ref_u, rtol=0, atol=1e-12)

    def test_float32(self, spmd, serial):
        ref_solver, ref_u, _ = serial
        solver, u, _ = solve_on(spmd, 4, N=12, precision=1e-3, scheme="block", dtype="float32")
        assert u.dtype == np.float32
        assert solver.metrics.converged
        np.testing.assert_allclose(u, ref_u, atol=5e-3)

    def test_numba_kernel(self, single_comm, serial):
        ref_solver, ref_u, _ = serial
        solver = JacobiMPISolver(SolverParams(N=12, precision=1e-3, kernel="numba", numba_threads=1), single_comm)
        solver.warmup()
        solver.solve()
        u = solver.assemble()
        assert solver.metrics.iterations == ref_solver.metrics.iterations
        np.testing.assert_allclose(u, ref_u, atol=1e-12)


class TestRankLayout:
    """Rank-valued interiors with zero sweeps show who owns which cells."""

    def test_strip_rows(self, spmd):
        solver, u, _ = solve_on(spmd, 4, N=4, scheme="strip", init="rank", relax=False)
        expected = np.repeat(np.arange(4.0), 4).reshape(4, 4)
        np.testing.assert_array_equal(u, expected)
        assert solver.metrics.iterations == 0
        assert solver.metrics.final_error is None

    def test_block_footprints(self, spmd):
        _, u, _ = solve_on(spmd, 9, N=6, scheme="block", init="rank", max_iter=0)
        expected = np.kron(np.arange(9.0).reshape(3, 3), np.ones((2, 2)))
        np.testing.assert_array_equal(u, expected)

    def test_local_grid_halos_after_initial_exchange(self, spmd):
        """The first exchange happens even without sweeps."""
        params = SolverParams(N=4, scheme="block", init="rank", relax=False)

        def rank_main(comm):
            solver = JacobiMPISolver(params, comm)
            solver.solve()
            return solver.local_grid.copy()

        grids = spmd(4, rank_main)
        # Rank 0 (top-left): right halo from rank 1, down halo from rank 2
        np.testing.assert_array_equal(grids[0][1:-1, -1], [1.0, 1.0])
        np.testing.assert_array_equal(grids[0][-1, 1:-1], [2.0, 2.0])
        assert np.all(grids[0][0, :] == -1.0) and np.all(grids[0][:, 0] == -1.0)


class TestConfiguration:
    """Invalid partitions fail identically on every rank."""

    @pytest.mark.parametrize("N,size,scheme", [(10, 3, "strip"), (10, 5, "block"), (8, 3, "block")])
    def test_invalid_partition(self, spmd, N, size, scheme):
        def rank_main(comm):
            try:
                JacobiMPISolver(SolverParams(N=N, scheme=scheme), comm)
            except ConfigurationError as e:
                return str(e)
            return None

        messages = spmd(size, rank_main)
        assert all(m is not None for m in messages)
        assert len(set(messages)) == 1

    @pytest.mark.parametrize("kwargs", [
        {"N": 0},
        {"N": 8, "precision": 0.0},
        {"N": 8, "max_iter": -1},
        {"N": 8, "scheme": "cubic"},
        {"N": 8, "dtype": "float16"},
        {"N": 8, "boundary_value": 0.0},
    ])
    def test_invalid_params(self, kwargs):
        with pytest.raises(ConfigurationError):
            SolverParams(**kwargs)

    def test_default_init_is_zero(self, single_comm):
        """Zero start keeps the converged field independent of the rank count."""
        assert SolverParams(N=4).init == "zero"
        solver = JacobiMPISolver(SolverParams(N=4), single_comm)
        assert np.all(solver.local_grid[1:-1, 1:-1] == 0.0)

    def test_default_output_path(self):
        assert SolverParams(N=8).output == "result_laplace_strip.txt"
        assert SolverParams(N=8, scheme="BLOCK").output == "result_laplace_block.txt"


class TestMetrics:

    def test_max_iter_reported_as_not_converged(self, spmd):
        solver, _, _ = solve_on(spmd, 2, N=8, precision=1e-12, max_iter=5)
        assert solver.metrics.iterations == 5
        assert not solver.metrics.converged

    def test_timings_recorded(self, spmd):
        solver, _, metrics = solve_on(spmd, 4, N=8, scheme="block", max_iter=10, precision=1e-12)
        ts = solver.timeseries
        assert len(ts.compute_times) == len(ts.halo_times) == len(ts.reduce_times) == 10
        m = solver.metrics
        assert m.min_time <= m.avg_time <= m.max_time
        assert m.total_compute_time >= 0
        assert m.mlups > 0
        # Spread across ranks only on root
        assert all(other.min_time is None for other in metrics[1:])

    def test_to_dict_drops_none(self, spmd):
        solver, _, _ = solve_on(spmd, 1, N=4, relax=False)
        d = solver.metrics.to_dict()
        assert "final_error" not in d
        assert d["converged"] == 0


class TestClock:
    """Timings use MPI.Wtime on real communicators."""

    def test_non_mpi_comm_uses_perf_counter(self, single_comm):
        solver = JacobiMPISolver(SolverParams(N=4), single_comm)
        assert solver._clock is time.perf_counter
        assert solver._get_time() <= solver._get_time()

    def test_mpi_comm_uses_wtime(self):
        MPI = pytest.importorskip("mpi4py.MPI")
        solver = JacobiMPISolver(SolverParams(N=4), MPI.COMM_SELF)
        assert solver._clock is MPI.Wtime


class TestPackage:

    def test_public_names_resolve(self):
        for name in Laplace.__all__:
            assert getattr(Laplace, name) is not None
