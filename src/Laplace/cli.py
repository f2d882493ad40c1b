"""Command-line entry point.

Usage:
    mpiexec -n 4 python -m Laplace 12
    mpiexec -n 9 python -m Laplace 12 --scheme block --print-final
    mpiexec -n 4 python -m Laplace 12 --config run.yaml precision=1e-4

The process count comes from the MPI environment. Configuration is layered
with OmegaConf: SolverParams defaults < --config YAML < flags < key=value.
"""

import argparse
import logging
import sys

from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException

from .datastructures import SCHEMES, DTYPES, KERNELS, HALO_EXCHANGES, INITS, SolverParams
from .errors import AllocationError, ArgumentError, ConfigurationError

log = logging.getLogger(__name__)

# argparse dest -> SolverParams field, for flags that map one to one
_FLAG_FIELDS = (
    "scheme", "precision", "max_iter", "dtype", "kernel", "numba_threads",
    "halo_exchange", "init", "relax", "output", "hdf5", "print_local", "print_final",
)


class _Parser(argparse.ArgumentParser):
    """ArgumentParser raising ArgumentError instead of exiting."""

    def error(self, message):
        raise ArgumentError(message)


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid matrix dimension: {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"matrix dimension must be positive, got {value}")
    return value


def create_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="laplace-mpi",
        description="Parallel Jacobi solver for the 2D Laplace equation "
        "(mpiexec -n P laplace-mpi N)",
    )
    parser.add_argument("N", type=_positive_int, help="Square matrix dimension")

    parser.add_argument("--scheme", choices=SCHEMES, default=None, help="Decomposition (default: strip)")
    parser.add_argument("--precision", type=float, default=None, help="Convergence threshold (default: 1e-2)")
    parser.add_argument("--max-iter", type=int, default=None, help="Optional cap on sweeps (default: none)")
    parser.add_argument("--dtype", choices=DTYPES, default=None, help="Grid element type")
    parser.add_argument("--kernel", choices=KERNELS, default=None, help="Sweep kernel")
    parser.add_argument("--numba-threads", type=int, default=None, help="Numba threads per rank")
    parser.add_argument("--halo-exchange", choices=HALO_EXCHANGES, default=None, help="Halo exchange strategy")
    parser.add_argument("--init", choices=INITS, default=None, help="Initial interior values")
    parser.add_argument(
        "--no-relax", dest="relax", action="store_false", default=None,
        help="Skip relaxation (check partition, exchange and assembly only)",
    )

    out = parser.add_argument_group("Output")
    out.add_argument("--output", default=None, help="Result text file (default: result_laplace_<scheme>.txt)")
    out.add_argument("--hdf5", default=None, help="Also save config, solution and timings to HDF5")
    out.add_argument("--print-local", action="store_true", default=None, help="Print every rank's local grid")
    out.add_argument("--print-final", action="store_true", default=None, help="Print the assembled matrix")

    parser.add_argument("--config", default=None, help="YAML file with SolverParams fields")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("overrides", nargs="*", help="key=value overrides of SolverParams fields")
    return parser


def build_params(args: argparse.Namespace) -> SolverParams:
    """Merge defaults, YAML, flags and overrides into validated SolverParams."""
    for item in args.overrides:
        if "=" not in item:
            raise ArgumentError(f"override must look like key=value, got {item!r}")

    flags = {name: getattr(args, name) for name in _FLAG_FIELDS if getattr(args, name) is not None}
    flags["N"] = args.N

    try:
        cfg = OmegaConf.structured(SolverParams)
        if args.config:
            cfg = OmegaConf.merge(cfg, OmegaConf.load(args.config))
        cfg = OmegaConf.merge(cfg, flags)
        if args.overrides:
            cfg = OmegaConf.merge(cfg, OmegaConf.from_dotlist(args.overrides))
        values = OmegaConf.to_container(cfg, resolve=True)
    except OSError as e:
        raise ArgumentError(f"cannot read config file: {e}") from e
    except OmegaConfBaseException as e:
        # Unknown keys or values of the wrong type, e.g. precision=abc
        raise ArgumentError(str(e).splitlines()[0]) from e

    return SolverParams(**values)


def setup_logging(rank: int, level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=f"[rank {rank}] [%(levelname)s] %(message)s",
    )


def run(params: SolverParams, comm) -> int:
    """Solve, assemble and emit results on this rank. Returns the exit status."""
    from .io import print_final_matrix, print_local_grids, save_hdf5, write_matrix
    from .solvers import JacobiMPISolver

    rank = comm.Get_rank()
    try:
        solver = JacobiMPISolver(params, comm)
    except ConfigurationError as e:
        # Every rank detects this identically; no coordination needed
        log.error(f"ERROR: {e}")
        return 1
    except AllocationError as e:
        return _abort(comm, e)

    try:
        if rank == 0:
            log.info(
                f"N={params.N}, ranks={solver.size}, scheme={params.scheme}, "
                f"halo={params.halo_exchange}, kernel={params.kernel}, dtype={params.dtype}"
            )
        if params.kernel == "numba":
            solver.warmup()

        solver.solve()
        u_global = solver.assemble()

        if rank == 0:
            if params.print_final:
                print_final_matrix(u_global)
            path = write_matrix(params.output, u_global)
            log.info(f"Result written to {path}")
            if params.hdf5:
                save_hdf5(params.hdf5, params, solver.metrics, u_global, solver.timeseries)
                log.info(f"HDF5 written to {params.hdf5}")

        if params.print_local:
            print_local_grids(comm, solver.local_grid)
    except AllocationError as e:
        return _abort(comm, e)

    return 0


def _abort(comm, error) -> int:
    """Local fault: peers may be blocked in a collective, take them down too."""
    log.critical(f"{error}; aborting all ranks")
    comm.Abort(1)
    return 1


def main(argv=None) -> int:
    parser = create_parser()
    try:
        args = parser.parse_intermixed_args(argv)
        params = build_params(args)
    except ArgumentError as e:
        parser.print_usage(sys.stderr)
        print(f"Argument error: {e}\n"
              "example: mpiexec -n 4 python -m Laplace 12", file=sys.stderr)
        return 2
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    from mpi4py import MPI

    comm = MPI.COMM_WORLD
    setup_logging(comm.Get_rank(), args.log_level)
    return run(params, comm)


def entry():
    """Console script wrapper."""
    sys.exit(main())
