"""
Hydra launcher - spawns the MPI Laplace solver with mpiexec.

Usage:
    python run_solver.py N=64 n_ranks=4
    python run_solver.py N=60 n_ranks=9 scheme=block print_final=true
    python run_solver.py N=64 n_ranks=4,8 --multirun
"""

import logging
import subprocess
import sys

import hydra
from omegaconf import DictConfig

log = logging.getLogger(__name__)

# Config keys forwarded to the solver as key=value overrides
_FORWARDED = (
    "scheme", "precision", "max_iter", "dtype", "kernel", "numba_threads",
    "halo_exchange", "init", "output", "hdf5", "print_local", "print_final",
)


def build_command(cfg: DictConfig) -> list:
    """mpiexec command line for one run."""
    mpi = cfg.get("mpi") or {}
    cmd = ["mpiexec", "-n", str(cfg.n_ranks)]
    if mpi.get("bind_to"):
        cmd.extend(["--bind-to", str(mpi.bind_to)])

    cmd.extend([sys.executable, "-m", "Laplace", str(cfg.N), "--log-level", str(cfg.get("log_level", "INFO"))])
    for key in _FORWARDED:
        val = cfg.get(key)
        if val is not None:
            cmd.append(f"{key}={val}")
    return cmd


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - spawns mpiexec with the composed config."""
    log.info(f"N={cfg.N}, n_ranks={cfg.n_ranks}, scheme={cfg.scheme}")

    cmd = build_command(cfg)
    timeout = (cfg.get("mpi") or {}).get("timeout", 300)
    result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)

    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)

    if result.returncode != 0:
        log.error(f"Solver exited with status {result.returncode}")
        sys.exit(result.returncode)


if __name__ == "__main__":
    main()
