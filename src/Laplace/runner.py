"""Run the Laplace solver via mpiexec subprocess."""

import json
import subprocess
import sys
import tempfile
from pathlib import Path


def run_solver(N: int, n_ranks: int = 1, output: str = None, timeout: float = 300, **kwargs) -> dict:
    """Run the solver on an N x N grid with n_ranks MPI processes.

    Parameters
    ----------
    N : int
        Grid size
    n_ranks : int
        Number of MPI ranks
    output : str, optional
        Path to save HDF5 results (uses temp file if not provided)
    timeout : float
        Seconds before the subprocess is killed
    **kwargs
        Any other SolverParams field: scheme, precision, max_iter, dtype,
        kernel, halo_exchange, init, ...

    Returns
    -------
    dict
        Results with config, solution 'u' and metrics (or 'error' key on failure)
    """
    from .io import load_hdf5

    use_temp = output is None
    if use_temp:
        tmp = tempfile.NamedTemporaryFile(suffix=".h5", delete=False)
        output = tmp.name
        tmp.close()

    config = {"N": N, "hdf5": output, **kwargs}
    cmd = [
        "mpiexec", "-n", str(n_ranks),
        sys.executable, "-m", "Laplace.helpers.runner_helper", json.dumps(config),
    ]

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        return {"error": f"Timed out after {timeout}s", "stderr": e.stderr}

    try:
        if proc.returncode != 0:
            return {"error": proc.stderr, "returncode": proc.returncode}
        if not Path(output).exists():
            return {"error": "No output file created", "stderr": proc.stderr}

        data = load_hdf5(output)
        result = dict(data["results"])
        result["config"] = data["config"]
        result["u"] = data["u"]
        result["timings"] = data["timings"]
        return result
    finally:
        if use_temp:
            Path(output).unlink(missing_ok=True)
