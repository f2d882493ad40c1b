"""Output of local subgrids and of the assembled solution.

Matrices are emitted in reverse row order (bottom row first), so the
printout shows row 0 of the grid at the bottom.
"""

from __future__ import annotations

import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

import numpy as np


def format_matrix(matrix: np.ndarray, fmt: str = "{:.2f}", reverse: bool = True) -> str:
    """Render a matrix one row per line, values space separated."""
    rows = matrix[::-1] if reverse else matrix
    return "\n".join(" ".join(fmt.format(v) for v in row) for row in rows)


def write_matrix(path, matrix: np.ndarray):
    """Write the final matrix as text, bottom row first.

    Every value is followed by a space and every row by a newline.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for row in matrix[::-1]:
            f.write("".join(f"{v:f} " for v in row))
            f.write("\n")
    return path


def read_matrix(path) -> np.ndarray:
    """Load a matrix written by write_matrix, back in top-to-bottom order."""
    return np.loadtxt(path, ndmin=2)[::-1]


def print_final_matrix(matrix: np.ndarray, stream=None):
    stream = stream or sys.stdout
    print("Final solution is:", file=stream)
    print(format_matrix(matrix), file=stream)


def print_local_grids(comm, local: np.ndarray, stream=None):
    """Each rank prints its full local buffer, in rank order.

    Collective: a barrier after every rank's turn keeps outputs apart.
    """
    stream = stream or sys.stdout
    rank, size = comm.Get_rank(), comm.Get_size()
    for turn in range(size):
        if turn == rank:
            print(f"\nMatrix printed by rank {rank}:\n", file=stream)
            print(format_matrix(local, reverse=False), file=stream)
            stream.flush()
        comm.Barrier()


def save_hdf5(path, params, metrics, u_global: np.ndarray, timeseries=None, rank: int = 0):
    """Save run configuration, solution and results to HDF5.

    File structure:
    - /config: Runtime configuration
    - /fields/u: Global solution array
    - /results: Convergence information
    - /timings/rank_<r>/: Timing data of the writing rank
    """
    import h5py

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(path, "w") as f:
        config_grp = f.create_group("config")
        for key, value in asdict(params).items():
            if value is not None:
                config_grp.attrs[key] = value

        fields_grp = f.create_group("fields")
        fields_grp.create_dataset("u", data=u_global)

        results_grp = f.create_group("results")
        for key, value in metrics.to_dict().items():
            results_grp.attrs[key] = value

        if timeseries is not None:
            rank_grp = f.create_group(f"timings/rank_{rank}")
            rank_grp.create_dataset("compute_times", data=timeseries.compute_times)
            rank_grp.create_dataset("halo_times", data=timeseries.halo_times)
            rank_grp.create_dataset("reduce_times", data=timeseries.reduce_times)
            rank_grp.create_dataset("error_history", data=timeseries.error_history)
    return path


def load_hdf5(path) -> Dict[str, Any]:
    """Load a file written by save_hdf5.

    Returns
    -------
    dict
        Keys: 'config', 'u', 'results', 'timings'.
    """
    import h5py

    data = {}
    with h5py.File(path, "r") as f:
        data["config"] = dict(f["config"].attrs)
        data["u"] = f["fields"]["u"][:]
        data["results"] = dict(f["results"].attrs)
        data["timings"] = {}
        if "timings" in f:
            for rank_name in f["timings"].keys():
                grp = f[f"timings/{rank_name}"]
                data["timings"][int(rank_name.split("_")[1])] = {k: grp[k][:] for k in grp.keys()}
    return data
