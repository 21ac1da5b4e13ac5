"""Single-array reference relaxation (no decomposition, no MPI).

Used to verify the distributed solver: with one rank the results match it
exactly, with more ranks the gathered field matches it to rounding.
"""

from __future__ import annotations

import numpy as np


def initial_field(global_rows: int, columns: int, temperature: float = 100.0) -> np.ndarray:
    """Full ``(global_rows + 2, columns + 2)`` field with boundary values.

    Left column and top row 0, right column rising linearly from 0 to
    ``temperature`` down the rows, bottom row rising from 0 to
    ``temperature`` across the columns.
    """
    u = np.zeros((global_rows + 2, columns + 2), dtype=np.float64)
    u[:, -1] = (temperature / global_rows) * np.arange(global_rows + 2)
    u[0, :] = 0.0
    u[-1, :] = (temperature / columns) * np.arange(columns + 2)
    return u


def sequential_relaxation(
    global_rows: int,
    columns: int,
    max_iterations: int,
    epsilon: float = 0.0,
    temperature: float = 100.0,
    topology: str = "linear",
):
    """Relax the full field until ``delta <= epsilon`` or the iteration cap.

    Parameters
    ----------
    topology : str
        ``'ring'`` makes the rows periodic: before each step the top ghost
        row mirrors the last real row and the bottom ghost row the first.

    Returns
    -------
    tuple
        ``(u, delta_history)`` where ``u`` includes the boundary frame.
    """
    u_old = initial_field(global_rows, columns, temperature)
    u = u_old.copy()
    history = []

    for _ in range(max_iterations):
        if topology == "ring":
            u_old[0, 1:-1] = u_old[-2, 1:-1]
            u_old[-1, 1:-1] = u_old[1, 1:-1]

        u[1:-1, 1:-1] = 0.25 * (
            u_old[2:, 1:-1] + u_old[:-2, 1:-1] + u_old[1:-1, 2:] + u_old[1:-1, :-2]
        )
        delta = float(np.max(np.abs(u[1:-1, 1:-1] - u_old[1:-1, 1:-1])))
        history.append(delta)

        u, u_old = u_old, u
        if delta <= epsilon:
            break

    return u_old, history
