"""
solver.py — Pressure Projection
===============================
The projection step enforces (approximate) INCOMPRESSIBILITY:
  div(v) = 0 at every interior cell

Advection and injected forces leave the velocity field divergent: fluid
"piles up" in some cells. We fix this by:
  1. Computing the divergence of the current velocity field
  2. Solving the Poisson equation  div(grad p) = div(v)  for pressure
  3. Subtracting the pressure gradient:  v = v - grad p

Both div and grad are the central differences from operators.py, and the
Poisson operator is literally their composition (with the homogeneous
boundary pass in between). On this collocated grid that is the wide,
two-cell-reach Laplacian, so the residual of the solve is exactly the
divergence left after the correction.

The solve is a fixed number of damped Jacobi sweeps starting from p = 0
every time (no warm start across frames).
"""

import logging
import time
from typing import Optional

import numpy as np

from .boundary import BoundaryPolicy, edge_index
from .diffuse import relax
from .operators import divergence, gradient

logger = logging.getLogger(__name__)


def pressure_inverse_diagonal(boundary: BoundaryPolicy) -> np.ndarray:
    """
    1 / diagonal of the projection's Poisson operator, for every cell.

    Along each axis, a cell's diagonal gets -1/(4h²) for every neighbour
    whose corrected velocity is free to change: open interior cells, and
    edge cells on wrap axes (which mirror an interior cell). Cells that are
    not open, or have no free neighbour, get 0 and are never updated.
    """
    grid = boundary.grid
    h = grid.spacing
    rank = grid.ndim
    is_open = boundary.open_cells()

    count = np.zeros(grid.shape, dtype=np.float64)
    inner = (slice(1, -1),) * rank
    for axis in range(rank):
        ext = is_open.copy()
        if boundary.wrap_axes[axis]:
            n = grid.shape[axis]
            ext[edge_index(rank, axis, 0)] = ext[edge_index(rank, axis, n - 2)]
            ext[edge_index(rank, axis, n - 1)] = ext[edge_index(rank, axis, 1)]
        plus = [slice(1, -1)] * rank
        minus = [slice(1, -1)] * rank
        plus[axis] = slice(2, None)
        minus[axis] = slice(0, -2)
        count[inner] += ext[tuple(plus)].astype(np.float64) + ext[tuple(minus)]

    inv = np.zeros(grid.shape, dtype=np.float64)
    active = is_open & (count > 0)
    inv[active] = -4.0 * h * h / count[active]
    return inv


def project(
    velocity: np.ndarray,
    pressure: np.ndarray,
    boundary: BoundaryPolicy,
    iterations: int = 40,
    weight: float = 2.0 / 3.0,
    inv_diagonal: Optional[np.ndarray] = None,
) -> dict:
    """
    Pressure projection: make `velocity` (approximately) divergence-free, in place.

    Args:
        velocity     : (ndim, *shape) array, corrected in place
        pressure     : Scratch scalar array; reset to 0, then holds the solved pressure
        boundary     : Edge policy for this simulation
        iterations   : Jacobi sweeps (more = closer to divergence-free, slower)
        weight       : Jacobi damping factor
        inv_diagonal : Precomputed `pressure_inverse_diagonal(boundary)`

    Returns:
        dict with timing and divergence metrics
    """
    t_start = time.perf_counter()
    h = boundary.grid.spacing
    interior = boundary.grid.interior
    if inv_diagonal is None:
        inv_diagonal = pressure_inverse_diagonal(boundary)

    boundary.apply_velocity(velocity)
    div = divergence(velocity, h)

    def operator(p):
        g = gradient(p, h)
        boundary.apply_velocity(g, homogeneous=True)
        return divergence(g, h)

    pressure.fill(0.0)
    relax(pressure, div, operator, inv_diagonal, iterations, weight, boundary.apply_pressure)

    # Subtract the pressure gradient (zero on the edge layer), then restore edges
    velocity -= gradient(pressure, h)
    boundary.apply_velocity(velocity)

    div_after = divergence(velocity, h)[interior]
    metrics = {
        "time_ms"               : (time.perf_counter() - t_start) * 1000,
        "iterations"            : iterations,
        "divergence_before_max" : float(np.abs(div[interior]).max()),
        "divergence_after_max"  : float(np.abs(div_after).max()),
        "divergence_after_mean" : float(np.abs(div_after).mean()),
    }
    logger.debug("projection: %d sweeps, max|div| %.3e -> %.3e", iterations,
                 metrics["divergence_before_max"], metrics["divergence_after_max"])
    return metrics
