"""
diffuse.py — Implicit Diffusion via Jacobi Relaxation
=====================================================
Diffusion spreads a quantity out over time:
  - viscosity (ν) acts on velocity: high ν is honey, ν = 0 is inviscid
  - diffusion_rate (κ) acts on density: how fast dye bleeds into its surroundings

The implicit step solves

    (I - ν·dt·∇²) x_next = x_current

which is stable for any dt. Solving it exactly is expensive, so we run a
fixed number of Jacobi sweeps instead and accept the approximate answer.
The boundary policy is re-applied after every sweep.

`relax()` is the sweep loop shared with the pressure solve in solver.py.
"""

import logging
from typing import Callable, Optional, Union

import numpy as np

from .operators import laplacian

logger = logging.getLogger(__name__)


def relax(
    x: np.ndarray,
    rhs: np.ndarray,
    operator: Callable[[np.ndarray], np.ndarray],
    inv_diagonal: Union[float, np.ndarray],
    iterations: int,
    weight: float = 1.0,
    boundary: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    vector: bool = False,
) -> np.ndarray:
    """
    Weighted Jacobi relaxation for `operator(x) = rhs`, updating `x` in place.

        x[i] <- x[i] + weight * (rhs[i] - operator(x)[i]) / diagonal[i]

    Only interior cells are updated. Each sweep evaluates the operator on
    the whole previous iterate before writing, so no sweep ever reads a
    partially updated array.

    Args:
        x            : Initial guess, refined in place
        rhs          : Right-hand side, same shape as x
        operator     : Applies the linear operator to a full array
        inv_diagonal : 1 / diagonal of the operator. A scalar, or an array of
                       grid shape; zero entries freeze a cell
        iterations   : Number of sweeps (fixed, never adaptive)
        weight       : Damping factor, 1.0 is plain Jacobi
        boundary     : Called on x after every sweep
        vector       : x has a leading component axis

    Returns:
        x
    """
    grid_rank = x.ndim - 1 if vector else x.ndim
    inner = (slice(1, -1),) * grid_rank
    interior = ((slice(None),) if vector else ()) + inner
    if np.ndim(inv_diagonal) > 0:
        inv_diagonal = inv_diagonal[inner]

    for _ in range(iterations):
        residual = rhs - operator(x)
        x[interior] += weight * residual[interior] * inv_diagonal
        if boundary is not None:
            boundary(x)
    return x


def diffuse(
    out: np.ndarray,
    source: np.ndarray,
    rate: float,
    dt: float,
    spacing: float,
    iterations: int = 20,
    boundary: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    vector: bool = False,
) -> np.ndarray:
    """
    Implicitly diffuse `source` by one step of length `dt` into `out`.

    A rate of 0 skips the solve entirely and just copies `source`.

    Args:
        out        : Destination array (same shape as source), overwritten
        source     : Field at the start of the step; also the right-hand side
        rate       : ν for velocity, κ for density
        dt         : Timestep
        spacing    : Cell spacing
        iterations : Jacobi sweeps
        boundary   : Boundary pass for this kind of field
        vector     : source is a velocity array
    """
    np.copyto(out, source)
    if rate == 0.0 or dt == 0.0:
        return out

    ndim = source.ndim - 1 if vector else source.ndim
    coeff = rate * dt
    alpha = coeff / (spacing * spacing)
    beta = 1.0 + 2 * ndim * alpha

    def operator(x):
        return x - coeff * laplacian(x, spacing, vector=vector)

    relax(out, source, operator, 1.0 / beta, iterations, 1.0, boundary, vector=vector)
    logger.debug("diffused %s field: rate=%g dt=%g alpha=%.4g sweeps=%d",
                 "velocity" if vector else "scalar", rate, dt, alpha, iterations)
    return out
