"""
operators.py — Discrete Differential Operators
==============================================
Central differences over the interior cells. Edge cells read whatever the
boundary policy last wrote there; the returned arrays are zero on the edge
layer. None of these functions mutate their inputs.

    divergence(v)[i] = sum_a (v_a[i + e_a] - v_a[i - e_a]) / (2h)
    gradient(p)[a][i] = (p[i + e_a] - p[i - e_a]) / (2h)
    laplacian(f)[i]   = (sum of 2*ndim neighbours - 2*ndim * f[i]) / h^2
"""

import numpy as np


def _shifted(rank: int, axis: int, offset: int) -> tuple:
    """Interior index tuple shifted by `offset` cells along `axis`."""
    idx = [slice(1, -1)] * rank
    idx[axis] = slice(1 + offset, offset - 1 if offset < 1 else None)
    return tuple(idx)


def neighbour_sum(field: np.ndarray) -> np.ndarray:
    """Sum of the 2*ndim face neighbours of every interior cell. Shape: interior."""
    rank = field.ndim
    total = np.zeros(tuple(n - 2 for n in field.shape), dtype=field.dtype)
    for axis in range(rank):
        total += field[_shifted(rank, axis, 1)]
        total += field[_shifted(rank, axis, -1)]
    return total


def divergence(vel: np.ndarray, spacing: float) -> np.ndarray:
    """Divergence of a velocity array shaped (ndim, *shape)."""
    rank = vel.shape[0]
    out = np.zeros(vel.shape[1:], dtype=vel.dtype)
    inner = out[(slice(1, -1),) * rank]
    for axis in range(rank):
        comp = vel[axis]
        inner += comp[_shifted(rank, axis, 1)] - comp[_shifted(rank, axis, -1)]
    inner /= 2.0 * spacing
    return out


def gradient(field: np.ndarray, spacing: float) -> np.ndarray:
    """Gradient of a scalar array. Returns shape (ndim, *shape)."""
    rank = field.ndim
    out = np.zeros((rank,) + field.shape, dtype=field.dtype)
    interior = (slice(1, -1),) * rank
    for axis in range(rank):
        out[axis][interior] = (field[_shifted(rank, axis, 1)] -
                               field[_shifted(rank, axis, -1)]) / (2.0 * spacing)
    return out


def laplacian(field: np.ndarray, spacing: float, vector: bool = False) -> np.ndarray:
    """
    Five-point (2D) / seven-point (3D) Laplacian.

    With `vector=True` the leading axis is a component axis and each
    component is treated separately.
    """
    if vector:
        return np.stack([laplacian(comp, spacing) for comp in field])

    rank = field.ndim
    out = np.zeros_like(field)
    interior = (slice(1, -1),) * rank
    out[interior] = (neighbour_sum(field) - 2 * rank * field[interior]) / (spacing * spacing)
    return out
