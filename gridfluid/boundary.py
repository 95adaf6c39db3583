"""
boundary.py — Edge Policies
===========================
Applied as a pass over the edge layer after every operator writes a field,
before the next operator reads it.

Per edge, one of:
  - solid  : normal velocity zeroed, tangential velocity copied from the
             adjacent interior cell (free-slip). Scalars copy the interior
             cell (zero-gradient).
  - wrap   : the edge cell takes the value of the interior cell on the
             opposite side, making that axis periodic. Must be set on both
             edges of an axis.
  - inflow : edge velocity pinned to a configured constant vector. Scalars
             copy the interior cell.

Pressure ghost cells are held at zero on solid and inflow edges. With that
choice the central-difference gradient is exactly the negative adjoint of
the central-difference divergence, so the projection solve is consistent.

Every pass only reads interior cells (and the mask constants), so applying
it twice gives the same field as applying it once.
"""

from typing import Dict, Optional, Sequence

import numpy as np

from .config import AXIS_NAMES, POLICY_INFLOW, POLICY_SOLID, POLICY_WRAP, SimulationConfig
from .grid import BoundaryMask, Grid


def edge_index(rank: int, axis: int, index: int, offset: int = 0) -> tuple:
    """Index tuple selecting the layer `index` along `axis` (shifted by `offset` leading axes)."""
    idx = [slice(None)] * (rank + offset)
    idx[axis + offset] = index
    return tuple(idx)


class BoundaryPolicy:
    """Fixed per-edge policy, selected at construction."""

    def __init__(self, grid: Grid, policies: Dict[str, str],
                 inflow_velocity: Optional[Dict[str, Sequence[float]]] = None,
                 mask: Optional[BoundaryMask] = None):
        self.grid = grid
        self.policies = dict(policies)
        self.mask = mask if mask is not None and not mask.is_empty else None

        self._inflow = {}
        for edge, vec in (inflow_velocity or {}).items():
            if self.policies.get(edge) == POLICY_INFLOW:
                # shaped to broadcast over an edge layer of a velocity array
                self._inflow[edge] = np.asarray(vec, dtype=np.float64).reshape(
                    (grid.ndim,) + (1,) * (grid.ndim - 1))

        self.wrap_axes = tuple(
            self.policies[f"{AXIS_NAMES[a]}_min"] == POLICY_WRAP for a in range(grid.ndim)
        )

    @classmethod
    def from_config(cls, grid: Grid, config: SimulationConfig,
                    mask: Optional[BoundaryMask] = None) -> "BoundaryPolicy":
        return cls(grid, config.boundaries, config.inflow_velocity, mask)

    def policy(self, axis: int, side: str) -> str:
        return self.policies[f"{AXIS_NAMES[axis]}_{side}"]

    # ── Velocity ──────────────────────────────────────────────────────────

    def apply_velocity(self, vel: np.ndarray, homogeneous: bool = False) -> np.ndarray:
        """
        Enforce the edge policy on a velocity array of shape (ndim, *grid.shape), in place.

        With `homogeneous=True` every pinned value (inflow edges, mask cells)
        is taken as zero. The pressure solve uses this form, since it only
        needs the linear part of the boundary.
        """
        ndim = self.grid.ndim

        if self.mask is not None:
            vel[:, self.mask.solid] = 0.0
            if self.mask.inflow_velocity is not None:
                vel[:, self.mask.inflow] = 0.0 if homogeneous else self.mask.inflow_velocity[:, None]

        for axis in range(ndim):
            n = self.grid.shape[axis]
            if self.wrap_axes[axis]:
                vel[edge_index(ndim, axis, 0, 1)] = vel[edge_index(ndim, axis, n - 2, 1)]
                vel[edge_index(ndim, axis, n - 1, 1)] = vel[edge_index(ndim, axis, 1, 1)]
                continue

            for side, edge, src in (("min", 0, 1), ("max", n - 1, n - 2)):
                policy = self.policy(axis, side)
                dst = edge_index(ndim, axis, edge, 1)
                if policy == POLICY_SOLID:
                    vel[dst] = vel[edge_index(ndim, axis, src, 1)]
                    vel[axis][edge_index(ndim, axis, edge)] = 0.0
                elif policy == POLICY_INFLOW:
                    vel[dst] = 0.0 if homogeneous else self._inflow[f"{AXIS_NAMES[axis]}_{side}"]
        return vel

    # ── Scalars ───────────────────────────────────────────────────────────

    def apply_scalar(self, field: np.ndarray) -> np.ndarray:
        """Enforce the edge policy on a transported scalar (density), in place."""
        ndim = self.grid.ndim

        if self.mask is not None:
            field[self.mask.solid] = 0.0

        for axis in range(ndim):
            n = self.grid.shape[axis]
            if self.wrap_axes[axis]:
                field[edge_index(ndim, axis, 0)] = field[edge_index(ndim, axis, n - 2)]
                field[edge_index(ndim, axis, n - 1)] = field[edge_index(ndim, axis, 1)]
            else:
                field[edge_index(ndim, axis, 0)] = field[edge_index(ndim, axis, 1)]
                field[edge_index(ndim, axis, n - 1)] = field[edge_index(ndim, axis, n - 2)]
        return field

    def apply_pressure(self, p: np.ndarray) -> np.ndarray:
        """Periodic ghosts on wrap axes, zero ghosts everywhere else. In place."""
        ndim = self.grid.ndim
        for axis in range(ndim):
            n = self.grid.shape[axis]
            if self.wrap_axes[axis]:
                p[edge_index(ndim, axis, 0)] = p[edge_index(ndim, axis, n - 2)]
                p[edge_index(ndim, axis, n - 1)] = p[edge_index(ndim, axis, 1)]
            else:
                p[edge_index(ndim, axis, 0)] = 0.0
                p[edge_index(ndim, axis, n - 1)] = 0.0
        return p

    def open_cells(self) -> np.ndarray:
        """Interior cells the pressure solve updates (not covered by the mask)."""
        cells = np.zeros(self.grid.shape, dtype=bool)
        cells[self.grid.interior] = True
        if self.mask is not None:
            cells &= ~(self.mask.solid | self.mask.inflow)
        return cells

    def __repr__(self):
        return f"BoundaryPolicy({self.policies})"
