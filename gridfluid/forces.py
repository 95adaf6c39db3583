"""
forces.py — External Force Injector
===================================
User- or scenario-driven perturbations: a force dragged in at the cursor,
a dye emitter, a fan.

Perturbations are QUEUED by `add_force` / `add_source` and written into the
current buffers at the start of the next step, so the fields only ever
change inside `FluidSimulation.advance()`.

  - force  : an acceleration; the cell's velocity gains  vector * dt
  - source : an amount of scalar added to the cell's density

Both can be splatted over a radius with linear falloff. Locations outside
the grid are clamped to the nearest interior cell, never rejected.
"""

import logging
import math
from dataclasses import dataclass
from numbers import Integral
from typing import List, Sequence, Tuple

import numpy as np

from .errors import InvalidInput
from .grid import Grid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Impulse:
    cell: Tuple[int, ...]
    value: Tuple[float, ...]
    radius: float = 0.0


def resolve_location(grid: Grid, where: Sequence) -> Tuple[int, ...]:
    """
    Integer coordinates are cell indices; anything else is a world-space
    position (`cell = position / spacing`). Either way the result is the
    nearest interior cell.
    """
    if len(where) != grid.ndim:
        raise InvalidInput(f"location {tuple(where)!r} needs {grid.ndim} coordinates")
    if not all(math.isfinite(float(c)) for c in where):
        raise InvalidInput(f"location {tuple(where)!r} is not finite")
    if all(isinstance(c, Integral) for c in where):
        return grid.clamp_interior(where)
    return grid.cell_of(where)


def splat_weights(grid: Grid, cell: Tuple[int, ...], radius: float):
    """
    (index, weights) over the interior cells within `radius` of `cell`,
    falling off linearly to zero at the radius. Radius 0 is the cell alone.
    """
    if radius <= 0:
        return cell, 1.0

    r = int(math.ceil(radius))
    lo = [max(1, c - r) for c in cell]
    hi = [min(n - 1, c + r + 1) for c, n in zip(cell, grid.shape)]
    axes = [np.arange(a, b) - c for a, b, c in zip(lo, hi, cell)]
    offsets = np.meshgrid(*axes, indexing="ij")
    dist = np.sqrt(sum(o.astype(np.float64) ** 2 for o in offsets))
    weights = np.clip(1.0 - dist / radius, 0.0, None)
    index = tuple(slice(a, b) for a, b in zip(lo, hi))
    return index, weights


class ForceInjector:
    """Queue of pending forces and sources for one simulation."""

    def __init__(self, grid: Grid):
        self.grid = grid
        self.forces: List[Impulse] = []
        self.sources: List[Impulse] = []

    @property
    def pending(self) -> bool:
        return bool(self.forces or self.sources)

    def add_force(self, where: Sequence, vector: Sequence[float], radius: float = 0.0) -> Tuple[int, ...]:
        vector = tuple(float(v) for v in vector)
        if len(vector) != self.grid.ndim:
            raise InvalidInput(f"force {vector!r} needs {self.grid.ndim} components")
        if not all(math.isfinite(v) for v in vector):
            raise InvalidInput(f"force {vector!r} is not finite")
        cell = resolve_location(self.grid, where)
        self.forces.append(Impulse(cell, vector, _check_radius(radius)))
        return cell

    def add_source(self, where: Sequence, amount: float, radius: float = 0.0) -> Tuple[int, ...]:
        amount = float(amount)
        if not math.isfinite(amount):
            raise InvalidInput(f"source amount {amount!r} is not finite")
        cell = resolve_location(self.grid, where)
        self.sources.append(Impulse(cell, (amount,), _check_radius(radius)))
        return cell

    def apply(self, velocity: np.ndarray, density: np.ndarray, dt: float):
        """Write every queued perturbation into the given buffers, then clear the queue."""
        for imp in self.forces:
            index, weights = splat_weights(self.grid, imp.cell, imp.radius)
            for axis, component in enumerate(imp.value):
                velocity[axis][index] += component * dt * weights
        for imp in self.sources:
            index, weights = splat_weights(self.grid, imp.cell, imp.radius)
            density[index] += imp.value[0] * weights

        if self.pending:
            logger.debug("injected %d force(s), %d source(s)", len(self.forces), len(self.sources))
        self.clear()

    def clear(self):
        self.forces = []
        self.sources = []


def _check_radius(radius: float) -> float:
    radius = float(radius)
    if not math.isfinite(radius) or radius < 0:
        raise InvalidInput(f"radius must be finite and >= 0, got {radius!r}")
    return radius
