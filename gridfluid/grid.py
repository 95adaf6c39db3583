"""
grid.py — Grid Geometry and Double-Buffered Field Storage
=========================================================
The foundation of the solver.

Layout:
  - Every field is a dense numpy array indexed (x, y[, z]).
  - Scalar fields (density, pressure) have shape `grid.shape`.
  - Velocity has shape `(ndim, *grid.shape)`: one component per axis.
  - The outermost layer of cells on every axis is the EDGE layer. Only the
    boundary policy writes there; operators and relaxation sweeps work on
    the interior cells 1 .. n-2.

Neighbour lookups are plain slicing over these arrays, so there is no
cell object graph anywhere in the solver.
"""

from dataclasses import dataclass
from enum import IntEnum
from numbers import Integral
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import IndexOutOfBounds, InvalidConfig


@dataclass(frozen=True)
class Grid:
    """Fixed grid dimensions and cell spacing. Immutable after construction."""

    shape: Tuple[int, ...]
    spacing: float = 1.0

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def interior(self) -> Tuple[slice, ...]:
        """Index tuple selecting the interior cells of a scalar field."""
        return (slice(1, -1),) * self.ndim

    @property
    def cell_volume(self) -> float:
        return self.spacing ** self.ndim

    def contains(self, cell: Sequence[int]) -> bool:
        return len(cell) == self.ndim and all(
            isinstance(c, Integral) and 0 <= c < n for c, n in zip(cell, self.shape))

    def check(self, cell: Sequence[int]) -> Tuple[int, ...]:
        """Return `cell` as a tuple, or raise IndexOutOfBounds. Never clamps."""
        cell = tuple(cell)
        if not self.contains(cell):
            raise IndexOutOfBounds(cell, self.shape)
        return tuple(int(c) for c in cell)

    def clamp_interior(self, cell: Sequence[float]) -> Tuple[int, ...]:
        """Nearest interior cell to a (possibly out-of-grid, fractional) cell coordinate."""
        if len(cell) != self.ndim:
            raise IndexOutOfBounds(cell, self.shape)
        return tuple(int(min(max(round(float(c)), 1), n - 2)) for c, n in zip(cell, self.shape))

    def cell_of(self, position: Sequence[float]) -> Tuple[int, ...]:
        """Nearest interior cell to a world-space position."""
        return self.clamp_interior([p / self.spacing for p in position])

    def scalar_zeros(self) -> np.ndarray:
        return np.zeros(self.shape, dtype=np.float64)

    def vector_zeros(self) -> np.ndarray:
        return np.zeros((self.ndim,) + self.shape, dtype=np.float64)


class FieldBuffer:
    """
    Two same-shape arrays, "current" and "next".

    `swap()` exchanges which one is current (no data copy). Only the current
    array is ever handed out, and only as a read-only view.
    """

    def __init__(self, grid: Grid, components: Optional[int] = None):
        self.grid = grid
        self.components = components
        shape = grid.shape if components is None else (components,) + grid.shape
        self._current = np.zeros(shape, dtype=np.float64)
        self._next = np.zeros(shape, dtype=np.float64)

    @property
    def current(self) -> np.ndarray:
        """The writable current array. For the solver's own use."""
        return self._current

    @property
    def next(self) -> np.ndarray:
        """The writable scratch array the step writes into."""
        return self._next

    def swap(self):
        self._current, self._next = self._next, self._current

    def view(self) -> np.ndarray:
        """Read-only view of the current array. Its writeable flag cannot be switched back on."""
        return np.lib.stride_tricks.as_strided(self._current, writeable=False)

    def read(self, cell: Sequence[int]):
        cell = self.grid.check(cell)
        if self.components is None:
            return float(self._current[cell])
        return tuple(float(v) for v in self._current[(slice(None),) + cell])

    def write(self, cell: Sequence[int], value):
        cell = self.grid.check(cell)
        if self.components is None:
            self._current[cell] = value
        else:
            self._current[(slice(None),) + cell] = value

    def fill(self, value: float = 0.0):
        self._current.fill(value)
        self._next.fill(value)


class CellType(IntEnum):
    FLUID = 0
    SOLID = 1
    INFLOW = 2


class BoundaryMask:
    """Per-cell classification set once at scenario setup. Read-only afterwards."""

    def __init__(self, grid: Grid, cells: np.ndarray, inflow_velocity: Optional[Sequence[float]] = None):
        cells = np.asarray(cells)
        if cells.shape != grid.shape:
            raise InvalidConfig(f"mask shape {cells.shape} does not match grid shape {grid.shape}")
        valid = set(int(t) for t in CellType)
        if not set(np.unique(cells).tolist()) <= valid:
            raise InvalidConfig(f"mask values must be one of {sorted(valid)}")

        self.grid = grid
        self.cells = cells.astype(np.uint8)
        self.cells.flags.writeable = False

        self.solid = self.cells == CellType.SOLID
        self.inflow = self.cells == CellType.INFLOW
        self.solid.flags.writeable = False
        self.inflow.flags.writeable = False

        if self.inflow.any():
            if inflow_velocity is None or len(inflow_velocity) != grid.ndim \
                    or not np.all(np.isfinite(inflow_velocity)):
                raise InvalidConfig(f"inflow cells need a finite {grid.ndim}-vector inflow_velocity")
        self.inflow_velocity = None if inflow_velocity is None else \
            np.asarray(inflow_velocity, dtype=np.float64)

    @classmethod
    def empty(cls, grid: Grid) -> "BoundaryMask":
        return cls(grid, np.zeros(grid.shape, dtype=np.uint8))

    @property
    def is_empty(self) -> bool:
        return not (self.solid.any() or self.inflow.any())

    def __repr__(self):
        return (f"BoundaryMask(shape={self.grid.shape}, "
                f"solid={int(self.solid.sum())}, inflow={int(self.inflow.sum())})")
