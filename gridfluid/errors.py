"""
errors.py — Solver Exception Hierarchy
======================================
Every error the solver raises derives from FluidError, and also from the
matching builtin so callers can catch `ValueError` / `IndexError` as usual.
"""


class FluidError(Exception):
    """Base class for all solver errors."""


class InvalidConfig(FluidError, ValueError):
    """Bad construction parameters. The simulation cannot be created."""


class IndexOutOfBounds(FluidError, IndexError):
    """Direct cell access outside the grid. Fatal to the call, not the simulation."""

    def __init__(self, cell, shape):
        self.cell = tuple(cell)
        self.shape = tuple(shape)
        super().__init__(f"cell {self.cell} is outside grid of shape {self.shape}")


class InvalidInput(FluidError, ValueError):
    """Rejected per-frame input: a bad dt, or a non-finite force/source."""


class NumericalInstability(FluidError, ArithmeticError):
    """
    Describes a degraded frame: some stage produced non-finite cells.

    Never raised out of `FluidSimulation.advance()`. The offending cells are
    restored to their last finite value, and this object is logged and kept
    in `FluidSimulation.instabilities`.
    """

    def __init__(self, stage: str, cells: int, frame: int):
        self.stage = stage
        self.cells = cells
        self.frame = frame
        super().__init__(
            f"frame {frame}: {cells} non-finite cell(s) after {stage}, clamped to last finite value"
        )
