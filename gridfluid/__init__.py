"""
gridfluid — Grid Fluid Solver
=============================
Stable-fluids style velocity/density solver on a 2D or 3D grid.

Renderers and input handlers import: FluidSimulation
Scenario setup imports:              SimulationConfig, CellType
"""

from .config import SimulationConfig
from .errors import FluidError, IndexOutOfBounds, InvalidConfig, InvalidInput, NumericalInstability
from .grid import BoundaryMask, CellType, FieldBuffer, Grid
from .simulation import FluidSimulation

__all__ = [
    "FluidSimulation", "SimulationConfig",
    "Grid", "FieldBuffer", "BoundaryMask", "CellType",
    "FluidError", "InvalidConfig", "IndexOutOfBounds", "InvalidInput", "NumericalInstability",
]
