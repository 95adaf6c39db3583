"""
config.py — Simulation Configuration
====================================
One dataclass holds every construction parameter. It is validated once,
when the simulation is built, and never changes afterwards.

Boundary policies are chosen per edge by name:

    boundaries = {"x_min": "wrap", "x_max": "wrap",
                  "y_min": "solid", "y_max": "inflow"}
    inflow_velocity = {"y_max": (0.0, -1.0)}

Configs round-trip through plain dicts and YAML files.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Tuple

import yaml

from .errors import InvalidConfig


POLICY_SOLID  = "solid"
POLICY_WRAP   = "wrap"
POLICY_INFLOW = "inflow"
POLICIES = (POLICY_SOLID, POLICY_WRAP, POLICY_INFLOW)

DT_REJECT = "reject"
DT_CLAMP  = "clamp"

AXIS_NAMES = ("x", "y", "z")


def edge_names(ndim: int) -> Tuple[str, ...]:
    """Edge names for a grid with `ndim` axes: ('x_min', 'x_max', 'y_min', ...)."""
    return tuple(f"{axis}_{side}" for axis in AXIS_NAMES[:ndim] for side in ("min", "max"))


@dataclass
class SimulationConfig:
    """Construction parameters for a FluidSimulation."""

    # Grid
    width: int = 32
    height: int = 32
    depth: Optional[int] = None
    spacing: float = 1.0

    # Boundary policy, one entry per edge; missing edges default to solid
    boundaries: Dict[str, str] = field(default_factory=dict)
    inflow_velocity: Dict[str, Tuple[float, ...]] = field(default_factory=dict)

    # Physics
    viscosity: float = 0.0
    diffusion_rate: float = 0.0

    # Relaxation
    diffusion_iterations: int = 20
    pressure_iterations: int = 40
    pressure_weight: float = 2.0 / 3.0
    divergence_epsilon: float = 1e-3

    # Timestep policy
    dt_policy: str = DT_REJECT
    max_dt: Optional[float] = None
    fixed_dt: Optional[float] = None
    max_substeps: int = 8

    # Bookkeeping
    metrics_history: int = 1000

    def __post_init__(self):
        filled = {name: POLICY_SOLID for name in edge_names(self.ndim)}
        filled.update(self.boundaries or {})
        self.boundaries = filled
        self.inflow_velocity = {
            edge: tuple(float(c) for c in vec)
            for edge, vec in (self.inflow_velocity or {}).items()
        }

    @property
    def ndim(self) -> int:
        return 2 if self.depth is None else 3

    @property
    def shape(self) -> Tuple[int, ...]:
        if self.depth is None:
            return (self.width, self.height)
        return (self.width, self.height, self.depth)

    def validate(self) -> "SimulationConfig":
        """Raise InvalidConfig on the first bad parameter; return self otherwise."""
        for name, n in zip(("width", "height", "depth"), self.shape):
            if isinstance(n, bool) or not isinstance(n, int):
                raise InvalidConfig(f"{name} must be an integer, got {n!r}")
            if n < 3:
                # one layer of edge cells on each side plus at least one interior cell
                raise InvalidConfig(f"{name} must be at least 3, got {n}")

        if not _finite(self.spacing) or self.spacing <= 0:
            raise InvalidConfig(f"spacing must be a positive finite number, got {self.spacing!r}")

        self._validate_boundaries()

        for name in ("viscosity", "diffusion_rate"):
            value = getattr(self, name)
            if not _finite(value) or value < 0:
                raise InvalidConfig(f"{name} must be finite and >= 0, got {value!r}")

        for name in ("diffusion_iterations", "pressure_iterations"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidConfig(f"{name} must be a non-negative integer, got {value!r}")

        if not _finite(self.pressure_weight) or not 0.0 < self.pressure_weight <= 1.0:
            raise InvalidConfig(f"pressure_weight must lie in (0, 1], got {self.pressure_weight!r}")
        if not _finite(self.divergence_epsilon) or self.divergence_epsilon <= 0:
            raise InvalidConfig(f"divergence_epsilon must be > 0, got {self.divergence_epsilon!r}")

        if self.dt_policy not in (DT_REJECT, DT_CLAMP):
            raise InvalidConfig(f"dt_policy must be '{DT_REJECT}' or '{DT_CLAMP}', got {self.dt_policy!r}")
        for name in ("max_dt", "fixed_dt"):
            value = getattr(self, name)
            if value is not None and (not _finite(value) or value <= 0):
                raise InvalidConfig(f"{name} must be None or a positive finite number, got {value!r}")
        if isinstance(self.max_substeps, bool) or not isinstance(self.max_substeps, int) \
                or self.max_substeps < 1:
            raise InvalidConfig(f"max_substeps must be a positive integer, got {self.max_substeps!r}")
        if isinstance(self.metrics_history, bool) or not isinstance(self.metrics_history, int) \
                or self.metrics_history < 1:
            raise InvalidConfig(f"metrics_history must be a positive integer, got {self.metrics_history!r}")
        return self

    def _validate_boundaries(self):
        names = edge_names(self.ndim)
        for edge, policy in self.boundaries.items():
            if edge not in names:
                raise InvalidConfig(f"unknown edge {edge!r} for a {self.ndim}D grid (expected one of {names})")
            if policy not in POLICIES:
                raise InvalidConfig(f"unknown boundary policy {policy!r} on {edge} (expected one of {POLICIES})")

        for axis in AXIS_NAMES[:self.ndim]:
            lo, hi = self.boundaries[f"{axis}_min"], self.boundaries[f"{axis}_max"]
            if (lo == POLICY_WRAP) != (hi == POLICY_WRAP):
                raise InvalidConfig(f"wrap on the {axis} axis must be set on both {axis}_min and {axis}_max")

        for edge, vec in self.inflow_velocity.items():
            if edge not in names:
                raise InvalidConfig(f"inflow_velocity given for unknown edge {edge!r}")
        for edge, policy in self.boundaries.items():
            if policy != POLICY_INFLOW:
                continue
            vec = self.inflow_velocity.get(edge)
            if vec is None:
                raise InvalidConfig(f"inflow edge {edge} needs an inflow_velocity vector")
            if len(vec) != self.ndim or not all(_finite(c) for c in vec):
                raise InvalidConfig(f"inflow_velocity[{edge}] must be {self.ndim} finite numbers, got {vec!r}")

    # ── Serialization ─────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["boundaries"] = dict(self.boundaries)
        data["inflow_velocity"] = {k: list(v) for k, v in self.inflow_velocity.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfig(f"unknown configuration key(s): {', '.join(unknown)}")
        return cls(**data)

    def to_yaml(self, path: str):
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    @classmethod
    def from_yaml(cls, path: str) -> "SimulationConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise InvalidConfig(f"{path}: expected a mapping at the top level")
        return cls.from_dict(data)


def _finite(value) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False
