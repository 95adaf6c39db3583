"""
simulation.py — Time Stepper
============================
The complete simulation step that ties everything together.
One call to `advance(dt)` moves the fluid forward by dt seconds.

Pipeline per step:
  1. Inject queued forces/sources into a copy of the current buffers
  2. Diffuse velocity (ν) and density (κ) into scratch, skipped when 0
  3. Project velocity (pass 1)
  4. Advect velocity (self-advection) and density into the "next" buffers,
     both along the projected velocity
  5. Project the freshly advected velocity (pass 2)
  6. Re-apply the boundary policy
  7. Swap buffers: "next" becomes "current"

The renderer only ever sees read-only views of the current buffers, and
`advance` is the only call that changes them. This follows the "Stable
Fluids" paper by Jos Stam.
"""

import logging
import math
import time
from collections import deque
from typing import Optional, Sequence, Tuple

import numpy as np

from .advect import advect
from .boundary import BoundaryPolicy
from .config import DT_CLAMP, SimulationConfig
from .diffuse import diffuse
from .errors import InvalidInput, NumericalInstability
from .forces import ForceInjector
from .grid import BoundaryMask, FieldBuffer, Grid
from .operators import divergence
from .solver import pressure_inverse_diagonal, project

logger = logging.getLogger(__name__)

MAX_INSTABILITY_HISTORY = 100


class FluidSimulation:
    """
    Grid fluid solver with a single mutating entry point, `advance(dt)`.

    Usage:
        sim = FluidSimulation(width=64, height=64, viscosity=0.0)
        sim.add_source((32, 8), 5.0, radius=3)
        sim.add_force((32, 8), (0.0, 20.0), radius=3)
        for frame in range(100):
            sim.advance(1 / 60)
            density = sim.density_field()     # read-only, hand to the renderer
    """

    def __init__(self, width: int = 32, height: int = 32, depth: Optional[int] = None,
                 spacing: float = 1.0, boundaries: Optional[dict] = None,
                 viscosity: float = 0.0, diffusion_rate: float = 0.0,
                 mask: Optional[np.ndarray] = None,
                 mask_inflow_velocity: Optional[Sequence[float]] = None,
                 **options):
        """
        Args:
            width, height, depth : Grid size in cells, edge layer included (depth=None → 2D)
            spacing              : Cell size in world units
            boundaries           : Edge name → "solid" | "wrap" | "inflow" (default: all solid)
            viscosity            : ν, velocity diffusion (0 disables the solve)
            diffusion_rate       : κ, density diffusion (0 disables the solve)
            mask                 : Optional per-cell CellType array (obstacles, inflow cells)
            mask_inflow_velocity : Velocity pinned on INFLOW mask cells
            **options            : Any other SimulationConfig field
        """
        config = SimulationConfig(width=width, height=height, depth=depth, spacing=spacing,
                                  boundaries=boundaries or {}, viscosity=viscosity,
                                  diffusion_rate=diffusion_rate, **options)
        self._setup(config, mask, mask_inflow_velocity)

    @classmethod
    def from_config(cls, config: SimulationConfig, mask: Optional[np.ndarray] = None,
                    mask_inflow_velocity: Optional[Sequence[float]] = None) -> "FluidSimulation":
        sim = cls.__new__(cls)
        sim._setup(config, mask, mask_inflow_velocity)
        return sim

    def _setup(self, config: SimulationConfig, mask, mask_inflow_velocity):
        self.config = config.validate()
        self.grid = Grid(config.shape, float(config.spacing))

        if mask is None:
            self.mask = BoundaryMask.empty(self.grid)
        else:
            self.mask = BoundaryMask(self.grid, mask, mask_inflow_velocity)
        self.boundary = BoundaryPolicy.from_config(self.grid, config, self.mask)

        # ── Double-buffered state ─────────────────────────────────────────
        self.velocity = FieldBuffer(self.grid, components=self.grid.ndim)
        self.density = FieldBuffer(self.grid)

        # ── Scratch, recomputed every step ────────────────────────────────
        self.pressure = self.grid.scalar_zeros()
        self._work_velocity = self.grid.vector_zeros()
        self._work_density = self.grid.scalar_zeros()
        self._pressure_inv_diag = pressure_inverse_diagonal(self.boundary)

        self.injector = ForceInjector(self.grid)
        self.frame = 0
        self.perf_log = deque(maxlen=config.metrics_history)
        self.instabilities = deque(maxlen=MAX_INSTABILITY_HISTORY)
        self._accumulator = 0.0
        self._degraded = False

        self.boundary.apply_velocity(self.velocity.current)
        self.boundary.apply_scalar(self.density.current)

        logger.info("created %dD simulation: shape=%s spacing=%g boundaries=%s nu=%g kappa=%g",
                    self.grid.ndim, self.grid.shape, self.grid.spacing,
                    config.boundaries, config.viscosity, config.diffusion_rate)

    # ── Perturbation ──────────────────────────────────────────────────────

    def add_force(self, where: Sequence, vector: Sequence[float], radius: float = 0.0) -> Tuple[int, ...]:
        """
        Queue a force for the next step. Returns the (clamped) target cell.

        Args:
            where  : Cell index (ints) or world position (floats); clamped into the grid
            vector : Force per unit mass, one component per axis
            radius : Splat radius in cells (0 = single cell)
        """
        return self.injector.add_force(where, vector, radius)

    def add_source(self, where: Sequence, amount: float, radius: float = 0.0) -> Tuple[int, ...]:
        """Queue a density source for the next step. Returns the (clamped) target cell."""
        return self.injector.add_source(where, amount, radius)

    # ── Stepping ──────────────────────────────────────────────────────────

    def advance(self, dt: float) -> dict:
        """
        Advance the simulation by `dt` seconds. Blocks until the step is done.

        With `fixed_dt` configured, `dt` is accumulated and spent in whole
        substeps of `fixed_dt` (possibly none, at most `max_substeps`).

        Returns the metrics of the last substep run, with `substeps` set to
        the number of substeps taken.
        """
        dt = self._check_dt(dt)
        fixed = self.config.fixed_dt

        if fixed is None:
            metrics = self._step(dt)
            metrics["substeps"] = 1
            return metrics

        self._accumulator += dt
        substeps = int(self._accumulator // fixed)
        self._accumulator -= substeps * fixed
        if substeps > self.config.max_substeps:
            logger.warning("frame %d: %d substeps needed, running %d and dropping %.4gs",
                           self.frame, substeps, self.config.max_substeps,
                           (substeps - self.config.max_substeps) * fixed)
            substeps = self.config.max_substeps

        metrics = {"frame": self.frame, "substeps": 0, "dt": 0.0, "degraded": False}
        for _ in range(substeps):
            metrics = self._step(fixed)
        metrics["substeps"] = substeps
        return metrics

    def _check_dt(self, dt: float) -> float:
        try:
            dt = float(dt)
        except (TypeError, ValueError):
            raise InvalidInput(f"dt must be a number, got {dt!r}")

        if math.isfinite(dt) and dt >= 0:
            if self.config.max_dt is not None and dt > self.config.max_dt:
                if self.config.dt_policy != DT_CLAMP:
                    raise InvalidInput(f"dt={dt} exceeds max_dt={self.config.max_dt}")
                logger.warning("dt=%g clamped to max_dt=%g", dt, self.config.max_dt)
                return self.config.max_dt
            return dt

        if self.config.dt_policy != DT_CLAMP:
            raise InvalidInput(f"dt must be finite and non-negative, got {dt}")

        if dt == math.inf and self.config.max_dt is not None:
            clamped = self.config.max_dt
        else:
            clamped = 0.0
        logger.warning("dt=%s clamped to %g", dt, clamped)
        return clamped

    def _step(self, dt: float) -> dict:
        t_total_start = time.perf_counter()
        cfg = self.config
        h = self.grid.spacing
        wrap = self.boundary.wrap_axes
        vel, den = self.velocity, self.density
        self._degraded = False

        # ── Step 1: External forces into a copy of the current state ──────
        # "current" stays untouched until the swap, so it is the last finite state.
        t0 = time.perf_counter()
        np.copyto(vel.next, vel.current)
        np.copyto(den.next, den.current)
        self.injector.apply(vel.next, den.next, dt)
        self._guard("injection", vel.next, vel.current)
        self._guard("injection", den.next, den.current)
        self.boundary.apply_velocity(vel.next)
        self.boundary.apply_scalar(den.next)
        t_forces = (time.perf_counter() - t0) * 1000

        # ── Step 2: Diffuse velocity, then density ────────────────────────
        t0 = time.perf_counter()
        diffuse(self._work_velocity, vel.next, cfg.viscosity, dt, h,
                cfg.diffusion_iterations, self.boundary.apply_velocity, vector=True)
        diffuse(self._work_density, den.next, cfg.diffusion_rate, dt, h,
                cfg.diffusion_iterations, self.boundary.apply_scalar)
        self._guard("diffusion", self._work_velocity, vel.current)
        self._guard("diffusion", self._work_density, den.current)
        t_diffuse = (time.perf_counter() - t0) * 1000

        # ── Step 3: Project (pass 1) ──────────────────────────────────────
        t0 = time.perf_counter()
        project(self._work_velocity, self.pressure, self.boundary,
                cfg.pressure_iterations, cfg.pressure_weight, self._pressure_inv_diag)
        self._guard("projection", self._work_velocity, vel.current)
        t_project1 = (time.perf_counter() - t0) * 1000

        # ── Step 4: Advect into the next buffers ──────────────────────────
        t0 = time.perf_counter()
        advect(vel.next, self._work_velocity, self._work_velocity, dt, h, wrap, vector=True)
        advect(den.next, self._work_density, self._work_velocity, dt, h, wrap)
        self.boundary.apply_velocity(vel.next)
        self.boundary.apply_scalar(den.next)
        self._guard("advection", vel.next, vel.current)
        self._guard("advection", den.next, den.current)
        t_advect = (time.perf_counter() - t0) * 1000

        # ── Step 5: Project (pass 2) ──────────────────────────────────────
        t0 = time.perf_counter()
        proj_metrics = project(vel.next, self.pressure, self.boundary,
                               cfg.pressure_iterations, cfg.pressure_weight, self._pressure_inv_diag)
        self._guard("projection", vel.next, vel.current)
        t_project2 = (time.perf_counter() - t0) * 1000

        # ── Step 6/7: Boundary, then hand "next" over as "current" ────────
        self.boundary.apply_velocity(vel.next)
        self.boundary.apply_scalar(den.next)
        vel.swap()
        den.swap()

        self.frame += 1
        t_total = (time.perf_counter() - t_total_start) * 1000
        metrics = {
            "frame"                     : self.frame,
            "dt"                        : dt,
            "total_ms"                  : t_total,
            "fps"                       : 1000.0 / t_total if t_total > 0 else 0.0,
            "forces_ms"                 : t_forces,
            "diffuse_ms"                : t_diffuse,
            "project1_ms"               : t_project1,
            "advect_ms"                 : t_advect,
            "project2_ms"               : t_project2,
            "divergence_max"            : proj_metrics["divergence_after_max"],
            "divergence_mean"           : proj_metrics["divergence_after_mean"],
            "divergence_within_epsilon" : proj_metrics["divergence_after_max"] <= cfg.divergence_epsilon,
            "density_total"             : self.total_density(),
            "degraded"                  : self._degraded,
        }
        self.perf_log.append(metrics)
        logger.debug("frame %d: %.2fms div_max=%.3e density=%.4g", self.frame, t_total,
                     metrics["divergence_max"], metrics["density_total"])
        return metrics

    def _guard(self, stage: str, field: np.ndarray, fallback: Optional[np.ndarray]):
        """Replace non-finite cells with the last finite value (or 0) and flag the frame."""
        bad = ~np.isfinite(field)
        count = int(bad.sum())
        if not count:
            return

        if fallback is None:
            field[bad] = 0.0
        else:
            field[bad] = np.where(np.isfinite(fallback[bad]), fallback[bad], 0.0)

        issue = NumericalInstability(stage, count, self.frame + 1)
        self.instabilities.append(issue)
        self._degraded = True
        logger.warning("%s", issue)

    # ── Readback (read-only) ──────────────────────────────────────────────

    def velocity_at(self, cell: Sequence[int]) -> Tuple[float, ...]:
        return self.velocity.read(cell)

    def density_at(self, cell: Sequence[int]) -> float:
        return self.density.read(cell)

    def velocity_field(self) -> np.ndarray:
        """Read-only (ndim, *shape) view of the current velocity. Valid until the next advance."""
        return self.velocity.view()

    def density_field(self) -> np.ndarray:
        """Read-only view of the current density. Valid until the next advance."""
        return self.density.view()

    def divergence_field(self) -> np.ndarray:
        return divergence(self.velocity.current, self.grid.spacing)

    def total_density(self) -> float:
        """Density integrated over the interior cells."""
        return float(self.density.current[self.grid.interior].sum() * self.grid.cell_volume)

    @property
    def last_frame_degraded(self) -> bool:
        return self._degraded

    def snapshot(self) -> dict:
        """Copies of the current state, safe to keep or serialize."""
        return {
            "frame"      : self.frame,
            "velocity"   : self.velocity.current.copy(),
            "density"    : self.density.current.copy(),
            "pressure"   : self.pressure.copy(),
            "divergence" : self.divergence_field(),
        }

    def reset(self):
        """Zero every field and the frame counter. Grid, policy and mask are kept."""
        self.velocity.fill(0.0)
        self.density.fill(0.0)
        self.pressure.fill(0.0)
        self.injector.clear()
        self.instabilities.clear()
        self.perf_log.clear()
        self.frame = 0
        self._accumulator = 0.0
        self._degraded = False
        self.boundary.apply_velocity(self.velocity.current)
        self.boundary.apply_scalar(self.density.current)

    def __repr__(self):
        vel = self.velocity.current
        speed = np.sqrt((vel ** 2).sum(axis=0)).max()
        max_div = np.abs(self.divergence_field()[self.grid.interior]).max()
        return (
            f"FluidSimulation(shape={self.grid.shape}, frame={self.frame})\n"
            f"  density   : max={self.density.current.max():.4f}, total={self.total_density():.4f}\n"
            f"  velocity  : max_magnitude={speed:.4f}\n"
            f"  divergence: max={max_div:.6f} (target: ~0)"
        )
