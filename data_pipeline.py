"""
data_pipeline.py — Snapshot Recorder
====================================
Runs a scenario and saves the simulation state as .npy files. The solver
itself never touches the disk; persistence lives out here.

Layout on disk:
  recordings/
    run_001/
      frame_0000_velocity.npy     ← shape (ndim, *grid shape)
      frame_0000_density.npy      ← shape grid shape
      frame_0000_pressure.npy
      frame_0000_divergence.npy
      config.yaml                 ← the SimulationConfig of the run
      ...
    metadata.json                 ← one entry per run

Load back with:
  v = np.load("recordings/run_001/frame_0000_velocity.npy")
"""

import json
import logging
from pathlib import Path
from typing import Optional

import numpy as np

from gridfluid import FluidSimulation, SimulationConfig

logger = logging.getLogger(__name__)

SNAPSHOT_ARRAYS = ("velocity", "density", "pressure", "divergence")


class SnapshotRecorder:
    """
    Steps a simulation with random emitters and captures snapshots.

    Usage:
        rec = SnapshotRecorder(output_dir="recordings")
        rec.record_run(SimulationConfig(width=64, height=64), run_id=1, n_frames=200)
    """

    def __init__(self, output_dir: str = "recordings"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.metadata = {"runs": []}

    def save_snapshot(self, sim: FluidSimulation, run_dir: Path) -> Path:
        """Write one frame of `sim` into `run_dir`. Returns the file prefix."""
        snapshot = sim.snapshot()
        prefix = run_dir / f"frame_{snapshot['frame']:04d}"
        for name in SNAPSHOT_ARRAYS:
            np.save(f"{prefix}_{name}.npy", snapshot[name])
        return prefix

    def record_run(
        self,
        config: SimulationConfig,
        run_id: int,
        n_frames: int = 200,
        dt: float = 0.1,
        n_sources: int = 1,
        random_seed: Optional[int] = None,
        save_every: int = 1,
    ) -> dict:
        """
        Simulate one run and save every `save_every`-th frame.

        Args:
            config      : Simulation parameters
            run_id      : Integer ID for this run (used in folder name)
            n_frames    : How many steps to simulate
            dt          : Timestep passed to advance()
            n_sources   : Number of emitters, placed at random interior cells
            random_seed : For reproducible emitter placement
            save_every  : Save a snapshot every N frames (1 = all frames)
        """
        rng = np.random.default_rng(random_seed)
        run_dir = self.output_dir / f"run_{run_id:03d}"
        run_dir.mkdir(parents=True, exist_ok=True)
        config.to_yaml(str(run_dir / "config.yaml"))

        sim = FluidSimulation.from_config(config)
        shape = sim.grid.shape

        sources = []
        for _ in range(n_sources):
            cell = tuple(int(rng.integers(n // 4, max(n // 4 + 1, 3 * n // 4))) for n in shape)
            push = tuple(float(v) for v in rng.uniform(-1.0, 1.0, size=len(shape)))
            sources.append((cell, push))

        logger.info("run %03d: %d frames, %d source(s), seed=%s", run_id, n_frames, n_sources, random_seed)

        saved_count = 0
        degraded = 0
        for frame in range(n_frames):
            for cell, push in sources:
                sim.add_source(cell, 2.0, radius=2)
                sim.add_force(cell, push, radius=2)

            metrics = sim.advance(dt)
            degraded += int(metrics["degraded"])

            if frame % save_every == 0:
                self.save_snapshot(sim, run_dir)
                saved_count += 1

            if frame % 50 == 0:
                logger.info("  frame %04d/%d | div_max=%.5f | density=%.2f",
                            frame, n_frames, metrics["divergence_max"], metrics["density_total"])

        run_meta = {
            "run_id"          : run_id,
            "n_frames"        : n_frames,
            "saved_frames"    : saved_count,
            "save_every"      : save_every,
            "dt"              : dt,
            "random_seed"     : random_seed,
            "shape"           : list(shape),
            "sources"         : [{"cell": list(c), "force": list(f)} for c, f in sources],
            "degraded_frames" : degraded,
            "directory"       : str(run_dir),
        }
        self.metadata["runs"].append(run_meta)

        with open(self.output_dir / "metadata.json", "w") as f:
            json.dump(self.metadata, f, indent=2)

        logger.info("run %03d done: %d snapshots -> %s", run_id, saved_count, run_dir)
        return run_meta

    def record(self, config: SimulationConfig, n_runs: int = 3, frames_per_run: int = 200,
               save_every: int = 2, dt: float = 0.1):
        """Several runs with different seeds and emitter counts."""
        for run_id in range(1, n_runs + 1):
            self.record_run(
                config,
                run_id=run_id,
                n_frames=frames_per_run,
                dt=dt,
                n_sources=1 + run_id % 3,
                random_seed=run_id * 42,
                save_every=save_every,
            )
        return self.metadata
