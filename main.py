"""
main.py — Command-Line Driver
=============================
Runs the solver without any window, for checking behaviour and timing.

Usage:
    python main.py                                  # headless run, stats every 10 frames
    python main.py --mode benchmark                 # per-stage timing breakdown
    python main.py --mode record --runs 3           # save .npy snapshots to ./recordings
    python main.py --config scenario.yaml           # load a SimulationConfig from YAML
    python main.py --width 32 --height 32 --depth 32
"""

import argparse
import logging

import numpy as np

from gridfluid import FluidSimulation, SimulationConfig


def emit(sim: FluidSimulation):
    """A dye emitter near the bottom centre, pushing upward."""
    shape = sim.grid.shape
    cell = tuple([n // 2 for n in shape[:1]] + [2] + [n // 2 for n in shape[2:]])
    up = tuple(5.0 if axis == 1 else 0.0 for axis in range(len(shape)))
    sim.add_source(cell, 3.0, radius=2)
    sim.add_force(cell, up, radius=2)


def run_headless(config: SimulationConfig, frames: int = 100, dt: float = 0.1):
    """Run without display, printing stats every 10 frames."""
    sim = FluidSimulation.from_config(config)

    print(f"\nHeadless simulation | shape={sim.grid.shape} | {frames} frames")
    print(f"{'─'*60}")

    total_times = []
    for f in range(frames):
        emit(sim)
        metrics = sim.advance(dt)
        total_times.append(metrics["total_ms"])

        if f % 10 == 0:
            flag = "  DEGRADED" if metrics["degraded"] else ""
            print(f"  Frame {f:03d} | {metrics['total_ms']:6.1f}ms "
                  f"({metrics['fps']:.1f} FPS) | "
                  f"div_max={metrics['divergence_max']:.5f} | "
                  f"density={metrics['density_total']:.1f}{flag}")

    print(f"\n{'─'*60}")
    print(f"  Average: {np.mean(total_times):.1f}ms/frame ({1000/np.mean(total_times):.1f} FPS)")
    print(f"  Min:     {np.min(total_times):.1f}ms")
    print(f"  Max:     {np.max(total_times):.1f}ms")
    print(f"  Degraded frames: {len(sim.instabilities)}")
    print(sim)


def run_benchmark(config: SimulationConfig, frames: int = 50, dt: float = 0.1):
    """Per-stage timing breakdown."""
    sim = FluidSimulation.from_config(config)

    print(f"\n{'='*60}")
    print(f"  SOLVER BENCHMARK | shape={sim.grid.shape} | {frames} frames")
    print(f"{'='*60}")

    # Warm up
    for _ in range(5):
        emit(sim)
        sim.advance(dt)

    logs = []
    for _ in range(frames):
        emit(sim)
        logs.append(sim.advance(dt))

    keys = ["forces_ms", "diffuse_ms", "project1_ms", "advect_ms", "project2_ms", "total_ms"]

    print(f"\n{'Step':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>7.2f}ms {np.min(vals):>7.2f}ms {np.max(vals):>7.2f}ms")

    total_vals = [m["total_ms"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  FPS (solver only): {1000/np.mean(total_vals):.1f}")


def run_record(config: SimulationConfig, n_runs: int = 3, frames: int = 200, dt: float = 0.1,
               output_dir: str = "recordings"):
    from data_pipeline import SnapshotRecorder

    print(f"\nRecording {n_runs} run(s) × {frames} frames → {output_dir}/")
    recorder = SnapshotRecorder(output_dir=output_dir)
    recorder.record(config, n_runs=n_runs, frames_per_run=frames, dt=dt)
    print(f"  Metadata: {recorder.output_dir / 'metadata.json'}")


def build_config(args) -> SimulationConfig:
    if args.config:
        return SimulationConfig.from_yaml(args.config)
    return SimulationConfig(
        width=args.width,
        height=args.height,
        depth=args.depth,
        viscosity=args.viscosity,
        diffusion_rate=args.diffusion,
        pressure_iterations=args.iterations,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Grid fluid solver")
    parser.add_argument(
        "--mode", choices=["headless", "benchmark", "record"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--config",     type=str,   default=None, help="YAML SimulationConfig")
    parser.add_argument("--width",      type=int,   default=64)
    parser.add_argument("--height",     type=int,   default=64)
    parser.add_argument("--depth",      type=int,   default=None, help="Set for a 3D grid")
    parser.add_argument("--viscosity",  type=float, default=0.0)
    parser.add_argument("--diffusion",  type=float, default=0.0)
    parser.add_argument("--iterations", type=int,   default=40, help="Pressure Jacobi sweeps")
    parser.add_argument("--dt",         type=float, default=0.1)
    parser.add_argument("--frames",     type=int,   default=100, help="Number of frames")
    parser.add_argument("--runs",       type=int,   default=3,   help="Number of recorded runs")
    parser.add_argument("--output",     type=str,   default="recordings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    config = build_config(args)
    if args.mode == "headless":
        run_headless(config, frames=args.frames, dt=args.dt)
    elif args.mode == "benchmark":
        run_benchmark(config, frames=args.frames, dt=args.dt)
    elif args.mode == "record":
        run_record(config, n_runs=args.runs, frames=args.frames, dt=args.dt, output_dir=args.output)
