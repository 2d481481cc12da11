from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from src.capture.controller import ScriptedController
from src.capture.grid_sampler import GridConfig, GridSampler
from src.capture.kinematics import AgentState, step
from src.capture.recorder import TickRecorder
from src.capture.voxel_world import flat_course
from src.utils.paths import ensure_dir
from src.utils.time_id import make_run_name


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Record a synthetic parkour run in an in-memory voxel course.")
    p.add_argument("--ticks", type=int, default=120, help="Ticks to simulate (default: 120).")
    p.add_argument("--grid-width", type=int, default=16)
    p.add_argument("--hfov", type=float, default=120.0, help="Horizontal FOV in degrees.")
    p.add_argument("--vfov", type=float, default=90.0, help="Vertical FOV in degrees.")
    p.add_argument("--max-range", type=float, default=32.0)
    p.add_argument("--floor-y", type=int, default=64)
    p.add_argument("--yaw", type=float, default=0.0, help="Initial yaw (0 faces +z, down the lane).")
    p.add_argument("--source", type=str, default="Synthetic")
    p.add_argument("--output-dir", type=str, default=str(Path("data") / "runs"))
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.ticks <= 0:
            raise ValueError(f"--ticks must be > 0, got {args.ticks}")

        world = flat_course(floor_y=args.floor_y)
        config = GridConfig(
            width=args.grid_width,
            horizontal_fov_deg=args.hfov,
            vertical_fov_deg=args.vfov,
            max_range=args.max_range,
        )
        sampler = GridSampler(world, config=config)
        recorder = TickRecorder(sampler, source=args.source)
        controller = ScriptedController()

        state = AgentState(x=0.5, y=float(args.floor_y + 1), z=2.5, yaw=args.yaw)
        recorder.set_target_height(state)
        recorder.start(state)

        for tick in range(args.ticks):
            flags = controller.flags_for_tick(tick)
            recorder.record(state, flags)
            state = step(world, state, flags)

        run = recorder.stop(save=True)
        if run is None:
            raise RuntimeError("No ticks were recorded; refusing to write an empty run.")

        out_dir = Path(args.output_dir).resolve()
        ensure_dir(out_dir)
        out_path = out_dir / f"{make_run_name(args.source, run.start_millis)}.json"
        run.save(out_path)

    except Exception as e:
        print("FAILED:", type(e).__name__, str(e), file=sys.stderr)
        return 2

    print("OK")
    print("run:", str(out_path))
    print("grid:", f"{config.width}x{config.grid_height}")
    print("ticks_recorded:", len(run.ticks))
    print("target_height:", run.target_height)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
