from __future__ import annotations

import argparse
import json
import math
import sys
from pathlib import Path
from typing import Any

from src.capture.tick import INPUT_KEYS, KEY_MAPPINGS

REQUIRED_RUN_KEYS = ["ts", "te", "ip", "ty", "tfy", "d"]
REQUIRED_TICK_KEYS = INPUT_KEYS + ["y", "vx", "vy", "vz", "g", "ch", "cv", "py", "vd", "vb", "fz"]


def _fail(msg: str) -> None:
    raise ValueError(msg)


def _check_float(name: str, v: Any) -> float:
    try:
        x = float(v)
    except (TypeError, ValueError):
        _fail(f"{name} must be a number, got {v!r}")
    if not math.isfinite(x):
        _fail(f"{name} must be finite, got {v!r}")
    return x


def _check_bool(name: str, v: Any) -> None:
    if not isinstance(v, bool):
        _fail(f"{name} must be a boolean, got {v!r}")


def _grid_shape(name: str, grid: Any) -> tuple[int, int]:
    if not isinstance(grid, list) or not grid or not all(isinstance(r, list) for r in grid):
        _fail(f"{name} must be a non-empty list of rows")
    widths = {len(r) for r in grid}
    if len(widths) != 1:
        _fail(f"{name} is ragged (row widths {sorted(widths)})")
    return len(grid), widths.pop()


def validate_run(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Returns a small report dict; raises ValueError on the first structural
    problem. Grid-shape mismatches are counted, not fatal (the dataset builder
    drops the affected windows).
    """
    missing = [k for k in REQUIRED_RUN_KEYS if k not in raw]
    if missing:
        _fail(f"run missing keys: {missing}")

    _check_float("ty", raw["ty"])
    if not isinstance(raw["tfy"], int):
        _fail(f"tfy must be an integer, got {raw['tfy']!r}")
    if int(raw["te"]) < int(raw["ts"]):
        _fail(f"te ({raw['te']}) precedes ts ({raw['ts']})")

    mapping = raw.get("map")
    if mapping is not None and mapping != KEY_MAPPINGS:
        unknown = sorted(set(mapping) - set(KEY_MAPPINGS))
        if unknown:
            _fail(f"map has unknown keys: {unknown}")

    ticks = raw["d"]
    if not isinstance(ticks, list) or not ticks:
        _fail("d must be a non-empty list of ticks")

    shape: tuple[int, int] | None = None
    mismatched: list[int] = []
    fall_zone_ticks = 0
    for i, t in enumerate(ticks):
        if not isinstance(t, dict):
            _fail(f"tick {i}: must be an object")
        miss = [k for k in REQUIRED_TICK_KEYS if k not in t]
        if miss:
            _fail(f"tick {i}: missing keys {miss}")
        for k in INPUT_KEYS + ["g", "ch", "cv", "fz"]:
            _check_bool(f"tick {i}.{k}", t[k])
        for k in ("y", "vx", "vy", "vz", "py"):
            _check_float(f"tick {i}.{k}", t[k])

        try:
            vd = _grid_shape(f"tick {i}.vd", t["vd"])
            vb = _grid_shape(f"tick {i}.vb", t["vb"])
        except ValueError:
            mismatched.append(i)
            continue
        if shape is None:
            shape = vd
        if vd != shape or vb != shape:
            mismatched.append(i)
        if t["fz"]:
            fall_zone_ticks += 1

    if shape is None:
        _fail("no tick has a usable vision grid")

    return {
        "ticks": len(ticks),
        "grid": f"{shape[1]}x{shape[0]}",
        "mismatched_ticks": mismatched,
        "fall_zone_ticks": fall_zone_ticks,
    }


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Validate a recorded run JSON file.")
    p.add_argument("run_json", type=str, help="Path to a run file written by the recorder.")
    args = p.parse_args(argv)

    path = Path(args.run_json).resolve()
    if not path.exists():
        print(f"FAIL: run file does not exist: {path}", file=sys.stderr)
        return 2

    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            _fail("run file must be a JSON object")
        report = validate_run(raw)
    except Exception as e:
        print(f"FAIL: {type(e).__name__}: {e}", file=sys.stderr)
        return 2

    print("PASS")
    print("run:", str(path))
    for k, v in report.items():
        print(f"{k}:", v)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
