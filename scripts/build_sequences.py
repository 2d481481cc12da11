from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from src.capture.categories import CategoryTable, default_category_table
from src.capture.tick import RunRecording
from src.dataset.pipeline import encode_run
from src.dataset.session import NormalizerConfig
from src.utils.paths import build_artifact_paths, ensure_dir


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Convert recorded run JSON files into windowed sequence artifacts.")
    p.add_argument("inputs", nargs="+", type=str, help="Run JSON files (or directories containing them).")
    p.add_argument("--k", type=int, default=4, help="Ticks per window (default: 4).")
    p.add_argument("--max-velocity", type=float, default=1.0, help="Velocity (blocks/tick) mapped to +/-1.")
    p.add_argument("--max-rel-height", type=float, default=10.0, help="Relative height (blocks) mapped to +/-1.")
    p.add_argument("--max-distance", type=float, default=25.5, help="Distance (blocks) that saturates a byte.")
    p.add_argument("--categories", type=str, default="", help="Optional category table JSON.")
    p.add_argument("--output-dir", type=str, default=str(Path("data") / "sequences"))
    p.add_argument("--json-debug", action="store_true", help="Write the nested-array JSON debug format instead.")
    return p.parse_args(argv)


def _collect_inputs(items: list[str]) -> list[Path]:
    out: list[Path] = []
    for item in items:
        p = Path(item).resolve()
        if p.is_dir():
            out.extend(sorted(x for x in p.glob("*.json") if not x.name.endswith(".meta.json")))
        else:
            out.append(p)
    return out


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        normalizer = NormalizerConfig(
            max_velocity=args.max_velocity,
            max_rel_height=args.max_rel_height,
            max_distance_blocks=args.max_distance,
        )
        categories = CategoryTable.load(Path(args.categories)) if args.categories else default_category_table()
        if not (0 < args.k <= 255):
            raise ValueError(f"--k must be in 1..255, got {args.k}")
    except Exception as e:
        print(f"FAIL: {type(e).__name__}: {e}", file=sys.stderr)
        return 2

    inputs = _collect_inputs(args.inputs)
    if not inputs:
        print("FAIL: no run files found", file=sys.stderr)
        return 2

    out_dir = Path(args.output_dir).resolve()
    ensure_dir(out_dir)

    failures = 0
    written = 0
    for path in inputs:
        print(f"Processing file: {path}")
        try:
            run = RunRecording.load(path)
            paths = build_artifact_paths(out_dir, path.stem, json_debug=args.json_debug)
            summary = encode_run(
                run,
                paths,
                k=args.k,
                normalizer=normalizer,
                categories=categories,
                json_debug=args.json_debug,
            )
        except Exception as e:
            failures += 1
            print(f"FAIL: {path.name}: {type(e).__name__}: {e}", file=sys.stderr)
            continue

        st = summary.stats
        if summary.artifact is None:
            print(f"SKIP: {path.name}: no valid windows (ticks={st.total_ticks}, k={st.k})")
            continue
        written += 1
        print("  artifact:", str(summary.artifact))
        print("  sidecar:", str(summary.sidecar))
        print("  windows:", summary.windows_written, "dropped:", st.dropped, "bad_ticks:", st.bad_ticks)

    print("OK" if failures == 0 else "DONE_WITH_FAILURES")
    print("inputs:", len(inputs), "artifacts:", written, "failures:", failures)
    return 0 if failures == 0 else 2


if __name__ == "__main__":
    raise SystemExit(main())
