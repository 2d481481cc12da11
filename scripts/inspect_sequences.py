from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from src.capture.action_space import ACTION_KEYS
from src.capture.categories import category_display_name
from src.dataset.codec import DecodeResult, read_sequences
from src.dataset.quantizer import PROPRIO_LAYOUT
from src.dataset.run_meta import RunMeta
from src.utils.paths import sidecar_path_for


def windows_frame(result: DecodeResult) -> pd.DataFrame:
    """
    One row per recovered window: last-tick proprio, action bits, and a few
    grid summaries.
    """
    rows = []
    for w in result.windows:
        row: dict[str, object] = {"window": w.index, "action_byte": w.action}
        row.update({f"p_{name}": float(v) for name, v in zip(PROPRIO_LAYOUT, w.proprio_last)})
        row.update({f"a_{k}": bool(v) for k, v in w.actions.items()})
        row["dist_min_blocks"] = float(w.dist_last.min()) / 10.0
        row["dist_mean_blocks"] = float(w.dist_last.mean()) / 10.0
        row["special_cells"] = int(np.count_nonzero(w.cat_last))
        rows.append(row)
    cols = (
        ["window", "action_byte"]
        + [f"p_{n}" for n in PROPRIO_LAYOUT]
        + [f"a_{k}" for k in ACTION_KEYS]
        + ["dist_min_blocks", "dist_mean_blocks", "special_cells"]
    )
    return pd.DataFrame(rows, columns=cols)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Decode a sequence artifact and report its contents.")
    ap.add_argument("artifact", type=Path)
    ap.add_argument("--csv", type=Path, default=None, help="Optional per-window CSV export.")
    ap.add_argument("--window", type=int, default=None, help="Print details for one window index.")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        result = read_sequences(args.artifact)
    except Exception as e:
        print(f"FAIL: {type(e).__name__}: {e}", file=sys.stderr)
        return 2

    h = result.header
    print("OK")
    print("artifact:", str(args.artifact))
    print("version:", h.version, "grid:", f"{h.width}x{h.height}", "k:", h.k)
    print("declared:", result.declared, "recovered:", result.recovered, "dropped:", result.dropped)

    sidecar = sidecar_path_for(args.artifact)
    if sidecar.exists():
        try:
            meta = RunMeta.load(sidecar)
            print("target_yaw:", meta.target_yaw, "target_height:", meta.target_height)
            if (meta.width, meta.height, meta.k) != (h.width, h.height, h.k):
                print("WARN: sidecar geometry does not match artifact header", file=sys.stderr)
        except Exception as e:
            print(f"WARN: unreadable sidecar {sidecar}: {type(e).__name__}: {e}", file=sys.stderr)

    df = windows_frame(result)
    if not df.empty:
        action_cols = [f"a_{k}" for k in ACTION_KEYS]
        print("action_rates:")
        print(df[action_cols].mean().round(3).to_string())

    if args.window is not None:
        if not (0 <= args.window < result.recovered):
            print(f"FAIL: window {args.window} out of range 0..{result.recovered - 1}", file=sys.stderr)
            return 2
        w = result.windows[args.window]
        pressed = [k for k, v in w.actions.items() if v]
        print(f"window {w.index}: actions={pressed}")
        for name, v in zip(PROPRIO_LAYOUT, w.proprio_last):
            print(f"  {name}: {float(v):+.3f}")
        cats, counts = np.unique(w.cat_last, return_counts=True)
        for c, n in zip(cats.tolist(), counts.tolist()):
            print(f"  {category_display_name(c)}: {n} cells")

    if args.csv is not None:
        args.csv.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.csv, index=False)
        print("csv:", str(args.csv), "rows:", len(df))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
