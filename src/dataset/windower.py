"""
Sliding history windows over a run's ticks.

For anchor t in [K-1, N-1] the window holds ticks [t-K+1 .. t], oldest
first. The action label comes from the anchor (last) tick only.

Grid dimensions are inferred from the first tick of the run. A tick whose
grids do not match invalidates only the windows that contain it; those
windows are skipped and counted, never replaced.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from src.capture.tick import TickRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Window:
    anchor: int
    ticks: Sequence[TickRecord]

    @property
    def last(self) -> TickRecord:
        return self.ticks[-1]

    @property
    def action_mask(self) -> int:
        return self.last.action_mask


@dataclass
class WindowStats:
    total_ticks: int = 0
    k: int = 0
    grid_shape: tuple[int, int] | None = None
    candidates: int = 0
    emitted: int = 0
    dropped: int = 0
    bad_ticks: int = 0
    insufficient: bool = False


def infer_grid_shape(ticks: Sequence[TickRecord]) -> tuple[int, int] | None:
    """
    (rows, cols) of the first tick, or None when it has no usable grid.
    """
    if not ticks:
        return None
    rows, cols = ticks[0].grid_shape
    if rows <= 0 or cols <= 0:
        return None
    return rows, cols


def slide(ticks: Sequence[TickRecord], k: int, stats: WindowStats | None = None) -> Iterator[Window]:
    """
    Lazily yield valid windows of length k.

    Fewer than k ticks yields nothing (insufficient data is not an error).
    Pass a WindowStats to collect counts; it is filled as the iterator runs.
    """
    if k <= 0:
        raise ValueError(f"window length k must be > 0, got {k}")

    st = stats if stats is not None else WindowStats()
    st.total_ticks = len(ticks)
    st.k = k

    if len(ticks) < k:
        st.insufficient = True
        logger.warning("Not enough ticks (%d) for sequence length %d", len(ticks), k)
        return

    expected = infer_grid_shape(ticks)
    st.grid_shape = expected
    if expected is None:
        logger.error("First tick has no usable vision grid; no windows produced")
        st.candidates = len(ticks) - k + 1
        st.dropped = st.candidates
        return

    # Precompute per-tick validity once; each bad tick poisons up to k windows.
    valid = [t.grid_shape == expected for t in ticks]
    st.bad_ticks = valid.count(False)

    last_bad = -1
    for t in range(k - 1):
        if not valid[t]:
            last_bad = t

    for t in range(k - 1, len(ticks)):
        st.candidates += 1
        if not valid[t]:
            last_bad = t
        if last_bad >= t - k + 1:
            st.dropped += 1
            logger.warning(
                "Grid dimensions mismatch at tick index %d (expected %dx%d); skipping window anchored at %d",
                last_bad,
                expected[1],
                expected[0],
                t,
            )
            continue
        st.emitted += 1
        yield Window(anchor=t, ticks=ticks[t - k + 1 : t + 1])


def collect(ticks: Sequence[TickRecord], k: int) -> tuple[list[Window], WindowStats]:
    """
    Eager variant of slide(); returns (windows, stats).
    """
    stats = WindowStats()
    windows = list(slide(ticks, k, stats))
    return windows, stats
