"""
Run -> windows -> quantized windows -> artifact + sidecar.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from src.capture.categories import CategoryTable, default_category_table
from src.capture.tick import RunRecording
from src.dataset.codec import SequenceWriter, open_writer
from src.dataset.quantizer import QuantizedWindow, quantize_window
from src.dataset.run_meta import RunMeta
from src.dataset.session import NormalizerConfig, SessionContext
from src.dataset.windower import WindowStats, infer_grid_shape, slide
from src.utils.paths import ArtifactPaths, remove_if_exists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildSummary:
    windows_written: int
    stats: WindowStats
    artifact: Path | None
    sidecar: Path | None


def quantized_windows(run: RunRecording, k: int, ctx: SessionContext, stats: WindowStats) -> Iterator[QuantizedWindow]:
    for window in slide(run.ticks, k, stats):
        yield quantize_window(window, ctx)


def encode_run(
    run: RunRecording,
    paths: ArtifactPaths,
    k: int,
    normalizer: NormalizerConfig | None = None,
    categories: CategoryTable | None = None,
    json_debug: bool = False,
) -> BuildSummary:
    """
    Encode one run. Produces the artifact and its sidecar, or neither.

    A run that yields no valid windows produces no files (not an error).
    """
    if k <= 0:
        raise ValueError(f"window length k must be > 0, got {k}")
    ctx = SessionContext.from_run(run, normalizer)
    stats = WindowStats()

    shape = infer_grid_shape(run.ticks)
    if shape is None or len(run.ticks) < k:
        # slide() fills the stats and logs the reason
        for _ in slide(run.ticks, k, stats):
            pass
        logger.warning("No valid sequences generated; artifact will not be created")
        return BuildSummary(windows_written=0, stats=stats, artifact=None, sidecar=None)

    rows, cols = shape
    writer: SequenceWriter = open_writer(paths.artifact, width=cols, height=rows, k=k, json_debug=json_debug)
    try:
        writer.write_all(quantized_windows(run, k, ctx, stats))
    except BaseException:
        writer.abort()
        raise

    if writer.count == 0:
        writer.abort()
        logger.warning("No valid sequences generated; artifact will not be created")
        return BuildSummary(windows_written=0, stats=stats, artifact=None, sidecar=None)

    artifact = writer.finalize()
    meta = RunMeta(
        target_yaw=ctx.target_yaw,
        target_height=ctx.target_height,
        width=cols,
        height=rows,
        k=k,
        frame_count=writer.count,
        normalizer=ctx.normalizer,
        categories=categories or default_category_table(),
        source=run.source,
        format=writer.format_name,
        extra={
            "ticks": stats.total_ticks,
            "windows_dropped": stats.dropped,
            "bad_ticks": stats.bad_ticks,
        },
    )
    try:
        sidecar = meta.save(paths.sidecar)
    except Exception:
        remove_if_exists(artifact)
        raise

    logger.info("Generated %d sequences (%d dropped)", writer.count, stats.dropped)
    return BuildSummary(windows_written=writer.count, stats=stats, artifact=artifact, sidecar=sidecar)
