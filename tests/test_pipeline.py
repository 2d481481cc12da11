# tests/test_pipeline.py
"""
Run -> artifact + sidecar, including the cases that must produce no files.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from src.capture.categories import default_category_table
from src.capture.controller import ScriptedController
from src.capture.grid_sampler import GridConfig, GridSampler
from src.capture.kinematics import AgentState, step
from src.capture.recorder import TickRecorder
from src.capture.tick import RunRecording
from src.capture.voxel_world import flat_course
from src.dataset.codec import read_sequences
from src.dataset.pipeline import encode_run
from src.dataset.quantizer import proprio_vector
from src.dataset.run_meta import RunMeta
from src.dataset.session import NormalizerConfig, SessionContext
from src.utils.paths import build_artifact_paths


def test_encode_run_writes_artifact_and_sidecar(tmp_path: Path, make_tick, make_run) -> None:
    ticks = [make_tick(yaw=float(i * 10), height=64.0 + i, pressed=["forward"] if i % 2 else []) for i in range(6)]
    run = make_run(ticks, target_yaw=0.0, target_height=64)
    paths = build_artifact_paths(tmp_path, "run")

    summary = encode_run(run, paths, k=4)

    assert summary.windows_written == 3
    assert summary.artifact == paths.artifact and paths.artifact.exists()
    assert summary.sidecar == paths.sidecar and paths.sidecar.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["run.pkseq", "run.pkseq.meta.json"]

    result = read_sequences(paths.artifact)
    assert result.recovered == 3
    assert (result.header.width, result.header.height, result.header.k) == (3, 2, 4)
    ctx = SessionContext.from_run(run)
    assert np.allclose(result.windows[0].proprio_last, proprio_vector(ticks[3], ctx))
    assert [w.action for w in result.windows] == [1, 0, 1]

    meta = RunMeta.load(paths.sidecar)
    assert meta.frame_count == 3
    assert (meta.width, meta.height, meta.k) == (3, 2, 4)
    assert meta.target_height == 64
    assert meta.format == "pkdseq"


def test_too_few_ticks_writes_nothing(tmp_path: Path, make_tick, make_run) -> None:
    run = make_run([make_tick() for _ in range(3)])
    summary = encode_run(run, build_artifact_paths(tmp_path, "short"), k=4)
    assert summary.windows_written == 0
    assert summary.artifact is None
    assert summary.stats.insufficient
    assert list(tmp_path.iterdir()) == []


def test_all_windows_dropped_writes_nothing(tmp_path: Path, ticks_with_bad, make_run) -> None:
    run = make_run(ticks_with_bad(5, bad=[2]))
    summary = encode_run(run, build_artifact_paths(tmp_path, "bad"), k=4)
    assert summary.windows_written == 0
    assert summary.stats.dropped == 2
    assert list(tmp_path.iterdir()) == []


def test_json_debug_artifact(tmp_path: Path, ticks_with_bad, make_run) -> None:
    run = make_run(ticks_with_bad(7, bad=[2]))
    paths = build_artifact_paths(tmp_path, "dbg", json_debug=True)
    summary = encode_run(run, paths, k=4, json_debug=True)
    assert summary.windows_written == 1
    assert paths.artifact.name == "dbg.seq.json"

    doc = json.loads(paths.artifact.read_text(encoding="utf-8"))
    assert doc["count"] == 1
    assert RunMeta.load(paths.sidecar).format == "pkdseq-json"
    assert read_sequences(paths.artifact).recovered == 1


def test_sidecar_roundtrip_and_denormalization(tmp_path: Path) -> None:
    meta = RunMeta(
        target_yaw=10.0,
        target_height=64,
        width=36,
        height=54,
        k=4,
        frame_count=12,
        normalizer=NormalizerConfig(max_rel_height=8.0),
        source="mc.example.org",
    )
    path = meta.save(tmp_path / "a.pkseq.meta.json")
    back = RunMeta.load(path)
    assert back.normalizer == meta.normalizer
    assert back.categories == default_category_table()
    assert (back.width, back.height, back.k, back.frame_count) == (36, 54, 4, 12)
    assert back.created_utc.endswith("Z")
    assert back.denormalize_rel_height(0.5) == pytest.approx(68.0)
    assert back.denormalize_yaw(0.5) == pytest.approx(100.0)
    assert back.session.target_yaw == 10.0

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["proprio_layout"][3] == "rel_yaw"
    del raw["k"]
    with pytest.raises(ValueError):
        RunMeta.from_json_dict(raw)


def test_synthetic_run_to_artifact(tmp_path: Path) -> None:
    world = flat_course()
    sampler = GridSampler(world, config=GridConfig(width=5, horizontal_fov_deg=120.0, vertical_fov_deg=60.0, max_range=64.0))
    rec = TickRecorder(sampler)
    ctl = ScriptedController()
    state = AgentState(x=0.5, y=65.0, z=2.5, yaw=0.0)
    rec.set_target_height(state)
    rec.start(state)
    for tick in range(30):
        flags = ctl.flags_for_tick(tick)
        rec.record(state, flags)
        state = step(world, state, flags)
    run = rec.stop()
    assert run is not None

    run_path = run.save(tmp_path / "runs" / "synthetic.json")
    loaded = RunRecording.load(run_path)
    paths = build_artifact_paths(tmp_path / "seq", "synthetic")
    summary = encode_run(loaded, paths, k=4)

    assert summary.windows_written == len(loaded.ticks) - 3
    result = read_sequences(paths.artifact)
    assert result.recovered == summary.windows_written
    assert result.header.width == 5 and result.header.height == 3
    # the centre column looks straight down the lane at the ladder wall
    assert any(int(w.cat_last.max()) > 0 for w in result.windows)
