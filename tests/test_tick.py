# tests/test_tick.py

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pytest

from src.capture.tick import KEY_MAPPINGS, RunRecording, TickRecord, compute_in_fall_zone, round3


def test_round3_is_half_up() -> None:
    assert round3(1.0005) == 1.001
    assert round3(2.0004) == 2.0
    assert round3(0.0125) == 0.013
    assert round3(float("nan")) == "nan"


@pytest.mark.parametrize(
    "vy, on_ground, height, expected",
    [
        (-0.08, True, 65.0, True),
        (0.0, True, 64.0, True),
        (-0.08, True, 65.5, False),
        (0.1, True, 64.0, False),
        (-0.5, False, 64.0, False),
    ],
)
def test_fall_zone_flag(vy: float, on_ground: bool, height: float, expected: bool) -> None:
    assert compute_in_fall_zone(vy, on_ground, height, target_height=64) is expected


def test_from_flags_builds_record(make_tick) -> None:
    t = make_tick(pressed=["forward", "jump"], velocity=(0.1, -0.0784, 0.2), height=65.0)
    assert t.action_mask == 17
    assert t.input_flags == [True, False, False, False, True, False, False]
    assert t.grid_shape == (2, 3)
    assert t.in_fall_zone is True
    assert t.distance_grid.dtype == np.float32
    assert t.category_grid.dtype == np.int32
    assert "input=FJ" in t.short_str()


def test_from_flags_requires_seven_flags() -> None:
    with pytest.raises(ValueError):
        TickRecord.from_flags(
            [True] * 6,
            yaw=0.0,
            velocity=(0.0, 0.0, 0.0),
            on_ground=True,
            collided_horizontal=False,
            collided_vertical=False,
            height=64.0,
            distance_grid=np.zeros((1, 1)),
            category_grid=np.zeros((1, 1)),
            target_height=64,
        )


def test_mismatched_grids_report_bad_shape(make_tick) -> None:
    t = make_tick()
    bad = TickRecord(
        *t.input_flags,
        yaw=t.yaw,
        velocity_x=0.0,
        velocity_y=0.0,
        velocity_z=0.0,
        on_ground=True,
        collided_horizontal=False,
        collided_vertical=False,
        height=64.0,
        distance_grid=np.zeros((2, 3), dtype=np.float32),
        category_grid=np.zeros((3, 2), dtype=np.int32),
    )
    assert bad.grid_shape == (-1, -1)


def test_json_roundtrip_uses_short_keys(make_tick) -> None:
    t = make_tick(pressed=["sprint"], yaw=12.34567, velocity=(0.12345, 0.0, -0.5), distance=3.14159, category=4)
    d = t.to_json_dict()
    assert set(d) == {"f", "l", "r", "b", "j", "n", "s", "y", "vx", "vy", "vz", "g", "ch", "cv", "py", "vd", "vb", "fz"}
    assert d["y"] == 12.346
    assert d["vd"][0][0] == 3.142
    assert d["vb"] == [[4, 4, 4], [4, 4, 4]]

    back = TickRecord.from_json_dict(json.loads(json.dumps(d)), index=0)
    assert back.sprint is True and back.forward is False
    assert back.grid_shape == (2, 3)
    assert back.velocity_x == pytest.approx(0.123)
    assert int(back.category_grid[1, 2]) == 4


def test_ragged_grid_loads_as_empty(make_tick, caplog: pytest.LogCaptureFixture) -> None:
    d = make_tick().to_json_dict()
    d["vd"] = [[1.0, 2.0, 3.0], [1.0, 2.0]]
    with caplog.at_level(logging.WARNING):
        t = TickRecord.from_json_dict(d, index=7)
    assert t.distance_grid.shape == (0, 0)
    assert t.grid_shape == (-1, -1)
    assert any("tick 7" in r.getMessage() for r in caplog.records)


def test_malformed_tick_raises(make_tick) -> None:
    d = make_tick().to_json_dict()
    del d["y"]
    with pytest.raises(ValueError, match="tick 3"):
        TickRecord.from_json_dict(d, index=3)


@pytest.mark.parametrize("key, value", [("f", "false"), ("g", "false"), ("fz", "true"), ("ch", 1), ("j", None)])
def test_non_boolean_flag_is_malformed(make_tick, key: str, value: object) -> None:
    d = make_tick().to_json_dict()
    d[key] = value
    with pytest.raises(ValueError, match=f"tick 4: .*'{key}' must be a JSON boolean"):
        TickRecord.from_json_dict(d, index=4)


def test_missing_optional_flags_default_to_false(make_tick) -> None:
    d = make_tick(on_ground=True).to_json_dict()
    for key in ("f", "ch", "cv", "fz"):
        del d[key]
    t = TickRecord.from_json_dict(d, index=0)
    assert t.on_ground is True
    assert t.input_flags[0] is False
    assert not (t.collided_horizontal or t.collided_vertical or t.in_fall_zone)


def test_filter_drops_ticks_after_last_ground(make_tick, make_run) -> None:
    pattern = [True, True, False, True, False, False]
    run = make_run([make_tick(on_ground=g, yaw=float(i)) for i, g in enumerate(pattern)])
    filtered = run.filtered_to_last_ground()
    assert [t.yaw for t in filtered.ticks] == [0.0, 1.0, 2.0, 3.0]
    assert len(run.ticks) == 6


def test_filter_is_noop_without_trailing_air(make_tick, make_run) -> None:
    grounded = make_run([make_tick(on_ground=True) for _ in range(3)])
    assert grounded.filtered_to_last_ground() is grounded

    airborne = make_run([make_tick(on_ground=False) for _ in range(3)])
    assert len(airborne.filtered_to_last_ground().ticks) == 3


def test_run_save_load(tmp_path: Path, make_tick, make_run) -> None:
    run = make_run([make_tick(yaw=float(i)) for i in range(4)], target_yaw=-45.0, target_height=64)
    path = run.save(tmp_path / "runs" / "run.json")

    assert path.exists()
    assert not (tmp_path / "runs" / "run.json.tmp").exists()
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["map"] == KEY_MAPPINGS
    assert raw["tfy"] == 64

    back = RunRecording.load(path)
    assert back.target_yaw == -45.0
    assert back.target_height == 64
    assert back.grid_shape == (2, 3)
    assert [t.yaw for t in back.ticks] == [0.0, 1.0, 2.0, 3.0]


def test_run_missing_keys_rejected() -> None:
    with pytest.raises(ValueError):
        RunRecording.from_json_dict({"ty": 0.0, "d": []})
