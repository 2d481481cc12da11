# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable, Iterable

import numpy as np
import pytest

from src.capture.action_space import ACTION_LABELS
from src.capture.tick import RunRecording, TickRecord


def build_tick(
    pressed: Iterable[str] = (),
    yaw: float = 0.0,
    velocity: tuple[float, float, float] = (0.0, 0.0, 0.0),
    on_ground: bool = True,
    height: float = 64.0,
    shape: tuple[int, int] = (2, 3),
    distance: float = 1.0,
    category: int = 0,
    target_height: int = 64,
) -> TickRecord:
    pressed_set = {p.upper() for p in pressed}
    flags = [lab in pressed_set for lab in ACTION_LABELS]
    return TickRecord.from_flags(
        flags,
        yaw=yaw,
        velocity=velocity,
        on_ground=on_ground,
        collided_horizontal=False,
        collided_vertical=on_ground,
        height=height,
        distance_grid=np.full(shape, distance, dtype=np.float32),
        category_grid=np.full(shape, category, dtype=np.int32),
        target_height=target_height,
    )


def build_run(ticks: list[TickRecord], target_yaw: float = 0.0, target_height: int = 64) -> RunRecording:
    return RunRecording(
        start_millis=1_700_000_000_000,
        stop_millis=1_700_000_010_000,
        source="Singleplayer",
        target_yaw=target_yaw,
        target_height=target_height,
        ticks=ticks,
    )


@pytest.fixture
def make_tick() -> Callable[..., TickRecord]:
    return build_tick


@pytest.fixture
def make_run() -> Callable[..., RunRecording]:
    return build_run


@pytest.fixture
def ticks_with_bad(make_tick) -> Callable[[int, Iterable[int]], list[TickRecord]]:
    """
    n ticks with a (2, 3) grid, except the given indices which get (2, 4).
    Tick i has yaw == i so windows can be identified by content.
    """

    def _build(n: int, bad: Iterable[int] = ()) -> list[TickRecord]:
        bad_set = set(bad)
        return [
            make_tick(yaw=float(i), distance=float(i), shape=(2, 4) if i in bad_set else (2, 3))
            for i in range(n)
        ]

    return _build
