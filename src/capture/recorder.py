"""
Recording session driver.

The host environment calls record() once per simulation tick while a
recording is active. Session-constant values (target yaw, target height)
live on the recorder instance and are handed to the resulting RunRecording,
never to module-level state, so several recorders can run side by side.

Lifecycle:
  rec.set_target_height(state)   # floor of the agent's current y
  rec.start(state)               # target yaw = agent yaw at start
  rec.record(state, flags)       # once per tick
  run = rec.stop()               # trailing airborne ticks filtered
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence

from src.capture.grid_sampler import GridSampler
from src.capture.kinematics import AgentState
from src.capture.tick import RunRecording, TickRecord
from src.utils.time_id import now_millis

logger = logging.getLogger(__name__)

WARNING_INTERVAL_TICKS = 100
WARNING_DISTANCE_THRESHOLD = 8.0


class TickRecorder:
    def __init__(
        self,
        sampler: GridSampler,
        source: str = "Singleplayer",
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.sampler = sampler
        self.source = source
        self._clock = clock

        self._recording = False
        self._ticks: list[TickRecord] = []
        self._target_yaw: float | None = None
        self._target_height: int | None = None
        self._start_millis = 0
        self._tick_counter = 0
        self._last_warning_tick = 0
        self.warnings_issued = 0

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def target_height(self) -> int | None:
        return self._target_height

    @property
    def target_yaw(self) -> float | None:
        return self._target_yaw

    @property
    def tick_count(self) -> int:
        return len(self._ticks)

    def set_target_height(self, state: AgentState) -> int:
        if self._recording:
            raise RuntimeError("Cannot set target height while recording is active")
        self._target_height = int(math.floor(state.y))
        logger.info("Target height set: %d", self._target_height)
        return self._target_height

    def start(self, state: AgentState) -> None:
        if self._recording:
            raise RuntimeError("Recording already active")
        if self._target_height is None:
            raise RuntimeError("Cannot start recording: target height not set")

        self._target_yaw = float(state.yaw)
        self._ticks = []
        self._tick_counter = 0
        self._last_warning_tick = 0
        self._start_millis = self._clock()
        self._recording = True
        logger.info(
            "Recording started. Target yaw: %.1f, target height: %d", self._target_yaw, self._target_height
        )

    def record(self, state: AgentState, flags: Sequence[bool]) -> TickRecord:
        if not self._recording or self._target_height is None:
            raise RuntimeError("record() called while not recording")

        dist, cat = self.sampler.sample(state.eye_position, state.yaw, state.pitch)
        tick = TickRecord.from_flags(
            flags,
            yaw=state.yaw,
            velocity=state.velocity,
            on_ground=state.on_ground,
            collided_horizontal=state.collided_horizontal,
            collided_vertical=state.collided_vertical,
            height=state.y,
            distance_grid=dist,
            category_grid=cat,
            target_height=self._target_height,
        )
        self._ticks.append(tick)
        self._tick_counter += 1
        self._check_fall_zone_distance(state)
        return tick

    def stop(self, save: bool = True) -> RunRecording | None:
        """
        End the recording. Returns the filtered run when save is True and at
        least one tick was captured, otherwise None.
        """
        if not self._recording:
            return None

        self._recording = False
        logger.info("Recording stopped. %d ticks captured.", len(self._ticks))

        run: RunRecording | None = None
        if save and self._ticks:
            assert self._target_yaw is not None and self._target_height is not None
            run = RunRecording(
                start_millis=self._start_millis,
                stop_millis=self._clock(),
                source=self.source,
                target_yaw=self._target_yaw,
                target_height=self._target_height,
                ticks=list(self._ticks),
            ).filtered_to_last_ground()
        elif save:
            logger.info("No data recorded.")

        self._ticks = []
        self._start_millis = 0
        self._target_yaw = None
        return run

    def _check_fall_zone_distance(self, state: AgentState) -> None:
        assert self._target_height is not None
        if self._tick_counter < self._last_warning_tick + WARNING_INTERVAL_TICKS:
            return
        gap = abs(state.y - self._target_height)
        if gap >= WARNING_DISTANCE_THRESHOLD:
            logger.warning(
                "Vertical distance to fall zone (%.1f) >= %.1f", gap, WARNING_DISTANCE_THRESHOLD
            )
            self._last_warning_tick = self._tick_counter
            self.warnings_issued += 1
