"""
Per-tick capture records and the raw run file.

A run file is the JSON document written when a recording stops. It keeps the
compact key names of the capture client so existing recordings load as-is:

  top level: ts, te, ip, ty, tfy, map, d
  per tick:  f l r b j n s  (input flags)
             y              (yaw, degrees, unbounded)
             vx vy vz       (velocity, blocks/tick)
             g ch cv        (on ground, collided horizontally / vertically)
             py             (absolute height)
             vd vb          (distance grid, category grid; rows x cols)
             fz             (in fall zone)

Scalars are written rounded half-up to 3 decimals.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

import numpy as np

from src.capture.action_space import ACTION_LABELS, canonical_action_space
from src.utils.paths import atomic_replace, ensure_dir, remove_if_exists, tmp_path_for

logger = logging.getLogger(__name__)

# Short JSON key -> descriptive name; stored in the run file under "map".
KEY_MAPPINGS: dict[str, str] = {
    "ts": "startTimestampMillis",
    "te": "stopTimestampMillis",
    "ip": "serverIp",
    "ty": "targetBearingYaw",
    "tfy": "targetFallZoneY",
    "map": "keyMappings",
    "d": "tickDataList",
    "f": "inputForward",
    "l": "inputLeft",
    "r": "inputRight",
    "b": "inputBack",
    "j": "inputJump",
    "n": "inputSneak",
    "s": "inputSprint",
    "y": "playerYaw",
    "vx": "velocityX",
    "vy": "velocityY",
    "vz": "velocityZ",
    "g": "isOnGround",
    "ch": "isCollidedHorizontally",
    "cv": "isCollidedVertically",
    "py": "playerY",
    "vd": "visionDistanceGrid",
    "vb": "visionBlockStateGrid",
    "fz": "isInFallZone",
}

# Input flag keys in canonical action order.
INPUT_KEYS: list[str] = ["f", "l", "r", "b", "j", "n", "s"]

_EMPTY_GRID = np.zeros((0, 0), dtype=np.float32)


def round3(x: float) -> float | str:
    """
    Half-up rounding to 3 decimals. Non-finite values become their string form.
    """
    x = float(x)
    if not math.isfinite(x):
        return str(x)
    return float(Decimal(repr(x)).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP))


def compute_in_fall_zone(velocity_y: float, on_ground: bool, height: float, target_height: int) -> bool:
    """
    Landed (or standing) at or below one block above the target floor.
    """
    return velocity_y <= 0.0 and on_ground and height <= target_height + 1.0


@dataclass(frozen=True, eq=False)
class TickRecord:
    """
    One discrete simulation step.

    distance_grid and category_grid are (rows, cols); every tick of a
    session is expected to share the same shape.
    """

    forward: bool
    left: bool
    right: bool
    back: bool
    jump: bool
    sneak: bool
    sprint: bool
    yaw: float
    velocity_x: float
    velocity_y: float
    velocity_z: float
    on_ground: bool
    collided_horizontal: bool
    collided_vertical: bool
    height: float
    distance_grid: np.ndarray = field(repr=False)
    category_grid: np.ndarray = field(repr=False)
    in_fall_zone: bool = False

    @property
    def input_flags(self) -> list[bool]:
        """
        Flags in canonical action order (forward, left, right, back, jump, sneak, sprint).
        """
        return [self.forward, self.left, self.right, self.back, self.jump, self.sneak, self.sprint]

    @property
    def action_mask(self) -> int:
        return canonical_action_space().encode(self.input_flags)

    @property
    def grid_shape(self) -> tuple[int, int]:
        """
        (rows, cols) of the distance grid, or (-1, -1) if the two grids disagree.
        """
        d = self.distance_grid
        c = self.category_grid
        if d.ndim != 2 or c.ndim != 2 or d.shape != c.shape:
            return -1, -1
        return int(d.shape[0]), int(d.shape[1])

    def short_str(self) -> str:
        inputs = "".join(ch for ch, on in zip("FLRBJNS", self.input_flags) if on)
        return (
            f"TickRecord(input={inputs}, yaw={self.yaw:.1f}, "
            f"vel=({self.velocity_x:.2f},{self.velocity_y:.2f},{self.velocity_z:.2f}), "
            f"onGround={self.on_ground}, y={self.height:.2f}, fallZone={self.in_fall_zone})"
        )

    @classmethod
    def from_flags(
        cls,
        flags: Sequence[bool],
        yaw: float,
        velocity: tuple[float, float, float],
        on_ground: bool,
        collided_horizontal: bool,
        collided_vertical: bool,
        height: float,
        distance_grid: np.ndarray,
        category_grid: np.ndarray,
        target_height: int,
    ) -> TickRecord:
        if len(flags) != len(ACTION_LABELS):
            raise ValueError(f"expected {len(ACTION_LABELS)} input flags, got {len(flags)}")
        vx, vy, vz = velocity
        return cls(
            *[bool(f) for f in flags],
            yaw=float(yaw),
            velocity_x=float(vx),
            velocity_y=float(vy),
            velocity_z=float(vz),
            on_ground=bool(on_ground),
            collided_horizontal=bool(collided_horizontal),
            collided_vertical=bool(collided_vertical),
            height=float(height),
            distance_grid=np.asarray(distance_grid, dtype=np.float32),
            category_grid=np.asarray(category_grid, dtype=np.int32),
            in_fall_zone=compute_in_fall_zone(float(vy), bool(on_ground), float(height), target_height),
        )

    def to_json_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {k: bool(v) for k, v in zip(INPUT_KEYS, self.input_flags)}
        out.update(
            {
                "y": round3(self.yaw),
                "vx": round3(self.velocity_x),
                "vy": round3(self.velocity_y),
                "vz": round3(self.velocity_z),
                "g": bool(self.on_ground),
                "ch": bool(self.collided_horizontal),
                "cv": bool(self.collided_vertical),
                "py": round3(self.height),
                "vd": [[round3(v) for v in row] for row in self.distance_grid.tolist()],
                "vb": [[int(v) for v in row] for row in self.category_grid.tolist()],
                "fz": bool(self.in_fall_zone),
            }
        )
        return out

    @classmethod
    def from_json_dict(cls, d: dict[str, Any], index: int = -1) -> TickRecord:
        try:
            flags = [_flag(d, k) for k in INPUT_KEYS]
            return cls(
                *flags,
                yaw=float(d["y"]),
                velocity_x=float(d["vx"]),
                velocity_y=float(d["vy"]),
                velocity_z=float(d["vz"]),
                on_ground=_flag(d, "g", required=True),
                collided_horizontal=_flag(d, "ch"),
                collided_vertical=_flag(d, "cv"),
                height=float(d["py"]),
                distance_grid=_grid_from_json(d.get("vd"), np.float32, "vd", index),
                category_grid=_grid_from_json(d.get("vb"), np.int32, "vb", index),
                in_fall_zone=_flag(d, "fz"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"tick {index}: malformed record: {type(e).__name__}: {e}") from e


def _flag(d: dict[str, Any], key: str, required: bool = False) -> bool:
    """
    JSON booleans only; "false" or 0 in a flag slot is a malformed record.
    """
    v = d[key] if required else d.get(key, False)
    if not isinstance(v, bool):
        raise ValueError(f"{key!r} must be a JSON boolean, got {v!r}")
    return v


def _grid_from_json(raw: Any, dtype: type, key: str, index: int) -> np.ndarray:
    """
    Nested rows -> 2D array. Missing or ragged grids become an empty (0, 0)
    array so the windower can drop the windows that contain this tick
    instead of failing the whole run.
    """
    if not isinstance(raw, list) or not raw or not isinstance(raw[0], list):
        logger.warning("tick %d: missing or non-2D %r grid", index, key)
        return _EMPTY_GRID.astype(dtype)
    widths = {len(row) if isinstance(row, list) else -1 for row in raw}
    if len(widths) != 1:
        logger.warning("tick %d: ragged %r grid (row widths %s)", index, key, sorted(widths))
        return _EMPTY_GRID.astype(dtype)
    return np.asarray(raw, dtype=dtype)


@dataclass(frozen=True, eq=False)
class RunRecording:
    """
    One recorded run: the session-constant reference values plus ticks.
    """

    start_millis: int
    stop_millis: int
    source: str
    target_yaw: float
    target_height: int
    ticks: list[TickRecord]

    @property
    def grid_shape(self) -> tuple[int, int] | None:
        if not self.ticks:
            return None
        return self.ticks[0].grid_shape

    def filtered_to_last_ground(self) -> RunRecording:
        """
        Drop trailing ticks after the last on-ground tick (the fall that ends
        a failed attempt is not useful data). No-op if nothing is on ground.
        """
        last = -1
        for i in range(len(self.ticks) - 1, -1, -1):
            if self.ticks[i].on_ground:
                last = i
                break

        if last != -1 and last < len(self.ticks) - 1:
            removed = len(self.ticks) - (last + 1)
            logger.info("Filtered run: removed %d ticks after last ground contact", removed)
            return replace(self, ticks=list(self.ticks[: last + 1]))

        logger.info("No filtering needed or no ground contact found")
        return self

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "ts": int(self.start_millis),
            "te": int(self.stop_millis),
            "ip": self.source,
            "ty": round3(self.target_yaw),
            "tfy": int(self.target_height),
            "map": dict(KEY_MAPPINGS),
            "d": [t.to_json_dict() for t in self.ticks],
        }

    @classmethod
    def from_json_dict(cls, d: dict[str, Any]) -> RunRecording:
        for key in ("ty", "tfy", "d"):
            if key not in d:
                raise ValueError(f"run file missing key {key!r}")
        if not isinstance(d["d"], list):
            raise ValueError("run file 'd' must be a list of ticks")
        ticks = [TickRecord.from_json_dict(t, i) for i, t in enumerate(d["d"])]
        return cls(
            start_millis=int(d.get("ts", 0)),
            stop_millis=int(d.get("te", 0)),
            source=str(d.get("ip", "")),
            target_yaw=float(d["ty"]),
            target_height=int(d["tfy"]),
            ticks=ticks,
        )

    def save(self, path: Path) -> Path:
        """
        Write the run JSON via a .tmp file so a failed write never leaves a
        half-written run behind.
        """
        path = Path(path)
        ensure_dir(path.parent)
        tmp = tmp_path_for(path)
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(self.to_json_dict(), f, separators=(",", ":"))
            atomic_replace(tmp, path)
        except Exception:
            remove_if_exists(tmp)
            raise
        logger.info("Run saved to %s (%d ticks)", path, len(self.ticks))
        return path

    @classmethod
    def load(cls, path: Path) -> RunRecording:
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"{path}: run file must be a JSON object")
        return cls.from_json_dict(raw)
