"""
Window -> fixed-point arrays.

Per tick of a window:
- distance grid: byte = clamp(round(clamp(d, 0, max_distance_blocks) * 10), 0, 255)
  i.e. tenths of a block, saturating at 255 (25.5 blocks)
- category grid: category id as one byte
- proprio vector (8 float32):
    [vx/maxV, vy/maxV, vz/maxV,             clamped to [-1, 1]
     normalize(yaw - targetYaw) / 180,       [-1, 1]
     onGround, collidedH, collidedV,         1.0 / 0.0
     clamp((height - targetHeight) / maxRelHeight, -1, 1)]
Per window:
- action byte from the last tick's flags (bits 0-6, bit 7 zero)

Rounding is half-up (the capture tools were written against JavaScript's
Math.round), not numpy's half-to-even.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from src.capture.tick import TickRecord
from src.dataset.session import MAX_DISTANCE_UNITS, NormalizerConfig, SessionContext
from src.dataset.windower import Window
from src.utils.angles import clamp, relative_yaw_unit

PROPRIO_DIM = 8

PROPRIO_LAYOUT: list[str] = [
    "vel_x",
    "vel_y",
    "vel_z",
    "rel_yaw",
    "on_ground",
    "collided_h",
    "collided_v",
    "rel_height",
]


@dataclass(frozen=True, eq=False)
class QuantizedWindow:
    """
    dist:    uint8 (K, rows, cols)
    cat:     uint8 (K, rows, cols)
    proprio: float32 (K, 8)
    action:  int in 0..127
    """

    dist: np.ndarray
    cat: np.ndarray
    proprio: np.ndarray
    action: int

    @property
    def k(self) -> int:
        return int(self.dist.shape[0])

    @property
    def grid_shape(self) -> tuple[int, int]:
        return int(self.dist.shape[1]), int(self.dist.shape[2])


def quantize_distance(distance_grid: np.ndarray, max_distance_blocks: float = 25.5) -> np.ndarray:
    d = np.clip(np.asarray(distance_grid, dtype=np.float64), 0.0, max_distance_blocks)
    # NaN (unknown) distances count as open space
    d = np.where(np.isnan(d), max_distance_blocks, d)
    units = np.floor(d * 10.0 + 0.5)
    return np.clip(units, 0, MAX_DISTANCE_UNITS).astype(np.uint8)


def dequantize_distance(distance_bytes: np.ndarray) -> np.ndarray:
    return np.asarray(distance_bytes, dtype=np.float32) / 10.0


def quantize_categories(category_grid: np.ndarray) -> np.ndarray:
    """
    Category ids as bytes; out-of-range ids saturate to 0..255.
    """
    return np.clip(np.asarray(category_grid, dtype=np.int64), 0, 255).astype(np.uint8)


def proprio_vector(tick: TickRecord, ctx: SessionContext) -> np.ndarray:
    n: NormalizerConfig = ctx.normalizer
    return np.array(
        [
            clamp(tick.velocity_x / n.max_velocity, -1.0, 1.0),
            clamp(tick.velocity_y / n.max_velocity, -1.0, 1.0),
            clamp(tick.velocity_z / n.max_velocity, -1.0, 1.0),
            relative_yaw_unit(tick.yaw, ctx.target_yaw),
            1.0 if tick.on_ground else 0.0,
            1.0 if tick.collided_horizontal else 0.0,
            1.0 if tick.collided_vertical else 0.0,
            clamp((tick.height - ctx.target_height) / n.max_rel_height, -1.0, 1.0),
        ],
        dtype=np.float32,
    )


def action_byte(tick: TickRecord) -> int:
    mask = tick.action_mask
    return mask & 0x7F


def quantize_window(window: Window, ctx: SessionContext) -> QuantizedWindow:
    max_d = ctx.normalizer.max_distance_blocks
    dist = np.stack([quantize_distance(t.distance_grid, max_d) for t in window.ticks], axis=0)
    cat = np.stack([quantize_categories(t.category_grid) for t in window.ticks], axis=0)
    proprio = np.stack([proprio_vector(t, ctx) for t in window.ticks], axis=0)
    return QuantizedWindow(dist=dist, cat=cat, proprio=proprio, action=action_byte(window.last))
