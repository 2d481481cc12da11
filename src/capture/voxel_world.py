"""
In-memory voxel world implementing WorldIntersector.

Used for tests and for synthetic runs where no game client is available.
The world is a dense numpy array of palette indices; each palette entry says
whether the block has a collision shape, an outline shape, or is a fluid.

Segment queries use voxel traversal (Amanatides & Woo): walk the voxels the
segment passes through in order of entry distance and stop at the first one
that registers as a hit for the requested shape/fluid mode.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from src.capture.categories import CategoryTable, default_category_table
from src.capture.world import FluidMode, RayHit, ShapeMode, Vec3, VoxelCoord, WorldIntersector


@dataclass(frozen=True)
class BlockType:
    name: str
    collider: bool = True
    outline: bool = True
    fluid: bool = False

    def registers(self, shape_mode: ShapeMode, fluid_mode: FluidMode) -> bool:
        if self.fluid:
            return fluid_mode is FluidMode.ANY
        if shape_mode is ShapeMode.PERMISSIVE:
            return self.outline
        return self.collider


AIR = BlockType("air", collider=False, outline=False)

DEFAULT_PALETTE: list[BlockType] = [
    AIR,
    BlockType("stone"),
    BlockType("ladder", collider=False),
    BlockType("vine", collider=False),
    BlockType("water", collider=False, outline=False, fluid=True),
    BlockType("lava", collider=False, outline=False, fluid=True),
    BlockType("cobweb", collider=False),
    BlockType("slime_block"),
    BlockType("soul_sand"),
    BlockType("ice"),
    BlockType("blue_ice"),
    BlockType("honey_block"),
    BlockType("short_grass", collider=False),
]


class VoxelWorld(WorldIntersector):
    """
    Dense voxel grid covering [origin, origin + shape) in world block coordinates.
    Anything outside the grid is air.
    """

    def __init__(
        self,
        shape: tuple[int, int, int],
        origin: VoxelCoord = (0, 0, 0),
        palette: list[BlockType] | None = None,
        categories: CategoryTable | None = None,
    ) -> None:
        if any(int(s) <= 0 for s in shape):
            raise ValueError(f"shape must be positive in every axis, got {shape}")
        self.palette: list[BlockType] = list(palette or DEFAULT_PALETTE)
        if self.palette[0].registers(ShapeMode.PERMISSIVE, FluidMode.ANY):
            raise ValueError("palette[0] must be an empty (air) block")
        self.origin = tuple(int(v) for v in origin)
        self.blocks = np.zeros(tuple(int(s) for s in shape), dtype=np.int16)
        self.categories = categories or default_category_table()
        self._name_to_idx = {b.name: i for i, b in enumerate(self.palette)}

    # -------------------------
    # Editing
    # -------------------------

    def palette_index(self, name: str) -> int:
        if name not in self._name_to_idx:
            raise ValueError(f"unknown block {name!r}; palette: {sorted(self._name_to_idx)}")
        return self._name_to_idx[name]

    def set_block(self, x: int, y: int, z: int, name: str) -> None:
        idx = self._local(x, y, z)
        if idx is None:
            raise ValueError(f"voxel ({x}, {y}, {z}) outside world bounds")
        self.blocks[idx] = self.palette_index(name)

    def fill(self, lo: VoxelCoord, hi: VoxelCoord, name: str) -> None:
        """
        Fill the inclusive box lo..hi.
        """
        ox, oy, oz = self.origin
        sx = slice(min(lo[0], hi[0]) - ox, max(lo[0], hi[0]) - ox + 1)
        sy = slice(min(lo[1], hi[1]) - oy, max(lo[1], hi[1]) - oy + 1)
        sz = slice(min(lo[2], hi[2]) - oz, max(lo[2], hi[2]) - oz + 1)
        self.blocks[sx, sy, sz] = self.palette_index(name)

    def block_at(self, voxel: VoxelCoord) -> BlockType:
        idx = self._local(*voxel)
        if idx is None:
            return self.palette[0]
        return self.palette[int(self.blocks[idx])]

    def is_solid(self, voxel: VoxelCoord) -> bool:
        return self.block_at(voxel).collider

    def category_of(self, voxel: VoxelCoord) -> int:
        block = self.block_at(voxel)
        if block is self.palette[0]:
            return self.categories.default_id
        return self.categories.category_for_name(block.name)

    # -------------------------
    # WorldIntersector
    # -------------------------

    def intersect(
        self,
        origin: Vec3,
        end: Vec3,
        shape_mode: ShapeMode,
        fluid_mode: FluidMode,
        exclude_entity: object | None = None,
    ) -> RayHit | None:
        # Entities are not modelled, so exclude_entity has nothing to filter.
        d = [end[i] - origin[i] for i in range(3)]
        length = math.sqrt(d[0] * d[0] + d[1] * d[1] + d[2] * d[2])
        if length == 0.0:
            return None
        direction = [c / length for c in d]

        voxel = [math.floor(c) for c in origin]
        step = [0, 0, 0]
        t_max = [math.inf, math.inf, math.inf]
        t_delta = [math.inf, math.inf, math.inf]
        for i in range(3):
            if direction[i] > 0.0:
                step[i] = 1
                t_max[i] = (voxel[i] + 1 - origin[i]) / direction[i]
                t_delta[i] = 1.0 / direction[i]
            elif direction[i] < 0.0:
                step[i] = -1
                t_max[i] = (origin[i] - voxel[i]) / -direction[i]
                t_delta[i] = -1.0 / direction[i]

        t = 0.0
        while t <= length:
            v = (voxel[0], voxel[1], voxel[2])
            if self.block_at(v).registers(shape_mode, fluid_mode):
                pos = (
                    origin[0] + direction[0] * t,
                    origin[1] + direction[1] * t,
                    origin[2] + direction[2] * t,
                )
                return RayHit(position=pos, voxel=v)

            axis = min(range(3), key=lambda i: t_max[i])
            t = t_max[axis]
            voxel[axis] += step[axis]
            t_max[axis] += t_delta[axis]

        return None

    # -------------------------
    # Internal helpers
    # -------------------------

    def _local(self, x: int, y: int, z: int) -> tuple[int, int, int] | None:
        lx = int(x) - self.origin[0]
        ly = int(y) - self.origin[1]
        lz = int(z) - self.origin[2]
        sx, sy, sz = self.blocks.shape
        if 0 <= lx < sx and 0 <= ly < sy and 0 <= lz < sz:
            return lx, ly, lz
        return None


def flat_course(
    length: int = 48,
    width: int = 9,
    floor_y: int = 64,
    gaps: tuple[tuple[int, int], ...] = ((14, 16), (26, 29)),
) -> VoxelWorld:
    """
    A straight parkour lane along +z: stone floor at floor_y with air gaps
    (inclusive z ranges), lava under the gaps and a ladder wall at the end.
    """
    depth = 4
    height = 12
    world = VoxelWorld(
        shape=(width, depth + height, length),
        origin=(-(width // 2), floor_y - depth + 1, 0),
    )
    x_lo = -(width // 2)
    x_hi = x_lo + width - 1
    world.fill((x_lo, floor_y - depth + 1, 0), (x_hi, floor_y, length - 1), "stone")
    for z0, z1 in gaps:
        world.fill((x_lo, floor_y - 1, z0), (x_hi, floor_y, z1), "air")
        world.fill((x_lo, floor_y - depth + 1, z0), (x_hi, floor_y - 2, z1), "lava")
    world.fill((x_lo, floor_y + 1, length - 1), (x_hi, floor_y + 6, length - 1), "ladder")
    return world
