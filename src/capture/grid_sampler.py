"""
Vision grid sampling.

For every cell of a gridHeight x gridWidth grid a ray is cast from the
viewpoint; the cell records the hit distance and the hit-surface category.

Ray layout:
- The horizontal FOV is split into gridWidth equal cells, the vertical FOV
  into gridHeight equal cells; each ray goes through the centre of its cell.
- Pitch is fixed at zero by default (the grid follows the body, not the
  head); pitch is clamped to just inside +/-90 deg.

Two-stage hit test per ray:
1. Permissive query (outline shapes, any fluid). If it hits a surface whose
   category is in the table's special set (ladder, vine, water, lava,
   cobweb...), that hit is recorded and the ray is done.
2. Otherwise a strict query (collision shapes, no fluids) decides the cell.
3. If neither query hits: distance = max_range, category = default.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from src.capture.categories import CategoryTable, VoxelCategoryResolver, default_category_table
from src.capture.world import FluidMode, ShapeMode, Vec3, WorldIntersector, distance

logger = logging.getLogger(__name__)

PITCH_LIMIT_RAD = math.pi / 2.0 - 0.001


def derive_grid_height(width: int, horizontal_fov_deg: float, vertical_fov_deg: float) -> int:
    """
    height = round(width * verticalFov / horizontalFov), at least 1.

    A zero FOV on either axis cannot define an aspect ratio; that is reported
    as a configuration error and the grid collapses to a single row.
    """
    if horizontal_fov_deg <= 0 or vertical_fov_deg <= 0:
        logger.error(
            "field of view must be positive for grid height derivation, got horizontal=%r vertical=%r; using 1 row",
            horizontal_fov_deg,
            vertical_fov_deg,
        )
        return 1
    # Java-style Math.round (half up), not banker's rounding.
    return max(1, int(math.floor(width * vertical_fov_deg / horizontal_fov_deg + 0.5)))


@dataclass(frozen=True)
class GridConfig:
    """
    width:              columns (rays across the horizontal FOV)
    horizontal_fov_deg: total horizontal field of view
    vertical_fov_deg:   total vertical field of view
    height:             rows; None derives it from width and the FOV aspect ratio
    max_range:          ray length, also the miss sentinel distance
    fixed_pitch:        True ignores head pitch and centres the grid on the horizon
    """

    width: int = 36
    horizontal_fov_deg: float = 120.0
    vertical_fov_deg: float = 180.0
    height: int | None = None
    max_range: float = 64.0
    fixed_pitch: bool = True

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise ValueError(f"width must be > 0, got {self.width}")
        if self.horizontal_fov_deg < 0 or self.vertical_fov_deg < 0:
            raise ValueError(
                f"field of view must be non-negative, got horizontal={self.horizontal_fov_deg} "
                f"vertical={self.vertical_fov_deg}"
            )
        if self.height is not None and self.height <= 0:
            raise ValueError(f"height must be > 0 when given, got {self.height}")
        if not (self.max_range > 0):
            raise ValueError(f"max_range must be > 0, got {self.max_range}")
        if self.width > 0xFFFF or (self.height is not None and self.height > 0xFFFF):
            raise ValueError("grid dimensions must fit in 16 bits")

        if self.horizontal_fov_deg == 0 or self.vertical_fov_deg == 0:
            logger.error(
                "field of view must be positive, got horizontal=%r vertical=%r; using 1 row",
                self.horizontal_fov_deg,
                self.vertical_fov_deg,
            )
            rows = 1
        elif self.height is None:
            rows = derive_grid_height(self.width, self.horizontal_fov_deg, self.vertical_fov_deg)
        else:
            rows = int(self.height)
        object.__setattr__(self, "_rows", rows)

    @property
    def grid_height(self) -> int:
        return self._rows  # type: ignore[attr-defined]

    @property
    def shape(self) -> tuple[int, int]:
        """
        (rows, cols) as stored in the grids.
        """
        return self.grid_height, self.width

    def to_metadata(self) -> dict:
        return {
            "width": self.width,
            "height": self.grid_height,
            "horizontal_fov_deg": self.horizontal_fov_deg,
            "vertical_fov_deg": self.vertical_fov_deg,
            "max_range": self.max_range,
            "fixed_pitch": self.fixed_pitch,
        }


def cell_offsets_rad(fov_deg: float, cells: int) -> np.ndarray:
    """
    Angular offset of each cell centre from the view axis:
      -fov/2 + step/2 + i*step
    """
    fov = math.radians(fov_deg)
    step = fov / cells if cells > 0 else 0.0
    start = -fov / 2.0 + step / 2.0
    return start + step * np.arange(cells, dtype=np.float64)


def ray_direction(yaw_rad: float, pitch_rad: float) -> Vec3:
    """
    Unit direction for a (yaw, pitch) pair using the Minecraft convention:
      (-sin(yaw)cos(pitch), -sin(pitch), cos(yaw)cos(pitch))
    """
    pitch_rad = min(max(pitch_rad, -PITCH_LIMIT_RAD), PITCH_LIMIT_RAD)
    cp = math.cos(pitch_rad)
    x = -math.sin(yaw_rad) * cp
    y = -math.sin(pitch_rad)
    z = math.cos(yaw_rad) * cp
    n = math.sqrt(x * x + y * y + z * z)
    return x / n, y / n, z / n


def cast_cell(
    world: WorldIntersector,
    resolver: VoxelCategoryResolver,
    table: CategoryTable,
    viewpoint: Vec3,
    direction: Vec3,
    max_range: float,
    exclude_entity: object | None = None,
) -> tuple[float, int]:
    """
    Two-stage hit test for a single ray. Returns (distance, category_id).
    """
    end = (
        viewpoint[0] + direction[0] * max_range,
        viewpoint[1] + direction[1] * max_range,
        viewpoint[2] + direction[2] * max_range,
    )

    hit = world.intersect(viewpoint, end, ShapeMode.PERMISSIVE, FluidMode.ANY, exclude_entity)
    if hit is not None:
        category = int(resolver.category_of(hit.voxel))
        if table.is_special(category):
            return distance(viewpoint, hit.position), category

    hit = world.intersect(viewpoint, end, ShapeMode.STRICT, FluidMode.NONE, exclude_entity)
    if hit is not None:
        return distance(viewpoint, hit.position), int(resolver.category_of(hit.voxel))

    return float(max_range), table.default_id


def sample_grids(
    world: WorldIntersector,
    resolver: VoxelCategoryResolver,
    viewpoint: Vec3,
    yaw_deg: float,
    pitch_deg: float,
    config: GridConfig,
    table: CategoryTable | None = None,
    exclude_entity: object | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Sample one tick's (distance_grid, category_grid), both shaped (rows, cols).

    distance_grid: float32, capped at config.max_range
    category_grid: int32 category ids
    """
    table = table or default_category_table()
    rows, cols = config.shape

    base_yaw = math.radians(yaw_deg)
    base_pitch = 0.0 if config.fixed_pitch else math.radians(pitch_deg)
    yaw_offsets = cell_offsets_rad(config.horizontal_fov_deg, cols)
    pitch_offsets = cell_offsets_rad(config.vertical_fov_deg, rows)

    distances = np.full((rows, cols), config.max_range, dtype=np.float32)
    categories = np.zeros((rows, cols), dtype=np.int32)

    for r in range(rows):
        pitch = base_pitch + float(pitch_offsets[r])
        for c in range(cols):
            direction = ray_direction(base_yaw + float(yaw_offsets[c]), pitch)
            d, cat = cast_cell(
                world, resolver, table, viewpoint, direction, config.max_range, exclude_entity
            )
            distances[r, c] = min(d, config.max_range)
            categories[r, c] = cat

    return distances, categories


class GridSampler:
    """
    Binds a world, a category resolver and a grid config.

    Usage:
      sampler = GridSampler(world, config=GridConfig(width=36))
      dist, cat = sampler.sample(eye_pos, yaw_deg)
    """

    def __init__(
        self,
        world: WorldIntersector,
        resolver: VoxelCategoryResolver | None = None,
        config: GridConfig | None = None,
        table: CategoryTable | None = None,
    ) -> None:
        self.world = world
        if resolver is None:
            if not hasattr(world, "category_of"):
                raise ValueError("resolver is required when the world does not resolve categories")
            resolver = world  # type: ignore[assignment]
        self.resolver = resolver
        self.config = config or GridConfig()
        self.table = table or getattr(world, "categories", None) or default_category_table()

    @property
    def shape(self) -> tuple[int, int]:
        return self.config.shape

    def sample(
        self,
        viewpoint: Vec3,
        yaw_deg: float,
        pitch_deg: float = 0.0,
        exclude_entity: object | None = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        return sample_grids(
            self.world,
            self.resolver,
            viewpoint,
            yaw_deg,
            pitch_deg,
            self.config,
            table=self.table,
            exclude_entity=exclude_entity,
        )
