from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

Vec3 = tuple[float, float, float]
VoxelCoord = tuple[int, int, int]


class ShapeMode(Enum):
    """
    PERMISSIVE: outline shapes, so ladders, vines, cobwebs and other
                non-colliding geometry register as hits.
    STRICT:     collision shapes only.
    """

    PERMISSIVE = "permissive"
    STRICT = "strict"


class FluidMode(Enum):
    ANY = "any"
    NONE = "none"


@dataclass(frozen=True)
class RayHit:
    """
    First voxel struck along a segment.

    position: exact point where the segment enters the voxel
    voxel:    integer coordinate of the voxel struck
    """

    position: Vec3
    voxel: VoxelCoord


class WorldIntersector(ABC):
    """
    Single ray-vs-geometry query provided by the host environment.

    Implementations must be side-effect free; the grid sampler may call
    intersect() twice per ray.
    """

    @abstractmethod
    def intersect(
        self,
        origin: Vec3,
        end: Vec3,
        shape_mode: ShapeMode,
        fluid_mode: FluidMode,
        exclude_entity: object | None = None,
    ) -> RayHit | None: ...


def distance(a: Vec3, b: Vec3) -> float:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    dz = b[2] - a[2]
    return (dx * dx + dy * dy + dz * dz) ** 0.5
