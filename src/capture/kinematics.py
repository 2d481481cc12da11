"""
Minimal block-game movement model for synthetic runs.

Not a physics engine: the agent is a 1x1.8 column tested against solid
voxels one axis at a time, with the usual ground/air acceleration, friction,
jump impulse and gravity constants of the block game. It is good enough to
produce plausible run-ups, jumps, landings and falls for exercising the
capture and dataset code end to end.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from src.capture.controller import IDX_BACK, IDX_FORWARD, IDX_JUMP, IDX_LEFT, IDX_RIGHT, IDX_SNEAK, IDX_SPRINT
from src.capture.voxel_world import VoxelWorld
from src.capture.world import Vec3

EYE_HEIGHT = 1.62
BODY_HEIGHT = 1.8

GROUND_ACCEL = 0.1
AIR_ACCEL = 0.02
SPRINT_MULT = 1.3
SNEAK_MULT = 0.3
GROUND_FRICTION = 0.546  # slipperiness 0.6 * 0.91
AIR_FRICTION = 0.91
JUMP_IMPULSE = 0.42
SPRINT_JUMP_BOOST = 0.2
GRAVITY = 0.08
VERTICAL_DRAG = 0.98


@dataclass(frozen=True)
class AgentState:
    x: float
    y: float
    z: float
    yaw: float
    pitch: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    on_ground: bool = True
    collided_horizontal: bool = False
    collided_vertical: bool = False

    @property
    def eye_position(self) -> Vec3:
        return self.x, self.y + EYE_HEIGHT, self.z

    @property
    def velocity(self) -> tuple[float, float, float]:
        return self.vx, self.vy, self.vz


def _column_blocked(world: VoxelWorld, x: float, y: float, z: float) -> bool:
    bx = math.floor(x)
    bz = math.floor(z)
    y0 = math.floor(y + 1e-6)
    y1 = math.floor(y + BODY_HEIGHT - 1e-6)
    return any(world.is_solid((bx, by, bz)) for by in range(y0, y1 + 1))


def step(world: VoxelWorld, state: AgentState, flags: Sequence[bool], yaw_delta: float = 0.0) -> AgentState:
    """
    Advance one tick with the given input flags (canonical order).
    """
    yaw = state.yaw + yaw_delta
    forward = (1.0 if flags[IDX_FORWARD] else 0.0) - (1.0 if flags[IDX_BACK] else 0.0)
    strafe = (1.0 if flags[IDX_LEFT] else 0.0) - (1.0 if flags[IDX_RIGHT] else 0.0)
    sprinting = bool(flags[IDX_SPRINT]) and forward > 0.0 and not flags[IDX_SNEAK]
    if flags[IDX_SNEAK]:
        forward *= SNEAK_MULT
        strafe *= SNEAK_MULT

    norm = math.hypot(forward, strafe)
    if norm > 1.0:
        forward /= norm
        strafe /= norm

    accel = GROUND_ACCEL if state.on_ground else AIR_ACCEL
    if sprinting:
        accel *= SPRINT_MULT

    yaw_rad = math.radians(yaw)
    sin_y = math.sin(yaw_rad)
    cos_y = math.cos(yaw_rad)
    vx = state.vx + (strafe * cos_y - forward * sin_y) * accel
    vz = state.vz + (forward * cos_y + strafe * sin_y) * accel
    vy = state.vy

    if flags[IDX_JUMP] and state.on_ground:
        vy = JUMP_IMPULSE
        if sprinting:
            vx += -sin_y * SPRINT_JUMP_BOOST
            vz += cos_y * SPRINT_JUMP_BOOST

    x, y, z = state.x, state.y, state.z
    collided_h = False
    collided_v = False
    on_ground = False

    # vertical
    ny = y + vy
    if vy < 0.0 and _column_blocked(world, x, ny, z):
        ny = math.floor(ny) + 1.0
        vy = 0.0
        on_ground = True
        collided_v = True
    elif vy > 0.0 and _column_blocked(world, x, ny, z):
        ny = y
        vy = 0.0
        collided_v = True
    y = ny

    # horizontal, one axis at a time
    if _column_blocked(world, x + vx, y, z):
        vx = 0.0
        collided_h = True
    else:
        x += vx
    if _column_blocked(world, x, y, z + vz):
        vz = 0.0
        collided_h = True
    else:
        z += vz

    if not on_ground and vy == 0.0 and _column_blocked(world, x, y - 0.01, z):
        on_ground = True

    friction = GROUND_FRICTION if on_ground else AIR_FRICTION
    vx *= friction
    vz *= friction
    vy = (vy - GRAVITY) * VERTICAL_DRAG
    if on_ground and vy < 0.0:
        # resting contact: report the small downward probe the game reports
        vy = -GRAVITY * VERTICAL_DRAG

    return replace(
        state,
        x=x,
        y=y,
        z=z,
        yaw=yaw,
        vx=vx,
        vy=vy,
        vz=vz,
        on_ground=on_ground,
        collided_horizontal=collided_h,
        collided_vertical=collided_v,
    )
