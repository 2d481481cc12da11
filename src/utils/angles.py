"""
Yaw arithmetic in degrees.

Block-game yaw is unbounded: it keeps accumulating as the player turns, so
values like 1e17 are legitimate. Wrapping takes the float remainder of the raw
input first, which is exact for any finite value, and lands in (-180, 180].
"""

from __future__ import annotations

import math


def _require_finite(angle_deg: float) -> float:
    a = float(angle_deg)
    if not math.isfinite(a):
        raise ValueError(f"angle must be finite, got {angle_deg!r}")
    return a


def wrap_deg_360(angle_deg: float) -> float:
    """
    Wrap into [0, 360).
    """
    x = _require_finite(angle_deg) % 360.0
    # a tiny negative input can round up to exactly 360
    return 0.0 if x >= 360.0 else x


def normalize_signed_deg(angle_deg: float) -> float:
    """
    Wrap into (-180, 180]: 180 stays 180, -180 becomes 180, 181 becomes -179.
    """
    # fmod of the raw value is exact at any magnitude; both shifts below are exact too
    x = math.fmod(_require_finite(angle_deg), 360.0)
    if x > 180.0:
        return x - 360.0
    if x <= -180.0:
        return x + 360.0
    return x


def circular_diff_deg(a_deg: float, b_deg: float) -> float:
    """
    Signed shortest rotation from b to a, in (-180, 180]. (179, -179) -> -2.
    """
    return normalize_signed_deg(normalize_signed_deg(a_deg) - normalize_signed_deg(b_deg))


def relative_yaw_unit(yaw_deg: float, target_yaw_deg: float) -> float:
    """
    Yaw relative to the run's target bearing, scaled to (-1, 1].
    """
    return circular_diff_deg(yaw_deg, target_yaw_deg) / 180.0


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


def _self_test() -> None:
    cases = {180.0: 180.0, -180.0: 180.0, 540.0: 180.0, -540.0: 180.0, 181.0: -179.0, 1e9: -80.0, 1e17: -80.0, 3e18: 120.0}
    for angle, expected in cases.items():
        got = normalize_signed_deg(angle)
        assert got == expected, (angle, got)
    assert wrap_deg_360(-90.0) == 270.0
    assert relative_yaw_unit(-90.0, 90.0) == 1.0
    print("angles.py self-test: OK")


if __name__ == "__main__":
    _self_test()
