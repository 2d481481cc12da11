from __future__ import annotations

from dataclasses import dataclass, field

from src.capture.tick import RunRecording

MAX_DISTANCE_UNITS = 255


@dataclass(frozen=True)
class NormalizerConfig:
    """
    Scale constants for the quantizer.

    - max_velocity: blocks/tick mapped to +/-1
    - max_rel_height: blocks above/below the target floor mapped to +/-1
    - max_distance_blocks: distance that saturates the distance byte (255 = 25.5)
    """

    max_velocity: float = 1.0
    max_rel_height: float = 10.0
    max_distance_blocks: float = 25.5

    def __post_init__(self) -> None:
        for name in ("max_velocity", "max_rel_height", "max_distance_blocks"):
            v = getattr(self, name)
            if not (v > 0):
                raise ValueError(f"{name} must be > 0, got {v}")

    def to_metadata(self) -> dict:
        return {
            "max_velocity": self.max_velocity,
            "max_rel_height": self.max_rel_height,
            "max_distance_blocks": self.max_distance_blocks,
        }


@dataclass(frozen=True)
class SessionContext:
    """
    Run-constant reference values for one recorded run.

    Passed explicitly into the windower/quantizer; nothing here is global.
    """

    target_yaw: float
    target_height: int
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)

    @classmethod
    def from_run(cls, run: RunRecording, normalizer: NormalizerConfig | None = None) -> SessionContext:
        return cls(
            target_yaw=float(run.target_yaw),
            target_height=int(run.target_height),
            normalizer=normalizer or NormalizerConfig(),
        )
