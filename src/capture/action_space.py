"""
Parkour movement inputs as a one-byte bitmask.

The artifact stores the anchor tick's held keys in a single byte; the bit
order below is part of the file format and must not change:

  bit 0 FORWARD   bit 1 LEFT    bit 2 RIGHT   bit 3 BACK
  bit 4 JUMP      bit 5 SNEAK   bit 6 SPRINT  bit 7 always 0
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

ACTION_LABELS: tuple[str, ...] = ("FORWARD", "LEFT", "RIGHT", "BACK", "JUMP", "SNEAK", "SPRINT")

# Lower-case names used for decoded action dicts and the debug JSON backend.
ACTION_KEYS: list[str] = [lab.lower() for lab in ACTION_LABELS]

BYTE_BITS = 8


@dataclass(frozen=True)
class ActionSpace:
    """
    Ordered key labels; a label's position is its bit.
    """

    labels: Sequence[str]
    _bit_of: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        labels = tuple(str(lab).upper() for lab in self.labels)
        if not labels:
            raise ValueError("an action space needs at least one label")
        if len(labels) > BYTE_BITS:
            raise ValueError(f"{len(labels)} labels do not fit in one byte")
        bit_of = {lab: bit for bit, lab in enumerate(labels)}
        if len(bit_of) != len(labels):
            raise ValueError(f"duplicate action labels in {list(self.labels)!r}")
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "_bit_of", bit_of)

    @property
    def size(self) -> int:
        return len(self.labels)

    @property
    def full_mask(self) -> int:
        return (1 << self.size) - 1

    def bit(self, label: str) -> int:
        try:
            return self._bit_of[label.upper()]
        except KeyError:
            raise ValueError(f"unknown action label: {label!r}") from None

    def encode(self, flags: Sequence[bool]) -> int:
        if len(flags) != self.size:
            raise ValueError(f"expected {self.size} flags, got {len(flags)}")
        return sum(1 << bit for bit, held in enumerate(flags) if held)

    def validate_mask(self, mask: int) -> None:
        if mask < 0 or mask & ~self.full_mask:
            raise ValueError(f"mask {mask} is outside 0..{self.full_mask}")

    def decode(self, mask: int) -> list[bool]:
        if mask < 0:
            raise ValueError(f"mask {mask} is negative")
        return [(mask >> bit) & 1 == 1 for bit in range(self.size)]

    def decode_named(self, mask: int) -> dict[str, bool]:
        """
        17 -> {"forward": True, "left": False, ..., "jump": True, ...}
        """
        return dict(zip((lab.lower() for lab in self.labels), self.decode(mask)))

    def to_metadata(self) -> dict:
        return {"type": "multi_binary_bitmask", "labels": list(self.labels)}


_CANONICAL = ActionSpace(labels=ACTION_LABELS)


def canonical_action_space() -> ActionSpace:
    return _CANONICAL


def mask_from_pressed_labels(pressed: Iterable[str], space: ActionSpace | None = None) -> int:
    """
    ["forward", "JUMP"] -> 17. Labels are case-insensitive.
    """
    sp = space or _CANONICAL
    mask = 0
    for lab in pressed:
        mask |= 1 << sp.bit(lab)
    return mask


def _self_test() -> None:
    sp = canonical_action_space()
    assert mask_from_pressed_labels(["forward", "jump"]) == 17
    assert sp.decode_named(17)["jump"] is True
    assert sp.encode(sp.decode(0b1010101)) == 0b1010101
    for bad in (-1, 0x80):
        try:
            sp.validate_mask(bad)
        except ValueError:
            continue
        raise AssertionError(f"mask {bad} should be rejected")
    print("action_space.py self-test: OK")


if __name__ == "__main__":
    _self_test()
