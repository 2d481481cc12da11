"""
Surface categories for the vision grid.

The raw surface space of the host environment is large (every block state
has its own id). The vision grid only keeps a small enumerated set of
movement-relevant classes; everything else collapses to DEFAULT.

Which categories short-circuit the permissive ray pass ("special" ids) is
environment policy, so it lives in the CategoryTable and can be loaded from
JSON rather than being baked into the sampler.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Protocol


class SurfaceCategory(IntEnum):
    DEFAULT = 0
    LADDER = 1
    VINE = 2
    WATER = 3
    LAVA = 4
    SLIME = 5
    COBWEB = 6
    SOUL_SAND = 7
    ICE = 8
    BLUE_ICE = 9
    HONEY = 10


CATEGORY_DISPLAY_NAMES: dict[int, str] = {
    SurfaceCategory.DEFAULT: "Default/Solid",
    SurfaceCategory.LADDER: "Ladder",
    SurfaceCategory.VINE: "Vine",
    SurfaceCategory.WATER: "Water",
    SurfaceCategory.LAVA: "Lava",
    SurfaceCategory.SLIME: "Slime Block",
    SurfaceCategory.COBWEB: "Cobweb",
    SurfaceCategory.SOUL_SAND: "Soul Sand",
    SurfaceCategory.ICE: "Ice",
    SurfaceCategory.BLUE_ICE: "Blue Ice",
    SurfaceCategory.HONEY: "Honey Block",
}

DEFAULT_NAME_MAP: dict[str, int] = {
    "ladder": SurfaceCategory.LADDER,
    "vine": SurfaceCategory.VINE,
    "twisting_vines": SurfaceCategory.VINE,
    "twisting_vines_plant": SurfaceCategory.VINE,
    "weeping_vines": SurfaceCategory.VINE,
    "weeping_vines_plant": SurfaceCategory.VINE,
    "water": SurfaceCategory.WATER,
    "lava": SurfaceCategory.LAVA,
    "slime_block": SurfaceCategory.SLIME,
    "cobweb": SurfaceCategory.COBWEB,
    "soul_sand": SurfaceCategory.SOUL_SAND,
    "ice": SurfaceCategory.ICE,
    "packed_ice": SurfaceCategory.ICE,
    "blue_ice": SurfaceCategory.BLUE_ICE,
    "honey_block": SurfaceCategory.HONEY,
}

# Climbable, fluid and non-rigid surfaces. Slime, soul sand, ice and honey
# have full colliders, so the strict pass already registers them.
DEFAULT_SPECIAL_IDS: frozenset[int] = frozenset(
    {
        SurfaceCategory.LADDER,
        SurfaceCategory.VINE,
        SurfaceCategory.WATER,
        SurfaceCategory.LAVA,
        SurfaceCategory.COBWEB,
    }
)


def _strip_namespace(name: str) -> str:
    # "minecraft:ladder" -> "ladder"
    return name.split(":", 1)[-1].strip().lower()


class VoxelCategoryResolver(Protocol):
    """
    Translates whatever surface identifier the world reports for a voxel into
    a category id (0..255).
    """

    def category_of(self, voxel: tuple[int, int, int]) -> int: ...


@dataclass(frozen=True)
class CategoryTable:
    """
    Raw surface name -> category id, plus the set of ids that win the
    permissive ray pass.
    """

    name_to_id: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_NAME_MAP))
    special_ids: frozenset[int] = DEFAULT_SPECIAL_IDS
    default_id: int = int(SurfaceCategory.DEFAULT)

    def __post_init__(self) -> None:
        for name, cid in self.name_to_id.items():
            if not (0 <= int(cid) <= 255):
                raise ValueError(f"category id for {name!r} must fit in a byte, got {cid}")
        if not (0 <= self.default_id <= 255):
            raise ValueError(f"default_id must fit in a byte, got {self.default_id}")
        object.__setattr__(self, "special_ids", frozenset(int(i) for i in self.special_ids))

    def category_for_name(self, raw_name: str | None) -> int:
        if raw_name is None:
            return self.default_id
        return int(self.name_to_id.get(_strip_namespace(raw_name), self.default_id))

    def is_special(self, category_id: int) -> bool:
        return int(category_id) in self.special_ids

    def to_metadata(self) -> dict:
        return {
            "names": {k: int(v) for k, v in sorted(self.name_to_id.items())},
            "special_ids": sorted(self.special_ids),
            "default_id": int(self.default_id),
        }

    @classmethod
    def from_metadata(cls, meta: Mapping) -> CategoryTable:
        try:
            names = {_strip_namespace(str(k)): int(v) for k, v in meta["names"].items()}
            special = frozenset(int(i) for i in meta["special_ids"])
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"invalid category table metadata: {type(e).__name__}: {e}") from e
        return cls(name_to_id=names, special_ids=special, default_id=int(meta.get("default_id", 0)))

    @classmethod
    def load(cls, path: Path) -> CategoryTable:
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_metadata(json.load(f))

    def dump(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_metadata(), indent=2), encoding="utf-8")


def default_category_table() -> CategoryTable:
    return CategoryTable()


def with_special(table: CategoryTable, special: Iterable[int]) -> CategoryTable:
    """
    Copy of `table` with a different special set.
    """
    return CategoryTable(
        name_to_id=dict(table.name_to_id),
        special_ids=frozenset(int(i) for i in special),
        default_id=table.default_id,
    )


def category_display_name(category_id: int) -> str:
    return CATEGORY_DISPLAY_NAMES.get(int(category_id), f"unknown({int(category_id)})")


def _self_test() -> None:
    t = default_category_table()
    assert t.category_for_name("minecraft:weeping_vines_plant") == SurfaceCategory.VINE
    assert t.category_for_name("stone") == SurfaceCategory.DEFAULT
    assert t.is_special(SurfaceCategory.WATER)
    assert not t.is_special(SurfaceCategory.ICE)
    assert CategoryTable.from_metadata(t.to_metadata()) == t
    print("categories.py self-test: OK")


if __name__ == "__main__":
    _self_test()
