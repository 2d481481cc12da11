"""
Run-metadata sidecar.

The artifact header only carries the grid/window geometry; the reference
values needed to undo normalization (target yaw, target height, scale
constants, category table) travel in "<artifact>.meta.json".
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.capture.action_space import canonical_action_space
from src.capture.categories import CategoryTable, default_category_table
from src.dataset.protocol import FORMAT_NAME, VERSION
from src.dataset.quantizer import PROPRIO_LAYOUT
from src.dataset.session import NormalizerConfig, SessionContext
from src.utils.paths import atomic_replace, remove_if_exists, tmp_path_for
from src.utils.time_id import utc_now_iso

SCHEMA_VERSION = "1.0"

REQUIRED_KEYS = [
    "schema_version",
    "format",
    "format_version",
    "target_yaw",
    "target_height",
    "width",
    "height",
    "k",
    "frame_count",
    "normalizer",
]


@dataclass(frozen=True)
class RunMeta:
    target_yaw: float
    target_height: int
    width: int
    height: int
    k: int
    frame_count: int
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    categories: CategoryTable = field(default_factory=default_category_table)
    source: str = ""
    format: str = FORMAT_NAME
    format_version: int = VERSION
    created_utc: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def session(self) -> SessionContext:
        return SessionContext(
            target_yaw=self.target_yaw, target_height=self.target_height, normalizer=self.normalizer
        )

    def denormalize_rel_height(self, value: float) -> float:
        """
        Proprio slot 7 back to an absolute height (valid inside the clamp range).
        """
        return self.target_height + value * self.normalizer.max_rel_height

    def denormalize_yaw(self, value: float) -> float:
        """
        Proprio slot 3 back to a yaw in degrees relative to world axes.
        """
        return self.target_yaw + value * 180.0

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "format": self.format,
            "format_version": self.format_version,
            "created_utc": self.created_utc or utc_now_iso(),
            "source": self.source,
            "target_yaw": self.target_yaw,
            "target_height": self.target_height,
            "width": self.width,
            "height": self.height,
            "k": self.k,
            "frame_count": self.frame_count,
            "normalizer": self.normalizer.to_metadata(),
            "proprio_layout": list(PROPRIO_LAYOUT),
            "action_space": canonical_action_space().to_metadata(),
            "categories": self.categories.to_metadata(),
            "extra": dict(self.extra),
        }

    @classmethod
    def from_json_dict(cls, d: dict[str, Any]) -> RunMeta:
        missing = [k for k in REQUIRED_KEYS if k not in d]
        if missing:
            raise ValueError(f"run metadata missing keys: {missing}")
        if d["schema_version"] != SCHEMA_VERSION:
            raise ValueError(f"schema_version must be {SCHEMA_VERSION!r}, got {d['schema_version']!r}")
        n = d["normalizer"]
        cats = d.get("categories")
        return cls(
            target_yaw=float(d["target_yaw"]),
            target_height=int(d["target_height"]),
            width=int(d["width"]),
            height=int(d["height"]),
            k=int(d["k"]),
            frame_count=int(d["frame_count"]),
            normalizer=NormalizerConfig(
                max_velocity=float(n["max_velocity"]),
                max_rel_height=float(n["max_rel_height"]),
                max_distance_blocks=float(n["max_distance_blocks"]),
            ),
            categories=CategoryTable.from_metadata(cats) if cats else default_category_table(),
            source=str(d.get("source", "")),
            format=str(d["format"]),
            format_version=int(d["format_version"]),
            created_utc=str(d.get("created_utc", "")),
            extra=dict(d.get("extra", {})),
        )

    def save(self, path: Path) -> Path:
        path = Path(path)
        tmp = tmp_path_for(path)
        try:
            tmp.write_text(json.dumps(self.to_json_dict(), indent=2), encoding="utf-8")
            atomic_replace(tmp, path)
        except Exception:
            remove_if_exists(tmp)
            raise
        return path

    @classmethod
    def load(cls, path: Path) -> RunMeta:
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_json_dict(json.load(f))
