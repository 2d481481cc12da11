from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ARTIFACT_SUFFIX = ".pkseq"
JSON_ARTIFACT_SUFFIX = ".seq.json"
SIDECAR_SUFFIX = ".meta.json"
TMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class ArtifactPaths:
    artifact: Path
    sidecar: Path


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def atomic_replace(src: Path, dst: Path) -> None:
    """
    Atomic replace on same filesystem (Windows-safe).
    """
    os.replace(str(src), str(dst))


def remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def tmp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TMP_SUFFIX)


def sidecar_path_for(artifact: Path) -> Path:
    """
    run_01.pkseq -> run_01.pkseq.meta.json
    """
    return artifact.with_name(artifact.name + SIDECAR_SUFFIX)


def build_artifact_paths(output_dir: Path, run_name: str, json_debug: bool = False) -> ArtifactPaths:
    suffix = JSON_ARTIFACT_SUFFIX if json_debug else ARTIFACT_SUFFIX
    artifact = output_dir / f"{run_name}{suffix}"
    return ArtifactPaths(artifact=artifact, sidecar=sidecar_path_for(artifact))


def _self_test() -> None:
    ap = build_artifact_paths(Path("data") / "sequences", "Singleplayer_20250101_120000")
    assert ap.artifact.name == "Singleplayer_20250101_120000.pkseq"
    assert ap.sidecar.name.endswith(".pkseq.meta.json")
    assert tmp_path_for(ap.artifact).name == "Singleplayer_20250101_120000.pkseq.tmp"
    print("paths.py self-test: OK")


if __name__ == "__main__":
    _self_test()
