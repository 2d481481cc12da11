# tests/test_paths.py

from __future__ import annotations

import dataclasses
from pathlib import Path

from src.utils.paths import ArtifactPaths, atomic_replace, build_artifact_paths, sidecar_path_for, tmp_path_for


def test_artifact_paths_hold_only_final_locations(tmp_path: Path) -> None:
    paths = build_artifact_paths(tmp_path, "run_01")
    assert [f.name for f in dataclasses.fields(ArtifactPaths)] == ["artifact", "sidecar"]
    assert paths.artifact == tmp_path / "run_01.pkseq"
    assert paths.sidecar == tmp_path / "run_01.pkseq.meta.json"


def test_json_debug_paths(tmp_path: Path) -> None:
    paths = build_artifact_paths(tmp_path, "run_01", json_debug=True)
    assert paths.artifact.name == "run_01.seq.json"
    assert paths.sidecar == sidecar_path_for(paths.artifact)


def test_tmp_path_sits_beside_target_and_replaces_it(tmp_path: Path) -> None:
    target = build_artifact_paths(tmp_path, "run_01").artifact
    tmp = tmp_path_for(target)
    assert tmp.parent == target.parent
    assert tmp.name == "run_01.pkseq.tmp"

    tmp.write_bytes(b"PKDSEQ")
    atomic_replace(tmp, target)
    assert target.read_bytes() == b"PKDSEQ"
    assert not tmp.exists()
