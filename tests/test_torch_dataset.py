# tests/test_torch_dataset.py

from __future__ import annotations

from pathlib import Path

import numpy as np
import torch

from src.dataset.codec import decode_bytes, encode_bytes
from src.dataset.quantizer import QuantizedWindow
from src.dataset.torch_dataset import action_bits, load_tensor_dataset, make_loader, to_arrays


def _windows(n: int) -> list[QuantizedWindow]:
    return [
        QuantizedWindow(
            dist=np.full((4, 2, 3), 10 * (i + 1), dtype=np.uint8),
            cat=np.full((4, 2, 3), i, dtype=np.uint8),
            proprio=np.full((4, 8), 0.25, dtype=np.float32),
            action=17,
        )
        for i in range(n)
    ]


def test_action_bits() -> None:
    assert action_bits(17).tolist() == [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0]


def test_arrays_and_tensors(tmp_path: Path) -> None:
    path = tmp_path / "run.pkseq"
    path.write_bytes(encode_bytes(_windows(5), width=3, height=2, k=4))

    ds = load_tensor_dataset(path)
    assert len(ds) == 5
    dist, cat, proprio, action = ds[2]
    assert dist.shape == (2, 3) and dist.dtype == torch.float32
    assert float(dist[0, 0]) == 3.0
    assert cat.dtype == torch.int64 and int(cat[1, 1]) == 2
    assert proprio.shape == (4, 8)
    assert action.tolist() == [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0]

    batches = list(make_loader(path, batch_size=2))
    assert [b[0].shape[0] for b in batches] == [2, 2, 1]


def test_empty_artifact_gives_empty_arrays() -> None:
    arrays = to_arrays(decode_bytes(encode_bytes([], width=3, height=2, k=4)))
    assert arrays["dist"].shape == (0, 2, 3)
    assert arrays["proprio"].shape == (0, 4, 8)
    assert arrays["action"].shape == (0, 7)
