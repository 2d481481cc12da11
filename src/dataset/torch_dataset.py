"""
Decoded windows -> torch tensors for offline consumption.

Tensor layout (N = recovered windows):
  dist:    float32 (N, rows, cols)  last-tick distance in blocks (byte / 10)
  cat:     int64   (N, rows, cols)  last-tick category ids
  proprio: float32 (N, K, 8)
  action:  float32 (N, 7)           multi-hot, canonical action order
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import torch
from torch.utils.data import DataLoader, TensorDataset

from src.capture.action_space import ACTION_LABELS
from src.dataset.codec import DecodeResult, read_sequences
from src.dataset.quantizer import dequantize_distance


def action_bits(action: int) -> np.ndarray:
    return np.array([(action >> i) & 1 for i in range(len(ACTION_LABELS))], dtype=np.float32)


def to_arrays(result: DecodeResult) -> dict[str, np.ndarray]:
    h = result.header
    n = result.recovered
    if n == 0:
        return {
            "dist": np.zeros((0, h.height, h.width), dtype=np.float32),
            "cat": np.zeros((0, h.height, h.width), dtype=np.int64),
            "proprio": np.zeros((0, h.k, 8), dtype=np.float32),
            "action": np.zeros((0, len(ACTION_LABELS)), dtype=np.float32),
        }
    return {
        "dist": np.stack([dequantize_distance(w.dist_last) for w in result.windows]),
        "cat": np.stack([w.cat_last.astype(np.int64) for w in result.windows]),
        "proprio": np.stack([w.proprio for w in result.windows]).astype(np.float32),
        "action": np.stack([action_bits(w.action) for w in result.windows]),
    }


def to_tensor_dataset(result: DecodeResult) -> TensorDataset:
    arrays = to_arrays(result)
    return TensorDataset(
        torch.from_numpy(arrays["dist"]),
        torch.from_numpy(arrays["cat"]),
        torch.from_numpy(arrays["proprio"]),
        torch.from_numpy(arrays["action"]),
    )


def load_tensor_dataset(path: Path) -> TensorDataset:
    return to_tensor_dataset(read_sequences(Path(path)))


def make_loader(path: Path, batch_size: int = 64, shuffle: bool = False) -> DataLoader:
    return DataLoader(load_tensor_dataset(path), batch_size=batch_size, shuffle=shuffle)
