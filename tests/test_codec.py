# tests/test_codec.py
"""
Binary artifact layout, truncation recovery and the debug JSON backend.
"""

from __future__ import annotations

import json
import logging
import struct
from pathlib import Path

import numpy as np
import pytest

from src.dataset.codec import (
    BinarySequenceWriter,
    JsonSequenceWriter,
    SequenceFormatError,
    SequenceHeader,
    decode_bytes,
    encode_bytes,
    open_writer,
    read_sequences,
)
from src.dataset.protocol import HEADER_LEN, MAGIC, body_len
from src.dataset.quantizer import QuantizedWindow

W, H, K = 3, 2, 2


def _window(seed: int, action: int = 17) -> QuantizedWindow:
    rng = np.random.default_rng(seed)
    return QuantizedWindow(
        dist=rng.integers(0, 256, size=(K, H, W), dtype=np.uint8),
        cat=rng.integers(0, 11, size=(K, H, W), dtype=np.uint8),
        proprio=rng.uniform(-1.0, 1.0, size=(K, 8)).astype(np.float32),
        action=action,
    )


def _encoded(n: int = 3) -> tuple[bytes, list[QuantizedWindow]]:
    windows = [_window(i, action=i) for i in range(n)]
    return encode_bytes(windows, W, H, K), windows


def test_header_layout() -> None:
    raw = SequenceHeader(width=36, height=54, k=4, count=2).pack()
    assert len(raw) == HEADER_LEN == 20
    assert raw == MAGIC + b"\x01" + b"\x00\x24" + b"\x00\x36" + b"\x04" + b"\x00\x00\x00\x02" + b"\x00" * 4


def test_body_length() -> None:
    assert body_len(36, 54, 4) == 2 * 4 * 36 * 54 + 4 * 32 + 1
    data, _ = _encoded(3)
    assert len(data) == HEADER_LEN + 3 * body_len(W, H, K)


def test_body_field_order() -> None:
    qw = _window(7, action=0x55)
    data = encode_bytes([qw], W, H, K)
    n = K * H * W
    body = data[HEADER_LEN:]
    assert body[:n] == qw.dist.tobytes()
    assert body[n : 2 * n] == qw.cat.tobytes()
    first_float = struct.unpack(">f", body[2 * n : 2 * n + 4])[0]
    assert first_float == pytest.approx(float(qw.proprio[0, 0]))
    assert body[-1] == 0x55


def test_roundtrip() -> None:
    data, windows = _encoded(3)
    result = decode_bytes(data, full_grids=True)
    assert result.declared == result.recovered == 3
    assert not result.truncated
    for src, dec in zip(windows, result.windows):
        assert np.array_equal(dec.dist_last, src.dist[-1])
        assert np.array_equal(dec.cat_last, src.cat[-1])
        assert np.array_equal(dec.dist_seq, src.dist)
        assert np.array_equal(dec.proprio, src.proprio)
        assert dec.action == src.action


def test_default_decode_keeps_only_last_grids() -> None:
    data, _ = _encoded(1)
    (w,) = decode_bytes(data).windows
    assert w.dist_seq is None
    assert w.dist_last.shape == (H, W)
    assert w.proprio.shape == (K, 8)
    assert w.proprio_last.shape == (8,)


def test_action_bit7_is_masked() -> None:
    data = encode_bytes([_window(1, action=0xFF)], W, H, K)
    (w,) = decode_bytes(data).windows
    assert w.action == 0x7F
    assert all(w.actions.values())


def test_truncation_recovers_complete_windows(caplog: pytest.LogCaptureFixture) -> None:
    data, _ = _encoded(3)
    body = body_len(W, H, K)
    for cut in range(HEADER_LEN, len(data)):
        result = decode_bytes(data[:cut])
        assert result.recovered == (cut - HEADER_LEN) // body
        assert result.declared == 3
        assert result.dropped == 3 - result.recovered

    with caplog.at_level(logging.WARNING):
        result = decode_bytes(data[:-1])
    assert result.recovered == 2
    assert result.dropped == 1
    assert any("truncated" in r.getMessage() for r in caplog.records)


def test_trailing_bytes_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    data, _ = _encoded(2)
    with caplog.at_level(logging.WARNING):
        result = decode_bytes(data + b"\x00" * 5)
    assert result.recovered == 2
    assert any("trailing" in r.getMessage() for r in caplog.records)


def test_short_header_is_fatal() -> None:
    data, _ = _encoded(1)
    with pytest.raises(SequenceFormatError):
        decode_bytes(data[:HEADER_LEN - 1])


def test_bad_magic_is_fatal() -> None:
    data, _ = _encoded(1)
    with pytest.raises(SequenceFormatError, match="magic"):
        decode_bytes(b"PKDSEX" + data[6:])


def test_bad_version_is_fatal() -> None:
    data = bytearray(_encoded(1)[0])
    data[6] = 2
    with pytest.raises(SequenceFormatError, match="version"):
        decode_bytes(bytes(data))


def test_zero_dimension_header_is_fatal() -> None:
    raw = struct.pack(">6sBHHBII", MAGIC, 1, 0, 2, 2, 0, 0)
    with pytest.raises(SequenceFormatError):
        decode_bytes(raw)


def test_binary_writer_patches_count(tmp_path: Path) -> None:
    path = tmp_path / "out" / "run.pkseq"
    with BinarySequenceWriter(path, W, H, K) as w:
        for i in range(4):
            w.write(_window(i))
        assert not path.exists()
    assert path.exists()
    assert not w.tmp_path.exists()
    assert w.bytes_written == HEADER_LEN + 4 * body_len(W, H, K)

    result = read_sequences(path)
    assert result.declared == 4
    assert result.recovered == 4


def test_writer_abort_leaves_no_files(tmp_path: Path) -> None:
    path = tmp_path / "run.pkseq"
    with pytest.raises(RuntimeError):
        with BinarySequenceWriter(path, W, H, K) as w:
            w.write(_window(0))
            raise RuntimeError("interrupted")
    assert list(tmp_path.iterdir()) == []
    with pytest.raises(RuntimeError):
        w.write(_window(1))


def test_writer_rejects_wrong_shape(tmp_path: Path) -> None:
    path = tmp_path / "run.pkseq"
    wrong = QuantizedWindow(
        dist=np.zeros((K, W, H), dtype=np.uint8),
        cat=np.zeros((K, W, H), dtype=np.uint8),
        proprio=np.zeros((K, 8), dtype=np.float32),
        action=0,
    )
    with pytest.raises(ValueError):
        with BinarySequenceWriter(path, W, H, K) as w:
            w.write(wrong)
    assert not path.exists()


def test_writer_rejects_bad_dims(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        BinarySequenceWriter(tmp_path / "x.pkseq", 0, H, K)
    with pytest.raises(ValueError):
        JsonSequenceWriter(tmp_path / "x.seq.json", W, H, 256)


def test_json_backend_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "run.seq.json"
    windows = [_window(i, action=i * 3) for i in range(3)]
    with open_writer(path, W, H, K, json_debug=True) as w:
        w.write_all(windows)
    assert isinstance(w, JsonSequenceWriter)

    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["format"] == "pkdseq-json"
    assert doc["count"] == 3
    assert doc["sequences"][1]["action_t"] == [1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    result = read_sequences(path, full_grids=True)
    assert result.recovered == 3
    for src, dec in zip(windows, result.windows):
        assert np.array_equal(dec.dist_seq, src.dist)
        assert np.allclose(dec.proprio, src.proprio)
        assert dec.action == src.action


def test_unknown_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "garbage.bin"
    path.write_bytes(b"not a sequence artifact at all")
    with pytest.raises(SequenceFormatError):
        read_sequences(path)
