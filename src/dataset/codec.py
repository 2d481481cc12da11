"""
Sequence artifact codecs.

Two backends share one writer contract (SequenceWriter):
- BinarySequenceWriter: the production format described in protocol.py
- JsonSequenceWriter:   a nested-array debug format with the same content

Both write to "<path>.tmp" and rename into place only after the last window
is written, so an interrupted encode never leaves an artifact that looks
valid.

Decoding (read_sequences / decode_bytes) is the mirror image. Bad magic and
unsupported versions are fatal. A short file is not: the reader recovers
every complete window, reports how many were lost, and never reads past the
end of the buffer.
"""

from __future__ import annotations

import json
import logging
import struct
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import numpy as np

from src.capture.action_space import canonical_action_space
from src.dataset.protocol import (
    FORMAT_NAME,
    HEADER_FMT,
    HEADER_LEN,
    MAGIC,
    MAX_GRID_DIM,
    MAX_K,
    MAX_WINDOW_COUNT,
    PROPRIO_DTYPE,
    PROPRIO_FLOATS,
    PROPRIO_TICK_LEN,
    VERSION,
    body_len,
)
from src.dataset.quantizer import QuantizedWindow
from src.utils.paths import atomic_replace, ensure_dir, remove_if_exists, tmp_path_for

logger = logging.getLogger(__name__)

JSON_FORMAT_NAME = "pkdseq-json"


class SequenceFormatError(ValueError):
    """Artifact cannot be decoded at all (bad magic, version, header)."""


class SequenceWriteError(OSError):
    """Writing the artifact failed; no artifact was produced."""

    def __init__(self, path: Path, offset: int, cause: BaseException) -> None:
        super().__init__(f"failed writing {path} at byte offset {offset}: {type(cause).__name__}: {cause}")
        self.path = path
        self.offset = offset


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SequenceHeader:
    width: int
    height: int
    k: int
    count: int
    version: int = VERSION

    def __post_init__(self) -> None:
        validate_dims(self.width, self.height, self.k)
        if not (0 <= self.count <= MAX_WINDOW_COUNT):
            raise ValueError(f"window count out of range: {self.count}")

    @property
    def body_len(self) -> int:
        return body_len(self.width, self.height, self.k)

    @property
    def expected_total_bytes(self) -> int:
        return HEADER_LEN + self.count * self.body_len

    def pack(self) -> bytes:
        return struct.pack(HEADER_FMT, MAGIC, self.version, self.width, self.height, self.k, self.count, 0)

    @classmethod
    def unpack(cls, buf: bytes | memoryview) -> SequenceHeader:
        if len(buf) < HEADER_LEN:
            raise SequenceFormatError(f"file too small to contain header ({len(buf)} < {HEADER_LEN} bytes)")
        magic, ver, width, height, k, count, _reserved = struct.unpack_from(HEADER_FMT, buf, 0)
        if magic != MAGIC:
            raise SequenceFormatError(f"invalid magic string: expected {MAGIC!r}, got {bytes(magic)!r}")
        if ver != VERSION:
            raise SequenceFormatError(f"unsupported format version: expected {VERSION}, got {ver}")
        try:
            return cls(width=width, height=height, k=k, count=count, version=ver)
        except ValueError as e:
            raise SequenceFormatError(f"invalid header values: {e}") from e


def validate_dims(width: int, height: int, k: int) -> None:
    if not (0 < width <= MAX_GRID_DIM) or not (0 < height <= MAX_GRID_DIM):
        raise ValueError(f"grid dimensions must be in 1..{MAX_GRID_DIM}, got {width}x{height}")
    if not (0 < k <= MAX_K):
        raise ValueError(f"window length k must be in 1..{MAX_K}, got {k}")


def encode_body(qw: QuantizedWindow) -> bytes:
    return b"".join(
        (
            np.ascontiguousarray(qw.dist, dtype=np.uint8).tobytes(),
            np.ascontiguousarray(qw.cat, dtype=np.uint8).tobytes(),
            np.ascontiguousarray(qw.proprio, dtype=PROPRIO_DTYPE).tobytes(),
            bytes([qw.action & 0x7F]),
        )
    )


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class SequenceWriter(ABC):
    """
    Shared contract for artifact backends.

    Usage:
      with BinarySequenceWriter(path, width, height, k) as w:
          for qw in windows:
              w.write(qw)
      # artifact exists only if the block completed without an exception
    """

    format_name: str = ""

    def __init__(self, path: Path, width: int, height: int, k: int) -> None:
        validate_dims(width, height, k)
        self.path = Path(path)
        self.tmp_path = tmp_path_for(self.path)
        self.width = int(width)
        self.height = int(height)
        self.k = int(k)
        self.count = 0
        self._closed = False

    def __enter__(self) -> SequenceWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.finalize()
        else:
            self.abort()

    def check_window(self, qw: QuantizedWindow) -> None:
        expected = (self.k, self.height, self.width)
        if qw.dist.shape != expected or qw.cat.shape != expected:
            raise ValueError(
                f"window grids shaped {qw.dist.shape}/{qw.cat.shape}, artifact expects {expected}"
            )
        if qw.proprio.shape != (self.k, PROPRIO_FLOATS):
            raise ValueError(f"proprio shaped {qw.proprio.shape}, expected {(self.k, PROPRIO_FLOATS)}")
        if self.count >= MAX_WINDOW_COUNT:
            raise ValueError("window count exceeds 32-bit header field")

    def write_all(self, windows: Iterable[QuantizedWindow]) -> int:
        for qw in windows:
            self.write(qw)
        return self.count

    @abstractmethod
    def write(self, qw: QuantizedWindow) -> None: ...

    @abstractmethod
    def finalize(self) -> Path: ...

    @abstractmethod
    def abort(self) -> None: ...


class BinarySequenceWriter(SequenceWriter):
    format_name = FORMAT_NAME

    def __init__(self, path: Path, width: int, height: int, k: int) -> None:
        super().__init__(path, width, height, k)
        ensure_dir(self.path.parent)
        self._offset = 0
        self._f: BinaryIO | None = None
        try:
            self._f = self.tmp_path.open("wb")
            # Count is patched in finalize(); windows are streamed.
            self._write_raw(SequenceHeader(self.width, self.height, self.k, 0).pack())
        except OSError as e:
            self.abort()
            raise SequenceWriteError(self.path, self._offset, e) from e

    @property
    def bytes_written(self) -> int:
        return self._offset

    def _write_raw(self, data: bytes) -> None:
        assert self._f is not None
        self._f.write(data)
        self._offset += len(data)

    def write(self, qw: QuantizedWindow) -> None:
        if self._closed or self._f is None:
            raise RuntimeError("writer is closed")
        self.check_window(qw)
        try:
            self._write_raw(encode_body(qw))
        except OSError as e:
            offset = self._offset
            self.abort()
            raise SequenceWriteError(self.path, offset, e) from e
        self.count += 1

    def finalize(self) -> Path:
        if self._closed or self._f is None:
            raise RuntimeError("writer is closed")
        try:
            self._f.seek(0)
            self._f.write(SequenceHeader(self.width, self.height, self.k, self.count).pack())
            self._f.flush()
            self._f.close()
            self._f = None
            atomic_replace(self.tmp_path, self.path)
        except OSError as e:
            offset = self._offset
            self.abort()
            raise SequenceWriteError(self.path, offset, e) from e
        self._closed = True
        logger.info("Wrote %d windows (%d bytes) to %s", self.count, self._offset, self.path)
        return self.path

    def abort(self) -> None:
        if self._f is not None:
            try:
                self._f.close()
            except OSError:
                logger.warning("Failed closing %s during abort", self.tmp_path)
            self._f = None
        remove_if_exists(self.tmp_path)
        self._closed = True


class JsonSequenceWriter(SequenceWriter):
    """
    Debug backend: one object per window with nested arrays

      vision_dist_seq      K x rows x cols  (distance bytes)
      vision_block_id_seq  K x rows x cols  (category ids)
      proprio_seq          K x 8
      action_t             7 floats (0.0 / 1.0), canonical action order
    """

    format_name = JSON_FORMAT_NAME

    def __init__(self, path: Path, width: int, height: int, k: int, indent: int | None = None) -> None:
        super().__init__(path, width, height, k)
        self.indent = indent
        self._sequences: list[dict[str, Any]] = []

    def write(self, qw: QuantizedWindow) -> None:
        if self._closed:
            raise RuntimeError("writer is closed")
        self.check_window(qw)
        flags = canonical_action_space().decode(qw.action & 0x7F)
        self._sequences.append(
            {
                "vision_dist_seq": qw.dist.tolist(),
                "vision_block_id_seq": qw.cat.tolist(),
                "proprio_seq": qw.proprio.astype(np.float32).tolist(),
                "action_t": [1.0 if f else 0.0 for f in flags],
            }
        )
        self.count += 1

    def finalize(self) -> Path:
        if self._closed:
            raise RuntimeError("writer is closed")
        doc = {
            "format": JSON_FORMAT_NAME,
            "version": VERSION,
            "width": self.width,
            "height": self.height,
            "k": self.k,
            "count": self.count,
            "sequences": self._sequences,
        }
        ensure_dir(self.path.parent)
        try:
            with self.tmp_path.open("w", encoding="utf-8") as f:
                json.dump(doc, f, indent=self.indent)
            atomic_replace(self.tmp_path, self.path)
        except OSError as e:
            self.abort()
            raise SequenceWriteError(self.path, 0, e) from e
        self._closed = True
        logger.info("Wrote %d windows (debug JSON) to %s", self.count, self.path)
        return self.path

    def abort(self) -> None:
        self._sequences = []
        remove_if_exists(self.tmp_path)
        self._closed = True


def open_writer(path: Path, width: int, height: int, k: int, json_debug: bool = False) -> SequenceWriter:
    if json_debug:
        return JsonSequenceWriter(path, width, height, k)
    return BinarySequenceWriter(path, width, height, k)


def encode_bytes(windows: Iterable[QuantizedWindow], width: int, height: int, k: int) -> bytes:
    """
    In-memory binary encode (header + bodies), no file involved.
    """
    validate_dims(width, height, k)
    bodies: list[bytes] = []
    expected = (k, height, width)
    for qw in windows:
        if qw.dist.shape != expected or qw.cat.shape != expected:
            raise ValueError(f"window grids shaped {qw.dist.shape}, expected {expected}")
        bodies.append(encode_body(qw))
    return SequenceHeader(width, height, k, len(bodies)).pack() + b"".join(bodies)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class DecodedWindow:
    """
    dist_last / cat_last: uint8 (rows, cols) grids of the window's last tick
    proprio:              float32 (K, 8)
    action:               action byte (bits 0-6)
    dist_seq / cat_seq:   full (K, rows, cols) grids when requested
    """

    index: int
    dist_last: np.ndarray
    cat_last: np.ndarray
    proprio: np.ndarray
    action: int
    dist_seq: np.ndarray | None = None
    cat_seq: np.ndarray | None = None

    @property
    def actions(self) -> dict[str, bool]:
        return canonical_action_space().decode_named(self.action & 0x7F)

    @property
    def proprio_last(self) -> np.ndarray:
        return self.proprio[-1]


@dataclass
class DecodeResult:
    header: SequenceHeader
    windows: list[DecodedWindow] = field(default_factory=list)
    actual_bytes: int = 0

    @property
    def declared(self) -> int:
        return self.header.count

    @property
    def recovered(self) -> int:
        return len(self.windows)

    @property
    def dropped(self) -> int:
        return max(0, self.declared - self.recovered)

    @property
    def truncated(self) -> bool:
        return self.dropped > 0


def decode_bytes(buf: bytes | bytearray | memoryview, full_grids: bool = False) -> DecodeResult:
    """
    Decode a binary artifact held in memory.

    Raises SequenceFormatError for a missing/short header, bad magic or
    unsupported version. Truncation is recovered, logged and reported via
    DecodeResult.dropped.
    """
    mv = memoryview(buf).cast("B")
    total = len(mv)
    header = SequenceHeader.unpack(mv)
    body = header.body_len
    grid = header.width * header.height
    k = header.k

    remaining = total - HEADER_LEN
    count = header.count
    if total < header.expected_total_bytes:
        count = remaining // body
        logger.warning(
            "Expected %d bytes of window data but found %d; file truncated. Adjusted window count %d -> %d",
            header.count * body,
            remaining,
            header.count,
            count,
        )
    elif total > header.expected_total_bytes:
        logger.warning(
            "%d trailing bytes after %d declared windows ignored",
            total - header.expected_total_bytes,
            header.count,
        )

    vision_seq = k * grid
    proprio_off = 2 * vision_seq
    action_off = proprio_off + k * PROPRIO_TICK_LEN
    last = k - 1

    result = DecodeResult(header=header, actual_bytes=total)
    for i in range(count):
        start = HEADER_LEN + i * body
        if start + body > total:
            logger.warning("Truncated data reading window %d; stopping parse", i)
            break

        dist_seq = np.frombuffer(mv, dtype=np.uint8, count=vision_seq, offset=start)
        cat_seq = np.frombuffer(mv, dtype=np.uint8, count=vision_seq, offset=start + vision_seq)
        dist_seq = dist_seq.reshape(k, header.height, header.width)
        cat_seq = cat_seq.reshape(k, header.height, header.width)
        proprio = (
            np.frombuffer(mv, dtype=PROPRIO_DTYPE, count=k * PROPRIO_FLOATS, offset=start + proprio_off)
            .astype(np.float32)
            .reshape(k, PROPRIO_FLOATS)
        )
        action = int(mv[start + action_off])

        result.windows.append(
            DecodedWindow(
                index=i,
                dist_last=dist_seq[last].copy(),
                cat_last=cat_seq[last].copy(),
                proprio=proprio,
                action=action,
                dist_seq=dist_seq.copy() if full_grids else None,
                cat_seq=cat_seq.copy() if full_grids else None,
            )
        )

    if result.truncated:
        logger.warning("Recovered %d of %d declared windows", result.recovered, result.declared)
    return result


def decode_json_doc(doc: Any, full_grids: bool = False) -> DecodeResult:
    if not isinstance(doc, dict) or doc.get("format") != JSON_FORMAT_NAME:
        raise SequenceFormatError(f"not a {JSON_FORMAT_NAME} document")
    if doc.get("version") != VERSION:
        raise SequenceFormatError(f"unsupported format version: expected {VERSION}, got {doc.get('version')}")
    try:
        header = SequenceHeader(
            width=int(doc["width"]), height=int(doc["height"]), k=int(doc["k"]), count=int(doc["count"])
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SequenceFormatError(f"invalid header values: {e}") from e

    space = canonical_action_space()
    expected = (header.k, header.height, header.width)
    result = DecodeResult(header=header)
    for i, seq in enumerate(doc.get("sequences", [])):
        try:
            dist_seq = np.asarray(seq["vision_dist_seq"], dtype=np.uint8)
            cat_seq = np.asarray(seq["vision_block_id_seq"], dtype=np.uint8)
            proprio = np.asarray(seq["proprio_seq"], dtype=np.float32)
            action = space.encode([float(a) >= 0.5 for a in seq["action_t"]])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed debug window %d (%s); stopping parse", i, e)
            break
        if dist_seq.shape != expected or cat_seq.shape != expected or proprio.shape != (header.k, PROPRIO_FLOATS):
            logger.warning("Debug window %d has unexpected shape; stopping parse", i)
            break
        result.windows.append(
            DecodedWindow(
                index=i,
                dist_last=dist_seq[-1].copy(),
                cat_last=cat_seq[-1].copy(),
                proprio=proprio,
                action=action,
                dist_seq=dist_seq if full_grids else None,
                cat_seq=cat_seq if full_grids else None,
            )
        )
    if result.truncated:
        logger.warning("Recovered %d of %d declared windows", result.recovered, result.declared)
    return result


def read_sequences(path: Path, full_grids: bool = False) -> DecodeResult:
    """
    Read an artifact from disk; the backend is picked from the leading bytes.
    """
    path = Path(path)
    data = path.read_bytes()
    if data[: len(MAGIC)] == MAGIC:
        result = decode_bytes(data, full_grids=full_grids)
    elif data.lstrip()[:1] == b"{":
        try:
            doc = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SequenceFormatError(f"{path}: unreadable debug JSON: {e}") from e
        result = decode_json_doc(doc, full_grids=full_grids)
    else:
        # Let the binary path produce the precise magic/size error.
        try:
            result = decode_bytes(data, full_grids=full_grids)
        except SequenceFormatError as e:
            raise SequenceFormatError(f"{path}: {e}") from e
    logger.info("Read %d windows from %s", result.recovered, path)
    return result
