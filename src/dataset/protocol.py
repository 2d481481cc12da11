"""Sequence artifact protocol constants.

Single source of truth for the on-disk layout. Writer and reader must stay
synchronized; any layout change bumps VERSION.

File:    [Header(20)] [Window body] * count
Header:  [Magic(6) | Ver(1) | Width(2) | Height(2) | K(1) | Count(4) | Reserved(4)]
Body:    dist  K*H*W bytes   (tick-major, row-major per tick)
         cat   K*H*W bytes   (same layout)
         prop  K*8 float32   (big-endian, tick-major)
         act   1 byte
All multi-byte fields are big-endian.
"""

import numpy as np

MAGIC = b"PKDSEQ"
VERSION = 1

HEADER_FMT = ">6sBHHBII"
HEADER_LEN = 20

PROPRIO_FLOATS = 8
PROPRIO_DTYPE = np.dtype(">f4")
PROPRIO_TICK_LEN = PROPRIO_FLOATS * PROPRIO_DTYPE.itemsize  # 32

ACTION_LEN = 1

MAX_GRID_DIM = 0xFFFF
MAX_K = 0xFF
MAX_WINDOW_COUNT = 0xFFFFFFFF

FORMAT_NAME = "pkdseq"


def body_len(width: int, height: int, k: int) -> int:
    """
    2*K*W*H + K*32 + 1
    """
    return 2 * k * width * height + k * PROPRIO_TICK_LEN + ACTION_LEN
