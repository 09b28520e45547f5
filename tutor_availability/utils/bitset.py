from __future__ import annotations

from datetime import time
from typing import Iterable, List

from ..core.constants import SLOT_MINUTES, SLOTS_PER_DAY

# 30-min resolution → 48 slots/day
BYTES_PER_DAY = 6


def pack_indexes(indexes: Iterable[int]) -> bytes:
    b = bytearray(BYTES_PER_DAY)
    for idx in indexes:
        if not (0 <= idx < SLOTS_PER_DAY):
            raise ValueError(f"index out of range: {idx}")
        byte_i = idx // 8
        bit_i = idx % 8
        b[byte_i] |= 1 << bit_i
    return bytes(b)


def unpack_indexes(bits: bytes) -> List[int]:
    if len(bits) != BYTES_PER_DAY:
        raise ValueError("bits length must be 6 for 30-min resolution")
    out: List[int] = []
    for byte_i, val in enumerate(bits):
        for bit_i in range(8):
            idx = byte_i * 8 + bit_i
            if idx >= SLOTS_PER_DAY:
                break
            if (val >> bit_i) & 1:
                out.append(idx)
    return out


def times_from_bits(bits: bytes) -> List[time]:
    """Start time of every set slot, in order."""
    out: List[time] = []
    for idx in unpack_indexes(bits):
        minutes = idx * SLOT_MINUTES
        out.append(time(minutes // 60, minutes % 60))
    return out
