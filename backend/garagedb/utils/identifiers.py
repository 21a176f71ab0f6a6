# backend/garagedb/utils/identifiers.py
from __future__ import annotations

import os
import time
import uuid
from typing import Optional


def uuid7(timestamp_ms: Optional[int] = None) -> uuid.UUID:
    """
    Build a time-ordered UUIDv7: a 48-bit millisecond timestamp, then the
    version and variant bits, then random bits. Ids minted in a later
    millisecond sort after earlier ones.
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    if not 0 <= timestamp_ms < 1 << 48:
        raise ValueError("timestamp_ms must fit in 48 bits")
    raw = bytearray(timestamp_ms.to_bytes(6, "big") + os.urandom(10))
    raw[6] = 0x70 | (raw[6] & 0x0F)
    raw[8] = 0x80 | (raw[8] & 0x3F)
    return uuid.UUID(bytes=bytes(raw))


def generate_uuid7() -> str:
    return str(uuid7())


def new_reference_id() -> str:
    """Correlation id shared by the legs of one multi-movement operation."""
    return uuid7().hex
