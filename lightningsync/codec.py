"""Compression and decompression of serialized snapshot files."""

from __future__ import annotations

import gzip
import time
import zlib
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class DumpDataStats:
    """Timings of a dump, in seconds."""

    t_marshaled: float = 0.0
    t_compressed: float = 0.0


def load_data(data: bytes, parse: Callable[[bytes], Any] | None = None) -> Any:
    """Decompress gzipped snapshot data and parse it.

    Without a parser the decompressed bytes are returned. Raises ValueError
    if the data is not valid gzip.
    """
    if not data:
        raise ValueError("invalid snapshot data: empty input")
    try:
        payload = gzip.decompress(bytes(data))
    except (OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"invalid snapshot data: {exc}") from exc
    return parse(payload) if parse is not None else payload


def dump_data(payload: Any) -> tuple[bytes, DumpDataStats]:
    """Serialize (if needed) and gzip a snapshot, returning data and timings.

    `payload` is either bytes or a message with a SerializeToString method.
    """
    stats = DumpDataStats()
    t0 = time.perf_counter()
    if isinstance(payload, (bytes, bytearray, memoryview)):
        raw = bytes(payload)
    else:
        raw = payload.SerializeToString()
    t_marshaled = time.perf_counter()
    stats.t_marshaled = t_marshaled - t0
    out = gzip.compress(raw, compresslevel=1, mtime=0)
    stats.t_compressed = time.perf_counter() - t_marshaled
    return out, stats