"""An in-memory blob store used for snapshots."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class Blob:
    """A stored blob's name and size in bytes."""

    name: str
    size: int


class BlobNotFound(LookupError):
    """Raised when a blob does not exist."""


class MemoryStorage:
    """Thread-safe blob storage kept in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blobs: dict[str, bytes] = {}

    def list(self, prefix: str = "") -> list[Blob]:
        """Return blobs whose names start with `prefix`, sorted by name."""
        with self._lock:
            return [
                Blob(name, len(data))
                for name, data in sorted(self._blobs.items())
                if name.startswith(prefix)
            ]

    def load(self, name: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[name]
            except KeyError:
                raise BlobNotFound(name) from None

    def store(self, name: str, data: bytes) -> None:
        with self._lock:
            self._blobs[name] = bytes(data)

    def delete(self, name: str) -> None:
        """Remove a blob; removing a missing blob is not an error."""
        with self._lock:
            self._blobs.pop(name, None)