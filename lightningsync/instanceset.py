"""A set of instances that are still being waited for."""

from __future__ import annotations

from collections.abc import Iterable


class InstanceSet:
    """Set of instance names with sorted listing."""

    def __init__(self) -> None:
        self._names: set[str] = set()

    def add(self, name: str) -> None:
        self._names.add(name)

    def remove(self, name: str) -> None:
        self._names.discard(name)

    def done(self) -> bool:
        """Return True when no instances are left."""
        return not self._names

    def contains(self, name: str) -> bool:
        return name in self._names

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def list(self) -> list[str]:
        """Return the instance names in sorted order."""
        return sorted(self._names)

    def __str__(self) -> str:
        return " ".join(self.list())

    def clean_disappeared(self, seen: Iterable[str]) -> list[str]:
        """Drop instances not in `seen`, returning the dropped names sorted."""
        gone = self._names - set(seen)
        self._names -= gone
        return sorted(gone)