"""Snapshot data types, file naming and transform validation."""

from __future__ import annotations

import calendar
import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

# Version 2 added flags and the Deleted flag; version 3 fixed DBI flags,
# added compat_version and the per-database transform field.
CURRENT_FORMAT_VERSION = 3
# Oldest snapshot version that can be read.
COMPAT_FORMAT_VERSION = 1
# Oldest snapshot version that written snapshots are compatible with.
WRITE_COMPAT_FORMAT_VERSION = 1

TRANSFORM_DUPSORT_HACK_V1 = "dupsort_hack_v1"
TRANSFORM_NONE = ""

# LMDB MDB_DUPSORT database flag.
DUPSORT_FLAG = 0x04

EXTENSION = "pb.gz"
_TIMESTAMP_LENGTH = len("20060102-150405.000000000")
_DOT_INDEX = 15
_TIMESTAMP_RE = re.compile(r"(\d{4})(\d{2})(\d{2})-(\d{2})(\d{2})(\d{2})-(\d{9})")
_NS_PER_SECOND = 1_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SnapshotNameError(ValueError):
    """Raised when a snapshot file name cannot be parsed."""


class TransformError(ValueError):
    """Raised when a DBI transform is invalid or unsupported."""


@dataclass
class KV:
    """A single key-value entry of a snapshot DBI."""

    key: bytes = b""
    value: bytes = b""
    timestamp_nano: int = 0
    flags: int = 0


@dataclass
class DBI:
    """A database (DBI) within a snapshot."""

    name: str = ""
    entries: list[KV] = field(default_factory=list)
    flags: int = 0
    transform: str = TRANSFORM_NONE

    def validate_transform(self, format_version: int, native_schema: bool) -> None:
        """Raise TransformError if the transform field is not acceptable."""
        if not transform_supported(self.transform):
            raise TransformError(
                f'snapshot dbi "{self.name}": transform "{self.transform}" not supported'
            )
        if native_schema and self.transform != TRANSFORM_NONE:
            raise TransformError(
                f'snapshot dbi "{self.name}": no transforms supported '
                f'for native schema, got "{self.transform}"'
            )
        if format_version >= 3:
            flags_dupsort = bool(self.flags & DUPSORT_FLAG)
            transform_dupsort = self.transform == TRANSFORM_DUPSORT_HACK_V1
            if flags_dupsort and not transform_dupsort:
                raise TransformError(
                    f'snapshot dbi "{self.name}": dupsort DBI flag without '
                    f'expected transform (got "{self.transform}", '
                    f'expected "{TRANSFORM_DUPSORT_HACK_V1}")'
                )
            if not flags_dupsort and transform_dupsort:
                raise TransformError(
                    f'snapshot dbi "{self.name}": non-dupsort DBI flags with '
                    f'unexpected dupsort transform (got "{self.transform}")'
                )


def transform_supported(transform: str) -> bool:
    """Return whether the given transform is supported."""
    return transform in (TRANSFORM_NONE, TRANSFORM_DUPSORT_HACK_V1)


def _to_nanos(ts: datetime | int) -> int:
    if isinstance(ts, int):
        return ts
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return calendar.timegm(ts.utctimetuple()) * _NS_PER_SECOND + ts.microsecond * 1000


def name_timestamp(ts: datetime | int) -> str:
    """Format a datetime or nanosecond UNIX time for use in a snapshot name."""
    seconds, frac = divmod(_to_nanos(ts), _NS_PER_SECOND)
    dt = _EPOCH + timedelta(seconds=seconds)
    return (
        f"{dt.year:04d}{dt.month:02d}{dt.day:02d}-"
        f"{dt.hour:02d}{dt.minute:02d}{dt.second:02d}-{frac:09d}"
    )


def name_timestamp_from_nano(ts_nano: int) -> str:
    """Format a nanosecond UNIX timestamp for use in a snapshot name."""
    return name_timestamp(int(ts_nano))


def name(syncer_name: str, instance_id: str, generation_id: str, ts: datetime | int) -> str:
    """Build a snapshot file name."""
    return f"{syncer_name}__{instance_id}__{name_timestamp(ts)}__{generation_id}.{EXTENSION}"


def short_hash(instance: str, timestamp: str) -> str:
    """Return a short hash to visually distinguish snapshots in logs."""
    return hashlib.sha256(f"{instance}-{timestamp}".encode()).hexdigest()[:7]


@dataclass
class NameInfo:
    """Information parsed from a snapshot file name."""

    full_name: str = ""
    extension: str = ""
    syncer_name: str = ""
    instance_id: str = ""
    generation_id: str = ""
    timestamp_string: str = ""
    timestamp_nano: int = 0

    @property
    def timestamp(self) -> datetime:
        """The snapshot time as a UTC datetime (microsecond precision)."""
        return _EPOCH + timedelta(microseconds=self.timestamp_nano // 1000)

    def short_hash(self) -> str:
        """Return a short hash to visually distinguish snapshots in logs."""
        return short_hash(self.instance_id, self.timestamp_string)


def _parse_timestamp(tss: str, full: str) -> int:
    match = _TIMESTAMP_RE.fullmatch(tss)
    if not match:
        raise SnapshotNameError(f"timestamp parse error: {tss} in {full}")
    year, month, day, hour, minute, second, frac = (int(g) for g in match.groups())
    try:
        datetime(year, month, day, hour, minute, second)
    except ValueError as exc:
        raise SnapshotNameError(f"timestamp parse error: {exc}") from exc
    seconds = calendar.timegm((year, month, day, hour, minute, second))
    return seconds * _NS_PER_SECOND + frac


def parse_name(name: str) -> NameInfo:
    """Parse a snapshot file name, raising SnapshotNameError if invalid."""
    basename, dot, ext = name.partition(".")
    if not dot:
        raise SnapshotNameError(f"invalid name: no dot: {name}")
    if ext != EXTENSION:
        raise SnapshotNameError(f"unexpected extension: {name}")
    parts = basename.split("__")
    if len(parts) < 4:
        raise SnapshotNameError(f"not enough name parts: {name}")
    syncer_name, instance_id, tss, generation_id = parts[:4]
    if len(tss) != _TIMESTAMP_LENGTH or tss[_DOT_INDEX] != "-":
        raise SnapshotNameError(f"invalid timestamp format: {tss} in {name}")
    return NameInfo(
        full_name=name,
        extension=ext,
        syncer_name=syncer_name,
        instance_id=instance_id,
        generation_id=generation_id,
        timestamp_string=tss,
        timestamp_nano=_parse_timestamp(tss, name),
    )


@dataclass
class Update:
    """A loaded snapshot together with the name it was stored under."""

    snapshot: Any = None
    name_info: NameInfo = field(default_factory=NameInfo)