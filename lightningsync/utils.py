"""Small helpers for waiting, timing and displaying raw keys."""

from __future__ import annotations

import calendar
import random
import threading
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NS_PER_SECOND = 1_000_000_000
_RECENT_START_NS = calendar.timegm((2022, 1, 1, 0, 0, 0)) * _NS_PER_SECOND
_RECENT_MARGIN_NS = 30 * 24 * 3600 * _NS_PER_SECOND


class Cancelled(Exception):
    """Raised when a wait is interrupted by a stop signal."""


def sleep_context(stop: threading.Event, seconds: float) -> None:
    """Sleep for the given time, raising Cancelled if `stop` is set first."""
    if stop.wait(max(seconds, 0.0)):
        raise Cancelled("canceled")


def sleep_context_perturb(stop: threading.Event, seconds: float) -> None:
    """Like sleep_context, with the duration randomised to 80%-120%."""
    factor = (800 + random.randrange(400)) / 1000
    sleep_context(stop, seconds * factor)


def is_canceled(stop: threading.Event) -> bool:
    """Return whether the stop signal has been set."""
    return stop.is_set()


def _datetime_to_ns(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = calendar.timegm(dt.utctimetuple())
    return seconds * _NS_PER_SECOND + dt.microsecond * 1000


def _format_rfc3339_nano(ns: int) -> str:
    seconds, frac = divmod(ns, _NS_PER_SECOND)
    dt = _EPOCH + timedelta(seconds=seconds)
    text = (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )
    if frac:
        text += "." + f"{frac:09d}".rstrip("0")
    return text + "Z"


def display_ascii(data: bytes | None, now: datetime | None = None) -> str:
    """Render a key as ASCII, adding hex (and a timestamp) when useful.

    Unsafe characters are replaced by '.'. The hex form is added when the
    input contains unsafe characters or is at most 8 bytes long. When the
    first 8 bytes look like a recent nanosecond UNIX timestamp, it is shown.
    """
    raw = bytes(data or b"")
    unsafe = any(ch < 32 or ch > 126 for ch in raw)
    text = "".join(chr(ch) if 32 <= ch <= 126 else "." for ch in raw)

    ts_string = ""
    if len(raw) >= 8:
        ts_nano = int.from_bytes(raw[:8], "big", signed=True)
        now_ns = _datetime_to_ns(now or datetime.now(timezone.utc))
        if _RECENT_START_NS < ts_nano < now_ns + _RECENT_MARGIN_NS:
            ts_string = _format_rfc3339_nano(ts_nano)

    if unsafe or len(raw) <= 8 or ts_string:
        hex_part = raw.hex(" ")
        if ts_string:
            return f"{text} [{hex_part}] ({ts_string})"
        return f"{text} [{hex_part}]"
    return text


def time_diff(t1: datetime, t0: datetime) -> timedelta:
    """Return t1 - t0 rounded to the millisecond (halves away from zero)."""
    micros = (t1 - t0) // timedelta(microseconds=1)
    whole, rest = divmod(abs(micros), 1000)
    if rest >= 500:
        whole += 1
    return timedelta(milliseconds=whole if micros >= 0 else -whole)