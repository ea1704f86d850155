"""Tracking of consecutive failures of a recurring activity."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

# Minimum interval allowed between health evaluations, in seconds.
MIN_EVALUATION_INTERVAL = 1.0
# Minimum failure duration before a tracked item is considered failing.
MIN_ERROR_DURATION = 0.0
# Minimum failure duration before a tracked item is considered warning.
MIN_WARN_DURATION = 0.0


class HealthError(Exception):
    """Raised by a health check that evaluates as failing."""


class HealthWarning(Exception):
    """Raised by a health check that evaluates as warning."""


def _round_seconds(seconds: float) -> int:
    """Round to whole seconds, halves away from zero."""
    whole = int(abs(seconds) + 0.5)
    return whole if seconds >= 0 else -whole


def _format_seconds(seconds: float) -> str:
    """Format a duration rounded to whole seconds, like '1h2m3s'."""
    total = _round_seconds(seconds)
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    hours, rest = divmod(abs(total), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


@dataclass(frozen=True)
class HealthConfig:
    """Thresholds for a health tracker, all in seconds."""

    evaluation_interval: float = 0.0
    error_duration: float = 0.0
    warn_duration: float = 0.0

    def validated(self) -> HealthConfig:
        """Return a copy with the minimum values enforced."""
        return replace(
            self,
            evaluation_interval=max(self.evaluation_interval, MIN_EVALUATION_INTERVAL),
            error_duration=max(self.error_duration, MIN_ERROR_DURATION),
            warn_duration=max(self.warn_duration, MIN_WARN_DURATION),
        )


class HealthTracker:
    """Tracks how long an activity has been failing without interruption."""

    def __init__(
        self,
        config: HealthConfig,
        prefix: str,
        activity: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config.validated()
        self.prefix = prefix
        self.activity = activity
        self.name = f"{prefix}_failed_duration"
        self._clock = clock
        self._lock = threading.Lock()
        self._sequence = 0
        self._since = 0.0
        self._last_error = ""
        self._logger = logging.LoggerAdapter(
            logging.getLogger(__name__), {"healthtracker": prefix}
        )
        self._logger.info("registered tracker for failure duration")

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._sequence

    @property
    def last_error(self) -> str:
        with self._lock:
            return self._last_error

    def add_failure(self, err: BaseException | str) -> None:
        """Record a failed attempt."""
        with self._lock:
            self._last_error = str(err)
            if self._sequence == 0:
                self._since = self._clock()
            self._sequence += 1
        self._logger.debug("tracked failed attempt")

    def add_success(self) -> None:
        """Record a successful attempt, resetting the failure sequence."""
        with self._lock:
            self._sequence = 0
            self._last_error = ""
        self._logger.debug("tracked successful attempt")

    def check(self, now: float | None = None) -> None:
        """Evaluate health, raising HealthError or HealthWarning when failing."""
        with self._lock:
            failures = self._sequence
            since = self._since
            last_error = self._last_error
        if failures == 0:
            return None
        current = self._clock() if now is None else now
        failing_for = current - since
        shown = _format_seconds(failing_for)
        if failing_for >= self.config.error_duration:
            self._logger.warning(
                "failure for %s is violating the error threshold (%s)",
                shown,
                _format_seconds(self.config.error_duration),
            )
            raise HealthError(
                f"failed to {self.activity} for {shown} - last error: '{last_error}'"
            )
        if failing_for >= self.config.warn_duration:
            self._logger.warning(
                "failure for %s is violating the warning threshold (%s)",
                shown,
                _format_seconds(self.config.warn_duration),
            )
            raise HealthWarning(
                f"failed to {self.activity} for {shown} - last error: '{last_error}'"
            )
        return None