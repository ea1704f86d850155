"""Tracking of the startup phase of a syncer."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from .healthtracker import HealthError, HealthWarning, _format_seconds

MIN_EVALUATION_INTERVAL = 1.0
MIN_ERROR_DURATION = 0.0
MIN_WARN_DURATION = 0.0


@dataclass(frozen=True)
class StartConfig:
    """Thresholds for the startup tracker; durations in seconds."""

    evaluation_interval: float = 0.0
    error_duration: float = 0.0
    warn_duration: float = 0.0
    report_healthz: bool = False
    report_metadata: bool = False

    def validated(self) -> StartConfig:
        """Return a copy with the minimum values enforced."""
        return replace(
            self,
            evaluation_interval=max(self.evaluation_interval, MIN_EVALUATION_INTERVAL),
            error_duration=max(self.error_duration, MIN_ERROR_DURATION),
            warn_duration=max(self.warn_duration, MIN_WARN_DURATION),
        )


class StartTracker:
    """Tracks whether the initial listing, store and load have completed."""

    def __init__(
        self,
        config: StartConfig,
        prefix: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config.validated()
        self.prefix = prefix
        self.name = f"{prefix}_startup_in_progress"
        self.meta_field_startup = f"startup_{prefix}"
        self.metadata: dict[str, bool] = {}
        self.registered = True
        self._clock = clock
        self._lock = threading.Lock()
        self._initial_listing = False
        self._initial_store = False
        self._initial_receive_and_load = False
        self._since = clock()
        self._logger = logging.LoggerAdapter(
            logging.getLogger(__name__), {"starttracker": prefix}
        )
        if self.config.report_metadata:
            self.metadata[self.meta_field_startup] = False
        self._logger.info("registered tracker for startup phase")

    @property
    def startup_complete(self) -> bool:
        with self._lock:
            return (
                self._initial_listing
                and self._initial_store
                and self._initial_receive_and_load
            )

    def set_passed_initial_listing(self) -> None:
        """Record that the initial storage listing has been obtained."""
        with self._lock:
            self._initial_listing = True
        self._logger.debug("tracked successful initial listing")

    def set_passed_initial_store(self) -> None:
        """Record that the initial snapshot has been stored (or skipped)."""
        with self._lock:
            self._initial_store = True
        self._logger.debug("tracked successful initial snapshot store")

    def set_pass_completed(self) -> None:
        """Record that a sync pass completed; only the first time matters."""
        with self._lock:
            first = not self._initial_receive_and_load
            self._initial_receive_and_load = True
        if first:
            self._logger.debug("tracked successful initial receive & load")

    def check(self, now: float | None = None) -> None:
        """Evaluate startup health, raising HealthError or HealthWarning."""
        if not self.registered:
            return None
        current = self._clock() if now is None else now
        failing_for = current - self._since
        if not self.startup_complete:
            if self.config.report_healthz:
                shown = _format_seconds(failing_for)
                if failing_for >= self.config.error_duration:
                    self._logger.debug(
                        "successful startup pending after %s is violating "
                        "the error threshold (%s)",
                        shown,
                        _format_seconds(self.config.error_duration),
                    )
                    raise HealthError(f"successful startup pending after {shown}")
                if failing_for >= self.config.warn_duration:
                    self._logger.debug(
                        "successful startup pending after %s is violating "
                        "the warning threshold (%s)",
                        shown,
                        _format_seconds(self.config.warn_duration),
                    )
                    raise HealthWarning(f"successful startup pending after {shown}")
            return None

        if self.config.report_metadata:
            self.metadata[self.meta_field_startup] = True
        self._logger.info("startup phase completed successfully")
        # The startup phase is irrelevant once it has passed.
        self.registered = False
        return None