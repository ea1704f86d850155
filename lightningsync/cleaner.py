"""Periodic cleanup of old snapshots in storage."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from .snapshot import NameInfo, SnapshotNameError, parse_name
from .utils import Cancelled, sleep_context_perturb


@dataclass
class CleanupConfig:
    """Settings for the snapshot cleaner."""

    enabled: bool = False
    interval: timedelta = timedelta(0)
    must_keep_interval: timedelta = timedelta(0)
    remove_old_instances_interval: timedelta = timedelta(0)


@dataclass
class CleanerMetrics:
    """Counters kept by the cleaner; delete_calls is keyed by (lmdb, reason)."""

    list_calls: int = 0
    list_failed: int = 0
    delete_calls: Counter = field(default_factory=Counter)
    delete_failed: int = 0


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class Worker:
    """Periodically removes old snapshots of all instances, not just its own."""

    def __init__(
        self,
        name: str,
        storage: Any,
        conf: CleanupConfig,
        logger: logging.Logger | None = None,
        metrics: CleanerMetrics | None = None,
    ) -> None:
        self.name = name
        self.prefix = name + "__"
        self.storage = storage
        self.conf = conf
        self.metrics = metrics if metrics is not None else CleanerMetrics()
        self._log = logging.LoggerAdapter(
            logger or logging.getLogger(__name__), {"component": "cleaner"}
        )
        self._ignored_filenames: set[str] = set()
        self._snap_first_seen: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._last_by_instance: dict[str, datetime] = {}

    def set_committed(self, last: Mapping[str, datetime]) -> None:
        """Record the snapshot times per instance that were merged and committed."""
        with self._lock:
            for instance, ts in last.items():
                self._last_by_instance[instance] = _aware(ts)

    def get_committed(self, instance: str) -> datetime | None:
        """Return the last committed snapshot time of an instance, if any."""
        with self._lock:
            return self._last_by_instance.get(instance)

    def run(self, stop: threading.Event) -> None:
        """Clean periodically until `stop` is set, then raise Cancelled."""
        if not self.conf.enabled:
            stop.wait()
            raise Cancelled("canceled")
        while True:
            try:
                self.run_once(datetime.now(timezone.utc))
            except Exception as exc:  # noqa: BLE001 - keep cleaning on errors
                self._log.warning("Clean run failed: %s", exc)
            sleep_context_perturb(stop, self.conf.interval.total_seconds())

    def run_once(self, now: datetime | None = None) -> None:
        """Perform one cleanup pass using `now` as the current time."""
        if not self.conf.enabled:
            return
        now = _aware(now) if now is not None else datetime.now(timezone.utc)

        self.metrics.list_calls += 1
        try:
            blobs = self.storage.list(self.prefix)
        except Exception:
            self.metrics.list_failed += 1
            raise

        candidates: list[NameInfo] = []
        seen: set[str] = set()
        for blob in blobs:
            filename = blob.name
            if filename in self._ignored_filenames:
                continue
            try:
                info = parse_name(filename)
            except SnapshotNameError as exc:
                self._log.debug("Skipping invalid filename %s: %s", filename, exc)
                self._ignored_filenames.add(filename)
                continue
            candidates.append(info)
            seen.add(filename)
        n_total = len(candidates)

        for filename in [n for n in self._snap_first_seen if n not in seen]:
            del self._snap_first_seen[filename]

        # Newest first, so the first snapshot per instance is its most recent.
        candidates.sort(key=lambda ni: ni.timestamp_nano, reverse=True)

        # Protect snapshots that appeared recently, measured from first sight.
        seen_instances: set[str] = set()
        evaluate: list[NameInfo] = []
        for info in candidates:
            first_seen = self._snap_first_seen.get(info.full_name)
            if first_seen is None:
                self._snap_first_seen[info.full_name] = now
                continue
            if now - first_seen <= self.conf.must_keep_interval:
                seen_instances.add(info.instance_id)
                continue
            evaluate.append(info)

        # Keep the newest per instance; everything older can go.
        too_old: list[NameInfo] = []
        removable: list[NameInfo] = []
        for info in evaluate:
            if info.instance_id not in seen_instances:
                seen_instances.add(info.instance_id)
                if now - info.timestamp > self.conf.remove_old_instances_interval:
                    too_old.append(info)
                continue
            removable.append(info)

        n_cleaned = 0
        n_error = 0
        for info in removable:
            self._log.debug("Cleaning old snapshot %s", info.full_name)
            if self._delete(info, "newer snapshot"):
                n_cleaned += 1
            else:
                n_error += 1

        # Stale instances may only be removed once their last snapshot was
        # merged and committed in one of our own snapshots.
        for info in too_old:
            committed = self.get_committed(info.instance_id)
            if committed is None or info.timestamp > committed:
                self._log.debug(
                    "Not cleaning stale snapshot %s, merge not proven yet",
                    info.full_name,
                )
                continue
            if not self._delete(info, "stale instance"):
                n_error += 1
                continue
            self._log.info(
                "Cleaning stale instance snapshot %s (instance %s), merge proven",
                info.full_name,
                info.instance_id,
            )
            n_cleaned += 1

        self._log.debug(
            "Cleaning stats: cleaned=%d failed=%d total=%d", n_cleaned, n_error, n_total
        )

    def _delete(self, info: NameInfo, reason: str) -> bool:
        self.metrics.delete_calls[(self.name, reason)] += 1
        try:
            self.storage.delete(info.full_name)
        except Exception as exc:  # noqa: BLE001 - report and carry on
            self._log.warning("Could not delete old snapshot %s: %s", info.full_name, exc)
            self.metrics.delete_failed += 1
            return False
        return True