"""Monitoring of a storage backend and downloading of remote snapshots."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from .codec import load_data
from .healthtracker import HealthConfig, HealthTracker
from .snapshot import NameInfo, SnapshotNameError, Update, parse_name
from .utils import Cancelled, sleep_context, time_diff

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

# Histogram buckets for the age of received snapshots, in seconds.
AGE_BUCKETS = (
    0.1, 0.2, 0.5, 1, 2, 5, 10, 30,
    1 * _MINUTE, 2 * _MINUTE, 5 * _MINUTE, 10 * _MINUTE, 30 * _MINUTE,
    1 * _HOUR, 2 * _HOUR, 6 * _HOUR, 12 * _HOUR,
    1 * _DAY, 3 * _DAY, 7 * _DAY, 14 * _DAY, 30 * _DAY,
)

# How often a waiting downloader checks whether it has been stopped.
_WAKE_INTERVAL = 0.05


@dataclass
class ReceiverConfig:
    """Receiver settings; intervals are in seconds."""

    storage_poll_interval: float = 0.0
    storage_retry_interval: float = 0.0
    storage_list_health: HealthConfig = field(default_factory=HealthConfig)
    storage_load_health: HealthConfig = field(default_factory=HealthConfig)


@dataclass
class ReceiverMetrics:
    """Counters and gauges kept by the receiver and its downloaders.

    Labelled values are keyed by (lmdb, instance) or by lmdb name.
    """

    last_received_timestamp: dict[tuple[str, str], float] = field(default_factory=dict)
    last_received_age: dict[tuple[str, str], list[float]] = field(
        default_factory=lambda: defaultdict(list)
    )
    load_calls: int = 0
    list_calls: int = 0
    load_failed: Counter = field(default_factory=Counter)
    list_failed: Counter = field(default_factory=Counter)
    load_bytes: int = 0


class Downloader:
    """Downloads and unpacks the latest snapshot of one remote instance."""

    def __init__(self, receiver: Receiver, instance: str) -> None:
        self._r = receiver
        self.instance = instance
        self.lmdbname = receiver.lmdbname
        self.last = NameInfo()
        self._signal = threading.Event()
        self._log = logging.LoggerAdapter(
            receiver.logger,
            {
                "component": "downloader",
                "instance": receiver.own_instance,
                "snapshot_instance": instance,
            },
        )

    def notify_new_snapshot(self) -> None:
        """Signal that a new snapshot is available; never blocks."""
        self._signal.set()

    def _wait_for_signal(self, stop: threading.Event) -> None:
        while not self._signal.wait(_WAKE_INTERVAL):
            if stop.is_set():
                raise Cancelled("canceled")
        if stop.is_set():
            raise Cancelled("canceled")
        self._signal.clear()

    def run(self, stop: threading.Event) -> None:
        """Keep loading the newest snapshot of the instance until stopped.

        Failed loads are retried after the retry interval until they succeed
        or a newer snapshot replaces the failing one. Raises Cancelled.
        """
        while True:
            self._wait_for_signal(stop)
            while True:
                with self._r._lock:
                    info = self._r._last_seen_by_instance.get(self.instance)
                if info is None:
                    self._log.warning("this instance no longer has any snapshots")
                    break
                if info.full_name == self.last.full_name:
                    break
                try:
                    self.load_once(info)
                except Exception as exc:  # noqa: BLE001 - retried below
                    self._log.warning("Load error for %s: %s", info.full_name, exc)
                    sleep_context(stop, self._r.config.storage_retry_interval)
                    continue
                self.last = info
                break

    def load_once(self, name_info: NameInfo) -> None:
        """Fetch and unpack one snapshot and offer it to the receiver.

        Storage errors propagate; undecodable snapshots are marked corrupt
        and the decoding error is re-raised.
        """
        r = self._r
        t0 = time.monotonic()
        r.metrics.load_calls += 1
        try:
            data = r.storage.load(name_info.full_name)
        except Exception as exc:
            r.metrics.load_failed[(self.lmdbname, self.instance)] += 1
            r.storage_load_health.add_failure(exc)
            raise
        r.storage_load_health.add_success()
        r.metrics.load_bytes += len(data)
        t1 = time.monotonic()

        try:
            message = load_data(data, r.parse)
        except Exception as exc:
            r.mark_corrupt(name_info.full_name, exc)
            self.last = name_info
            raise

        with r._lock:
            r._snapshots_by_instance[self.instance] = Update(
                snapshot=message, name_info=name_info
            )

        t2 = time.monotonic()
        self._log.info(
            "Snapshot downloaded: timestamp=%s shorthash=%s "
            "time_load_storage=%.3fs time_load_total=%.3fs",
            name_info.timestamp_string,
            name_info.short_hash(),
            t1 - t0,
            t2 - t0,
        )


class Receiver:
    """Watches storage for new snapshots and hands the latest ones to the syncer.

    A Downloader thread is started per remote instance. When the syncer asks
    for a snapshot it gets the newest one available at that moment.
    """

    def __init__(
        self,
        storage: Any,
        config: ReceiverConfig,
        dbname: str,
        logger: logging.Logger | None = None,
        own_instance: str = "",
        parse: Callable[[bytes], Any] | None = None,
        metrics: ReceiverMetrics | None = None,
    ) -> None:
        self.storage = storage
        self.config = config
        self.lmdbname = dbname
        self.prefix = dbname + "__"
        self.own_instance = own_instance
        self.parse = parse
        self.metrics = metrics if metrics is not None else ReceiverMetrics()
        self.logger = logger or logging.getLogger(__name__)
        self._log = logging.LoggerAdapter(self.logger, {"component": "receiver"})

        # Only used by the thread calling run_once.
        self._last_notified_by_instance: dict[str, NameInfo] = {}
        self._ignored_filenames: set[str] = set()

        # Shared with downloader threads.
        self._lock = threading.Lock()
        self._snapshots_by_instance: dict[str, Update] = {}
        self._last_seen_by_instance: dict[str, NameInfo] = {}
        self._downloaders_by_instance: dict[str, Downloader] = {}
        self._has_snapshots = False
        self._corrupt_snapshots: dict[str, BaseException | str] = {}

        self.storage_list_health = HealthTracker(
            config.storage_list_health,
            f"{dbname}_storage_list",
            "list snapshots on storage backend",
        )
        self.storage_load_health = HealthTracker(
            config.storage_load_health,
            f"{dbname}_storage_load",
            "load a snapshot from storage backend",
        )

    def next(self) -> tuple[str, Update] | None:
        """Take the next ready snapshot as (instance, update), or None."""
        with self._lock:
            if not self._snapshots_by_instance:
                return None
            instance = next(iter(self._snapshots_by_instance))
            return instance, self._snapshots_by_instance.pop(instance)

    def has_snapshots(self) -> bool:
        """Return whether storage held any snapshots for our prefix."""
        with self._lock:
            return self._has_snapshots

    def seen_instances(self) -> list[str]:
        """Return all seen instance names (sorted), including our own."""
        with self._lock:
            return sorted(self._last_seen_by_instance)

    def mark_corrupt(self, filename: str, err: BaseException | str) -> None:
        """Mark a snapshot as corrupt so that it is ignored from now on."""
        with self._lock:
            if filename in self._corrupt_snapshots:
                return
            self._corrupt_snapshots[filename] = err
        self._log.warning(
            "Snapshot %s marked as corrupt and will be ignored: %s", filename, err
        )

    def run(self, stop: threading.Event) -> None:
        """Poll storage until `stop` is set, then raise Cancelled."""
        while True:
            try:
                self.run_once(stop, False)
            except Exception as exc:  # noqa: BLE001 - keep polling on errors
                self._log.error("Fetch error: %s", exc)
            sleep_context(stop, self.config.storage_poll_interval)

    def run_once(self, stop: threading.Event, including_own: bool) -> None:
        """List storage once and notify downloaders of new snapshots.

        Snapshots of our own instance are only downloaded if `including_own`
        is set, but are always counted as seen.
        """
        try:
            blobs = self.storage.list(self.prefix)
        except Exception as exc:
            self.metrics.list_calls += 1
            self.metrics.list_failed[self.lmdbname] += 1
            self.storage_list_health.add_failure(exc)
            raise RuntimeError(f"list snapshots: {exc}") from exc
        self.metrics.list_calls += 1
        self.storage_list_health.add_success()

        with self._lock:
            self._ignored_filenames.update(self._corrupt_snapshots)

        last_seen: dict[str, NameInfo] = {}
        for filename in sorted(blob.name for blob in blobs):
            if filename in self._ignored_filenames:
                continue
            try:
                info = parse_name(filename)
            except SnapshotNameError as exc:
                self._log.debug("Skipping invalid filename %s: %s", filename, exc)
                self._ignored_filenames.add(filename)
                continue
            # Names sort by time per instance, so newer ones overwrite older.
            last_seen[info.instance_id] = info

        now_ns = time.time_ns()
        with self._lock:
            self._last_seen_by_instance = last_seen
            self._has_snapshots = bool(last_seen)

        for instance, info in last_seen.items():
            notified = self._last_notified_by_instance.get(instance)
            if notified is not None and notified.full_name == info.full_name:
                continue
            if not including_own and instance == self.own_instance:
                continue

            age = (now_ns - info.timestamp_nano) / 1e9
            self._log.debug(
                "New snapshot detected: instance=%s timestamp=%s generation=%s age=%.2fs",
                instance,
                info.timestamp_string,
                info.generation_id,
                age,
            )
            key = (self.lmdbname, instance)
            self.metrics.last_received_timestamp[key] = info.timestamp_nano / 1e9
            self.metrics.last_received_age[key].append(age)

            self._get_downloader(stop, instance).notify_new_snapshot()
            self._last_notified_by_instance[instance] = info

    def _get_downloader(self, stop: threading.Event, instance: str) -> Downloader:
        with self._lock:
            existing = self._downloaders_by_instance.get(instance)
            if existing is not None:
                return existing
            downloader = Downloader(self, instance)
            self._downloaders_by_instance[instance] = downloader

        def work() -> None:
            try:
                downloader.run(stop)
            except Cancelled:
                pass
            except Exception as exc:  # noqa: BLE001 - logged, thread ends
                downloader._log.warning("Run returned with an error: %s", exc)
            downloader._log.debug("Run exited")
            with self._lock:
                self._downloaders_by_instance.pop(instance, None)

        threading.Thread(
            target=work, name=f"downloader-{self.lmdbname}-{instance}", daemon=True
        ).start()
        return downloader


__all__ = [
    "AGE_BUCKETS",
    "Downloader",
    "Receiver",
    "ReceiverConfig",
    "ReceiverMetrics",
    "time_diff",
]