# lightningsync

Building blocks for keeping several copies of a key-value database in sync
through a shared blob store. Each instance writes gzip-compressed snapshots
under predictable names; other instances list, download and unpack them, and
a background cleaner removes snapshots that are no longer needed.

The package has no third-party dependencies.

## Installation

```
pip install lightningsync
```

For running the tests:

```
pip install "lightningsync[test]"
pytest
```

## Modules

- `lightningsync.snapshot`
  - Snapshot file names of the form
    `<syncer>__<instance>__<YYYYMMDD-HHMMSS-nnnnnnnnn>__<generation>.pb.gz`:
    `name`, `name_timestamp`, `name_timestamp_from_nano`, and `parse_name`,
    which returns a `NameInfo` or raises `SnapshotNameError`.
  - `short_hash` and `NameInfo.short_hash()` give a 7-character hash for
    telling snapshots apart in logs.
  - The `KV`, `DBI`, `NameInfo` and `Update` records and the format version
    constants (`CURRENT_FORMAT_VERSION`, `COMPAT_FORMAT_VERSION`,
    `WRITE_COMPAT_FORMAT_VERSION`).
  - Transform checks: `transform_supported`, and
    `DBI.validate_transform(format_version, native_schema)`, which raises
    `TransformError`.
- `lightningsync.codec`
  - `dump_data(payload)` gzips bytes, or an object with a
    `SerializeToString()` method, and returns `(data, DumpDataStats)` with
    the marshal and compress timings in seconds.
  - `load_data(data, parse=None)` decompresses and passes the payload to
    `parse`, returning the raw bytes when no parser is given. Invalid input
    raises `ValueError`.
- `lightningsync.dupsorthack`
  - `encode_one` / `decode_one` and the list forms `encode` / `decode` turn
    duplicate-sorted entries into unique keys and back.
  - Errors raise `DupSortHackError`.
- `lightningsync.instanceset`
  - `InstanceSet` is the set of instances still being waited for. It has
    `add`, `remove`, `contains`, `done`, a sorted `list()`, and
    `clean_disappeared(seen)`.
- `lightningsync.storage`
  - `MemoryStorage` is a thread-safe in-memory blob store. `list(prefix)`
    returns `Blob(name, size)` items sorted by name.
  - It also has `load`, which raises `BlobNotFound`, `store` and `delete`.
- `lightningsync.healthtracker`
  - `HealthTracker` counts consecutive failures through `add_failure` and
    `add_success`.
  - `check(now)` raises `HealthError` or `HealthWarning` once the failures
    have lasted past the thresholds in `HealthConfig`.
- `lightningsync.starttracker`
  - `StartTracker` records the initial listing, the initial store and the
    first completed pass.
  - Until all three are recorded, `check(now)` can raise `HealthError` or
    `HealthWarning`, if `StartConfig.report_healthz` is set.
- `lightningsync.cleaner`
  - `Worker` removes snapshots that have been superseded by newer ones from
    the same instance. A snapshot is only removed after it has been seen for
    longer than `must_keep_interval`.
  - It also removes the last snapshot of a stale instance, once
    `set_committed` has recorded that snapshot as merged.
  - `run_once(now)` does a single pass. `run(stop)` repeats it until the
    `threading.Event` is set.
- `lightningsync.receiver`
  - `Receiver` lists storage and starts one `Downloader` thread per remote
    instance.
  - `next()` returns `(instance, Update)` for the newest downloaded snapshot
    of an instance, or `None` when nothing is ready.
  - Undecodable snapshots are marked corrupt and ignored from then on.
- `lightningsync.utils`
  - `display_ascii` renders raw keys readably.
  - `sleep_context`, `sleep_context_perturb` and `is_canceled` take a
    `threading.Event` as the stop signal. An interrupted sleep raises
    `Cancelled`.
  - `time_diff` rounds a time difference to the millisecond.

## Example

```python
import threading
import time
from datetime import datetime, timezone

from lightningsync.cleaner import CleanupConfig, Worker
from lightningsync.codec import dump_data
from lightningsync.receiver import Receiver, ReceiverConfig
from lightningsync.snapshot import name, parse_name
from lightningsync.storage import MemoryStorage

store = MemoryStorage()

ts = datetime(2022, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
snapshot_name = name("db1", "other", "G-0000000000000000", ts)
info = parse_name(snapshot_name)
print(info.instance_id, info.timestamp_string, info.short_hash())

data, stats = dump_data(b"serialized snapshot")
store.store(snapshot_name, data)

stop = threading.Event()
receiver = Receiver(store, ReceiverConfig(), "db1", own_instance="self")
receiver.run_once(stop, False)
time.sleep(0.2)  # give the downloader thread time to fetch it
ready = receiver.next()
if ready is not None:
    instance, update = ready
    print(instance, update.snapshot)  # "other", b"serialized snapshot"
stop.set()

worker = Worker("db1", store, CleanupConfig(enabled=True))
worker.run_once(datetime.now(timezone.utc))
```

## What this package does not do

- It does not open, read or write an LMDB (or any other) database. Merging
  snapshot entries into a database, shadow databases and sending snapshots
  are left to the caller.
- It does not define the snapshot message format. `load_data` takes a parser
  function, and `dump_data` takes bytes or an already-built message.
- The only storage backend is the in-memory `MemoryStorage`. Any other store
  with the same `list`, `load`, `store` and `delete` methods can be passed
  in.
- There is no command-line program, configuration file loader, HTTP status
  page or metrics exporter. Metrics are kept as plain counters in
  `CleanerMetrics` and `ReceiverMetrics`.