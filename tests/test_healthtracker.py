import pytest

from lightningsync.healthtracker import (
    HealthConfig,
    HealthError,
    HealthTracker,
    HealthWarning,
)


class FakeClock:
    def __init__(self, value=0.0):
        self.value = value

    def __call__(self):
        return self.value


def make_tracker(clock, error=10.0, warn=5.0):
    return HealthTracker(
        HealthConfig(error_duration=error, warn_duration=warn),
        "db_storage_store",
        "write to storage backend",
        clock=clock,
    )


def test_validated_enforces_minimums():
    cfg = HealthConfig(evaluation_interval=0.2, error_duration=-5, warn_duration=-1)
    assert cfg.validated() == HealthConfig(1.0, 0.0, 0.0)


def test_validated_keeps_larger_values_and_original():
    cfg = HealthConfig(evaluation_interval=30.0, error_duration=20.0, warn_duration=7.0)
    assert cfg.validated() == cfg
    small = HealthConfig(evaluation_interval=0.0)
    tracker = HealthTracker(small, "x", "do things", clock=FakeClock())
    assert tracker.config.evaluation_interval == 1.0
    assert small.evaluation_interval == 0.0


def test_name_derived_from_prefix():
    tracker = make_tracker(FakeClock())
    assert tracker.name == "db_storage_store_failed_duration"


def test_no_failures_is_healthy():
    tracker = make_tracker(FakeClock())
    assert tracker.check(now=10_000.0) is None
    assert tracker.consecutive_failures == 0


def test_warning_then_error_then_recovery():
    clock = FakeClock(100.0)
    tracker = make_tracker(clock)
    tracker.add_failure(RuntimeError("boom"))
    assert tracker.check(now=103.0) is None
    with pytest.raises(HealthWarning) as warn:
        tracker.check(now=106.0)
    assert str(warn.value) == (
        "failed to write to storage backend for 6s - last error: 'boom'"
    )
    with pytest.raises(HealthError) as err:
        tracker.check(now=111.0)
    assert "write to storage backend" in str(err.value)
    assert "'boom'" in str(err.value)
    tracker.add_success()
    assert tracker.check(now=111.0) is None
    assert tracker.consecutive_failures == 0
    assert tracker.last_error == ""


def test_since_is_set_on_first_failure_only():
    clock = FakeClock(100.0)
    tracker = make_tracker(clock)
    tracker.add_failure(RuntimeError("first"))
    clock.value = 108.0
    tracker.add_failure("second")
    assert tracker.consecutive_failures == 2
    assert tracker.last_error == "second"
    with pytest.raises(HealthError) as err:
        tracker.check(now=111.0)
    assert "'second'" in str(err.value)


def test_zero_error_duration_fails_immediately():
    clock = FakeClock(50.0)
    tracker = HealthTracker(HealthConfig(), "p", "list snapshots", clock=clock)
    tracker.add_failure(ValueError("nope"))
    with pytest.raises(HealthError) as err:
        tracker.check()
    assert str(err.value) == "failed to list snapshots for 0s - last error: 'nope'"


def test_failure_after_success_restarts_timer():
    clock = FakeClock(0.0)
    tracker = make_tracker(clock)
    tracker.add_failure("a")
    tracker.add_success()
    clock.value = 200.0
    tracker.add_failure("b")
    assert tracker.check(now=202.0) is None