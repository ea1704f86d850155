import pytest

from lightningsync.healthtracker import HealthError, HealthWarning
from lightningsync.starttracker import StartConfig, StartTracker


class FakeClock:
    def __init__(self, value=0.0):
        self.value = value

    def __call__(self):
        return self.value


def complete(tracker):
    tracker.set_passed_initial_listing()
    tracker.set_passed_initial_store()
    tracker.set_pass_completed()


def test_validated_enforces_minimums():
    cfg = StartConfig(evaluation_interval=0.0, error_duration=-1, warn_duration=-2,
                      report_healthz=True)
    assert cfg.validated() == StartConfig(1.0, 0.0, 0.0, True, False)


def test_pending_startup_reports_warning_then_error():
    clock = FakeClock(0.0)
    tracker = StartTracker(
        StartConfig(error_duration=60.0, warn_duration=10.0, report_healthz=True),
        "db",
        clock=clock,
    )
    assert tracker.check(now=5.0) is None
    with pytest.raises(HealthWarning) as warn:
        tracker.check(now=15.0)
    assert str(warn.value) == "successful startup pending after 15s"
    with pytest.raises(HealthError):
        tracker.check(now=61.0)
    assert tracker.registered is True


def test_pending_without_healthz_reporting_is_silent():
    tracker = StartTracker(StartConfig(), "db", clock=FakeClock())
    assert tracker.check(now=1000.0) is None
    assert tracker.startup_complete is False
    assert tracker.registered is True


def test_all_steps_required():
    tracker = StartTracker(StartConfig(report_healthz=True), "db", clock=FakeClock())
    tracker.set_pass_completed()
    tracker.set_passed_initial_listing()
    assert tracker.startup_complete is False
    with pytest.raises(HealthError):
        tracker.check(now=1.0)
    tracker.set_passed_initial_store()
    assert tracker.startup_complete is True


def test_completion_sets_metadata_and_deregisters():
    tracker = StartTracker(
        StartConfig(report_healthz=True, report_metadata=True), "db", clock=FakeClock()
    )
    assert tracker.metadata == {"startup_db": False}
    assert tracker.name == "db_startup_in_progress"
    complete(tracker)
    assert tracker.check(now=2.0) is None
    assert tracker.metadata == {"startup_db": True}
    assert tracker.registered is False


def test_no_metadata_when_not_reported():
    tracker = StartTracker(StartConfig(), "db", clock=FakeClock())
    complete(tracker)
    tracker.check(now=1.0)
    assert tracker.metadata == {}
    assert tracker.registered is False


def test_pass_completed_is_idempotent():
    tracker = StartTracker(StartConfig(), "db", clock=FakeClock())
    tracker.set_passed_initial_listing()
    tracker.set_passed_initial_store()
    tracker.set_pass_completed()
    tracker.set_pass_completed()
    assert tracker.startup_complete is True