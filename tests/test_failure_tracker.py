"""
Tests for the consecutive-failure tracker
"""
import pytest

from dashboard_data.errors import FailureKind
from dashboard_data.failure_tracker import FailureTracker


class TestTripping:

    def test_three_failures_within_four_minutes_trips(self, tracker, clock):
        assert tracker.record_failure(FailureKind.NETWORK) is False
        clock.advance(120)
        assert tracker.record_failure(FailureKind.TIMEOUT) is False
        clock.advance(120)
        assert tracker.record_failure(FailureKind.NETWORK) is True

    def test_three_failures_across_six_minutes_does_not_trip(self, tracker, clock):
        """The window opened by the first failure expires before the third arrives"""
        assert tracker.record_failure(FailureKind.NETWORK) is False
        clock.advance(180)
        assert tracker.record_failure(FailureKind.NETWORK) is False
        clock.advance(180)
        assert tracker.record_failure(FailureKind.NETWORK) is False
        assert tracker.consecutive_count == 1

    def test_window_boundary_is_inclusive(self, tracker, clock):
        tracker.record_failure(FailureKind.NETWORK)
        clock.advance(150)
        tracker.record_failure(FailureKind.NETWORK)
        clock.advance(150)
        assert tracker.record_failure(FailureKind.NETWORK) is True

    def test_keeps_signalling_above_threshold(self, tracker):
        for _ in range(3):
            tracker.record_failure(FailureKind.SERVER_ERROR)
        assert tracker.record_failure(FailureKind.SERVER_ERROR) is True
        assert tracker.consecutive_count == 4

    def test_custom_threshold(self, clock):
        tracker = FailureTracker(threshold=1, window_seconds=60, clock=clock)
        assert tracker.record_failure(FailureKind.NETWORK) is True

    def test_invalid_configuration_rejected(self, clock):
        with pytest.raises(ValueError):
            FailureTracker(threshold=0, clock=clock)
        with pytest.raises(ValueError):
            FailureTracker(window_seconds=0, clock=clock)


class TestReset:

    def test_single_success_resets_count(self, tracker):
        """2 failures, a success, 2 failures does not trip at threshold 3"""
        assert tracker.record_failure(FailureKind.NETWORK) is False
        assert tracker.record_failure(FailureKind.NETWORK) is False
        tracker.record_success()
        assert tracker.consecutive_count == 0
        assert tracker.window_start is None
        assert tracker.record_failure(FailureKind.NETWORK) is False
        assert tracker.record_failure(FailureKind.NETWORK) is False

    def test_first_failure_after_success_opens_new_window(self, tracker, clock):
        tracker.record_failure(FailureKind.NETWORK)
        tracker.record_success()
        clock.advance(10)
        tracker.record_failure(FailureKind.NETWORK)
        assert tracker.window_start == clock.now()

    def test_reset_clears_everything(self, tracker):
        tracker.record_failure(FailureKind.NETWORK)
        tracker.record_failure(FailureKind.TIMEOUT)
        tracker.reset()
        assert tracker.consecutive_count == 0
        assert tracker.window_start is None
        assert tracker.recent_failures() == []


class TestRecords:

    def test_records_pruned_lazily(self, tracker, clock):
        tracker.record_failure(FailureKind.NETWORK)
        clock.advance(301)
        tracker.record_failure(FailureKind.TIMEOUT)
        kinds = [r.kind for r in tracker.recent_failures()]
        assert kinds == [FailureKind.TIMEOUT]

    def test_stats(self, tracker):
        tracker.record_failure(FailureKind.INCOMPATIBLE_RESPONSE)
        stats = tracker.get_stats()
        assert stats["consecutive_count"] == 1
        assert stats["threshold"] == 3
        assert stats["window_seconds"] == 300
        assert stats["recent_failures"][0]["kind"] == "incompatible_response"
