"""
Tests for simulated-time scheduling, cancellation tokens and the clock
"""
import threading
import time
from datetime import timedelta

import pytest

from dashboard_data.cancellation import CancelToken
from dashboard_data.errors import FetchCancelled
from dashboard_data.scheduling import ThreadScheduler


class TestManualScheduler:

    def test_runs_when_due(self, scheduler):
        runs = []
        scheduler.schedule_every(60, lambda: runs.append(scheduler.clock.now()))
        assert scheduler.advance(59) == 0
        assert scheduler.advance(1) == 1
        assert scheduler.advance(180) == 3
        assert len(runs) == 4

    def test_clock_set_to_due_time_while_running(self, scheduler, clock):
        start = clock.now()
        runs = []
        scheduler.schedule_every(60, lambda: runs.append(clock.now()))
        scheduler.advance(150)
        assert runs == [start + timedelta(seconds=60), start + timedelta(seconds=120)]
        assert clock.now() == start + timedelta(seconds=150)

    def test_tasks_interleave_in_due_order(self, scheduler):
        order = []
        scheduler.schedule_every(30, lambda: order.append("fast"), name="fast")
        scheduler.schedule_every(45, lambda: order.append("slow"), name="slow")
        scheduler.advance(90)
        assert order == ["fast", "slow", "fast", "fast", "slow"]

    def test_run_immediately(self, scheduler):
        runs = []
        scheduler.schedule_every(60, lambda: runs.append(1), run_immediately=True)
        assert runs == [1]
        scheduler.advance(60)
        assert runs == [1, 1]

    def test_cancel(self, scheduler):
        runs = []
        task = scheduler.schedule_every(60, lambda: runs.append(1))
        task.cancel()
        assert task.cancelled
        assert scheduler.active_tasks == []
        assert scheduler.advance(600) == 0

    def test_failing_task_keeps_its_schedule(self, scheduler, caplog):
        def broken():
            raise RuntimeError("boom")

        scheduler.schedule_every(60, broken, name="broken")
        assert scheduler.advance(120) == 2
        assert "Scheduled task 'broken' failed" in caplog.text

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_every(0, lambda: None)


class TestThreadScheduler:

    def test_runs_immediately_and_stops(self):
        ran = threading.Event()
        task = ThreadScheduler().schedule_every(3600, ran.set, run_immediately=True, name="health_check")
        try:
            assert ran.wait(timeout=5)
        finally:
            task.cancel()
        assert task.cancelled

    def test_cancel_waits_for_run_in_progress(self):
        """Resources the task uses can be released as soon as cancel returns"""
        started = threading.Event()
        finished = []

        def slow_check():
            started.set()
            time.sleep(0.2)
            finished.append("done")

        task = ThreadScheduler().schedule_every(3600, slow_check, run_immediately=True)
        assert started.wait(timeout=5)
        task.cancel()
        assert finished == ["done"]

    def test_cancel_from_inside_the_task(self):
        cancelled = threading.Event()
        ready = threading.Event()
        holder = {}

        def stop_self():
            ready.wait(timeout=5)
            holder["task"].cancel()
            cancelled.set()

        holder["task"] = ThreadScheduler().schedule_every(0.01, stop_self)
        ready.set()
        assert cancelled.wait(timeout=5)
        assert holder["task"].cancelled


class TestCancelToken:

    def test_not_cancelled_by_default(self):
        token = CancelToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_records_reason(self):
        token = CancelToken()
        token.cancel("widget disposed")
        assert token.cancelled is True
        assert token.reason == "widget disposed"
        with pytest.raises(FetchCancelled):
            token.raise_if_cancelled()


class TestManualClock:

    def test_advance_and_set(self, clock):
        start = clock.now()
        clock.advance(90)
        assert clock.now() - start == timedelta(seconds=90)
        clock.set(start)
        assert clock.now() == start
