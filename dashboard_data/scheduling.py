"""
Recurring task scheduling.

ThreadScheduler runs tasks on daemon threads in production; ManualScheduler
runs them when a test advances a ManualClock, so periodic behaviour (relay
health checks, cache purges) is deterministic under test.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from dashboard_data.clock import ManualClock

logger = logging.getLogger("scheduling")

JOIN_TIMEOUT_SECONDS = 5


class RecurringTask(Protocol):
    name: str

    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    def schedule_every(
        self,
        interval_seconds: float,
        fn: Callable[[], None],
        run_immediately: bool = False,
        name: Optional[str] = None,
    ) -> RecurringTask:
        ...


def _run_safely(name: str, fn: Callable[[], None]) -> None:
    try:
        fn()
    except Exception as e:
        logger.exception(f"Scheduled task '{name}' failed: {e}")


# =============================================================================
# Thread-based scheduler
# =============================================================================

class ThreadTask:
    """A recurring task running on its own daemon thread."""

    def __init__(self, name: str, interval_seconds: float, fn: Callable[[], None], run_immediately: bool):
        self.name = name
        self._interval = interval_seconds
        self._fn = fn
        self._run_immediately = run_immediately
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=f"task-{name}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _loop(self) -> None:
        if self._run_immediately and not self._stop.is_set():
            _run_safely(self.name, self._fn)
        while not self._stop.wait(self._interval):
            _run_safely(self.name, self._fn)

    def cancel(self) -> None:
        """Stop the task, waiting briefly for a run in progress to finish."""
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=JOIN_TIMEOUT_SECONDS)
            if self._thread.is_alive():
                logger.warning(f"Task '{self.name}' still running after {JOIN_TIMEOUT_SECONDS}s")

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()


class ThreadScheduler:
    """Scheduler backed by one daemon thread per recurring task."""

    def schedule_every(
        self,
        interval_seconds: float,
        fn: Callable[[], None],
        run_immediately: bool = False,
        name: Optional[str] = None,
    ) -> ThreadTask:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        task = ThreadTask(name or fn.__name__, interval_seconds, fn, run_immediately)
        task.start()
        logger.debug(f"Scheduled '{task.name}' every {interval_seconds}s")
        return task


# =============================================================================
# Simulated-time scheduler
# =============================================================================

@dataclass
class ManualTask:
    name: str
    interval: timedelta
    fn: Callable[[], None]
    next_run: datetime
    _cancelled: bool = field(default=False, repr=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """
    Scheduler driven by a ManualClock.

    Tasks only run inside advance(), in due-time order, with the clock set to
    each task's due time while it runs.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._tasks: List[ManualTask] = []
        self._lock = threading.Lock()

    def schedule_every(
        self,
        interval_seconds: float,
        fn: Callable[[], None],
        run_immediately: bool = False,
        name: Optional[str] = None,
    ) -> ManualTask:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        interval = timedelta(seconds=interval_seconds)
        task = ManualTask(
            name=name or fn.__name__,
            interval=interval,
            fn=fn,
            next_run=self.clock.now() + interval,
        )
        with self._lock:
            self._tasks.append(task)
        if run_immediately:
            _run_safely(task.name, fn)
        return task

    @property
    def active_tasks(self) -> List[ManualTask]:
        with self._lock:
            return [t for t in self._tasks if not t.cancelled]

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every task that falls due.

        Returns:
            Number of task executions
        """
        target = self.clock.now() + timedelta(seconds=seconds)
        runs = 0
        while True:
            with self._lock:
                self._tasks = [t for t in self._tasks if not t.cancelled]
                due = [t for t in self._tasks if t.next_run <= target]
                task = min(due, key=lambda t: t.next_run) if due else None
                if task is not None:
                    task.next_run = task.next_run + task.interval
            if task is None:
                break
            due_at = task.next_run - task.interval
            if due_at > self.clock.now():
                self.clock.set(due_at)
            _run_safely(task.name, task.fn)
            runs += 1
        self.clock.set(target)
        return runs
