"""Consecutive-failure tracking with a time-bounded window."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dashboard_data.clock import Clock, SystemClock
from dashboard_data.errors import FailureKind

logger = logging.getLogger("failure_tracker")

# Configuration
FAILURE_THRESHOLD = 3  # Consecutive failures before tripping
FAILURE_WINDOW_SECONDS = 300  # Window size in seconds


@dataclass(frozen=True)
class FailureRecord:
    """A single failed resilient fetch."""
    timestamp: datetime
    kind: FailureKind


class FailureTracker:
    """
    Consecutive-failure counter used to detect sustained unavailability.

    The window opens on the first failure; once it is older than
    window_seconds the count starts again from zero. Any success clears
    the count entirely. Thread-safe implementation.
    """

    def __init__(
        self,
        threshold: int = FAILURE_THRESHOLD,
        window_seconds: int = FAILURE_WINDOW_SECONDS,
        clock: Optional[Clock] = None,
    ):
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.threshold = threshold
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock or SystemClock()
        self._consecutive_count = 0
        self._window_start: Optional[datetime] = None
        self._records: List[FailureRecord] = []
        self._lock = threading.Lock()

    def record_failure(self, kind: FailureKind) -> bool:
        """
        Record a failed fetch.

        Args:
            kind: What went wrong

        Returns:
            True if the consecutive count reached the threshold (trip signal)
        """
        now = self._clock.now()

        with self._lock:
            if self._window_start is None or now - self._window_start > self.window:
                self._consecutive_count = 0
                self._window_start = now

            # Lazy pruning of records outside the window
            self._records = [r for r in self._records if now - r.timestamp <= self.window]
            self._records.append(FailureRecord(timestamp=now, kind=kind))

            self._consecutive_count += 1
            count = self._consecutive_count

        tripped = count >= self.threshold
        if tripped:
            logger.warning(
                f"Failure threshold reached: {count} consecutive failures "
                f"(last: {kind.value})"
            )
        else:
            logger.info(f"Recorded {kind.value} failure ({count}/{self.threshold})")
        return tripped

    def record_success(self) -> None:
        """Clear the count and the window. A single success is enough."""
        with self._lock:
            if self._consecutive_count:
                logger.debug(f"Success after {self._consecutive_count} failures, resetting")
            self._consecutive_count = 0
            self._window_start = None

    def reset(self) -> None:
        """
        Explicit clear, used after a mode transition.

        Unlike record_success this also forgets the failure records.
        """
        with self._lock:
            self._consecutive_count = 0
            self._window_start = None
            self._records = []

    @property
    def consecutive_count(self) -> int:
        with self._lock:
            return self._consecutive_count

    @property
    def window_start(self) -> Optional[datetime]:
        with self._lock:
            return self._window_start

    def recent_failures(self) -> List[FailureRecord]:
        """Failure records still inside the window."""
        now = self._clock.now()
        with self._lock:
            self._records = [r for r in self._records if now - r.timestamp <= self.window]
            return list(self._records)

    def get_stats(self) -> Dict[str, Any]:
        failures = self.recent_failures()
        with self._lock:
            return {
                "consecutive_count": self._consecutive_count,
                "threshold": self.threshold,
                "window_seconds": int(self.window.total_seconds()),
                "window_start": self._window_start.isoformat() if self._window_start else None,
                "recent_failures": [
                    {"at": r.timestamp.isoformat(), "kind": r.kind.value} for r in failures
                ],
            }
