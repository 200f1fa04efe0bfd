"""
Online / Offline mode controller.

The active repository set is an immutable tagged variant (OnlineMode or
OfflineMode) swapped in one assignment under a lock, so a transition is
either fully visible to every repository or not visible at all.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from dashboard_data.clock import Clock, SystemClock
from dashboard_data.errors import StoreUnavailable
from dashboard_data.failure_tracker import FailureTracker

logger = logging.getLogger("mode.controller")

RECONNECT_ATTEMPTS = 3
RECONNECT_BACKOFF_SECONDS = 2.0
RECONNECT_MAX_WAIT_SECONDS = 30.0


class ModeState(Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class StoreProbe(Protocol):
    """The part of the document store used for reconnection probing."""

    def is_available(self) -> bool:
        ...

    def is_authenticated(self) -> bool:
        ...


@dataclass(frozen=True)
class OnlineMode:
    """Live implementations are active."""
    repositories: Mapping[str, Any]
    since: datetime

    @property
    def state(self) -> ModeState:
        return ModeState.ONLINE

    @property
    def reason(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class OfflineMode:
    """Local substitutes are active."""
    repositories: Mapping[str, Any]
    since: datetime
    reason: str

    @property
    def state(self) -> ModeState:
        return ModeState.OFFLINE


ActiveMode = Union[OnlineMode, OfflineMode]


@dataclass(frozen=True)
class ModeChange:
    """Delivered to subscribers after every transition."""
    previous: ModeState
    current: ModeState
    reason: Optional[str]
    at: datetime


@dataclass(frozen=True)
class ReconnectResult:
    success: bool
    state: ModeState
    message: str
    attempts: int = 0


@dataclass
class _Binding:
    live: Any
    substitute: Any


ModeListener = Callable[[ModeChange], None]


class ModeController:
    """
    Two-state supervisor for the data-access layer.

    Online -> Offline on a failure-tracker trip or manual request.
    Offline -> Online only through attempt_reconnect(), never on a timer.
    """

    def __init__(
        self,
        tracker: FailureTracker,
        store: Optional[StoreProbe] = None,
        clock: Optional[Clock] = None,
        reconnect_attempts: int = RECONNECT_ATTEMPTS,
        reconnect_backoff_seconds: float = RECONNECT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._tracker = tracker
        self._store = store
        self._clock = clock or SystemClock()
        self._reconnect_attempts = max(1, reconnect_attempts)
        self._reconnect_backoff = reconnect_backoff_seconds
        self._sleep = sleep

        self._bindings: Dict[str, _Binding] = {}
        self._active: ActiveMode = OnlineMode(MappingProxyType({}), self._clock.now())
        self._listeners: List[ModeListener] = []
        self._lock = threading.RLock()
        self._reconnect_lock = threading.Lock()

    # =========================================================================
    # Registration and reads
    # =========================================================================

    def register(self, name: str, live: Any, substitute: Any) -> None:
        """Bind a live / substitute pair under a name."""
        with self._lock:
            self._bindings[name] = _Binding(live=live, substitute=substitute)
            self._active = self._build(self._active.state, self._active.since, self._active.reason)

    def repository(self, name: str) -> Any:
        """
        The implementation active right now.

        Callers read this at the start of each operation instead of holding on
        to the result.
        """
        active = self.active
        try:
            return active.repositories[name]
        except KeyError:
            raise KeyError(f"No repository registered as '{name}'")

    @property
    def active(self) -> ActiveMode:
        with self._lock:
            return self._active

    @property
    def state(self) -> ModeState:
        return self.active.state

    @property
    def is_online(self) -> bool:
        return self.state is ModeState.ONLINE

    @property
    def tracker(self) -> FailureTracker:
        return self._tracker

    def _build(self, state: ModeState, since: datetime, reason: Optional[str]) -> ActiveMode:
        if state is ModeState.ONLINE:
            repos = {name: b.live for name, b in self._bindings.items()}
            return OnlineMode(MappingProxyType(repos), since)
        repos = {name: b.substitute for name, b in self._bindings.items()}
        return OfflineMode(MappingProxyType(repos), since, reason or "offline")

    # =========================================================================
    # Transitions
    # =========================================================================

    def trip(self, reason: str = "failure threshold reached") -> bool:
        """
        Failure-tracker trip signal.

        Returns:
            True if this call moved the controller Offline
        """
        return self._go_offline(reason)

    def request_offline(self, reason: str = "manual request") -> bool:
        return self._go_offline(reason)

    def _go_offline(self, reason: str) -> bool:
        with self._lock:
            if self._active.state is ModeState.OFFLINE:
                return False
            now = self._clock.now()
            self._active = self._build(ModeState.OFFLINE, now, reason)
            self._tracker.reset()

        logger.warning(f"Switched to OFFLINE mode: {reason}")
        self._notify(ModeChange(ModeState.ONLINE, ModeState.OFFLINE, reason, now))
        return True

    def attempt_reconnect(self) -> ReconnectResult:
        """
        Try to return to Online.

        Probes the document store with exponential backoff. A failure leaves the
        controller Offline and is reported in the result; this never raises.
        """
        with self._reconnect_lock:
            if self.is_online:
                return ReconnectResult(True, ModeState.ONLINE, "Already online")

            attempts = 0

            def probe() -> None:
                nonlocal attempts
                attempts += 1
                self._probe_store()

            retryer = Retrying(
                stop=stop_after_attempt(self._reconnect_attempts),
                wait=wait_exponential(
                    multiplier=self._reconnect_backoff, max=RECONNECT_MAX_WAIT_SECONDS
                ),
                retry=retry_if_exception_type(StoreUnavailable),
                sleep=self._sleep,
                reraise=True,
            )
            try:
                retryer(probe)
            except StoreUnavailable as e:
                logger.warning(f"Reconnection failed after {attempts} attempt(s): {e.message}")
                return ReconnectResult(False, ModeState.OFFLINE, e.message, attempts)

            failure = self._reinitialize_live()
            if failure is not None:
                logger.warning(f"Reconnection failed: {failure}")
                return ReconnectResult(False, ModeState.OFFLINE, failure, attempts)

            with self._lock:
                now = self._clock.now()
                self._active = self._build(ModeState.ONLINE, now, None)
                self._tracker.reset()

            logger.info(f"Switched to ONLINE mode after {attempts} probe attempt(s)")
            self._notify(ModeChange(ModeState.OFFLINE, ModeState.ONLINE, "reconnected", now))
            return ReconnectResult(True, ModeState.ONLINE, "Reconnected", attempts)

    def _probe_store(self) -> None:
        if self._store is None:
            return
        try:
            available = self._store.is_available()
            authenticated = available and self._store.is_authenticated()
        except Exception as e:
            raise StoreUnavailable("Document store probe failed", details=str(e))
        if not available:
            raise StoreUnavailable("Document store is not reachable")
        if not authenticated:
            raise StoreUnavailable(
                "No user is signed in to the document store",
                suggestion="Sign in before reconnecting.",
            )

    def _reinitialize_live(self) -> Optional[str]:
        with self._lock:
            live = [(name, b.live) for name, b in self._bindings.items()]
        for name, repo in live:
            reinitialize = getattr(repo, "reinitialize", None)
            if reinitialize is None:
                continue
            try:
                reinitialize()
            except Exception as e:
                return f"Re-initialising '{name}' failed: {e}"
        return None

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        """
        Register a listener for mode changes.

        Returns:
            A callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: ModeChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                logger.exception(f"Mode listener failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        active = self.active
        return {
            "state": active.state.value,
            "since": active.since.isoformat(),
            "reason": active.reason,
            "repositories": sorted(active.repositories),
            "consecutive_failures": self._tracker.consecutive_count,
        }
