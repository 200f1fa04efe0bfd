"""
Relay pool: ordered relay endpoints with periodic health checks.

The pool is a single-shot selector. Walking to the next relay after a
failure is the orchestrator's job (select_endpoint(exclude=...)).
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from dashboard_data.cancellation import CancelToken
from dashboard_data.clock import Clock, SystemClock
from dashboard_data.errors import FetchCancelled, FetchError, NetworkError
from dashboard_data.http_client import HttpClient
from dashboard_data.scheduling import RecurringTask, Scheduler

from .endpoints import RelayEndpoint

logger = logging.getLogger("relay.pool")

HEALTH_CHECK_INTERVAL_SECONDS = 900
PROBE_TIMEOUT_SECONDS = 10.0
PROBE_TARGET = "https://httpbin.org/status/200"
RELAY_TIMEOUT_SECONDS = 10.0


class RelayPool:
    """
    Ordered relay endpoints, index 0 being the primary.

    - select_endpoint(): first healthy endpoint in order, else the primary
    - check_health(): probes every endpoint in parallel
    - fetch_through(): one fetch via one endpoint; failure marks it unhealthy
      immediately instead of waiting for the next scheduled check
    - Health flags are read as snapshots; an in-flight check never blocks selection
    """

    def __init__(
        self,
        endpoints: List[RelayEndpoint],
        http: HttpClient,
        clock: Optional[Clock] = None,
        probe_target: str = PROBE_TARGET,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        fetch_timeout: float = RELAY_TIMEOUT_SECONDS,
        max_check_workers: int = 4,
    ):
        if not endpoints:
            raise ValueError("RelayPool needs at least one endpoint")
        self._endpoints = list(endpoints)
        self._http = http
        self._clock = clock or SystemClock()
        self._probe_target = probe_target
        self._probe_timeout = probe_timeout
        self._fetch_timeout = fetch_timeout
        self._max_check_workers = max_check_workers
        self._lock = threading.Lock()
        self._task: Optional[RecurringTask] = None

    # =========================================================================
    # Selection
    # =========================================================================

    @property
    def primary(self) -> RelayEndpoint:
        return self._endpoints[0]

    @property
    def endpoints(self) -> List[RelayEndpoint]:
        """Snapshot copies of the endpoints, in priority order."""
        with self._lock:
            return [replace(e) for e in self._endpoints]

    def select_endpoint(self, exclude: Iterable[str] = ()) -> Optional[RelayEndpoint]:
        """
        Pick the best endpoint.

        Args:
            exclude: url_templates already tried for the current request

        Returns:
            First healthy endpoint not excluded; otherwise the primary as a
            last-resort guess (health checks can be wrong); None only when
            the primary itself is excluded and nothing healthy remains
        """
        excluded = set(exclude)
        with self._lock:
            for endpoint in self._endpoints:
                if endpoint.healthy and endpoint.url_template not in excluded:
                    return endpoint
            if self._endpoints[0].url_template not in excluded:
                return self._endpoints[0]
        return None

    def wrap(self, target_url: str, endpoint: RelayEndpoint) -> str:
        return endpoint.wrap(target_url)

    def has_healthy_endpoint(self) -> bool:
        with self._lock:
            return any(e.healthy for e in self._endpoints)

    def mark_unhealthy(self, endpoint: RelayEndpoint) -> None:
        self._set_health(endpoint.url_template, False)

    def mark_healthy(self, endpoint: RelayEndpoint) -> None:
        self._set_health(endpoint.url_template, True)

    def _set_health(self, url_template: str, healthy: bool) -> None:
        now = self._clock.now()
        with self._lock:
            for endpoint in self._endpoints:
                if endpoint.url_template == url_template:
                    endpoint.healthy = healthy
                    endpoint.last_checked = now

    # =========================================================================
    # Fetching
    # =========================================================================

    def fetch_through(
        self,
        endpoint: RelayEndpoint,
        target_url: str,
        cancel_token: Optional[CancelToken] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Fetch target_url through one specific relay and unwrap the body.

        Raises:
            FetchError: the relay fetch failed (endpoint is marked unhealthy)
            FetchCancelled: the consumer went away (health left untouched)
        """
        relayed_url = endpoint.wrap(target_url)
        try:
            response = self._http.get_text(
                relayed_url,
                timeout=timeout or self._fetch_timeout,
                headers=headers,
                cancel_token=cancel_token,
            )
        except FetchCancelled:
            raise
        except FetchError as e:
            logger.warning(f"Relay {endpoint.name} failed for {target_url}: {e}")
            self.mark_unhealthy(endpoint)
            raise

        self.mark_healthy(endpoint)
        return endpoint.unwrap(response.text)

    def fetch_through_best_relay(
        self,
        target_url: str,
        cancel_token: Optional[CancelToken] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[str, RelayEndpoint]:
        """
        Single-shot fetch through the currently best relay.

        Returns:
            (body, endpoint used)
        """
        endpoint = self.select_endpoint()
        if endpoint is None:
            raise NetworkError(target_url, details="No relay endpoint available")
        body = self.fetch_through(
            endpoint, target_url, cancel_token=cancel_token, headers=headers, timeout=timeout
        )
        return body, endpoint

    # =========================================================================
    # Health checks
    # =========================================================================

    def check_health(self) -> Dict[str, bool]:
        """
        Probe every endpoint against the known-good target, in parallel.

        Returns:
            Mapping of url_template -> healthy
        """
        with self._lock:
            templates = [e.url_template for e in self._endpoints]
            targets = [e.wrap(self._probe_target) for e in self._endpoints]

        workers = max(1, min(self._max_check_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="relay-health") as executor:
            results = list(executor.map(
                lambda url: self._http.probe(url, timeout=self._probe_timeout),
                targets,
            ))

        for template, healthy in zip(templates, results):
            self._set_health(template, healthy)
            logger.info(f"Relay {template} health: {healthy}")
        return dict(zip(templates, results))

    def start(self, scheduler: Scheduler, interval_seconds: float = HEALTH_CHECK_INTERVAL_SECONDS) -> None:
        """Run a check now and then every interval_seconds."""
        if self._task is not None and not self._task.cancelled:
            return
        self._task = scheduler.schedule_every(
            interval_seconds,
            self.check_health,
            run_immediately=True,
            name="relay-health-check",
        )

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def health_snapshot(self) -> List[Dict[str, object]]:
        """Per-endpoint health for diagnostics."""
        with self._lock:
            return [
                {
                    "url": e.url_template,
                    "style": e.style.value,
                    "healthy": e.healthy,
                    "primary": i == 0,
                    "last_checked": e.last_checked.isoformat() if e.last_checked else None,
                }
                for i, e in enumerate(self._endpoints)
            ]
