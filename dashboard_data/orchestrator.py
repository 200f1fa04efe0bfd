"""
Resilient fetch: cache, then direct, then relay, then stale cache.

Every failed attempt chain is recorded in the failure tracker, which may
trip the mode controller into Offline mode.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

from dashboard_data.cache import CacheEntry, CacheSource, CacheStore
from dashboard_data.cancellation import CancelToken
from dashboard_data.errors import FetchError
from dashboard_data.failure_tracker import FailureTracker
from dashboard_data.mode import ModeController
from dashboard_data.relay import RelayEndpoint, RelayPool

logger = logging.getLogger("orchestrator")


DirectFetch = Callable[[CancelToken], Any]
RelayFetch = Callable[[RelayEndpoint, CancelToken], Any]


@dataclass(frozen=True)
class ResilientFetchRequest:
    """
    One read, built per call by a domain repository.

    fetch_direct(token) and fetch_via_relay(endpoint, token) return the
    payload to cache, or raise a FetchError.
    """
    cache_key: str
    ttl_seconds: float
    fetch_direct: DirectFetch
    fetch_via_relay: Optional[RelayFetch] = None


@dataclass(frozen=True)
class FetchResult:
    payload: Any
    cached_at: datetime
    expires_at: datetime
    source: CacheSource
    relay_url: Optional[str] = None

    @property
    def is_stale(self) -> bool:
        return self.source is CacheSource.STALE

    @classmethod
    def from_entry(
        cls, entry: CacheEntry, source: CacheSource, relay_url: Optional[str] = None
    ) -> "FetchResult":
        return cls(
            payload=entry.payload,
            cached_at=entry.cached_at,
            expires_at=entry.expires_at,
            source=source,
            relay_url=relay_url,
        )


class ResilientFetcher:
    """
    Runs ResilientFetchRequests against the shared cache, tracker and relays.

    Usage:
        fetcher = ResilientFetcher(cache, tracker, mode, relay_pool)
        result = fetcher.fetch(ResilientFetchRequest("weather:loc=paris", 600, fetch_fn))
    """

    def __init__(
        self,
        cache: CacheStore,
        tracker: FailureTracker,
        mode: Optional[ModeController] = None,
        relay_pool: Optional[RelayPool] = None,
        relay_enabled: bool = True,
    ):
        self._cache = cache
        self._tracker = tracker
        self._mode = mode
        self._relay_pool = relay_pool
        self._relay_enabled = relay_enabled

    def fetch(self, request: ResilientFetchRequest, cancel_token: Optional[CancelToken] = None) -> FetchResult:
        """
        Resolve a request.

        Raises:
            FetchError: every attempt failed and nothing was ever cached
            FetchCancelled: the token was cancelled (nothing cached or recorded)
        """
        token = cancel_token or CancelToken()
        token.raise_if_cancelled()

        entry = self._cache.get_entry(request.cache_key)
        if entry is not None:
            return FetchResult.from_entry(entry, CacheSource.FRESH)

        try:
            payload = request.fetch_direct(token)
        except FetchError as e:
            token.raise_if_cancelled()
            logger.info(f"Direct fetch failed for {request.cache_key}: {e}")
            error = e
        else:
            return self._store(request, payload, token, CacheSource.UPSTREAM)

        if self._should_try_relay(request, error):
            result, error = self._fetch_via_relays(request, token, error)
            if result is not None:
                return result

        return self._fail(request, error)

    def _should_try_relay(self, request: ResilientFetchRequest, error: FetchError) -> bool:
        return (
            self._relay_enabled
            and self._relay_pool is not None
            and request.fetch_via_relay is not None
            and error.can_retry_with_relay
        )

    def _fetch_via_relays(self, request: ResilientFetchRequest, token: CancelToken, error: FetchError):
        """Walk relays in selection order, one attempt per endpoint."""
        tried: List[str] = []
        while True:
            endpoint = self._relay_pool.select_endpoint(exclude=tried)
            if endpoint is None:
                return None, error
            tried.append(endpoint.url_template)

            try:
                payload = request.fetch_via_relay(endpoint, token)
            except FetchError as e:
                token.raise_if_cancelled()
                self._relay_pool.mark_unhealthy(endpoint)
                logger.info(f"Relay {endpoint.name} failed for {request.cache_key}: {e}")
                error = e
                continue

            return self._store(request, payload, token, CacheSource.RELAY, endpoint.url_template), error

    def _store(
        self,
        request: ResilientFetchRequest,
        payload: Any,
        token: CancelToken,
        source: CacheSource,
        relay_url: Optional[str] = None,
    ) -> FetchResult:
        token.raise_if_cancelled()
        entry = self._cache.set(request.cache_key, payload, request.ttl_seconds)
        self._tracker.record_success()
        return FetchResult.from_entry(entry, source, relay_url)

    def _fail(self, request: ResilientFetchRequest, error: FetchError) -> FetchResult:
        tripped = self._tracker.record_failure(error.kind)
        if tripped and self._mode is not None:
            self._mode.trip(f"{self._tracker.threshold} consecutive failures (last: {error.kind.value})")

        stale = self._cache.get_stale(request.cache_key)
        if stale is not None:
            logger.warning(
                f"Serving stale cache for {request.cache_key} "
                f"(cached at {stale.cached_at.isoformat()}): {error.message}"
            )
            return FetchResult.from_entry(stale, CacheSource.STALE)

        raise error
