"""
DataService: the explicitly constructed composition root.

Builds the cache, failure tracker, relay pool, mode controller, fetcher,
document store and repositories from Settings, and owns their lifecycle.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from config.settings import Settings
from dashboard_data.cache import CacheStore, DataDomain
from dashboard_data.clock import Clock, SystemClock
from dashboard_data.document_store import SqlDocumentStore
from dashboard_data.failure_tracker import FailureTracker
from dashboard_data.http_client import HttpClient
from dashboard_data.mode import ModeController
from dashboard_data.orchestrator import ResilientFetcher
from dashboard_data.relay import RelayPool, build_endpoints
from dashboard_data.repositories import (
    FeedParser,
    LiveNewsRepository,
    LiveWeatherRepository,
    NewsRepository,
    SubstituteNewsRepository,
    SubstituteWeatherRepository,
    WeatherRepository,
    no_articles,
)
from dashboard_data.scheduling import RecurringTask, Scheduler, ThreadScheduler

logger = logging.getLogger("service")

WEATHER = "weather"
NEWS = "news"


class DataService:
    """
    One instance per running dashboard.

    Usage:
        service = DataService(settings)
        service.start()
        service.weather.get_current_weather("Paris")
        service.dispose()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        http: Optional[HttpClient] = None,
        store: Optional[SqlDocumentStore] = None,
        relay_pool: Optional[RelayPool] = None,
        news_parser: FeedParser = no_articles,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or Settings()
        s = self.settings
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or ThreadScheduler()
        self.http = http or HttpClient(user_agent=s.user_agent)
        self.store = store or SqlDocumentStore(s.database_url, user_id=s.store_user_id)

        self.cache = CacheStore(clock=self.clock, cleanup_horizon_seconds=s.cache_cleanup_horizon_seconds)
        self.tracker = FailureTracker(
            threshold=s.failure_threshold,
            window_seconds=s.failure_window_seconds,
            clock=self.clock,
        )
        self.relay_pool = relay_pool or RelayPool(
            build_endpoints(s.relay_primary_url, s.relay_fallback_urls),
            self.http,
            clock=self.clock,
            probe_target=s.relay_probe_target,
            probe_timeout=s.relay_probe_timeout_seconds,
        )
        self.mode = ModeController(
            self.tracker,
            store=self.store,
            clock=self.clock,
            reconnect_attempts=s.reconnect_attempts,
            reconnect_backoff_seconds=s.reconnect_backoff_seconds,
            sleep=sleep,
        )
        self.fetcher = ResilientFetcher(
            self.cache,
            self.tracker,
            mode=self.mode,
            relay_pool=self.relay_pool,
            relay_enabled=s.relay_fallback_enabled,
        )

        ttl_overrides = {
            DataDomain.WEATHER: s.weather_ttl_seconds,
            DataDomain.FORECAST: s.forecast_ttl_seconds,
            DataDomain.FEED: s.feed_ttl_seconds,
        }
        relay = self.relay_pool if s.relay_fallback_enabled else None
        self.live_weather = LiveWeatherRepository(
            self.http,
            self.fetcher,
            self.cache,
            relay_pool=relay,
            api_key=s.weather_api_key,
            base_url=s.weather_base_url,
            units=s.weather_units,
            timeout=s.weather_timeout_seconds,
            ttl_overrides=ttl_overrides,
        )
        self.live_news = LiveNewsRepository(
            self.http,
            self.fetcher,
            self.cache,
            self.store,
            relay_pool=relay,
            parser=news_parser,
            timeout=s.feed_timeout_seconds,
            ttl_overrides=ttl_overrides,
            clock=self.clock,
        )
        self.mode.register(WEATHER, self.live_weather, SubstituteWeatherRepository(clock=self.clock))
        self.mode.register(NEWS, self.live_news, SubstituteNewsRepository(clock=self.clock))

        self._tasks: List[RecurringTask] = []
        self._started = False
        self._disposed = False
        self._lock = threading.Lock()

    @property
    def weather(self) -> WeatherRepository:
        """The weather implementation active for the current mode."""
        return self.mode.repository(WEATHER)

    @property
    def news(self) -> NewsRepository:
        """The news implementation active for the current mode."""
        return self.mode.repository(NEWS)

    def start(self) -> None:
        """Start relay health checks and cache purging. Idempotent."""
        with self._lock:
            if self._started or self._disposed:
                return
            self._started = True

        if self.settings.relay_fallback_enabled:
            self.relay_pool.start(self.scheduler, self.settings.relay_health_interval_seconds)
        self._tasks.append(self.scheduler.schedule_every(
            self.settings.cache_cleanup_horizon_seconds,
            self.cache.purge,
            name="cache-purge",
        ))
        logger.info("Data service started")

    def dispose(self) -> None:
        """Cancel scheduled work and release resources. Idempotent."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True

        self.relay_pool.stop()
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.live_news.dispose()
        self.http.close()
        self.store.dispose()
        logger.info("Data service disposed")
