"""
Shared fixtures: simulated time, a scripted HTTP client, and the core
components wired together the way DataService wires them.
"""
import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from config.settings import Settings
from dashboard_data.cache import CacheStore
from dashboard_data.cancellation import CancelToken
from dashboard_data.clock import ManualClock
from dashboard_data.document_store import SqlDocumentStore
from dashboard_data.errors import IncompatibleResponse, NetworkError
from dashboard_data.failure_tracker import FailureTracker
from dashboard_data.http_client import HttpResponse
from dashboard_data.mode import ModeController
from dashboard_data.orchestrator import ResilientFetcher
from dashboard_data.relay import RelayEndpoint, RelayPool, RelayStyle
from dashboard_data.scheduling import ManualScheduler
from dashboard_data.service import DataService


PRIMARY = "https://corsproxy.io/?"
FALLBACK_RAW = "https://cors-anywhere.herokuapp.com/"
FALLBACK_ENVELOPE = "https://api.allorigins.win/get?url="

RSS_BODY = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Tech &amp; Science Daily</title>
<item><title>First story</title><link>https://example.com/1</link></item>
</channel></rss>"""


Reply = Union[str, Exception, Callable[[], str]]


class FakeHttpClient:
    """
    Scripted stand-in for HttpClient.

    Replies are keyed by URL (exact match, ignoring query params). A reply is
    a body string, an exception to raise, or a callable producing a body.
    """

    def __init__(self):
        self.replies: Dict[str, Reply] = {}
        self.probe_results: Dict[str, bool] = {}
        self.calls: List[Dict[str, Any]] = []
        self.probes: List[str] = []
        self.closed = False

    def reply(self, url: str, reply: Reply) -> None:
        self.replies[url] = reply

    def get_text(self, url, timeout=30, headers=None, params=None, cancel_token=None) -> HttpResponse:
        token = cancel_token or CancelToken()
        token.raise_if_cancelled()
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        reply = self.replies.get(url)
        if reply is None:
            raise NetworkError(url, details="no scripted reply")
        if isinstance(reply, Exception):
            raise reply
        body = reply() if callable(reply) else reply
        token.raise_if_cancelled()
        return HttpResponse(url=url, status_code=200, text=body, headers={})

    def get_json(self, url, timeout=30, headers=None, params=None, cancel_token=None) -> Any:
        response = self.get_text(url, timeout=timeout, headers=headers, params=params, cancel_token=cancel_token)
        try:
            return json.loads(response.text)
        except ValueError as e:
            raise IncompatibleResponse(url, details=str(e))

    def probe(self, url: str, timeout: float) -> bool:
        self.probes.append(url)
        for prefix, healthy in self.probe_results.items():
            if url.startswith(prefix):
                return healthy
        return False

    def close(self) -> None:
        self.closed = True

    def urls_called(self) -> List[str]:
        return [c["url"] for c in self.calls]


class FakeStoreProbe:
    """Reconnection probe target with scriptable answers."""

    def __init__(self, available: bool = True, authenticated: bool = True):
        self.available = available
        self.authenticated = authenticated
        self.probes = 0

    def is_available(self) -> bool:
        self.probes += 1
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    def is_authenticated(self) -> bool:
        return self.authenticated


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def cache(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def tracker(clock):
    return FailureTracker(threshold=3, window_seconds=300, clock=clock)


@pytest.fixture
def store_probe():
    return FakeStoreProbe()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def mode(tracker, store_probe, clock, sleeps):
    return ModeController(tracker, store=store_probe, clock=clock, sleep=sleeps.append)


@pytest.fixture
def http():
    return FakeHttpClient()


@pytest.fixture
def endpoints():
    return [
        RelayEndpoint(PRIMARY, RelayStyle.ENCODED_QUERY),
        RelayEndpoint(FALLBACK_RAW, RelayStyle.RAW_PREFIX),
        RelayEndpoint(FALLBACK_ENVELOPE, RelayStyle.JSON_ENVELOPE),
    ]


@pytest.fixture
def relay_pool(endpoints, http, clock):
    return RelayPool(endpoints, http, clock=clock)


@pytest.fixture
def fetcher(cache, tracker, mode, relay_pool):
    return ResilientFetcher(cache, tracker, mode=mode, relay_pool=relay_pool)


@pytest.fixture
def doc_store():
    store = SqlDocumentStore("sqlite://", user_id="user-1")
    yield store
    store.dispose()


def healthy(pool: RelayPool, *templates: str) -> None:
    """Mark exactly the given endpoints healthy."""
    for endpoint in pool.endpoints:
        if endpoint.url_template in templates:
            pool.mark_healthy(endpoint)
        else:
            pool.mark_unhealthy(endpoint)


def relay_url(template: str, target: str, style: Optional[RelayStyle] = None) -> str:
    return RelayEndpoint.from_url(template, style).wrap(target)


WEATHER_BASE = "https://api.openweathermap.org/data/2.5"


def make_service(clock, scheduler, http, **overrides) -> DataService:
    """A DataService on simulated time, a scripted network and an in-memory store."""
    values = {
        "weather_api_key": "KEY",
        "weather_base_url": WEATHER_BASE,
        "relay_primary_url": PRIMARY,
        "relay_fallback_urls": [FALLBACK_RAW, FALLBACK_ENVELOPE],
        "database_url": "sqlite://",
        "store_user_id": "user-1",
    }
    values.update(overrides)
    return DataService(
        Settings(**values),
        clock=clock,
        scheduler=scheduler,
        http=http,
        store=SqlDocumentStore("sqlite://", user_id=values["store_user_id"]),
        sleep=lambda seconds: None,
    )
