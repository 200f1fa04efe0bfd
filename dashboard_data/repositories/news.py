"""
News (RSS / Atom) repositories.

The live repository keeps the feed list in the document store and fetches
each feed body through the resilient fetcher. Article parsing is delegated to
an injected FeedParser.
"""
import html
import logging
import random
import re
import threading
import zlib
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dashboard_data.cache import CacheSource, CacheStore, DataDomain, domain_prefix, make_cache_key, ttl_for_domain
from dashboard_data.cancellation import CancelToken
from dashboard_data.clock import Clock, SystemClock
from dashboard_data.errors import DuplicateEntry, FetchError, IncompatibleResponse
from dashboard_data.http_client import HttpClient
from dashboard_data.models import FeedSnapshot, NewsArticle, NewsFeed
from dashboard_data.orchestrator import FetchResult, ResilientFetcher, ResilientFetchRequest
from dashboard_data.relay import RelayEndpoint, RelayPool
from dashboard_data.url_validator import extract_host, validate_feed_url

from .base import DocumentStore, FeedParser, no_articles

logger = logging.getLogger("repositories.news")

FEEDS_COLLECTION = "news_feeds"
FEED_MARKERS = ("<rss", "<feed", "<atom", "<?xml")

_CHANNEL_TITLE = re.compile(r"<channel[^>]*>.*?<title[^>]*>([^<]+)</title>", re.IGNORECASE | re.DOTALL)
_ANY_TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)


def looks_like_feed(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in FEED_MARKERS)


def extract_feed_title(body: str, url: str) -> str:
    """Channel title, else the first title, else the host name."""
    match = _CHANNEL_TITLE.search(body) or _ANY_TITLE.search(body)
    if match:
        title = html.unescape(" ".join(match.group(1).split()))
        if title:
            return title
    return extract_host(url) or url


def _normalize_feed_url(url: str) -> str:
    return (url or "").strip()


# =============================================================================
# Live repository
# =============================================================================

class LiveNewsRepository:
    """
    Network-backed news.

    - One cache entry per feed body ("feed:url=<feed url>")
    - A feed that fails with nothing cached is skipped, not fatal
    - The feed list mirrors the document store through a subscription
    """

    def __init__(
        self,
        http: HttpClient,
        fetcher: ResilientFetcher,
        cache: CacheStore,
        store: DocumentStore,
        relay_pool: Optional[RelayPool] = None,
        parser: FeedParser = no_articles,
        timeout: float = 30.0,
        ttl_overrides: Optional[Dict[DataDomain, int]] = None,
        clock: Optional[Clock] = None,
    ):
        self._http = http
        self._fetcher = fetcher
        self._cache = cache
        self._store = store
        self._relay_pool = relay_pool
        self._parser = parser
        self._timeout = timeout
        self._ttl_overrides = ttl_overrides or {}
        self._clock = clock or SystemClock()

        self._feeds: Dict[str, NewsFeed] = {}
        self._lock = threading.RLock()
        self._unsubscribe = None
        self._loaded = False

    # Domain repository interface used by the fetcher

    def cache_key_for(self, params: Dict[str, Any]) -> str:
        return make_cache_key(DataDomain.FEED, {"url": params["url"]})

    def ttl_for(self, params: Dict[str, Any]) -> float:
        return ttl_for_domain(DataDomain.FEED, self._ttl_overrides)

    def _check_body(self, url: str, body: str) -> str:
        if not looks_like_feed(body):
            raise IncompatibleResponse(
                url,
                details="Content does not contain RSS or Atom markers",
                suggestion="Please verify this is a valid RSS or Atom feed URL.",
            )
        return body

    def fetch_direct(self, params: Dict[str, Any], cancel_token: CancelToken) -> str:
        url = params["url"]
        response = self._http.get_text(url, timeout=self._timeout, cancel_token=cancel_token)
        return self._check_body(url, response.text)

    def fetch_via_relay(self, params: Dict[str, Any], endpoint: RelayEndpoint, cancel_token: CancelToken) -> str:
        url = params["url"]
        body = self._relay_pool.fetch_through(endpoint, url, cancel_token=cancel_token, timeout=self._timeout)
        return self._check_body(url, body)

    def _fetch_feed(self, url: str, cancel_token: Optional[CancelToken]) -> FetchResult:
        params = {"url": url}
        request = ResilientFetchRequest(
            cache_key=self.cache_key_for(params),
            ttl_seconds=self.ttl_for(params),
            fetch_direct=lambda token: self.fetch_direct(params, token),
            fetch_via_relay=(
                (lambda endpoint, token: self.fetch_via_relay(params, endpoint, token))
                if self._relay_pool is not None else None
            ),
        )
        return self._fetcher.fetch(request, cancel_token)

    # Feed list

    def reinitialize(self) -> None:
        """Reload the feed list from the store and resubscribe to changes."""
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
            documents = self._store.query(FEEDS_COLLECTION)
            self._feeds = {}
            for doc in documents:
                feed = NewsFeed.from_dict(doc)
                self._feeds[feed.url] = feed
            self._unsubscribe = self._store.subscribe(FEEDS_COLLECTION, self._on_feed_change)
            self._loaded = True
        logger.info(f"Loaded {len(documents)} feeds from the document store")

    def _ensure_loaded(self) -> None:
        with self._lock:
            if not self._loaded:
                self.reinitialize()

    def _on_feed_change(self, key: str, document: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            if document is None:
                self._feeds.pop(key, None)
            else:
                self._feeds[key] = NewsFeed.from_dict(document)

    def list_feeds(self) -> List[NewsFeed]:
        self._ensure_loaded()
        with self._lock:
            return sorted(self._feeds.values(), key=lambda f: f.added_at)

    def add_feed(self, url: str, cancel_token: Optional[CancelToken] = None) -> NewsFeed:
        url = _normalize_feed_url(url)
        validate_feed_url(url).raise_if_invalid(url)

        self._ensure_loaded()
        with self._lock:
            if url in self._feeds:
                raise DuplicateEntry(url, suggestion="This RSS feed has already been added to your collection.")

        result = self._fetch_feed(url, cancel_token)
        feed = NewsFeed(url=url, name=extract_feed_title(result.payload, url), added_at=self._clock.now())
        self._store.persist(FEEDS_COLLECTION, url, feed.to_dict())
        with self._lock:
            self._feeds[url] = feed
        logger.info(f"Added feed '{feed.name}' ({url})")
        return feed

    def remove_feed(self, url: str) -> bool:
        url = _normalize_feed_url(url)
        self._ensure_loaded()
        removed = self._store.delete(FEEDS_COLLECTION, url)
        with self._lock:
            removed = self._feeds.pop(url, None) is not None or removed
        self._cache.clear(self.cache_key_for({"url": url}))
        if removed:
            logger.info(f"Removed feed {url}")
        return removed

    # Articles

    def get_latest(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        snapshots = []
        for feed in self.list_feeds():
            if not feed.is_active:
                continue
            try:
                result = self._fetch_feed(feed.url, cancel_token)
            except FetchError as e:
                logger.warning(f"Skipping feed {feed.url}: {e}")
                continue
            snapshots.append(FeedSnapshot(
                feed=feed,
                body=result.payload,
                cached_at=result.cached_at,
                source=result.source,
                articles=self._parser(result.payload, feed),
            ))
        return snapshots

    def refresh(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        """Refetch every feed; a feed that fails still falls back to its last body."""
        self._cache.expire(domain_prefix(DataDomain.FEED))
        return self.get_latest(cancel_token)

    def clear_cache(self) -> int:
        return self._cache.clear(domain_prefix(DataDomain.FEED))

    def dispose(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self._loaded = False


# =============================================================================
# Substitute repository
# =============================================================================

DEFAULT_SUBSTITUTE_FEEDS = [
    "https://feeds.feedburner.com/TechCrunch",
    "https://www.theverge.com/rss/index.xml",
    "https://www.wired.com/feed/rss",
]
SUBSTITUTE_REFRESH_SECONDS = 1800
ARTICLES_PER_FEED = 5

_HEADLINE_SUBJECTS = [
    "Open-source tooling", "Battery research", "Cloud pricing", "Browser engines",
    "Chip supply", "Developer surveys", "Satellite internet", "Privacy rules",
]
_HEADLINE_VERBS = [
    "gets a major update", "faces new scrutiny", "hits a milestone",
    "draws mixed reviews", "expands to new markets", "sees record demand",
]


class SubstituteNewsRepository:
    """
    Offline news: an in-memory feed list and generated articles.
    No network access.
    """

    def __init__(self, clock: Optional[Clock] = None, feeds: Optional[List[str]] = None):
        self._clock = clock or SystemClock()
        now = self._clock.now()
        self._feeds: Dict[str, NewsFeed] = {}
        for url in DEFAULT_SUBSTITUTE_FEEDS if feeds is None else feeds:
            self._feeds[url] = NewsFeed(url=url, name=extract_host(url) or url, added_at=now)
        self._snapshots: List[FeedSnapshot] = []
        self._generated_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def _articles_for(self, feed: NewsFeed, now: datetime) -> List[NewsArticle]:
        slot = int(now.timestamp()) // SUBSTITUTE_REFRESH_SECONDS
        rng = random.Random(zlib.crc32(f"{feed.url}|{slot}".encode("utf-8")))
        articles = []
        for i in range(ARTICLES_PER_FEED):
            title = f"{rng.choice(_HEADLINE_SUBJECTS)} {rng.choice(_HEADLINE_VERBS)}"
            articles.append(NewsArticle(
                title=title,
                url=f"{feed.url.rstrip('/')}#offline-{slot}-{i}",
                feed_url=feed.url,
                feed_name=feed.name,
                description=f"{title}. Full story available when back online.",
                published_at=now - timedelta(minutes=rng.randint(5, 240)),
            ))
        return sorted(articles, key=lambda a: a.published_at, reverse=True)

    def _regenerate_locked(self, now: datetime) -> None:
        self._snapshots = [
            FeedSnapshot(
                feed=feed,
                body="",
                cached_at=now,
                source=CacheSource.SUBSTITUTE,
                articles=self._articles_for(feed, now),
            )
            for feed in sorted(self._feeds.values(), key=lambda f: f.added_at)
            if feed.is_active
        ]
        self._generated_at = now

    def get_latest(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        now = self._clock.now()
        with self._lock:
            stale = (
                self._generated_at is None
                or (now - self._generated_at).total_seconds() >= SUBSTITUTE_REFRESH_SECONDS
            )
            if stale:
                self._regenerate_locked(now)
            return list(self._snapshots)

    def add_feed(self, url: str, cancel_token: Optional[CancelToken] = None) -> NewsFeed:
        url = _normalize_feed_url(url)
        validate_feed_url(url).raise_if_invalid(url)
        now = self._clock.now()
        with self._lock:
            if url in self._feeds:
                raise DuplicateEntry(url, suggestion="This RSS feed has already been added to your collection.")
            feed = NewsFeed(url=url, name=extract_host(url) or url, added_at=now)
            self._feeds[url] = feed
            self._regenerate_locked(now)
        return feed

    def remove_feed(self, url: str) -> bool:
        url = _normalize_feed_url(url)
        with self._lock:
            if self._feeds.pop(url, None) is None:
                return False
            self._regenerate_locked(self._clock.now())
            return True

    def list_feeds(self) -> List[NewsFeed]:
        with self._lock:
            return sorted(self._feeds.values(), key=lambda f: f.added_at)

    def refresh(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        with self._lock:
            self._regenerate_locked(self._clock.now())
            return list(self._snapshots)

    def clear_cache(self) -> int:
        with self._lock:
            count = len(self._snapshots)
            self._snapshots = []
            self._generated_at = None
            return count
