"""
Repository interfaces.

Each domain has a live implementation (network-backed, through the resilient
fetcher) and a substitute implementation (local, no network) with the same
interface, so the mode controller can swap them without the caller noticing.
"""
from typing import Any, Callable, Dict, List, Optional, Protocol

from dashboard_data.cancellation import CancelToken
from dashboard_data.models import FeedSnapshot, NewsArticle, NewsFeed, WeatherData
from dashboard_data.relay import RelayEndpoint


class DomainRepository(Protocol):
    """
    What a live repository offers the resilient fetcher.

    Implementations:
    - LiveWeatherRepository: OpenWeatherMap JSON API
    - LiveNewsRepository: RSS / Atom feeds
    """

    def fetch_direct(self, params: Dict[str, Any], cancel_token: CancelToken) -> Any:
        ...

    def fetch_via_relay(
        self, params: Dict[str, Any], endpoint: RelayEndpoint, cancel_token: CancelToken
    ) -> Any:
        ...

    def cache_key_for(self, params: Dict[str, Any]) -> str:
        ...

    def ttl_for(self, params: Dict[str, Any]) -> float:
        ...


class DocumentStore(Protocol):
    """Persistent collection/key/document storage."""

    def persist(self, collection: str, key: str, document: Dict[str, Any]) -> None:
        ...

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        ...

    def delete(self, collection: str, key: str) -> bool:
        ...

    def query(self, collection: str) -> List[Dict[str, Any]]:
        ...

    def subscribe(
        self, collection: str, listener: Callable[[str, Optional[Dict[str, Any]]], None]
    ) -> Callable[[], None]:
        ...

    def is_available(self) -> bool:
        ...

    def is_authenticated(self) -> bool:
        ...


class FeedParser(Protocol):
    """Turns a raw RSS/Atom body into articles."""

    def __call__(self, body: str, feed: NewsFeed) -> List[NewsArticle]:
        ...


def no_articles(body: str, feed: NewsFeed) -> List[NewsArticle]:
    """Default FeedParser: article parsing is left to the caller."""
    return []


class WeatherRepository(Protocol):

    def get_current_weather(self, location: str, cancel_token: Optional[CancelToken] = None) -> WeatherData:
        ...

    def get_forecast(self, location: str, cancel_token: Optional[CancelToken] = None) -> List[WeatherData]:
        """Up to 5 forecast steps, earliest first."""
        ...

    def clear_cache(self, location: Optional[str] = None) -> int:
        ...


class NewsRepository(Protocol):

    def get_latest(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        """One snapshot per active feed that could be resolved."""
        ...

    def add_feed(self, url: str, cancel_token: Optional[CancelToken] = None) -> NewsFeed:
        """
        Validate and add a feed.

        Raises:
            InvalidUrl: malformed URL
            DuplicateEntry: URL already present
            FetchError: the URL could not be fetched or is not a feed
        """
        ...

    def remove_feed(self, url: str) -> bool:
        ...

    def list_feeds(self) -> List[NewsFeed]:
        ...

    def refresh(self, cancel_token: Optional[CancelToken] = None) -> List[FeedSnapshot]:
        """Drop cached feed bodies and fetch again."""
        ...

    def clear_cache(self) -> int:
        ...
