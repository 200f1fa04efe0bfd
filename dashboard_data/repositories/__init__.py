"""
Domain repositories: live (network-backed) and substitute (offline) pairs.
"""
from .base import (
    DocumentStore,
    DomainRepository,
    FeedParser,
    NewsRepository,
    WeatherRepository,
    no_articles,
)
from .news import (
    FEEDS_COLLECTION,
    LiveNewsRepository,
    SubstituteNewsRepository,
    extract_feed_title,
    looks_like_feed,
)
from .weather import (
    LiveWeatherRepository,
    SubstituteWeatherRepository,
    parse_current,
    parse_forecast,
)

__all__ = [
    # Interfaces
    "DocumentStore",
    "DomainRepository",
    "FeedParser",
    "NewsRepository",
    "WeatherRepository",
    "no_articles",
    # News
    "FEEDS_COLLECTION",
    "LiveNewsRepository",
    "SubstituteNewsRepository",
    "extract_feed_title",
    "looks_like_feed",
    # Weather
    "LiveWeatherRepository",
    "SubstituteWeatherRepository",
    "parse_current",
    "parse_forecast",
]
