"""
Domain models returned by the weather and news repositories.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from dashboard_data.cache import CacheSource


@dataclass(frozen=True)
class WeatherData:
    """A current reading or one forecast step for a location."""
    location: str
    temperature: float
    humidity: int
    conditions: str
    icon_code: str
    observed_at: datetime
    wind_speed: Optional[float] = None
    pressure: Optional[float] = None
    visibility: Optional[float] = None  # km
    cached_at: Optional[datetime] = None
    source: CacheSource = CacheSource.UPSTREAM

    def with_source(self, source: CacheSource, cached_at: Optional[datetime] = None) -> "WeatherData":
        return replace(self, source=source, cached_at=cached_at or self.cached_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "conditions": self.conditions,
            "icon_code": self.icon_code,
            "observed_at": self.observed_at.isoformat(),
            "wind_speed": self.wind_speed,
            "pressure": self.pressure,
            "visibility": self.visibility,
            "cached_at": self.cached_at.isoformat() if self.cached_at else None,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class NewsFeed:
    url: str
    name: str
    added_at: datetime
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "name": self.name,
            "added_at": self.added_at.isoformat(),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsFeed":
        return cls(
            url=data["url"],
            name=data.get("name") or data["url"],
            added_at=datetime.fromisoformat(data["added_at"]),
            is_active=data.get("is_active", True),
        )


@dataclass(frozen=True)
class NewsArticle:
    title: str
    url: str
    feed_url: str
    feed_name: str
    description: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "feed_url": self.feed_url,
            "feed_name": self.feed_name,
            "description": self.description,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class FeedSnapshot:
    """One feed's latest raw body and the articles parsed from it."""
    feed: NewsFeed
    body: str
    cached_at: datetime
    source: CacheSource
    articles: List[NewsArticle] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed": self.feed.to_dict(),
            "articles": [a.to_dict() for a in self.articles],
            "cached_at": self.cached_at.isoformat(),
            "source": self.source.value,
        }
