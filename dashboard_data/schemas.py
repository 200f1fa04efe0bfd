"""
Pydantic schemas for the status API request/response models
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


# ===== WEATHER SCHEMAS =====

class WeatherResponse(BaseModel):
    location: str
    temperature: float
    humidity: int
    conditions: str
    icon_code: str
    observed_at: datetime
    wind_speed: Optional[float] = None
    pressure: Optional[float] = None
    visibility: Optional[float] = None
    cached_at: Optional[datetime] = None
    source: str


class ForecastResponse(BaseModel):
    location: str
    items: List[WeatherResponse]


# ===== NEWS SCHEMAS =====

class FeedResponse(BaseModel):
    url: str
    name: str
    added_at: datetime
    is_active: bool = True


class AddFeedRequest(BaseModel):
    url: str


class ArticleResponse(BaseModel):
    title: str
    url: str
    feed_url: str
    feed_name: str
    description: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None


class FeedSnapshotResponse(BaseModel):
    feed: FeedResponse
    articles: List[ArticleResponse]
    cached_at: datetime
    source: str


class NewsResponse(BaseModel):
    """Latest snapshot of every active feed"""
    mode: str
    feeds: List[FeedSnapshotResponse]


# ===== STATUS SCHEMAS =====

class ModeResponse(BaseModel):
    state: str
    since: datetime
    reason: Optional[str] = None
    repositories: List[str]
    consecutive_failures: int


class ReconnectResponse(BaseModel):
    success: bool
    state: str
    message: str
    attempts: int = 0


class RelayStatus(BaseModel):
    url: str
    style: str
    healthy: bool
    primary: bool
    last_checked: Optional[datetime] = None


class CacheClearResponse(BaseModel):
    removed: int
    prefix: Optional[str] = None


class ErrorResponse(BaseModel):
    code: str
    message: str
    suggestion: Optional[str] = None
    corrections: List[str] = []
