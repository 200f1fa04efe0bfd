"""Configuration management using pydantic-settings."""
from typing import List, Optional

from pydantic_settings import BaseSettings


DEFAULT_RELAY_FALLBACKS = [
    "https://cors-anywhere.herokuapp.com/",
    "https://api.allorigins.win/get?url=",
    "https://thingproxy.freeboard.io/fetch/",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Weather API (OpenWeatherMap)
    weather_api_key: Optional[str] = None
    weather_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_units: str = "metric"
    weather_timeout_seconds: float = 10.0

    # Feeds
    feed_timeout_seconds: float = 30.0

    # Cache TTLs (seconds)
    weather_ttl_seconds: int = 600
    forecast_ttl_seconds: int = 600
    feed_ttl_seconds: int = 1800
    # Entries older than this are purged regardless of their own TTL
    cache_cleanup_horizon_seconds: int = 3600

    # Failure tracking
    failure_threshold: int = 3
    failure_window_seconds: int = 300

    # Relay (proxy) pool. Disable where direct access is never sandboxed.
    relay_fallback_enabled: bool = True
    relay_primary_url: str = "https://corsproxy.io/?"
    relay_fallback_urls: List[str] = list(DEFAULT_RELAY_FALLBACKS)
    relay_health_interval_seconds: int = 900
    relay_probe_timeout_seconds: float = 10.0
    relay_probe_target: str = "https://httpbin.org/status/200"

    # Reconnection probe
    reconnect_attempts: int = 3
    reconnect_backoff_seconds: float = 2.0

    # Local document store
    database_url: str = "sqlite:///./dashboard_data.db"
    store_user_id: Optional[str] = None

    user_agent: str = "ModernDashboard/1.0"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
