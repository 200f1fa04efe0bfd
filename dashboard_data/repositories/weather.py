"""
Weather repositories.

LiveWeatherRepository reads the OpenWeatherMap JSON API through the
resilient fetcher; SubstituteWeatherRepository makes up plausible readings
locally while the dashboard is offline.
"""
import json
import logging
import random
import threading
import zlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from dashboard_data.cache import CacheSource, CacheStore, DataDomain, make_cache_key, ttl_for_domain
from dashboard_data.cancellation import CancelToken
from dashboard_data.clock import Clock, SystemClock
from dashboard_data.errors import IncompatibleResponse, InvalidConfiguration
from dashboard_data.http_client import HttpClient
from dashboard_data.models import WeatherData
from dashboard_data.orchestrator import ResilientFetcher, ResilientFetchRequest
from dashboard_data.relay import RelayEndpoint, RelayPool

logger = logging.getLogger("repositories.weather")

DEFAULT_BASE_URL = "https://api.openweathermap.org/data/2.5"
FORECAST_LIMIT = 5


def _normalize_location(location: str) -> str:
    cleaned = " ".join((location or "").split()).lower()
    if not cleaned:
        raise ValueError("location must not be empty")
    return cleaned


# =============================================================================
# Response parsing
# =============================================================================

def parse_current(data: Any, location: str, url: str = "") -> WeatherData:
    """
    Parse an OpenWeatherMap /weather response.

    Raises:
        IncompatibleResponse: the JSON does not have the expected shape
    """
    try:
        main = data["main"]
        weather = data["weather"][0]
        wind = data.get("wind") or {}
        visibility = data.get("visibility")
        observed = data.get("dt")
        return WeatherData(
            location=data.get("name") or location,
            temperature=float(main["temp"]),
            humidity=int(main.get("humidity", 0)),
            conditions=weather.get("description", ""),
            icon_code=weather.get("icon", ""),
            observed_at=(
                datetime.fromtimestamp(observed, tz=timezone.utc)
                if observed is not None else datetime.now(timezone.utc)
            ),
            wind_speed=float(wind.get("speed", 0)),
            pressure=float(main.get("pressure", 0)),
            visibility=float(visibility) / 1000 if visibility is not None else None,
        )
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise IncompatibleResponse(url or location, details=f"Unexpected weather payload: {e}")


def parse_forecast(data: Any, location: str, url: str = "") -> List[WeatherData]:
    """Parse an OpenWeatherMap /forecast response, keeping the first FORECAST_LIMIT steps."""
    try:
        items = data["list"]
        if not isinstance(items, list):
            raise TypeError("'list' is not an array")
        forecast = []
        for item in items[:FORECAST_LIMIT]:
            main = item["main"]
            weather = item["weather"][0]
            wind = item.get("wind") or {}
            forecast.append(WeatherData(
                location=location,
                temperature=float(main["temp"]),
                humidity=int(main.get("humidity", 0)),
                conditions=weather.get("description", ""),
                icon_code=weather.get("icon", ""),
                observed_at=datetime.fromtimestamp(item["dt"], tz=timezone.utc),
                wind_speed=float(wind.get("speed", 0)),
                pressure=float(main.get("pressure", 0)),
            ))
        return forecast
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise IncompatibleResponse(url or location, details=f"Unexpected forecast payload: {e}")


# =============================================================================
# Live repository
# =============================================================================

class LiveWeatherRepository:
    """
    Network-backed weather.

    Usage:
        repo = LiveWeatherRepository(http, fetcher, cache, relay_pool, api_key="...")
        now = repo.get_current_weather("Paris")
    """

    def __init__(
        self,
        http: HttpClient,
        fetcher: ResilientFetcher,
        cache: CacheStore,
        relay_pool: Optional[RelayPool] = None,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        units: str = "metric",
        timeout: float = 10.0,
        ttl_overrides: Optional[Dict[DataDomain, int]] = None,
    ):
        self._http = http
        self._fetcher = fetcher
        self._cache = cache
        self._relay_pool = relay_pool
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._units = units
        self._timeout = timeout
        self._ttl_overrides = ttl_overrides or {}

    # Domain repository interface used by the fetcher

    def cache_key_for(self, params: Dict[str, Any]) -> str:
        return make_cache_key(params["domain"], {"loc": params["loc"], "units": self._units})

    def ttl_for(self, params: Dict[str, Any]) -> float:
        return ttl_for_domain(params["domain"], self._ttl_overrides)

    def _request_url(self, params: Dict[str, Any]) -> Tuple[str, Dict[str, str]]:
        path = "weather" if params["domain"] is DataDomain.WEATHER else "forecast"
        query = {"q": params["loc"], "appid": self._api_key, "units": self._units}
        return f"{self._base_url}/{path}", query

    def _parse(self, params: Dict[str, Any], data: Any, url: str):
        if params["domain"] is DataDomain.WEATHER:
            return parse_current(data, params["loc"], url)
        return parse_forecast(data, params["loc"], url)

    def fetch_direct(self, params: Dict[str, Any], cancel_token: CancelToken):
        url, query = self._request_url(params)
        data = self._http.get_json(url, timeout=self._timeout, params=query, cancel_token=cancel_token)
        return self._parse(params, data, url)

    def fetch_via_relay(self, params: Dict[str, Any], endpoint: RelayEndpoint, cancel_token: CancelToken):
        url, query = self._request_url(params)
        target = f"{url}?{urlencode(query)}"
        body = self._relay_pool.fetch_through(endpoint, target, cancel_token=cancel_token, timeout=self._timeout)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise IncompatibleResponse(url, details=f"Relay returned non-JSON body: {e}")
        return self._parse(params, data, url)

    def _resolve(self, domain: DataDomain, location: str, cancel_token: Optional[CancelToken]):
        if not self._api_key:
            raise InvalidConfiguration(
                "weather_api_key",
                suggestion="Get an API key from openweathermap.org and set WEATHER_API_KEY.",
            )
        params = {"domain": domain, "loc": _normalize_location(location)}
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

    # WeatherRepository

    def get_current_weather(self, location: str, cancel_token: Optional[CancelToken] = None) -> WeatherData:
        result = self._resolve(DataDomain.WEATHER, location, cancel_token)
        return result.payload.with_source(result.source, result.cached_at)

    def get_forecast(self, location: str, cancel_token: Optional[CancelToken] = None) -> List[WeatherData]:
        result = self._resolve(DataDomain.FORECAST, location, cancel_token)
        return [item.with_source(result.source, result.cached_at) for item in result.payload]

    def clear_cache(self, location: Optional[str] = None) -> int:
        if location is None:
            return self._cache.clear(f"{DataDomain.WEATHER.value}:") + self._cache.clear(
                f"{DataDomain.FORECAST.value}:"
            )
        removed = 0
        for domain in (DataDomain.WEATHER, DataDomain.FORECAST):
            removed += self._cache.clear(
                self.cache_key_for({"domain": domain, "loc": _normalize_location(location)})
            )
        return removed


# =============================================================================
# Substitute repository
# =============================================================================

# Base temperatures (°C) for a few well-known places
_CLIMATE_BASE = {
    "miami": 28.0,
    "phoenix": 35.0,
    "los angeles": 22.0,
    "seattle": 15.0,
    "denver": 18.0,
    "chicago": 12.0,
    "london": 12.0,
    "paris": 13.0,
    "sydney": 19.0,
}
_SOUTHERN_HINTS = ("sydney", "melbourne", "auckland", "buenos aires", "cape town", "santiago")
_CONDITIONS = [
    ("clear sky", "01d"),
    ("few clouds", "02d"),
    ("scattered clouds", "03d"),
    ("overcast clouds", "04d"),
    ("light rain", "10d"),
    ("thunderstorm", "11d"),
    ("mist", "50d"),
]
SUBSTITUTE_FRESHNESS_SECONDS = 600


class SubstituteWeatherRepository:
    """
    Offline weather: deterministic per location, refreshed every 10 minutes.
    No network access.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._readings: Dict[str, WeatherData] = {}
        self._lock = threading.Lock()

    def _rng(self, location: str, salt: str = "") -> random.Random:
        return random.Random(zlib.crc32(f"{location}|{salt}".encode("utf-8")))

    def _seasonal_offset(self, location: str, month: int) -> float:
        southern = any(hint in location for hint in _SOUTHERN_HINTS)
        winter, summer = ((6, 7, 8), (12, 1, 2)) if southern else ((12, 1, 2), (6, 7, 8))
        if month in winter:
            return -10.0
        if month in summer:
            return 6.0
        return 0.0

    def _generate(self, location: str, now: datetime) -> WeatherData:
        # One seed per location and 10-minute slot
        slot = int(now.timestamp()) // SUBSTITUTE_FRESHNESS_SECONDS
        rng = self._rng(location, str(slot))
        base = next((t for name, t in _CLIMATE_BASE.items() if name in location), 20.0)
        temperature = base + self._seasonal_offset(location, now.month) + rng.uniform(-4, 4)
        conditions, icon = rng.choice(_CONDITIONS)
        return WeatherData(
            location=location,
            temperature=round(max(-30.0, min(50.0, temperature)), 1),
            humidity=rng.randint(30, 70),
            conditions=conditions,
            icon_code=icon,
            observed_at=now,
            wind_speed=round(rng.uniform(2, 22), 1),
            pressure=round(rng.uniform(1000, 1050), 1),
            visibility=round(rng.uniform(5, 20), 1),
            cached_at=now,
            source=CacheSource.SUBSTITUTE,
        )

    def get_current_weather(self, location: str, cancel_token: Optional[CancelToken] = None) -> WeatherData:
        loc = _normalize_location(location)
        now = self._clock.now()
        with self._lock:
            reading = self._readings.get(loc)
            if reading is None or (now - reading.cached_at).total_seconds() >= SUBSTITUTE_FRESHNESS_SECONDS:
                reading = self._generate(loc, now)
                self._readings[loc] = reading
                logger.debug(f"Generated substitute weather for {loc}: {reading.temperature}°")
            return reading

    def get_forecast(self, location: str, cancel_token: Optional[CancelToken] = None) -> List[WeatherData]:
        current = self.get_current_weather(location)
        rng = self._rng(current.location, current.cached_at.isoformat())
        forecast = []
        for day in range(FORECAST_LIMIT):
            if day == 0:
                conditions, icon = current.conditions, current.icon_code
            else:
                conditions, icon = rng.choice(_CONDITIONS)
            forecast.append(WeatherData(
                location=current.location,
                temperature=round(current.temperature + rng.uniform(-3, 3), 1),
                humidity=max(0, min(100, current.humidity + rng.randint(-10, 10))),
                conditions=conditions,
                icon_code=icon,
                observed_at=current.observed_at + timedelta(days=day),
                wind_speed=round(max(0.0, (current.wind_speed or 0) + rng.uniform(-2, 2)), 1),
                pressure=current.pressure,
                cached_at=current.cached_at,
                source=CacheSource.SUBSTITUTE,
            ))
        return forecast

    def clear_cache(self, location: Optional[str] = None) -> int:
        with self._lock:
            if location is None:
                removed = len(self._readings)
                self._readings.clear()
                return removed
            return 1 if self._readings.pop(_normalize_location(location), None) else 0
