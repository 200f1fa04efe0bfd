"""
Dashboard Data - status API over one DataService

Lets the UI layer observe and steer the data-access core: current mode,
relay health, cache statistics, and the weather / news reads themselves.
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from dashboard_data.errors import (
    DashboardDataError,
    DuplicateEntry,
    FetchError,
    InvalidConfiguration,
    InvalidUrl,
)
from dashboard_data.schemas import (
    AddFeedRequest,
    CacheClearResponse,
    FeedResponse,
    FeedSnapshotResponse,
    ForecastResponse,
    ModeResponse,
    NewsResponse,
    ReconnectResponse,
    RelayStatus,
    WeatherResponse,
)
from dashboard_data.service import DataService

load_dotenv()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Dashboard Data"
APP_STAGE = "Alpha"


def _error_response(status_code: int, error: DashboardDataError) -> JSONResponse:
    body = {"code": error.code, "message": error.message, "suggestion": error.suggestion}
    if isinstance(error, InvalidUrl):
        body["corrections"] = error.corrections
    return JSONResponse(status_code=status_code, content=body)


def create_app(service: Optional[DataService] = None) -> FastAPI:
    """
    Build the API.

    With no service given, one is built from settings on startup. Either way
    the service is started on startup and disposed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = DataService(settings)
        app.state.service.start()
        yield
        app.state.service.dispose()

    app = FastAPI(
        title=f"{APP_NAME} ({APP_STAGE})",
        description="Resilient weather and news data for the dashboard",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.service = service

    def svc(request: Request) -> DataService:
        return request.app.state.service

    # ===== ERROR HANDLERS =====

    @app.exception_handler(InvalidUrl)
    async def invalid_url_handler(request: Request, exc: InvalidUrl):
        return _error_response(400, exc)

    @app.exception_handler(DuplicateEntry)
    async def duplicate_handler(request: Request, exc: DuplicateEntry):
        return _error_response(409, exc)

    @app.exception_handler(FetchError)
    async def fetch_error_handler(request: Request, exc: FetchError):
        logger.warning(f"{request.url.path} failed with no cached data: {exc}")
        return _error_response(503, exc)

    @app.exception_handler(InvalidConfiguration)
    async def configuration_handler(request: Request, exc: InvalidConfiguration):
        return _error_response(503, exc)

    # ===== STATUS =====

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint."""
        return {"status": "ok", "mode": svc(request).mode.state.value}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "stage": APP_STAGE,
            "full": f"{APP_NAME} {APP_VERSION} ({APP_STAGE})",
        }

    @app.get("/mode", response_model=ModeResponse)
    def get_mode(request: Request):
        return svc(request).mode.get_status()

    @app.post("/mode/offline", response_model=ModeResponse)
    def go_offline(request: Request, reason: str = Query("manual request")):
        service = svc(request)
        service.mode.request_offline(reason)
        return service.mode.get_status()

    @app.post("/mode/reconnect", response_model=ReconnectResponse)
    def reconnect(request: Request):
        """Reconnection failure is a normal outcome, reported with success=false."""
        result = svc(request).mode.attempt_reconnect()
        return ReconnectResponse(
            success=result.success,
            state=result.state.value,
            message=result.message,
            attempts=result.attempts,
        )

    @app.get("/relays", response_model=List[RelayStatus])
    def list_relays(request: Request):
        return svc(request).relay_pool.health_snapshot()

    @app.post("/relays/check", response_model=List[RelayStatus])
    def check_relays(request: Request):
        pool = svc(request).relay_pool
        pool.check_health()
        return pool.health_snapshot()

    @app.get("/cache/stats")
    def cache_stats(request: Request):
        """Get cache statistics."""
        service = svc(request)
        return {"cache": service.cache.get_stats(), "failures": service.tracker.get_stats()}

    @app.delete("/cache", response_model=CacheClearResponse)
    def clear_cache(request: Request, prefix: Optional[str] = Query(None, description="Key prefix, e.g. 'weather:'")):
        removed = svc(request).cache.clear(prefix)
        return CacheClearResponse(removed=removed, prefix=prefix)

    # ===== DATA =====

    @app.get("/api/weather/{location}", response_model=WeatherResponse)
    def get_weather(request: Request, location: str):
        return svc(request).weather.get_current_weather(location).to_dict()

    @app.get("/api/forecast/{location}", response_model=ForecastResponse)
    def get_forecast(request: Request, location: str):
        items = svc(request).weather.get_forecast(location)
        return {"location": location, "items": [item.to_dict() for item in items]}

    @app.get("/api/news", response_model=NewsResponse)
    def get_news(request: Request, refresh: bool = Query(False)):
        service = svc(request)
        repo = service.news
        snapshots = repo.refresh() if refresh else repo.get_latest()
        return NewsResponse(
            mode=service.mode.state.value,
            feeds=[FeedSnapshotResponse(**s.to_dict()) for s in snapshots],
        )

    @app.get("/api/feeds", response_model=List[FeedResponse])
    def list_feeds(request: Request):
        return [feed.to_dict() for feed in svc(request).news.list_feeds()]

    @app.post("/api/feeds", response_model=FeedResponse, status_code=201)
    def add_feed(request: Request, body: AddFeedRequest):
        return svc(request).news.add_feed(body.url).to_dict()

    @app.delete("/api/feeds")
    def remove_feed(request: Request, url: str = Query(..., description="Feed URL")):
        removed = svc(request).news.remove_feed(url)
        return {"url": url, "removed": removed}

    return app


app = create_app()
