#!/usr/bin/env python3
"""
Visitor Analytics API - ingest visitor events and serve dashboard statistics.

Run with: uvicorn api:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Optional, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from db import EventStore, init_storage
from errors import (
    AnalyticsError,
    PayloadTooLarge,
    RateLimitExceeded,
    StorageError,
    StorageTimeout,
    StorageUnavailable,
    Unauthorized,
    ValidationError,
)
from models.stats import AggregateStats
from services.aggregation import compute_stats
from services.auth import authorize
from services.rate_limiter import FixedWindowRateLimiter
from settings import Settings
from utils.client_ip import resolve_client_ip
from utils.clock import MonotonicClock, isoformat
from utils.timerange import parse_date_param, resolve_window
from utils.validation import parse_payload

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

T = TypeVar("T")

STORAGE_WARNING = "storage_unavailable"
MAX_LIST_LIMIT = 10000

# Raw Authorization header; parsed by services.auth.authorize
admin_header = APIKeyHeader(name="Authorization", auto_error=False)

router = APIRouter(prefix="/api")


# --- Dependencies ---

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_client_ip(request: Request) -> Optional[str]:
    remote = request.client.host if request.client else None
    return resolve_client_ip(request.headers, remote)


def rate_limit(request: Request):
    """Reject the request with 429 once its address exhausts the current window."""
    result = request.app.state.limiter.hit(get_client_ip(request))
    if not result.allowed:
        raise RateLimitExceeded(retry_after=result.retry_after)


def require_admin(request: Request, authorization: Optional[str] = Depends(admin_header)):
    """Bearer token gate for the dashboard endpoints."""
    if not authorize(authorization, get_settings(request).admin_token):
        raise Unauthorized("Invalid or missing bearer token")


async def with_timeout(operation: Awaitable[T], seconds: float, action: str) -> T:
    try:
        return await asyncio.wait_for(operation, timeout=seconds)
    except asyncio.TimeoutError:
        logger.error(f"Storage {action} timed out after {seconds}s")
        raise StorageTimeout(f"Storage {action} timed out")


async def read_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, stopping as soon as it exceeds ``max_bytes``."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLarge(f"Payload exceeds {max_bytes} bytes")

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLarge(f"Payload exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


# --- API Endpoints ---

@router.post("/analytics/visitor", dependencies=[Depends(rate_limit)])
async def record_visitor(request: Request):
    """Store one visitor event sent by the client tracker."""
    settings = get_settings(request)
    body = await read_body(request, settings.max_payload_bytes)
    event = parse_payload(body, settings.max_payload_bytes)

    # Server-observed values are authoritative
    event.timestamp = request.app.state.clock.now()
    event.ip = get_client_ip(request)
    if not event.user_agent:
        event.user_agent = request.headers.get("user-agent", "")

    store = get_store(request)
    if not store.is_connected():
        return {"success": True, "message": "Visitor data accepted", "warning": STORAGE_WARNING}

    try:
        await with_timeout(store.insert(event), settings.storage_timeout_seconds, "insert")
    except StorageUnavailable as e:
        logger.warning(f"Dropping visitor event, storage unavailable: {e.message}")
        return {"success": True, "message": "Visitor data accepted", "warning": STORAGE_WARNING}
    except StorageError as e:
        logger.error(f"Error storing visitor data: {e.message}")
        raise StorageError("Failed to store visitor data")

    return {"success": True, "message": "Visitor data stored"}


@router.get("/analytics/visitors", dependencies=[Depends(rate_limit), Depends(require_admin)])
async def list_visitors(
    request: Request,
    response: Response,
    start_date: Optional[str] = Query(None, alias="startDate", description="ISO-8601 lower bound"),
    end_date: Optional[str] = Query(None, alias="endDate", description="ISO-8601 upper bound"),
    limit: int = Query(1000, ge=1, le=MAX_LIST_LIMIT, description="Maximum events to return"),
):
    """Raw stored events, newest first."""
    start = parse_date_param(start_date, "startDate")
    end = parse_date_param(end_date, "endDate")
    if start is not None and end is not None and start > end:
        raise ValidationError("'startDate' must not be after 'endDate'")

    store = get_store(request)
    connected = store.is_connected()
    response.headers["X-Storage-Status"] = "connected" if connected else "disconnected"
    if not connected:
        return []

    settings = get_settings(request)
    events = await with_timeout(store.recent(start, end, limit), settings.query_timeout_seconds, "query")
    return [e.to_dict() for e in events]


@router.get("/analytics/stats", dependencies=[Depends(rate_limit), Depends(require_admin)])
async def get_stats(
    request: Request,
    time_range: Optional[str] = Query(None, alias="timeRange", description="One of 1h, 24h, 7d, 30d"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Aggregate statistics for the requested window."""
    settings = get_settings(request)
    now = request.app.state.clock.now()
    window = resolve_window(now, time_range, start_date, end_date)

    store = get_store(request)
    if not store.is_connected():
        stats = AggregateStats.empty(window.start, window.end, warning=STORAGE_WARNING)
    else:
        try:
            stats = await with_timeout(
                compute_stats(store, window, now=now, tz=request.app.state.tz),
                settings.query_timeout_seconds,
                "stats query",
            )
        except StorageUnavailable as e:
            logger.warning(f"Stats query without storage: {e.message}")
            stats = AggregateStats.empty(window.start, window.end, warning=STORAGE_WARNING)

    stats.generated_at = now
    return {"success": True, **stats.to_response()}


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    store = get_store(request)
    connected = False
    if store.is_connected():
        try:
            connected = await asyncio.wait_for(store.ping(), timeout=get_settings(request).storage_timeout_seconds)
        except asyncio.TimeoutError:
            connected = False

    return {
        "status": "healthy" if connected else "degraded",
        "timestamp": isoformat(request.app.state.clock.now()),
        "storage": "connected" if connected else "disconnected",
        "backend": store.name,
    }


# --- Error Handling ---

async def analytics_error_handler(request: Request, exc: AnalyticsError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitExceeded) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part not in ("query", "body"))
        message = f"Invalid parameter '{location}': {errors[0].get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=ValidationError(message).to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal_error", "message": "Internal server error"},
    )


# --- Application ---

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[EventStore] = None,
    clock: Optional[MonotonicClock] = None,
    limiter: Optional[FixedWindowRateLimiter] = None,
) -> FastAPI:
    """Build the application with explicit dependencies.

    ``store`` overrides backend selection from settings; it is connected on
    startup and closed on shutdown like any configured store.
    """
    settings = settings or Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect storage on startup and release it on shutdown."""
        if store is not None:
            await store.connect()
            app.state.store = store
        else:
            app.state.store = await init_storage(settings)
        if settings.event_retention_days <= 0:
            logger.warning("No event retention configured, raw events are kept indefinitely")
        logger.info(f"Analytics API ready (storage backend: {app.state.store.name})")
        yield
        await app.state.store.close()

    app = FastAPI(
        title="Visitor Analytics API",
        description="Collects visitor telemetry and serves aggregate statistics",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.tz = settings.tz
    app.state.clock = clock or MonotonicClock()
    app.state.limiter = limiter or FixedWindowRateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )

    # Browser tracker runs on the frontend origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(AnalyticsError, analytics_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
