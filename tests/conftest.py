"""Pytest configuration and fixtures."""

import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

# Keep the module-level app in api.py from picking up a developer's .env database
os.environ.setdefault("STORAGE_BACKEND", "none")

from fastapi.testclient import TestClient

from api import create_app
from db.memory_store import MemoryEventStore
from services.rate_limiter import FixedWindowRateLimiter
from settings import Settings
from utils.clock import MonotonicClock

ADMIN_TOKEN = "test-admin-token"
AUTH_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}


class FakeClock:
    """Controllable wall clock returning aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class FakeTimer:
    """Controllable monotonic timer (seconds) for the rate limiter."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_payload(visitor_id="v1", page_views=1, country="US", browser="Chrome",
                 device_type="desktop", session_id="s1", **extra):
    """Minimal tracker payload with the fields the stats care about."""
    payload = {
        "id": visitor_id,
        "userAgent": "Mozilla/5.0 (X11; Linux x86_64) Chrome/120.0",
        "location": {"country": country},
        "device": {"type": device_type, "os": "Linux", "browser": browser, "screenResolution": "1920x1080"},
        "session": {
            "sessionId": session_id,
            "isNewSession": True,
            "duration": 30000,
            "pageViews": page_views,
            "entryPage": "/",
        },
        "engagement": {"timeOnSite": 30000, "scrollDepth": 50, "clickCount": 2, "tabSwitches": 0},
    }
    payload.update(extra)
    return payload


@pytest.fixture
def fake_clock():
    return FakeClock(datetime(2024, 5, 1, 14, 10, tzinfo=timezone.utc))


@pytest.fixture
def fake_timer():
    return FakeTimer()


@pytest.fixture
def settings():
    return Settings(admin_token=ADMIN_TOKEN, storage_backend="memory")


@pytest.fixture
def memory_store():
    return MemoryEventStore()


@pytest.fixture
def make_client(settings, fake_clock, fake_timer):
    """Factory building a TestClient around an app with injected collaborators."""
    clients = []

    def _make(store=None, **overrides):
        app_settings = replace(settings, **overrides)
        limiter = FixedWindowRateLimiter(
            window_seconds=app_settings.rate_limit_window_seconds,
            max_requests=app_settings.rate_limit_max_requests,
            timer=fake_timer,
        )
        app = create_app(
            app_settings,
            store=store if store is not None else MemoryEventStore(),
            clock=MonotonicClock(fake_clock),
            limiter=limiter,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, memory_store):
    return make_client(store=memory_store)


@pytest.fixture
def payload():
    """The make_payload builder, as a fixture."""
    return make_payload
