#!/usr/bin/env python3
"""
Post synthetic visitor events to a running analytics server.

Usage:
    python scripts/simulate_visitors.py
    python scripts/simulate_visitors.py --url http://localhost:3001 --visitors 50

Each simulated visitor gets one or more sessions; each session flushes a few
snapshots with growing page views, like the browser tracker does.
"""

import argparse
import random
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

import requests

INGEST_PATH = "/api/analytics/visitor"

COUNTRIES = ["United States", "Canada", "Mexico", "Germany", "India", "Brazil", "Japan"]
PAGES = ["/", "/universe", "/earth-weather", "/graph", "/about"]
REFERRERS = ["https://www.google.com/", "https://www.bing.com/", "https://twitter.com/", ""]

DEVICES = [
    ("desktop", "Windows", "Chrome", "1920x1080"),
    ("desktop", "macOS", "Safari", "2560x1440"),
    ("desktop", "Linux", "Firefox", "1366x768"),
    ("mobile", "Android", "Chrome", "412x915"),
    ("mobile", "iOS", "Safari", "390x844"),
    ("tablet", "iOS", "Safari", "820x1180"),
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
MAX_RETRIES = 3


def build_event(visitor_id: str, session_id: str, page_views: int, device: tuple, country: str,
                entry_page: str, referrer: str, started: float) -> Dict[str, Any]:
    device_type, os_name, browser, resolution = device
    elapsed_ms = int((time.time() - started) * 1000) + random.randint(5_000, 120_000)
    return {
        "id": visitor_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "userAgent": USER_AGENT,
        "location": {"country": country, "city": None, "timezone": "UTC"},
        "device": {
            "type": device_type,
            "os": os_name,
            "browser": browser,
            "screenResolution": resolution,
        },
        "session": {
            "sessionId": session_id,
            "isNewSession": page_views == 1,
            "duration": elapsed_ms,
            "pageViews": page_views,
            "referrer": referrer or None,
            "entryPage": entry_page,
            "exitPage": random.choice(PAGES),
        },
        "engagement": {
            "timeOnSite": elapsed_ms,
            "scrollDepth": random.randint(0, 100),
            "clickCount": random.randint(0, 20),
            "tabSwitches": random.randint(0, 3),
            "lastActiveTime": datetime.now(timezone.utc).isoformat(),
        },
        "technicalData": {
            "language": random.choice(["en-US", "de-DE", "es-MX", "hi-IN"]),
            "colorDepth": 24,
            "pixelRatio": random.choice([1, 2, 3]),
            "cookiesEnabled": True,
            "javaScriptEnabled": True,
        },
    }


def post_event(session: requests.Session, url: str, event: Dict[str, Any]) -> bool:
    """Send one event, retrying transient failures with backoff."""
    for attempt in range(MAX_RETRIES):
        try:
            response = session.post(url, json=event, timeout=10)
            if response.status_code == 429:
                print(f"Rate limited, retry after {response.headers.get('Retry-After', '?')}s")
                return False
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            if attempt == MAX_RETRIES - 1:
                print(f"Error sending event: {e}")
                return False
            time.sleep(2 ** attempt)
    return False


def simulate_visitor(session: requests.Session, url: str, max_sessions: int) -> List[bool]:
    visitor_id = f"visitor_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
    device = random.choice(DEVICES)
    country = random.choice(COUNTRIES)
    results = []

    for _ in range(random.randint(1, max_sessions)):
        session_id = f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        entry_page = random.choice(PAGES)
        referrer = random.choice(REFERRERS)
        started = time.time()
        # Bounce roughly a third of sessions
        snapshots = 1 if random.random() < 0.33 else random.randint(2, 6)
        for page_views in range(1, snapshots + 1):
            event = build_event(visitor_id, session_id, page_views, device, country,
                                entry_page, referrer, started)
            results.append(post_event(session, url, event))
            time.sleep(0.05)
    return results


def main():
    parser = argparse.ArgumentParser(description="Send synthetic visitor events")
    parser.add_argument("--url", default="http://localhost:3001", help="Server base URL")
    parser.add_argument("--visitors", type=int, default=20, help="Number of visitors (default: 20)")
    parser.add_argument("--max-sessions", type=int, default=3, help="Sessions per visitor (default: 3)")
    args = parser.parse_args()

    endpoint = args.url.rstrip("/") + INGEST_PATH
    print(f"Simulating {args.visitors} visitors against {endpoint}...")
    start_time = time.time()

    http = requests.Session()
    http.headers.update({"User-Agent": USER_AGENT})
    sent = failed = 0
    try:
        for _ in range(args.visitors):
            for ok in simulate_visitor(http, endpoint, args.max_sessions):
                if ok:
                    sent += 1
                else:
                    failed += 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(1)

    print(f"Sent {sent} events ({failed} failed) in {time.time() - start_time:.2f}s")


if __name__ == "__main__":
    main()
