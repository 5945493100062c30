"""Shared HTTP utilities for the hosted lyric store."""

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests


def create_session(user_agent, api_key=None):
    """Create a requests.Session with User-Agent and (optional) API key headers.

    The key goes out both as the ``apikey`` header and as a bearer token,
    which is what the hosted REST gateway expects.
    """
    s = requests.Session()
    s.headers["User-Agent"] = user_agent
    if api_key:
        s.headers["apikey"] = api_key
        s.headers["Authorization"] = f"Bearer {api_key}"
    return s


def _decode(resp):
    if not resp.content:
        return None
    return resp.json()


def _retry_delay(resp, attempt):
    """Seconds to wait before retrying: Retry-After (seconds or HTTP-date),
    else exponential backoff."""
    value = resp.headers.get("Retry-After")
    if value is None:
        return 2 ** attempt
    try:
        return max(0, int(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 2 ** attempt
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


def api_request_with_retry(session, method, url, params=None, json=None,
                           headers=None, rate_limit=0.0, max_retries=3):
    """Make an API request with rate limiting and retry on 429/5xx.

    Args:
        session: requests.Session to use
        method: HTTP method ("GET", "PATCH", ...)
        url: Request URL
        params: Optional query parameters
        json: Optional JSON body
        headers: Optional per-request headers
        rate_limit: Seconds to wait after a successful request
        max_retries: Number of retry attempts before a final raise

    Returns the decoded JSON body, or None for an empty body.
    """
    for attempt in range(max_retries):
        resp = session.request(method, url, params=params, json=json,
                               headers=headers)
        if resp.status_code == 429 or resp.status_code >= 500:
            retry_after = _retry_delay(resp, attempt)
            print(f"    HTTP {resp.status_code}, retrying in {retry_after}s "
                  f"(attempt {attempt + 1}/{max_retries})")
            time.sleep(retry_after)
            continue
        resp.raise_for_status()
        time.sleep(rate_limit)
        return _decode(resp)
    # Final attempt, let it raise
    resp = session.request(method, url, params=params, json=json,
                           headers=headers)
    resp.raise_for_status()
    time.sleep(rate_limit)
    return _decode(resp)


def progress_line(done, total, elapsed):
    """Format a progress string like ``[done/total pct% elapsed_s eta eta_s]``."""
    pct = done * 100 // total if total else 0
    rate = done / elapsed if elapsed > 0 else 0
    eta = (total - done) / rate if rate > 0 else 0
    return f"[{done}/{total} {pct:>3}% {elapsed:.0f}s eta {eta:.0f}s]"
