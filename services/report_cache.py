"""TTL cache for dashboard statistics, invalidated on every change-request mutation."""
from __future__ import annotations

import time
import threading


_cache = {}
_lock = threading.Lock()

CHANGE_REQUEST_PREFIX = 'change-requests:'


def get(key: str):
    now = time.monotonic()
    with _lock:
        item = _cache.get(key)
        if not item:
            return None
        if item['expires_at'] < now:
            _cache.pop(key, None)
            return None
        return item['value']


def set(key: str, value, ttl_seconds: int) -> None:
    ttl_seconds = max(1, int(ttl_seconds))
    with _lock:
        _cache[key] = {
            'value': value,
            'expires_at': time.monotonic() + ttl_seconds,
        }


def get_or_compute(key: str, ttl_seconds: int, producer):
    value = get(key)
    if value is None:
        value = producer()
        set(key, value, ttl_seconds)
    return value


def invalidate_prefix(prefix: str) -> None:
    with _lock:
        for key in [k for k in _cache if k.startswith(prefix)]:
            _cache.pop(key, None)


def invalidate_change_request_caches() -> None:
    invalidate_prefix(CHANGE_REQUEST_PREFIX)
