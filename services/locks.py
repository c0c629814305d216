"""Per-key in-process locks serializing transitions on one change request."""
from __future__ import annotations

from contextlib import contextmanager
import threading


_locks = {}
_registry_lock = threading.Lock()


@contextmanager
def keyed_lock(*key):
    """Hold the lock for `key`; unrelated keys never block each other."""
    with _registry_lock:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = [threading.Lock(), 0]
        entry[1] += 1

    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(key, None)


def change_request_lock(change_request_id: int):
    return keyed_lock('change_request', change_request_id)
