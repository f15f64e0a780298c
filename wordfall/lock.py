from __future__ import annotations

from contextlib import contextmanager

import redis


@contextmanager
def user_lock(*, r: redis.Redis, user_id: str, ttl_ms: int = 5_000):
    """Best-effort per-user lock around read-modify-write progress updates.

    Star increments read the current rating first; two sessions of the same
    user must not interleave there. Callers run on the event loop, so a held
    lock fails immediately with ValueError instead of waiting.
    """

    key = f"wordfall:lock:user:{user_id}"
    if not r.set(key, "1", nx=True, px=ttl_ms):
        raise ValueError("User progress is busy")
    try:
        yield
    finally:
        r.delete(key)
