from __future__ import annotations

import logging
import os

import redis

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def get_redis_url() -> str:
    return os.environ.get("WORDFALL_REDIS_URL") or os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)


def _socket_timeout_s() -> float | None:
    raw = os.environ.get("WORDFALL_REDIS_TIMEOUT_S", "").strip()
    return float(raw) if raw else None


def create_redis(url: str | None = None) -> redis.Redis:
    # Engine timer callbacks write progress from the event loop thread, so a
    # hung connection stalls every live session on this process.
    return redis.Redis.from_url(
        url or get_redis_url(),
        decode_responses=True,
        socket_timeout=_socket_timeout_s(),
    )


def ping(r: redis.Redis) -> bool:
    try:
        return bool(r.ping())
    except redis.RedisError as e:
        logger.warning("redis ping failed: %s", e)
        return False
