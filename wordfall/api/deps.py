from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

import redis

from wordfall.core.config import EngineConfig, engine_config_from_env
from wordfall.core.scheduler import AsyncioScheduler, Scheduler
from wordfall.infra.redis_client import create_redis
from wordfall.session_registry import SessionRegistry, registry


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        try:
            client.close()
        except Exception:
            # Some redis client versions don't require explicit close.
            pass


@lru_cache(maxsize=1)
def _shared_redis() -> redis.Redis:
    return create_redis()


def get_session_redis() -> redis.Redis:
    """Long-lived client for live sessions; their timers outlive the request."""

    return _shared_redis()


async def get_scheduler() -> Scheduler:
    # async so it resolves on the event loop the engine timers must run on.
    return AsyncioScheduler()


def get_engine_config() -> EngineConfig:
    return engine_config_from_env()


def get_registry() -> SessionRegistry:
    return registry
