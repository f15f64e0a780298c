from __future__ import annotations

from collections.abc import Generator

import fakeredis
import pytest

from wordfall.api.models import WordCreate
from wordfall.core.scheduler import ManualScheduler


class RecordingListener:
    """RoundListener that just remembers what the engine emitted."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_correct(self, xp: int) -> None:
        self.events.append(("CORRECT", xp))

    def on_wrong(self) -> None:
        self.events.append(("WRONG",))

    def on_round_over(self) -> None:
        self.events.append(("ROUND_OVER",))


@pytest.fixture()
def clock() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def _clear_session_registry() -> Generator[None, None, None]:
    from wordfall.session_registry import registry

    yield
    registry.clear()


@pytest.fixture()
def seeded(r: fakeredis.FakeRedis) -> dict[str, list[str]]:
    """Three packages in display order; returns package id -> word ids."""

    from wordfall import word_store

    packages = {
        "basics": (1, [("cat", "kedi"), ("dog", "köpek"), ("sun", "güneş")]),
        "home": (2, [("table", "masa"), ("door", "kapı")]),
        "city": (3, [("bridge", "köprü")]),
    }
    out: dict[str, list[str]] = {}
    for pid, (order, pairs) in packages.items():
        _, words = word_store.create_package(
            r=r,
            package_id=pid,
            name=pid.title(),
            display_order=order,
            words=[WordCreate(id=f"{pid}-{en}", english=en, turkish=tr) for en, tr in pairs],
        )
        out[pid] = [w.id for w in words]
    return out


@pytest.fixture()
def client_and_redis(r: fakeredis.FakeRedis, clock: ManualScheduler):
    """FastAPI TestClient wired to fakeredis and a manual clock for engine timers."""

    from fastapi.testclient import TestClient

    from wordfall.api.deps import get_redis, get_scheduler, get_session_redis
    from wordfall.main import app

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_session_redis] = lambda: r
    app.dependency_overrides[get_scheduler] = lambda: clock
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
