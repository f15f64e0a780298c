from __future__ import annotations

import asyncio
from typing import Any, NoReturn
from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from wordfall import word_store
from wordfall.actions import dispatch_action
from wordfall.api.deps import get_engine_config, get_redis, get_registry, get_scheduler, get_session_redis
from wordfall.api.models import (
    AdminRequest,
    PackageCreateRequest,
    PackageListResponse,
    PackageProgressResponse,
    ProfileResponse,
    SessionCreateRequest,
    SessionEventsResponse,
    SessionState,
    UnlockedPackagesResponse,
    UserWordsResponse,
    WordPackage,
    WordProgressResponse,
)
from wordfall.core.config import EngineConfig
from wordfall.core.events import RoundOutcome
from wordfall.core.scheduler import Scheduler
from wordfall.infra.redis_client import ping
from wordfall.session import GameSession, open_session
from wordfall.session_registry import SessionRegistry
from wordfall.streams import SessionStream, read_session
from wordfall.websocket_hub import hub

router = APIRouter()

# Keep fire-and-forget broadcast tasks referenced until they finish.
_background: set[asyncio.Task[None]] = set()


def _update_payload(session: GameSession, outcome: RoundOutcome | None = None) -> dict[str, object]:
    return {
        "type": "session_updated",
        "session_id": str(session.session_id),
        "phase": session.phase.value,
        "word_phase": session.engine.phase.value,
        "score": session.engine.score,
        "combo": session.engine.combo,
        "outcome": outcome.type if outcome else None,
        "xp": outcome.xp if outcome else 0,
    }


def _broadcast_soon(session: GameSession, outcome: RoundOutcome | None) -> None:
    """Session update hook; timer callbacks are sync, so schedule the send on the loop."""

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Driven outside the loop (e.g. a manual clock in tests); nobody to notify.
        return
    task = loop.create_task(hub.broadcast(str(session.session_id), _update_payload(session, outcome)))
    _background.add(task)
    task.add_done_callback(_background.discard)


def _require_session(registry: SessionRegistry, session_id: UUID) -> GameSession:
    session = registry.get(str(session_id))
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _raise_for_package_error(e: ValueError) -> NoReturn:
    if isinstance(e, word_store.PackageNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if isinstance(e, word_store.PackageLockedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e


@router.websocket("/ws/session/{session_id}")
async def session_updates_ws(
    websocket: WebSocket,
    session_id: UUID,
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    sid = str(session_id)
    await hub.connect(sid, websocket)

    try:
        # Clients may also play over the socket: {"action": "place", "index": 2}.
        while websocket.application_state == WebSocketState.CONNECTED:
            message = await websocket.receive_json()
            session = registry.get(sid)
            if session is None:
                await websocket.send_json({"type": "error", "detail": "Session not found"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "detail": "Expected a JSON object"})
                continue
            sent = session.updates_sent
            try:
                dispatch_action(session=session, action=str(message.get("action")), payload=message)
            except ValueError as e:
                await websocket.send_json({"type": "error", "detail": str(e)})
                continue
            if session.updates_sent == sent:
                await hub.broadcast(sid, _update_payload(session))
    except WebSocketDisconnect:
        await hub.disconnect(sid, websocket)
    except Exception:
        await hub.disconnect(sid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck(r: redis.Redis = Depends(get_redis)) -> dict[str, str]:
    return {"status": "ok", "redis": "ok" if ping(r) else "unavailable"}


# --- packages -------------------------------------------------------------


@router.post("/packages", response_model=WordPackage, status_code=status.HTTP_201_CREATED)
async def create_package_route(payload: PackageCreateRequest, r: redis.Redis = Depends(get_redis)) -> WordPackage:
    try:
        pkg, _words = word_store.create_package(
            r=r,
            name=payload.name,
            display_order=payload.display_order,
            words=payload.words,
            package_id=payload.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return pkg


@router.get("/packages", response_model=PackageListResponse)
async def list_packages_route(r: redis.Redis = Depends(get_redis)) -> PackageListResponse:
    return PackageListResponse(packages=word_store.list_packages(r=r))


# --- users ----------------------------------------------------------------


@router.get("/users/{user_id}/packages/unlocked", response_model=UnlockedPackagesResponse)
async def unlocked_packages_route(user_id: str, r: redis.Redis = Depends(get_redis)) -> UnlockedPackagesResponse:
    return UnlockedPackagesResponse(
        user_id=user_id,
        is_admin=word_store.is_admin(r=r, user_id=user_id),
        unlocked_packages=word_store.get_unlocked_packages(r=r, user_id=user_id),
    )


@router.get("/users/{user_id}/packages/progress", response_model=PackageProgressResponse)
async def package_progress_route(user_id: str, r: redis.Redis = Depends(get_redis)) -> PackageProgressResponse:
    return PackageProgressResponse(user_id=user_id, packages=word_store.get_package_progress(r=r, user_id=user_id))


@router.get("/users/{user_id}/words", response_model=UserWordsResponse)
async def user_words_route(
    user_id: str,
    package_id: str = "all",
    r: redis.Redis = Depends(get_redis),
) -> UserWordsResponse:
    try:
        words = word_store.get_unlocked_words(r=r, user_id=user_id, package_id=package_id)
    except ValueError as e:
        _raise_for_package_error(e)
    return UserWordsResponse(user_id=user_id, package_id=package_id, words=words)


@router.get("/users/{user_id}/words/progress", response_model=WordProgressResponse)
async def word_progress_route(user_id: str, r: redis.Redis = Depends(get_redis)) -> WordProgressResponse:
    return WordProgressResponse(user_id=user_id, words=word_store.get_word_progress(r=r, user_id=user_id))


@router.get("/users/{user_id}/profile", response_model=ProfileResponse)
async def profile_route(user_id: str, r: redis.Redis = Depends(get_redis)) -> ProfileResponse:
    return ProfileResponse(user_id=user_id, xp=word_store.get_profile_xp(r=r, user_id=user_id))


@router.put("/users/{user_id}/admin", status_code=status.HTTP_204_NO_CONTENT)
async def set_admin_route(user_id: str, payload: AdminRequest, r: redis.Redis = Depends(get_redis)) -> Response:
    word_store.set_admin(r=r, user_id=user_id, is_admin=payload.is_admin)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- sessions -------------------------------------------------------------


@router.post("/sessions", response_model=SessionState, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest,
    r: redis.Redis = Depends(get_session_redis),
    scheduler: Scheduler = Depends(get_scheduler),
    config: EngineConfig = Depends(get_engine_config),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionState:
    try:
        session = open_session(
            r=r,
            user_id=payload.user_id,
            scheduler=scheduler,
            package_id=payload.package_id,
            hard_mode=payload.hard_mode,
            resume=payload.resume,
            seed=payload.seed,
            config=config,
            on_update=_broadcast_soon,
        )
    except ValueError as e:
        _raise_for_package_error(e)

    for superseded in registry.add(session):
        await hub.close_session(superseded, reason="superseded")
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> SessionState:
    return _require_session(registry, session_id).snapshot()


@router.post("/sessions/{session_id}/actions/{action}", response_model=SessionState)
async def session_action_route(
    session_id: UUID,
    action: str,
    body: dict[str, Any],
    registry: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = _require_session(registry, session_id)
    sent = session.updates_sent
    try:
        state = dispatch_action(session=session, action=action, payload=body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    # Outcomes and restarts were already pushed by the session's update hook.
    if session.updates_sent == sent:
        await hub.broadcast(str(session_id), _update_payload(session))
    return state


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session_route(session_id: UUID, registry: SessionRegistry = Depends(get_registry)) -> Response:
    if not registry.remove(str(session_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    await hub.close_session(str(session_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/events", response_model=SessionEventsResponse)
async def session_events_route(
    session_id: UUID,
    count: int = 50,
    r: redis.Redis = Depends(get_session_redis),
) -> SessionEventsResponse:
    """Outcome log of a session (one entry per finished word)."""

    if count < 1 or count > 1_000:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 1000")

    stream = SessionStream(session_id=str(session_id))
    return SessionEventsResponse(session_id=session_id, stream=stream.key, events=read_session(r=r, stream=stream, count=count))
