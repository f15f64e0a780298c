from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SessionWebSocketHub:
    """Fan-out of session updates to the sockets watching a game session.

    Sockets are grouped per session id. A socket that fails a send is dropped
    from its group; closing a session tells every watcher and closes them.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[session_id].add(websocket)

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._forget(session_id, websocket)

    async def broadcast(self, session_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            sockets = list(self._watchers.get(session_id, ()))

        failed: list[WebSocket] = []
        for ws in sockets:
            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.debug("dropping socket for session %s: %s", session_id, e)
                failed.append(ws)

        if failed:
            async with self._lock:
                for ws in failed:
                    self._forget(session_id, ws)

    async def close_session(self, session_id: str, *, reason: str = "closed") -> int:
        """Notify and close every socket of a session; returns how many were open."""

        async with self._lock:
            sockets = self._watchers.pop(session_id, set())

        for ws in sockets:
            try:
                await ws.send_json({"type": "session_closed", "session_id": session_id, "reason": reason})
                await ws.close(code=1000)
            except Exception as e:
                logger.debug("socket for session %s already gone: %s", session_id, e)
        return len(sockets)

    def _forget(self, session_id: str, websocket: WebSocket) -> None:
        sockets = self._watchers.get(session_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            self._watchers.pop(session_id, None)


hub = SessionWebSocketHub()
