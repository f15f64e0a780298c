from __future__ import annotations

import logging

from wordfall.session import GameSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-process table of live game sessions keyed by session id.

    Engine timers live in this process, so sessions can't be shared across API
    replicas; a user always plays against the replica that created the session.
    A user has at most one live session: opening another closes the old one.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, GameSession] = {}

    def add(self, session: GameSession) -> list[str]:
        """Register `session`; returns the ids of the user's sessions it replaced."""

        superseded: list[str] = []
        for sid, other in list(self._sessions.items()):
            if other.user_id == session.user_id:
                logger.info("closing session %s superseded by %s", sid, session.session_id)
                other.close()
                self._sessions.pop(sid, None)
                superseded.append(sid)
        self._sessions[str(session.session_id)] = session
        return superseded

    def get(self, session_id: str) -> GameSession | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def clear(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


registry = SessionRegistry()
