from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal

from wordfall.api.models import SessionState
from wordfall.session import GameSession

ActionName = Literal["place", "recall", "hard_mode", "restart"]


def _int_field(payload: Mapping[str, Any], name: str) -> int:
    value = payload.get(name)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer")
    return value


def _bool_field(payload: Mapping[str, Any], name: str) -> bool:
    value = payload.get(name)
    if not isinstance(value, bool):
        raise ValueError(f"'{name}' must be a boolean")
    return value


def _place(session: GameSession, payload: Mapping[str, Any]) -> None:
    session.place_tile(_int_field(payload, "index"))


def _recall(session: GameSession, payload: Mapping[str, Any]) -> None:
    session.recall_tile(_int_field(payload, "index"))


def _hard_mode(session: GameSession, payload: Mapping[str, Any]) -> None:
    session.set_hard_mode(_bool_field(payload, "enabled"))


def _restart(session: GameSession, payload: Mapping[str, Any]) -> None:
    session.restart()


ACTION_HANDLERS: dict[str, Callable[[GameSession, Mapping[str, Any]], None]] = {
    "place": _place,
    "recall": _recall,
    "hard_mode": _hard_mode,
    "restart": _restart,
}


def dispatch_action(*, session: GameSession, action: str, payload: Mapping[str, Any]) -> SessionState:
    """Entry point for REST and WebSocket clients.

    Tile indices that no longer make sense (the word moved on) are ignored by the
    engine; only malformed payloads, unknown actions and actions on a finished
    game raise ValueError.
    """

    handler = ACTION_HANDLERS.get(action)
    if handler is None:
        raise ValueError(f"Unknown action: {action}")
    handler(session, payload)
    return session.snapshot()
