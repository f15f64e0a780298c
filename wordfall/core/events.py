from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Protocol

OutcomeType = Literal[
    "CORRECT",
    "WRONG",
    "ROUND_OVER",
]


class RoundListener(Protocol):
    """Host side of the engine. Each method fires at most once per word."""

    def on_correct(self, xp: int) -> None: ...

    def on_wrong(self) -> None: ...

    def on_round_over(self) -> None: ...


@dataclass(frozen=True, slots=True)
class RoundOutcome:
    type: OutcomeType
    word: str
    xp: int
    combo: int
    score: int
    ts: datetime

    @staticmethod
    def now(*, type: OutcomeType, word: str, xp: int = 0, combo: int, score: int) -> "RoundOutcome":
        return RoundOutcome(type=type, word=word, xp=xp, combo=combo, score=score, ts=datetime.now(tz=UTC))

    def as_fields(self) -> dict[str, str]:
        return {
            "type": self.type,
            "word": self.word,
            "xp": str(self.xp),
            "combo": str(self.combo),
            "score": str(self.score),
            "ts": self.ts.isoformat(),
        }
