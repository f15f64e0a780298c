from __future__ import annotations

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Tunables for one falling-word engine.

    The three delays only postpone outcome emission / retry reshuffle so the UI
    can show the last frame; they carry no game rules.
    """

    grid_height: int = 10
    # Round is over once this many words are stacked (no room for another).
    max_wrong_words: int = 9
    time_per_letter_normal_ms: int = 2_000
    time_per_letter_hard_ms: int = 4_000
    hard_mode: bool = False

    wrong_delay_ms: int = 300
    round_over_delay_ms: int = 500
    retry_delay_ms: int = 500

    def __post_init__(self) -> None:
        if self.grid_height <= 0:
            raise ValueError("grid_height must be positive")
        if self.max_wrong_words <= 0:
            raise ValueError("max_wrong_words must be positive")
        if self.max_wrong_words > self.grid_height:
            raise ValueError("max_wrong_words must not exceed grid_height")
        if self.time_per_letter_normal_ms <= 0 or self.time_per_letter_hard_ms <= 0:
            raise ValueError("time per letter must be positive")
        if min(self.wrong_delay_ms, self.round_over_delay_ms, self.retry_delay_ms) < 0:
            raise ValueError("delays must not be negative")

    @property
    def time_per_letter_ms(self) -> int:
        return self.time_per_letter_hard_ms if self.hard_mode else self.time_per_letter_normal_ms

    def with_hard_mode(self, enabled: bool) -> EngineConfig:
        return replace(self, hard_mode=enabled)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def engine_config_from_env() -> EngineConfig:
    return EngineConfig(
        grid_height=_int_env("WORDFALL_GRID_HEIGHT", 10),
        max_wrong_words=_int_env("WORDFALL_MAX_WRONG_WORDS", 9),
        time_per_letter_normal_ms=_int_env("WORDFALL_TIME_PER_LETTER_NORMAL_MS", 2_000),
        time_per_letter_hard_ms=_int_env("WORDFALL_TIME_PER_LETTER_HARD_MS", 4_000),
    )
