from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from wordfall.core.config import EngineConfig
from wordfall.core.events import RoundListener
from wordfall.core.scheduler import Scheduler, TimerHandle
from wordfall.core.scoring import xp_for_answer
from wordfall.fsm import WordPhase, WordRoundFSM

logger = logging.getLogger(__name__)

# Sentinel for an unfilled answer slot / a consumed letter tile.
EMPTY = ""


@dataclass(frozen=True, slots=True)
class StackedWord:
    word: str
    row: int


@dataclass(frozen=True, slots=True)
class RoundSnapshot:
    phase: WordPhase
    word: str
    display_word: str
    answer_slots: tuple[str, ...]
    scrambled_tiles: tuple[str, ...]
    falling_position: int
    max_position: int
    fall_duration_ms: int
    tick_interval_ms: float
    stacked_words: tuple[StackedWord, ...]
    is_animating: bool
    score: int
    combo: int
    hard_mode: bool


def shuffled_letters(word: str, *, rng: random.Random) -> list[str]:
    """Fisher–Yates shuffle of the word's letters (fresh list)."""

    letters = list(word)
    rng.shuffle(letters)
    return letters


class GameEngine:
    """One falling word at a time on a grid of `grid_height` rows.

    The engine never raises for stale or out-of-range input; UI clicks can race
    a word reset, so bad indices and late calls are simply ignored.

    Timers are owned here: starting a word, starting a round or `stop()` cancels
    every tick and deferred emit of the previous word, and each deferred callback
    also checks the word generation it was created for.
    """

    def __init__(
        self,
        *,
        listener: RoundListener,
        scheduler: Scheduler,
        config: EngineConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._listener = listener
        self._scheduler = scheduler
        self._config = config or EngineConfig()
        self._rng = rng or random.Random()
        self._fsm = WordRoundFSM()

        self._word = ""
        self._native = ""
        self._slots: list[str] = []
        self._tiles: list[str] = []
        self._position = 0
        self._stacked: list[StackedWord] = []
        self._animating = False
        self._score = 0
        self._combo = 1

        self._generation = 0
        self._emitted = False
        self._tick_timer: TimerHandle | None = None
        self._retry_timer: TimerHandle | None = None
        self._pending: list[TimerHandle] = []

    # --- read-only view -------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def phase(self) -> WordPhase:
        return self._fsm.phase

    @property
    def word(self) -> str:
        return self._word

    @property
    def display_word(self) -> str:
        if self._config.hard_mode and self._native:
            return self._native
        return self._word

    @property
    def answer_slots(self) -> tuple[str, ...]:
        return tuple(self._slots)

    @property
    def scrambled_tiles(self) -> tuple[str, ...]:
        return tuple(self._tiles)

    @property
    def falling_position(self) -> int:
        return self._position

    @property
    def stacked_words(self) -> tuple[StackedWord, ...]:
        return tuple(self._stacked)

    @property
    def is_animating(self) -> bool:
        return self._animating

    @property
    def score(self) -> int:
        return self._score

    @property
    def combo(self) -> int:
        return self._combo

    @property
    def max_position(self) -> int:
        # Failed words occupy rows from the bottom.
        return self._config.grid_height - len(self._stacked)

    @property
    def fall_duration_ms(self) -> int:
        return len(self._word) * self._config.time_per_letter_ms

    @property
    def tick_interval_ms(self) -> float:
        if not self._word or self.max_position <= 0:
            return 0.0
        return self.fall_duration_ms / self.max_position

    def snapshot(self) -> RoundSnapshot:
        return RoundSnapshot(
            phase=self.phase,
            word=self._word,
            display_word=self.display_word,
            answer_slots=self.answer_slots,
            scrambled_tiles=self.scrambled_tiles,
            falling_position=self._position,
            max_position=self.max_position,
            fall_duration_ms=self.fall_duration_ms,
            tick_interval_ms=self.tick_interval_ms,
            stacked_words=self.stacked_words,
            is_animating=self._animating,
            score=self._score,
            combo=self._combo,
            hard_mode=self._config.hard_mode,
        )

    # --- round lifecycle ------------------------------------------------

    def new_round(self, *, combo: int = 1, score: int = 0, stacked: Sequence[str] = ()) -> None:
        """Reset the board for a new round, or restore one from a saved game."""

        if len(stacked) >= self._config.max_wrong_words:
            raise ValueError("stacked words already reach max_wrong_words")

        self._cancel_timers()
        self._generation += 1
        self._word = ""
        self._native = ""
        self._slots = []
        self._tiles = []
        self._position = 0
        self._animating = False
        self._emitted = False
        self._score = max(score, 0)
        self._combo = max(combo, 1)
        # The i-th failed word landed when i rows were already taken.
        height = self._config.grid_height
        self._stacked = [StackedWord(word=w, row=height - i) for i, w in enumerate(stacked)]
        self._fsm.restart()

    def start_word(self, word: str, display: str | None = None) -> None:
        if not word:
            logger.debug("start_word ignored: empty word")
            return
        if self.phase == WordPhase.round_over:
            logger.debug("start_word ignored: round is over")
            return

        self._cancel_timers()
        self._generation += 1
        self._emitted = False
        self._word = word
        self._native = display or ""
        self._slots = [EMPTY] * len(word)
        self._tiles = shuffled_letters(word, rng=self._rng)
        self._position = 0
        self._fsm.present()
        self._animating = True
        self._arm_tick()

    def set_hard_mode(self, enabled: bool) -> None:
        if enabled == self._config.hard_mode:
            return
        self._config = self._config.with_hard_mode(enabled)
        if self._animating:
            # Fall speed changes immediately; the word keeps its row.
            self._cancel_tick()
            self._arm_tick()

    def stop(self) -> None:
        self._cancel_timers()
        self._animating = False

    # --- timer driven ---------------------------------------------------

    def tick(self) -> None:
        if not self._animating or self.phase != WordPhase.presented:
            return

        self._position += 1
        if self._position < self.max_position:
            return

        # Reached the bottom without a solution.
        self._animating = False
        self._cancel_timers()
        self._stacked.append(StackedWord(word=self._word, row=self._position))
        self._combo = 1

        if len(self._stacked) >= self._config.max_wrong_words:
            self._fsm.overflow()
            logger.debug("word %r stacked, round over (%d stacked)", self._word, len(self._stacked))
            self._defer(self._config.round_over_delay_ms, self._emit_round_over)
        else:
            self._fsm.miss()
            logger.debug("word %r stacked (%d stacked)", self._word, len(self._stacked))
            self._defer(self._config.wrong_delay_ms, self._emit_wrong)

    # --- user input -----------------------------------------------------

    def place_tile(self, tile_index: int) -> None:
        if self.phase != WordPhase.presented:
            return
        if not 0 <= tile_index < len(self._tiles) or self._tiles[tile_index] == EMPTY:
            return
        try:
            slot = self._slots.index(EMPTY)
        except ValueError:
            return

        self._slots[slot] = self._tiles[tile_index]
        self._tiles[tile_index] = EMPTY

        if EMPTY in self._slots:
            return

        if "".join(self._slots) == self._word:
            self._animating = False
            self._cancel_timers()
            xp = xp_for_answer(self._combo, hard_mode=self._config.hard_mode)
            self._score += xp
            self._combo += 1
            self._fsm.solve()
            logger.debug("word %r solved: +%d xp, combo %d", self._word, xp, self._combo)
            self._emit_correct(xp)
            return

        # Complete but wrong: same word, fresh shuffle after a short pause.
        self._fsm.retry()
        if self._retry_timer is not None:
            self._retry_timer.cancel()
        self._retry_timer = self._defer(self._config.retry_delay_ms, self._reset_letters)

    def recall_tile(self, slot_index: int) -> None:
        if self.phase != WordPhase.presented:
            return
        if not 0 <= slot_index < len(self._slots) or self._slots[slot_index] == EMPTY:
            return
        try:
            tile = self._tiles.index(EMPTY)
        except ValueError:
            return

        self._tiles[tile] = self._slots[slot_index]
        self._slots[slot_index] = EMPTY

    # --- internals ------------------------------------------------------

    def _reset_letters(self) -> None:
        self._retry_timer = None
        if self.phase != WordPhase.presented:
            return
        self._slots = [EMPTY] * len(self._word)
        self._tiles = shuffled_letters(self._word, rng=self._rng)

    def _emit_correct(self, xp: int) -> None:
        if self._emitted:
            return
        self._emitted = True
        self._listener.on_correct(xp)

    def _emit_wrong(self) -> None:
        if self._emitted:
            return
        self._emitted = True
        self._listener.on_wrong()

    def _emit_round_over(self) -> None:
        if self._emitted:
            return
        self._emitted = True
        self._listener.on_round_over()

    def _arm_tick(self) -> None:
        interval = self.tick_interval_ms
        if interval <= 0:
            return
        self._tick_timer = self._scheduler.call_every(interval, self.tick)

    def _defer(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        generation = self._generation

        def _run() -> None:
            if generation != self._generation:
                return
            callback()

        handle = self._scheduler.call_later(delay_ms, _run)
        self._pending.append(handle)
        return handle

    def _cancel_tick(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

    def _cancel_timers(self) -> None:
        self._cancel_tick()
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        self._retry_timer = None
