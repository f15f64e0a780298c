from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID, uuid4

import redis

from wordfall import word_store
from wordfall.api.models import SavedGame, SessionPhase, SessionState, StackedWordState, UserWord
from wordfall.core.config import EngineConfig
from wordfall.core.engine import GameEngine
from wordfall.core.events import OutcomeType, RoundOutcome
from wordfall.core.scheduler import Scheduler
from wordfall.streams import SessionStream, publish_to_session

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


class SessionSink(Protocol):
    """Where a session's progress goes. The engine itself never persists anything."""

    def increment_star(self, word_id: str) -> None: ...

    def reset_star(self, word_id: str) -> None: ...

    def add_xp(self, amount: int) -> int: ...

    def total_xp(self) -> int: ...

    def save(self, saved: SavedGame) -> None: ...

    def clear_saved(self) -> None: ...

    def record(self, outcome: RoundOutcome) -> None: ...


class RedisSessionSink:
    def __init__(self, *, r: redis.Redis, user_id: str, session_id: UUID) -> None:
        self._r = r
        self._user_id = user_id
        self._stream = SessionStream(session_id=str(session_id))

    def increment_star(self, word_id: str) -> None:
        word_store.increment_star(r=self._r, user_id=self._user_id, word_id=word_id)

    def reset_star(self, word_id: str) -> None:
        word_store.reset_star_to_one(r=self._r, user_id=self._user_id, word_id=word_id)

    def add_xp(self, amount: int) -> int:
        return word_store.add_xp(r=self._r, user_id=self._user_id, amount=amount)

    def total_xp(self) -> int:
        return word_store.get_profile_xp(r=self._r, user_id=self._user_id)

    def save(self, saved: SavedGame) -> None:
        word_store.save_game(r=self._r, user_id=self._user_id, saved=saved)

    def clear_saved(self) -> None:
        word_store.clear_game(r=self._r, user_id=self._user_id)

    def record(self, outcome: RoundOutcome) -> None:
        publish_to_session(r=self._r, stream=self._stream, fields=outcome.as_fields())


UpdateCallback = Callable[["GameSession", RoundOutcome | None], None]


class GameSession:
    """One user's game: a shuffled word queue played through a GameEngine.

    Implements the engine's listener. On CORRECT the word gains a star, on WRONG
    it drops back to one star; either way the next word is presented. Running
    out of words or a full stack ends the game, credits the score to the user's
    profile once and clears the saved game.
    """

    def __init__(
        self,
        *,
        user_id: str,
        package_id: str,
        sink: SessionSink,
        scheduler: Scheduler,
        config: EngineConfig | None = None,
        rng: random.Random | None = None,
        session_id: UUID | None = None,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self.session_id = session_id or uuid4()
        self.user_id = user_id
        self.package_id = package_id
        self.created_at = _now()

        self._sink = sink
        self._rng = rng or random.Random()
        self._engine = GameEngine(listener=self, scheduler=scheduler, config=config, rng=self._rng)
        self._on_update = on_update
        self._updates_sent = 0

        self._pool: list[UserWord] = []
        self._words: list[UserWord] = []
        self._index = 0
        self._phase = SessionPhase.playing
        self._xp_credited = False
        self._total_xp = sink.total_xp()

    @property
    def updates_sent(self) -> int:
        """How many update notifications this session has pushed to `on_update`."""

        return self._updates_sent

    @property
    def engine(self) -> GameEngine:
        return self._engine

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def current_word(self) -> UserWord | None:
        if self._phase != SessionPhase.playing or self._index >= len(self._words):
            return None
        return self._words[self._index]

    # --- lifecycle ------------------------------------------------------

    def start_new(self, words: Sequence[UserWord], *, hard_mode: bool | None = None) -> None:
        if not words:
            raise ValueError("No words available")
        self._sink.clear_saved()
        self._pool = list(words)
        self._words = list(words)
        self._rng.shuffle(self._words)
        self._index = 0
        self._phase = SessionPhase.playing
        self._xp_credited = False
        if hard_mode is not None:
            self._engine.set_hard_mode(hard_mode)
        self._engine.new_round()
        self._present()
        self._save()
        logger.info("session %s: new game, %d words", self.session_id, len(self._words))

    def resume(self, saved: SavedGame) -> None:
        if not saved.words or saved.word_index >= len(saved.words):
            raise ValueError("Saved game has no remaining words")
        self._pool = list(saved.words)
        self._words = list(saved.words)
        self._index = saved.word_index
        self._phase = SessionPhase.playing
        self._xp_credited = False
        self._engine.set_hard_mode(saved.hard_mode)
        self._engine.new_round(combo=saved.combo, score=saved.score, stacked=saved.stacked_words)
        self._present()
        logger.info("session %s: resumed at word %d/%d", self.session_id, self._index + 1, len(self._words))

    def restart(self) -> None:
        """Play again with the same word pool, freshly shuffled."""

        self.start_new(self._pool)
        self._notify(None)

    def close(self) -> None:
        self._engine.stop()

    # --- player actions -------------------------------------------------

    def place_tile(self, tile_index: int) -> None:
        self._require_playing()
        self._engine.place_tile(tile_index)

    def recall_tile(self, slot_index: int) -> None:
        self._require_playing()
        self._engine.recall_tile(slot_index)

    def set_hard_mode(self, enabled: bool) -> None:
        self._require_playing()
        self._engine.set_hard_mode(enabled)
        self._save()

    # --- RoundListener --------------------------------------------------

    def on_correct(self, xp: int) -> None:
        word = self._words[self._index]
        self._update_star(self._sink.increment_star, word)
        self._finish_word("CORRECT", word, xp=xp)

    def on_wrong(self) -> None:
        word = self._words[self._index]
        self._update_star(self._sink.reset_star, word)
        self._finish_word("WRONG", word)

    def on_round_over(self) -> None:
        word = self._words[self._index]
        outcome = self._record("ROUND_OVER", word)
        self._game_over()
        self._notify(outcome)

    # --- internals ------------------------------------------------------

    def _update_star(self, update: Callable[[str], None], word: UserWord) -> None:
        # The word is already resolved on the board; the game moves on even if
        # its rating can't be written.
        try:
            update(word.id)
        except (ValueError, redis.RedisError):
            logger.exception("session %s: star update for word %s failed", self.session_id, word.id)

    def _finish_word(self, kind: OutcomeType, word: UserWord, *, xp: int = 0) -> None:
        outcome = self._record(kind, word, xp=xp)
        if self._index < len(self._words) - 1:
            self._index += 1
            self._present()
            self._save()
        else:
            self._game_over()
        self._notify(outcome)

    def _record(self, kind: OutcomeType, word: UserWord, *, xp: int = 0) -> RoundOutcome:
        outcome = RoundOutcome.now(
            type=kind,
            word=word.english,
            xp=xp,
            combo=self._engine.combo,
            score=self._engine.score,
        )
        self._sink.record(outcome)
        return outcome

    def _present(self) -> None:
        word = self._words[self._index]
        self._engine.start_word(word.english.strip().lower(), display=word.turkish)

    def _game_over(self) -> None:
        self._phase = SessionPhase.gameover
        self._engine.stop()
        score = self._engine.score
        if not self._xp_credited and score > 0:
            self._xp_credited = True
            self._total_xp = self._sink.add_xp(score)
        self._sink.clear_saved()
        logger.info("session %s: game over, score %d", self.session_id, score)

    def _save(self) -> None:
        if self._phase != SessionPhase.playing:
            return
        self._sink.save(
            SavedGame(
                package_id=self.package_id,
                words=self._words,
                word_index=self._index,
                score=self._engine.score,
                combo=self._engine.combo,
                hard_mode=self._engine.config.hard_mode,
                stacked_words=[s.word for s in self._engine.stacked_words],
            )
        )

    def _notify(self, outcome: RoundOutcome | None) -> None:
        if self._on_update is not None:
            self._updates_sent += 1
            self._on_update(self, outcome)

    def _require_playing(self) -> None:
        if self._phase != SessionPhase.playing:
            raise ValueError("Game is over")

    def snapshot(self) -> SessionState:
        snap = self._engine.snapshot()
        word = self.current_word
        return SessionState(
            session_id=self.session_id,
            user_id=self.user_id,
            package_id=self.package_id,
            created_at=self.created_at,
            phase=self._phase,
            word_phase=snap.phase,
            word_index=self._index,
            total_words=len(self._words),
            word_id=word.id if word else None,
            display_word=snap.display_word if word else "",
            answer_slots=list(snap.answer_slots),
            scrambled_tiles=list(snap.scrambled_tiles),
            falling_position=snap.falling_position,
            max_position=snap.max_position,
            grid_height=self._engine.config.grid_height,
            fall_duration_ms=snap.fall_duration_ms,
            tick_interval_ms=snap.tick_interval_ms,
            is_animating=snap.is_animating,
            stacked_words=[StackedWordState(word=s.word, row=s.row) for s in snap.stacked_words],
            score=snap.score,
            combo=snap.combo,
            total_xp=self._total_xp,
            hard_mode=snap.hard_mode,
        )


def open_session(
    *,
    r: redis.Redis,
    user_id: str,
    scheduler: Scheduler,
    package_id: str = "all",
    hard_mode: bool = False,
    resume: bool = True,
    seed: int | None = None,
    config: EngineConfig | None = None,
    on_update: UpdateCallback | None = None,
) -> GameSession:
    """Build a session for `user_id`, resuming their saved game when it fits.

    Raises ValueError (or PackageLockedError) when the package can't be played.
    """

    config = config or EngineConfig()
    words = word_store.get_unlocked_words(r=r, user_id=user_id, package_id=package_id)
    if not words:
        raise ValueError("No unlocked words available")

    if seed is None:
        seed = random.SystemRandom().randint(1, 2**31 - 1)

    session_id = uuid4()
    session = GameSession(
        session_id=session_id,
        user_id=user_id,
        package_id=package_id,
        sink=RedisSessionSink(r=r, user_id=user_id, session_id=session_id),
        scheduler=scheduler,
        config=config,
        rng=random.Random(seed),
        on_update=on_update,
    )

    saved = word_store.load_game(r=r, user_id=user_id) if resume else None
    if (
        saved is not None
        and saved.package_id == package_id
        and saved.word_index < len(saved.words)
        and len(saved.stacked_words) < config.max_wrong_words
    ):
        session.resume(saved)
    else:
        session.start_new(words, hard_mode=hard_mode)
    return session
