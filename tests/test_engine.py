from __future__ import annotations

import random
from collections import Counter

import pytest

from wordfall.core.config import EngineConfig
from wordfall.core.engine import EMPTY, GameEngine
from wordfall.core.scheduler import ManualScheduler
from wordfall.fsm import WordPhase


def _engine(listener, clock: ManualScheduler, *, seed: int = 7, **config) -> GameEngine:  # type: ignore[no-untyped-def]
    return GameEngine(listener=listener, scheduler=clock, config=EngineConfig(**config), rng=random.Random(seed))


def _spell(engine: GameEngine, text: str) -> None:
    """Place tiles so the answer slots read `text` (left to right)."""

    for letter in text:
        engine.place_tile(engine.scrambled_tiles.index(letter))


def _assert_tiles_conserved(engine: GameEngine) -> None:
    filled = sum(1 for s in engine.answer_slots if s != EMPTY)
    remaining = sum(1 for t in engine.scrambled_tiles if t != EMPTY)
    assert filled + remaining == len(engine.word)
    assert sorted(s for s in engine.answer_slots + engine.scrambled_tiles if s) == sorted(engine.word)


def test_start_word_presents_a_shuffled_permutation(listener, clock) -> None:  # type: ignore[no-untyped-def]
    for seed in range(50):
        engine = _engine(listener, clock, seed=seed)
        engine.start_word("elephant")

        assert sorted(engine.scrambled_tiles) == sorted("elephant")
        assert engine.answer_slots == (EMPTY,) * 8
        assert engine.falling_position == 0
        assert engine.is_animating is True
        assert engine.phase == WordPhase.presented


def test_shuffle_is_roughly_uniform(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, seed=1234)
    counts: Counter[str] = Counter()
    runs = 6_000
    for _ in range(runs):
        engine.start_word("abc")
        counts["".join(engine.scrambled_tiles)] += 1

    assert set(counts) == {"abc", "acb", "bac", "bca", "cab", "cba"}
    expected = runs / 6
    for perm, n in counts.items():
        assert abs(n - expected) < 150, (perm, n)


def test_correct_answer_scores_with_pre_answer_combo(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.new_round(combo=3)
    engine.start_word("cat")

    _spell(engine, "cat")

    assert listener.events == [("CORRECT", 110)]
    assert engine.combo == 4
    assert engine.score == 110
    assert engine.phase == WordPhase.correct
    assert engine.is_animating is False


def test_hard_mode_correct_answer_base_xp(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, hard_mode=True)
    engine.start_word("dog", display="köpek")

    assert engine.display_word == "köpek"
    _spell(engine, "dog")

    assert listener.events == [("CORRECT", 200)]
    assert engine.combo == 2


def test_normal_mode_displays_target_word(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("dog", display="köpek")
    assert engine.display_word == "dog"


def test_elephant_hard_mode_timing_then_wrong(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, hard_mode=True)
    engine.new_round(combo=5)
    engine.start_word("elephant")

    assert engine.max_position == 10
    assert engine.fall_duration_ms == 32_000
    assert engine.tick_interval_ms == 3_200

    clock.advance(3_200 * 9)
    assert engine.falling_position == 9
    assert engine.phase == WordPhase.presented

    clock.advance(3_200)
    assert engine.falling_position == 10
    assert engine.phase == WordPhase.wrong
    assert engine.is_animating is False
    assert [s.word for s in engine.stacked_words] == ["elephant"]
    assert engine.stacked_words[0].row == 10
    assert engine.combo == 1
    # WRONG is emitted after a short pause, not on the tick itself.
    assert listener.events == []

    clock.advance(300)
    assert listener.events == [("WRONG",)]

    # No further ticks once the word has landed.
    clock.advance(60_000)
    assert engine.falling_position == 10
    assert listener.events == [("WRONG",)]


def test_stacked_words_shrink_the_fall(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.new_round(stacked=["one", "two"])
    engine.start_word("cat")

    assert engine.max_position == 8
    assert engine.tick_interval_ms == pytest.approx(6_000 / 8)

    clock.advance(6_000)
    assert engine.phase == WordPhase.wrong
    assert engine.stacked_words[-1].row == 8
    assert engine.max_position == 7


def test_reaching_the_ceiling_is_round_over_never_wrong(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.new_round(combo=5, stacked=["w"] * 8)
    engine.start_word("cat")
    assert engine.max_position == 2
    assert engine.combo == 5

    clock.advance(6_000)
    assert engine.phase == WordPhase.round_over
    assert len(engine.stacked_words) == 9
    assert engine.combo == 1

    clock.advance(300)
    assert listener.events == []
    clock.advance(200)
    assert listener.events == [("ROUND_OVER",)]

    clock.advance(10_000)
    assert listener.events == [("ROUND_OVER",)]

    # The round is over until the host starts a new one.
    engine.start_word("dog")
    assert engine.phase == WordPhase.round_over
    assert len(engine.stacked_words) == 9


def test_stack_never_exceeds_ceiling_over_a_full_round(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, grid_height=5, max_wrong_words=3)
    engine.new_round()
    for _ in range(10):
        engine.start_word("ox")
        clock.advance(10_000)
        assert len(engine.stacked_words) <= 3

    assert listener.events == [("WRONG",), ("WRONG",), ("ROUND_OVER",)]


def test_new_round_rejects_full_stack(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    with pytest.raises(ValueError):
        engine.new_round(stacked=["w"] * 9)


def test_new_round_after_round_over_resets_state(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, grid_height=3, max_wrong_words=1)
    engine.start_word("ox")
    clock.advance(10_000)
    assert engine.phase == WordPhase.round_over

    engine.new_round()
    assert engine.phase == WordPhase.idle
    assert engine.stacked_words == ()
    assert engine.combo == 1
    assert engine.score == 0

    engine.start_word("ox")
    assert engine.phase == WordPhase.presented


def test_wrong_arrangement_retries_in_place(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.new_round(combo=3)
    engine.start_word("ab")

    _spell(engine, "ba")
    assert engine.answer_slots == ("b", "a")
    assert engine.phase == WordPhase.presented
    _assert_tiles_conserved(engine)

    clock.advance(500)
    assert engine.answer_slots == (EMPTY, EMPTY)
    assert sorted(engine.scrambled_tiles) == ["a", "b"]
    assert engine.combo == 3
    assert listener.events == []

    _spell(engine, "ab")
    assert listener.events == [("CORRECT", 110)]


def test_retry_reshuffle_skipped_if_word_lands_first(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock, retry_delay_ms=5_000)
    engine.start_word("ab")  # 4000ms fall
    _spell(engine, "ba")

    clock.advance(4_000)
    assert engine.phase == WordPhase.wrong
    clock.advance(5_000)
    # Board left as it landed; outcome emitted once.
    assert engine.answer_slots == ("b", "a")
    assert listener.events == [("WRONG",)]


def test_place_tile_ignores_bad_indices(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("cat")
    before = (engine.answer_slots, engine.scrambled_tiles)

    for idx in (-1, 3, 99):
        engine.place_tile(idx)
    assert (engine.answer_slots, engine.scrambled_tiles) == before

    engine.place_tile(0)
    after_one = (engine.answer_slots, engine.scrambled_tiles)
    engine.place_tile(0)  # tile already used
    assert (engine.answer_slots, engine.scrambled_tiles) == after_one


def test_recall_tile_returns_letter_to_first_free_tile(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("cat")
    tiles = engine.scrambled_tiles

    engine.place_tile(2)
    engine.place_tile(0)
    assert engine.answer_slots == (tiles[2], tiles[0], EMPTY)

    engine.recall_tile(1)
    assert engine.answer_slots == (tiles[2], EMPTY, EMPTY)
    # first free tile position is index 0
    assert engine.scrambled_tiles == (tiles[0], tiles[1], EMPTY)

    engine.recall_tile(1)  # already empty
    engine.recall_tile(7)  # out of range
    assert engine.answer_slots == (tiles[2], EMPTY, EMPTY)
    _assert_tiles_conserved(engine)


def test_tiles_are_conserved_under_random_input(listener, clock) -> None:  # type: ignore[no-untyped-def]
    rng = random.Random(99)
    engine = _engine(listener, clock)
    engine.start_word("banana")
    for _ in range(500):
        if engine.phase != WordPhase.presented:
            break
        if rng.random() < 0.6:
            engine.place_tile(rng.randrange(-1, 8))
        else:
            engine.recall_tile(rng.randrange(-1, 8))
        _assert_tiles_conserved(engine)
        clock.advance(50)


def test_input_ignored_after_word_resolves(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("ox")
    _spell(engine, "ox")
    slots = engine.answer_slots

    engine.recall_tile(0)
    engine.place_tile(0)
    clock.advance(60_000)

    assert engine.answer_slots == slots
    assert listener.events == [("CORRECT", 100)]


def test_start_word_cancels_previous_timers(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("cat")  # 600ms per row
    clock.advance(1_250)
    assert engine.falling_position == 2

    engine.start_word("dog")
    assert engine.falling_position == 0
    clock.advance(600)
    assert engine.falling_position == 1


def test_start_word_supersedes_pending_wrong(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("ox")
    clock.advance(4_000)
    assert engine.phase == WordPhase.wrong

    engine.start_word("cat")
    clock.advance(1_000)
    assert listener.events == []
    assert engine.phase == WordPhase.presented


def test_empty_word_is_ignored(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("")
    assert engine.phase == WordPhase.idle
    assert clock.pending() == 0


def test_hard_mode_toggle_changes_speed_keeps_row(listener, clock) -> None:  # type: ignore[no-untyped-def]
    engine = _engine(listener, clock)
    engine.start_word("cat")  # 600ms per row
    clock.advance(600)
    assert engine.falling_position == 1

    engine.set_hard_mode(True)  # 1200ms per row
    assert engine.tick_interval_ms == 1_200
    clock.advance(600)
    assert engine.falling_position == 1
    clock.advance(600)
    assert engine.falling_position == 2


def test_listener_may_start_next_word_from_callback(clock) -> None:  # type: ignore[no-untyped-def]
    queue = ["dog", "sun"]
    seen: list[int] = []

    class ChainListener:
        def on_correct(self, xp: int) -> None:
            seen.append(xp)
            if queue:
                engine.start_word(queue.pop(0))

        def on_wrong(self) -> None:
            raise AssertionError("unexpected")

        def on_round_over(self) -> None:
            raise AssertionError("unexpected")

    engine = GameEngine(listener=ChainListener(), scheduler=clock, rng=random.Random(3))
    engine.start_word("cat")
    _spell(engine, "cat")
    assert engine.word == "dog"
    assert engine.phase == WordPhase.presented
    _spell(engine, "dog")
    _spell(engine, "sun")

    assert seen == [100, 105, 110]
    assert engine.combo == 4
