from __future__ import annotations

from enum import StrEnum

from statemachine import State, StateMachine


class WordPhase(StrEnum):
    idle = "idle"
    presented = "presented"
    correct = "correct"
    wrong = "wrong"
    round_over = "round_over"


class WordRoundFSM(StateMachine):
    """Lifecycle of the word currently on the board.

    - idle -> presented on `present` (start_word)
    - presented -> correct | wrong | round_over
    - presented -> presented on `retry` (complete but wrong arrangement)
    - correct/wrong -> presented when the host starts the next word
    - anything -> idle on `restart` (new round)

    The engine owns the data; the FSM only guards which transitions are legal.
    """

    idle = State(WordPhase.idle.value, value=WordPhase.idle.value, initial=True)
    presented = State(WordPhase.presented.value, value=WordPhase.presented.value)
    correct = State(WordPhase.correct.value, value=WordPhase.correct.value)
    wrong = State(WordPhase.wrong.value, value=WordPhase.wrong.value)
    round_over = State(WordPhase.round_over.value, value=WordPhase.round_over.value)

    present = idle.to(presented) | presented.to(presented) | correct.to(presented) | wrong.to(presented)
    solve = presented.to(correct)
    miss = presented.to(wrong)
    overflow = presented.to(round_over)
    retry = presented.to.itself()
    restart = (
        idle.to(idle)
        | presented.to(idle)
        | correct.to(idle)
        | wrong.to(idle)
        | round_over.to(idle)
    )

    @property
    def phase(self) -> WordPhase:
        return WordPhase(str(self.current_state.value))
