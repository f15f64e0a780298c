from __future__ import annotations

NORMAL_BASE_XP = 100
NORMAL_COMBO_STEP = 5
NORMAL_COMBO_CAP = 50

HARD_BASE_XP = 200
HARD_COMBO_STEP = 10
HARD_COMBO_CAP = 100


def combo_bonus(combo: int, *, hard_mode: bool) -> int:
    """Bonus on top of the base XP for a streak of `combo` (combo starts at 1)."""

    streak = max(combo - 1, 0)
    if hard_mode:
        return min(streak * HARD_COMBO_STEP, HARD_COMBO_CAP)
    return min(streak * NORMAL_COMBO_STEP, NORMAL_COMBO_CAP)


def xp_for_answer(combo: int, *, hard_mode: bool) -> int:
    """XP for a correct answer given the combo *before* this answer."""

    base = HARD_BASE_XP if hard_mode else NORMAL_BASE_XP
    return base + combo_bonus(combo, hard_mode=hard_mode)
