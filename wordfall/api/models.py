from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from wordfall.fsm import WordPhase

MAX_STARS = 5


class Word(BaseModel):
    id: str
    english: str
    turkish: str
    level: str = ""
    package_id: str | None = None


class UserWord(Word):
    """A word merged with one user's star rating (missing progress = 0)."""

    star_rating: int = Field(0, ge=0, le=MAX_STARS)


class WordPackage(BaseModel):
    id: str
    name: str
    display_order: int


class WordProgress(BaseModel):
    word_id: str
    star_rating: int = Field(0, ge=0, le=MAX_STARS)


class PackageProgress(BaseModel):
    package_id: str
    total_words: int = Field(..., ge=0)
    words_with_full_stars: int = Field(..., ge=0)
    is_complete: bool


class WordCreate(BaseModel):
    id: str | None = None
    english: str = Field(..., min_length=1)
    turkish: str = Field(..., min_length=1)
    level: str = ""


class PackageCreateRequest(BaseModel):
    id: str | None = None
    name: str = Field(..., min_length=1, max_length=200)
    display_order: int
    words: list[WordCreate] = Field(default_factory=list)


class PackageListResponse(BaseModel):
    packages: list[WordPackage]


class UnlockedPackagesResponse(BaseModel):
    user_id: str
    is_admin: bool
    unlocked_packages: list[WordPackage]


class PackageProgressResponse(BaseModel):
    user_id: str
    packages: list[PackageProgress]


class UserWordsResponse(BaseModel):
    user_id: str
    package_id: str
    words: list[UserWord]


class WordProgressResponse(BaseModel):
    user_id: str
    words: list[WordProgress]


class ProfileResponse(BaseModel):
    user_id: str
    xp: int


class AdminRequest(BaseModel):
    is_admin: bool = True


class SessionPhase(StrEnum):
    playing = "playing"
    gameover = "gameover"


class SavedGame(BaseModel):
    """Everything needed to resume an unfinished game for a user."""

    package_id: str
    words: list[UserWord]
    word_index: int = Field(0, ge=0)
    score: int = Field(0, ge=0)
    combo: int = Field(1, ge=1)
    hard_mode: bool = False
    stacked_words: list[str] = Field(default_factory=list)


class SessionCreateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    package_id: str = "all"
    hard_mode: bool = False
    # Continue the user's saved game when there is one.
    resume: bool = True
    seed: int | None = None


class StackedWordState(BaseModel):
    word: str
    row: int


class SessionState(BaseModel):
    session_id: UUID
    user_id: str
    package_id: str
    created_at: datetime

    phase: SessionPhase
    word_phase: WordPhase

    word_index: int
    total_words: int
    word_id: str | None = None
    display_word: str = ""

    # "" marks an empty slot / a used tile.
    answer_slots: list[str] = Field(default_factory=list)
    scrambled_tiles: list[str] = Field(default_factory=list)

    falling_position: int = 0
    max_position: int
    grid_height: int
    fall_duration_ms: int = 0
    tick_interval_ms: float = 0.0
    is_animating: bool = False

    stacked_words: list[StackedWordState] = Field(default_factory=list)

    score: int = 0
    combo: int = 1
    total_xp: int = 0
    hard_mode: bool = False


class SessionEventsResponse(BaseModel):
    session_id: UUID
    stream: str
    events: list[dict[str, object]]
