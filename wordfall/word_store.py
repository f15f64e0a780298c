from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import uuid4

import redis
from pydantic import ValidationError

from wordfall.api.models import (
    MAX_STARS,
    PackageProgress,
    SavedGame,
    UserWord,
    Word,
    WordCreate,
    WordPackage,
    WordProgress,
)
from wordfall.lock import user_lock
from wordfall.unlock import ALL_PACKAGES, package_progress, resolve_unlocked, unlocked_words

logger = logging.getLogger(__name__)

PACKAGES_KEY = "wordfall:packages"  # zset: package id -> display_order
PACKAGE_KEY_PREFIX = "wordfall:package:"  # + {id}
WORDS_KEY = "wordfall:words"  # hash: word id -> Word json
ADMINS_KEY = "wordfall:admins"


class PackageLockedError(ValueError):
    pass


class PackageNotFoundError(ValueError):
    pass


def _package_key(package_id: str) -> str:
    return f"{PACKAGE_KEY_PREFIX}{package_id}"


def _package_words_key(package_id: str) -> str:
    return f"{PACKAGE_KEY_PREFIX}{package_id}:words"


def _progress_key(user_id: str) -> str:
    return f"wordfall:progress:{user_id}"


def _profile_key(user_id: str) -> str:
    return f"wordfall:profile:{user_id}"


def _saved_game_key(user_id: str) -> str:
    return f"wordfall:saved_game:{user_id}"


def _clamp_stars(rating: int) -> int:
    return min(max(rating, 0), MAX_STARS)


# --- packages & words ---------------------------------------------------


def create_package(
    *,
    r: redis.Redis,
    name: str,
    display_order: int,
    words: Sequence[WordCreate] = (),
    package_id: str | None = None,
) -> tuple[WordPackage, list[Word]]:
    pid = package_id or uuid4().hex
    if r.exists(_package_key(pid)):
        raise ValueError("Package already exists")

    pkg = WordPackage(id=pid, name=name, display_order=display_order)
    created = [
        Word(
            id=w.id or uuid4().hex,
            english=w.english.strip(),
            turkish=w.turkish.strip(),
            level=w.level,
            package_id=pid,
        )
        for w in words
    ]
    ids = [w.id for w in created]
    if len(set(ids)) != len(ids):
        raise ValueError("Duplicate word ids in package")
    if ids and any(r.hexists(WORDS_KEY, wid) for wid in ids):
        raise ValueError("Word id already exists")

    pipe = r.pipeline()
    pipe.set(_package_key(pid), pkg.model_dump_json())
    pipe.zadd(PACKAGES_KEY, {pid: display_order})
    if created:
        pipe.hset(WORDS_KEY, mapping={w.id: w.model_dump_json() for w in created})
        pipe.rpush(_package_words_key(pid), *ids)
    pipe.execute()

    logger.info("created package %s (%r) with %d words", pid, name, len(created))
    return pkg, created


def get_package(*, r: redis.Redis, package_id: str) -> WordPackage | None:
    raw = r.get(_package_key(package_id))
    if not raw:
        return None
    return WordPackage.model_validate_json(raw)


def list_packages(*, r: redis.Redis) -> list[WordPackage]:
    """All packages by display_order (ties by id, as Redis orders equal scores)."""

    ids = r.zrange(PACKAGES_KEY, 0, -1)
    if not ids:
        return []
    raws = r.mget([_package_key(pid) for pid in ids])
    return [WordPackage.model_validate_json(raw) for raw in raws if raw]


def list_package_word_ids(*, r: redis.Redis, package_ids: Sequence[str]) -> dict[str, list[str]]:
    pipe = r.pipeline()
    for pid in package_ids:
        pipe.lrange(_package_words_key(pid), 0, -1)
    return dict(zip(package_ids, pipe.execute()))


def get_words(*, r: redis.Redis, word_ids: Sequence[str]) -> list[Word]:
    if not word_ids:
        return []
    raws = r.hmget(WORDS_KEY, list(word_ids))
    return [Word.model_validate_json(raw) for raw in raws if raw]


def list_package_words(*, r: redis.Redis, package_id: str) -> list[Word]:
    word_ids = list_package_word_ids(r=r, package_ids=[package_id]).get(package_id, [])
    return get_words(r=r, word_ids=word_ids)


# --- per-user progress --------------------------------------------------


def get_ratings(*, r: redis.Redis, user_id: str | None) -> dict[str, int]:
    if not user_id:
        return {}
    raw = r.hgetall(_progress_key(user_id))
    return {wid: _clamp_stars(int(v)) for wid, v in raw.items()}


def get_word_progress(*, r: redis.Redis, user_id: str) -> list[WordProgress]:
    """Stored ratings for one user, ordered by word id. Words never played are absent."""

    ratings = get_ratings(r=r, user_id=user_id)
    return [WordProgress(word_id=wid, star_rating=ratings[wid]) for wid in sorted(ratings)]


def set_star_rating(*, r: redis.Redis, user_id: str, word_id: str, rating: int) -> int:
    clamped = _clamp_stars(rating)
    r.hset(_progress_key(user_id), word_id, clamped)
    return clamped


def increment_star(*, r: redis.Redis, user_id: str, word_id: str) -> int:
    """Correct answer: one more star, capped at 5."""

    with user_lock(r=r, user_id=user_id):
        current = r.hget(_progress_key(user_id), word_id)
        rating = set_star_rating(r=r, user_id=user_id, word_id=word_id, rating=int(current or 0) + 1)
    logger.debug("user %s word %s -> %d stars", user_id, word_id, rating)
    return rating


def reset_star_to_one(*, r: redis.Redis, user_id: str, word_id: str) -> int:
    """Wrong answer: back to a single star."""

    return set_star_rating(r=r, user_id=user_id, word_id=word_id, rating=1)


def get_profile_xp(*, r: redis.Redis, user_id: str) -> int:
    return int(r.hget(_profile_key(user_id), "xp") or 0)


def add_xp(*, r: redis.Redis, user_id: str, amount: int) -> int:
    if amount <= 0:
        return get_profile_xp(r=r, user_id=user_id)
    total = int(r.hincrby(_profile_key(user_id), "xp", amount))
    logger.info("user %s earned %d xp (total %d)", user_id, amount, total)
    return total


def set_admin(*, r: redis.Redis, user_id: str, is_admin: bool) -> None:
    if is_admin:
        r.sadd(ADMINS_KEY, user_id)
    else:
        r.srem(ADMINS_KEY, user_id)


def is_admin(*, r: redis.Redis, user_id: str | None) -> bool:
    if not user_id:
        return False
    return bool(r.sismember(ADMINS_KEY, user_id))


# --- unlocks ------------------------------------------------------------


def get_package_progress(*, r: redis.Redis, user_id: str | None) -> list[PackageProgress]:
    packages = list_packages(r=r)
    word_ids = list_package_word_ids(r=r, package_ids=[p.id for p in packages])
    ratings = get_ratings(r=r, user_id=user_id)
    return package_progress(packages=packages, word_ids_by_package=word_ids, ratings=ratings)


def get_unlocked_packages(*, r: redis.Redis, user_id: str | None) -> list[WordPackage]:
    packages = list_packages(r=r)
    if is_admin(r=r, user_id=user_id):
        return packages
    unlocked = set(resolve_unlocked(get_package_progress(r=r, user_id=user_id)))
    return [p for p in packages if p.id in unlocked]


def get_unlocked_words(*, r: redis.Redis, user_id: str | None, package_id: str | None = None) -> list[UserWord]:
    """Words from the user's unlocked packages merged with their star ratings.

    Raises PackageLockedError when `package_id` names a package the user can't open yet.
    """

    unlocked = get_unlocked_packages(r=r, user_id=user_id)
    unlocked_ids = [p.id for p in unlocked]

    if package_id and package_id != ALL_PACKAGES:
        if get_package(r=r, package_id=package_id) is None:
            raise PackageNotFoundError("Package not found")
        if package_id not in unlocked_ids:
            raise PackageLockedError("Package is locked")

    word_ids = list_package_word_ids(r=r, package_ids=unlocked_ids)
    words = get_words(r=r, word_ids=[wid for pid in unlocked_ids for wid in word_ids[pid]])
    ratings = get_ratings(r=r, user_id=user_id)
    merged = [UserWord(**w.model_dump(), star_rating=ratings.get(w.id, 0)) for w in words]
    return unlocked_words(words=merged, unlocked_ids=unlocked_ids, package_id=package_id)


# --- saved game ---------------------------------------------------------


def save_game(*, r: redis.Redis, user_id: str, saved: SavedGame) -> None:
    r.set(_saved_game_key(user_id), saved.model_dump_json())


def load_game(*, r: redis.Redis, user_id: str) -> SavedGame | None:
    raw = r.get(_saved_game_key(user_id))
    if not raw:
        return None
    try:
        return SavedGame.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("discarding unreadable saved game for user %s: %s", user_id, e)
        return None


def clear_game(*, r: redis.Redis, user_id: str) -> None:
    r.delete(_saved_game_key(user_id))
