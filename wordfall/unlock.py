from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol, TypeVar

from wordfall.api.models import PackageProgress, Word, WordPackage

# A word counts as mastered at this many stars. Not configurable.
FULL_STAR_THRESHOLD = 3

ALL_PACKAGES = "all"


class CompletionFacts(Protocol):
    @property
    def package_id(self) -> str: ...

    @property
    def total_words(self) -> int: ...

    @property
    def words_with_full_stars(self) -> int: ...


def is_complete(*, total_words: int, words_with_full_stars: int) -> bool:
    # An empty package is never complete, so it blocks everything after it.
    return total_words > 0 and words_with_full_stars >= total_words


def resolve_unlocked(packages: Sequence[CompletionFacts]) -> list[str]:
    """Return the ids of unlocked packages, in the given order.

    The first package is always unlocked. Every later package is unlocked only
    while all packages before it are complete; the first incomplete one
    unlocks itself and locks everything after it.
    """

    unlocked: list[str] = []
    for pkg in packages:
        unlocked.append(pkg.package_id)
        if not is_complete(total_words=pkg.total_words, words_with_full_stars=pkg.words_with_full_stars):
            break
    return unlocked


def package_progress(
    *,
    packages: Sequence[WordPackage],
    word_ids_by_package: Mapping[str, Sequence[str]],
    ratings: Mapping[str, int],
) -> list[PackageProgress]:
    """Aggregate per-package mastery from raw word ids and a user's ratings.

    Missing ratings count as 0 stars.
    """

    out: list[PackageProgress] = []
    for pkg in packages:
        word_ids = word_ids_by_package.get(pkg.id, ())
        full = sum(1 for wid in word_ids if ratings.get(wid, 0) >= FULL_STAR_THRESHOLD)
        total = len(word_ids)
        out.append(
            PackageProgress(
                package_id=pkg.id,
                total_words=total,
                words_with_full_stars=full,
                is_complete=is_complete(total_words=total, words_with_full_stars=full),
            )
        )
    return out


def is_package_unlocked(package_id: str, unlocked_ids: Iterable[str]) -> bool:
    return package_id in set(unlocked_ids)


W = TypeVar("W", bound=Word)


def unlocked_words(*, words: Iterable[W], unlocked_ids: Iterable[str], package_id: str | None = None) -> list[W]:
    """Words belonging to unlocked packages, optionally narrowed to one package."""

    allowed = set(unlocked_ids)
    if package_id and package_id != ALL_PACKAGES:
        allowed &= {package_id}
    return [w for w in words if w.package_id in allowed]
