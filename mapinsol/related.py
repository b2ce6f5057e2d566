from __future__ import annotations

"""
Related-practice heuristic for the detail page.

A candidate earns points for every category and tag it shares with the
current practice, plus a bonus when it is featured.  Candidates with no
points are dropped; the rest are ranked by score with ties kept in
input order.
"""

from typing import List, Sequence, Tuple

from loguru import logger

from .config import (
    RELATED_CATEGORY_WEIGHT,
    RELATED_FEATURED_BONUS,
    RELATED_TAG_WEIGHT,
    RELATED_TOP_N,
)
from .models import Practice


def score_related(current: Practice, other: Practice) -> int:
    """Points ``other`` earns as a related item of ``current``."""
    current_categories = set(current.categories)
    current_tags = set(current.tags)
    shared_categories = sum(1 for c in other.categories if c in current_categories)
    shared_tags = sum(1 for t in other.tags if t in current_tags)
    return (
        RELATED_CATEGORY_WEIGHT * shared_categories
        + RELATED_TAG_WEIGHT * shared_tags
        + (RELATED_FEATURED_BONUS if other.featured else 0)
    )


def related_practices(
    current: Practice,
    all_practices: Sequence[Practice],
    top_n: int = RELATED_TOP_N,
) -> List[Practice]:
    """Top ``top_n`` practices related to ``current``; may be empty."""
    scored: List[Tuple[int, Practice]] = []
    for other in all_practices:
        if other.id == current.id:
            continue
        score = score_related(current, other)
        if score > 0:
            scored.append((score, other))

    # sorted() is stable: equal scores keep their input order
    scored = sorted(scored, key=lambda pair: -pair[0])
    picked = [p for _, p in scored[:top_n]]
    logger.debug("Related to {}: {}", current.id, [(p.id, s) for s, p in scored[:top_n]])
    return picked
