"""Fuzzy matching of publisher names for duplicate detection.

Scores are plain Levenshtein edit distance (insert, delete and substitute all
cost 1; no transpositions) normalized by the longer name, compared
case-insensitively. Swapped adjacent letters therefore cost two edits:
"Musikforlag" vs "Muiskforlag" scores lower than a reader might expect.

Grouping is a greedy single pass over the publishers in the order given. Each
publisher is suggested in at most one group.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from lib.errors import ValidationError
from lib.publishers import Publisher

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
"""Minimum similarity ratio for two names to be treated as duplicate candidates."""


@dataclass(frozen=True)
class SimilarityGroup:
    """An anchor publisher and the publishers whose names look like duplicates of it."""

    id: int
    name: str
    suggestions: tuple[Publisher, ...]
    confidence: float


def levenshtein_distance(a: str, b: str) -> int:
    """Return the number of single-character edits needed to turn a into b."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Return a case-insensitive similarity ratio in [0, 1].

    Args:
        a: First name (may be empty).
        b: Second name (may be empty).

    Returns:
        1 - distance / max(len(a), len(b)). Two empty strings score 1.0.
    """
    a_lower = a.lower()
    b_lower = b.lower()
    # Lengths are taken after lower-casing; a few characters expand (e.g. "İ").
    max_len = max(len(a_lower), len(b_lower))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a_lower, b_lower) / max_len


def find_similar_groups(
    publishers: list[Publisher], threshold: float = DEFAULT_THRESHOLD
) -> list[SimilarityGroup]:
    """Group publishers whose names score at or above threshold.

    For each publisher not yet absorbed into an earlier group, every later
    unabsorbed publisher that scores >= threshold against it becomes a
    suggestion. Anchors without suggestions produce no group and stay
    available, but since only later publishers are scanned they will not be
    picked up afterwards.

    Args:
        publishers: Publishers in store order (by name).
        threshold: Minimum similarity ratio. Values above 1 match nothing.

    Returns:
        Groups sorted by descending confidence (the best suggestion's score).

    Raises:
        ValidationError: If threshold is not positive.
    """
    if threshold <= 0:
        raise ValidationError(f"threshold must be positive, got {threshold}")

    groups: list[SimilarityGroup] = []
    processed: set[int] = set()

    for i, anchor in enumerate(publishers):
        if anchor.id in processed:
            continue

        suggestions: list[Publisher] = []
        scores: list[float] = []
        for candidate in publishers[i + 1 :]:
            if candidate.id in processed:
                continue
            score = similarity(anchor.name, candidate.name)
            if score >= threshold:
                suggestions.append(candidate)
                scores.append(score)
                processed.add(candidate.id)

        if suggestions:
            groups.append(
                SimilarityGroup(
                    id=anchor.id,
                    name=anchor.name,
                    suggestions=tuple(suggestions),
                    confidence=max(scores),
                )
            )
            processed.add(anchor.id)

    groups.sort(key=lambda g: g.confidence, reverse=True)
    logger.debug(
        "Found %d similarity groups among %d publishers (threshold %.2f)",
        len(groups),
        len(publishers),
        threshold,
    )
    return groups


compute_similarity_groups = find_similar_groups


def exclude_rejected(
    groups: list[SimilarityGroup], rejected: set[tuple[int, int]]
) -> list[SimilarityGroup]:
    """Drop suggestions the caller has dismissed.

    Args:
        groups: Output of find_similar_groups.
        rejected: (anchor_id, suggestion_id) pairs dismissed this session.

    Returns:
        Groups with rejected suggestions removed and confidence recomputed over
        what remains. Groups left empty are omitted.
    """
    if not rejected:
        return list(groups)

    kept: list[SimilarityGroup] = []
    for group in groups:
        remaining = tuple(s for s in group.suggestions if (group.id, s.id) not in rejected)
        if not remaining:
            continue
        if len(remaining) == len(group.suggestions):
            kept.append(group)
            continue
        kept.append(
            SimilarityGroup(
                id=group.id,
                name=group.name,
                suggestions=remaining,
                confidence=max(similarity(group.name, s.name) for s in remaining),
            )
        )
    kept.sort(key=lambda g: g.confidence, reverse=True)
    return kept
