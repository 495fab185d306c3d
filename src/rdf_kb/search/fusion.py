"""
Reciprocal Rank Fusion.

Merges ranked candidate lists from heterogeneous retrievers using only
ordinal rank: an item at rank r contributes 1 / (k + r). Raw relevance
magnitudes (BM25 scores, cosine distances) are never compared.

Memory is O(total candidates): one dict entry per distinct entity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence

DEFAULT_RRF_K = 60


@dataclass(frozen=True)
class RankedCandidate:
    """
    One entry of a retriever's ranked list.

    Attributes:
        entity_id: Identifier of the ranked entity (e.g. statement id)
        rank: 1-based position in the list
        score: The retriever's own relevance value (informational only)
    """
    entity_id: Hashable
    rank: int
    score: float = 0.0


@dataclass(frozen=True)
class FusedCandidate:
    """An entity with its summed RRF score."""
    entity_id: Hashable
    score: float


def to_ranked(entity_ids: Sequence[Hashable]) -> List[RankedCandidate]:
    """Turn an ordered id sequence into a consecutive 1-based ranked list."""
    return [RankedCandidate(entity_id=eid, rank=i) for i, eid in enumerate(entity_ids, start=1)]


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Sequence[RankedCandidate]],
    k: float = DEFAULT_RRF_K,
    limit: Optional[int] = None,
) -> List[FusedCandidate]:
    """
    Fuse ranked lists with RRF.

    Within a single list only an entity's first (best-ranked) occurrence
    counts, so a statement with several matching chunks is not counted
    twice by the same retriever. Entities missing from a list simply get
    nothing from it.

    Args:
        ranked_lists: Lists of candidates, each ordered by rank starting at 1
        k: Smoothing constant, must be positive
        limit: Maximum number of fused results (None for all)

    Returns:
        Candidates by descending fused score; ties keep first-encounter order
    """
    if k <= 0:
        raise ValueError(f"RRF constant k must be positive, got {k}")

    # Pass 1: accumulate. Dict insertion order records first encounter.
    scores: Dict[Hashable, float] = {}
    for candidates in ranked_lists:
        seen = set()
        for candidate in candidates:
            if candidate.entity_id in seen:
                continue
            seen.add(candidate.entity_id)
            scores[candidate.entity_id] = (
                scores.get(candidate.entity_id, 0.0) + 1.0 / (k + candidate.rank)
            )

    # Pass 2: sort. Python's sort is stable, so equal scores stay in encounter order.
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    if limit is not None:
        ordered = ordered[:max(limit, 0)]
    return [FusedCandidate(entity_id=eid, score=score) for eid, score in ordered]
