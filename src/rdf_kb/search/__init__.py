"""
rdf-kb search: lexical (BM25) and vector (cosine) indexes fused with RRF.
"""

from rdf_kb.search.fusion import (
    DEFAULT_RRF_K,
    FusedCandidate,
    RankedCandidate,
    reciprocal_rank_fusion,
    to_ranked,
)
from rdf_kb.search.lexical import LexicalIndex
from rdf_kb.search.vector import VectorIndex
from rdf_kb.search.hybrid import HybridSearcher, SearchStats

__all__ = [
    "DEFAULT_RRF_K",
    "FusedCandidate",
    "RankedCandidate",
    "reciprocal_rank_fusion",
    "to_ranked",
    "LexicalIndex",
    "VectorIndex",
    "HybridSearcher",
    "SearchStats",
]
