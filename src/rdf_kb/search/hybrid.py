"""
Hybrid search orchestration.

Runs the lexical and vector sub-searches concurrently, fuses their ranked
lists with RRF, then hydrates the fused ids into full records while
keeping fusion order.

Provides:
- Oversampled sub-searches (limit * oversample_factor distinct entities each)
- Graceful degradation when one sub-search fails or is not applicable
- An overall deadline that interrupts running DuckDB queries
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Generic, Hashable, Iterable, List, Mapping, Optional, TypeVar

import duckdb

from rdf_kb.config import SearchConfig
from rdf_kb.errors import HybridSearchError, InvalidQueryError, SearchTimeoutError
from rdf_kb.search.fusion import RankedCandidate, reciprocal_rank_fusion
from rdf_kb.search.lexical import LexicalIndex
from rdf_kb.search.vector import VectorIndex
from rdf_kb.storage.database import Database
from rdf_kb.vectors import VectorLike, as_vector, is_empty_vector

logger = logging.getLogger(__name__)

E = TypeVar("E")
R = TypeVar("R")


@dataclass
class SearchStats:
    """Statistics for one hybrid search."""
    lexical_candidates: int = 0
    vector_candidates: int = 0
    fused_candidates: int = 0
    results: int = 0
    lexical_error: Optional[str] = None
    vector_error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "lexical_candidates": self.lexical_candidates,
            "vector_candidates": self.vector_candidates,
            "fused_candidates": self.fused_candidates,
            "results": self.results,
            "lexical_error": self.lexical_error,
            "vector_error": self.vector_error,
            "duration_ms": self.duration_ms,
        }


class _CursorRegistry:
    """Cursors opened by in-flight sub-searches, so a timeout can interrupt them."""

    def __init__(self):
        self._lock = Lock()
        self._cursors: List[duckdb.DuckDBPyConnection] = []

    def add(self, cursor: duckdb.DuckDBPyConnection) -> None:
        with self._lock:
            self._cursors.append(cursor)

    def remove(self, cursor: duckdb.DuckDBPyConnection) -> None:
        with self._lock:
            self._cursors.remove(cursor)

    def interrupt_all(self) -> None:
        with self._lock:
            for cursor in self._cursors:
                cursor.interrupt()


class HybridSearcher(Generic[E, R]):
    """
    Lexical + vector search fused with Reciprocal Rank Fusion.

    Generic over the entity being ranked: ``hydrate`` maps ids to records
    and ``make_result`` attaches the fused score.

    Example:
        searcher = HybridSearcher(
            db, LexicalIndex(db), VectorIndex(db),
            hydrate=statements.get_many,
            make_result=SearchResult.from_statement,
        )
        results = searcher.perform_hybrid_search("intelligence", query_vector, limit=5)
    """

    def __init__(
        self,
        db: Database,
        lexical: LexicalIndex,
        vector: VectorIndex,
        hydrate: Callable[[Iterable[Hashable]], Mapping[Hashable, E]],
        make_result: Callable[[E, float], R],
        config: Optional[SearchConfig] = None,
    ):
        self._db = db
        self.lexical = lexical
        self.vector = vector
        self._hydrate = hydrate
        self._make_result = make_result
        self.config = config or SearchConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="rdfkb-search",
        )

    def _submit(
        self,
        search: Callable[..., List[RankedCandidate]],
        query,
        limit: int,
        registry: _CursorRegistry,
    ) -> Future:
        # Cursors are opened on the calling thread, where the database lock may be held.
        cursor = self._db.cursor()
        registry.add(cursor)
        return self._executor.submit(self._run_on_cursor, search, query, limit, cursor, registry)

    @staticmethod
    def _run_on_cursor(
        search: Callable[..., List[RankedCandidate]],
        query,
        limit: int,
        cursor: duckdb.DuckDBPyConnection,
        registry: _CursorRegistry,
    ) -> List[RankedCandidate]:
        try:
            return search(query, limit, conn=cursor)
        finally:
            registry.remove(cursor)
            cursor.close()

    def _collect(
        self,
        futures: Dict[str, Future],
        stats: SearchStats,
    ) -> List[List[RankedCandidate]]:
        ranked_lists: List[List[RankedCandidate]] = []
        errors: Dict[str, BaseException] = {}
        for name, future in futures.items():
            try:
                candidates = future.result()
            except Exception as e:
                logger.warning(f"{name.capitalize()} sub-search failed, continuing without it: {e}")
                errors[name] = e
                setattr(stats, f"{name}_error", str(e))
                continue
            setattr(stats, f"{name}_candidates", len(candidates))
            ranked_lists.append(candidates)

        if futures and len(errors) == len(futures):
            first = next(iter(errors.values()))
            raise HybridSearchError(
                "All sub-searches failed: "
                + "; ".join(f"{name}: {err}" for name, err in errors.items())
            ) from first
        return ranked_lists

    def perform_hybrid_search(
        self,
        query_text: Optional[str],
        query_vector: Optional[VectorLike],
        limit: Optional[int] = None,
        k: Optional[float] = None,
        timeout: Optional[float] = None,
        stats: Optional[SearchStats] = None,
    ) -> List[R]:
        """
        Search with text and vector together.

        Args:
            query_text: Free-text query; empty disables the lexical side
            query_vector: Query embedding; None/empty disables the vector side
            limit: Maximum number of results (config default when None)
            k: RRF constant (config default when None)
            timeout: Seconds for search, fusion and hydration together
            stats: Optional SearchStats to fill in

        Returns:
            Results in fused order, each carrying its RRF score

        Raises:
            InvalidQueryError: If both query text and query vector are empty
            DimensionMismatchError: If the query vector has the wrong dimension
            HybridSearchError: If every launched sub-search failed
            SearchTimeoutError: If the deadline passed before results were ready
        """
        start = time.perf_counter()
        stats = stats if stats is not None else SearchStats()
        limit = self.config.default_limit if limit is None else limit
        k = self.config.rrf_k if k is None else k
        timeout = self.config.timeout_seconds if timeout is None else timeout

        has_text = bool(query_text and query_text.strip())
        has_vector = not is_empty_vector(query_vector)
        if not has_text and not has_vector:
            raise InvalidQueryError("Hybrid search needs query text, a query vector, or both")
        if has_vector:
            query_vector = as_vector(query_vector, self.vector.dimension)
        if limit <= 0:
            return []

        deadline = time.monotonic() + timeout if timeout else None
        candidates = limit * self.config.oversample_factor
        registry = _CursorRegistry()

        futures: Dict[str, Future] = {}
        if has_text:
            futures["lexical"] = self._submit(
                self.lexical.search, query_text, candidates, registry
            )
        if has_vector:
            futures["vector"] = self._submit(
                self.vector.search, query_vector, candidates, registry
            )

        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        _, not_done = wait(futures.values(), timeout=remaining)
        if not_done:
            registry.interrupt_all()
            raise SearchTimeoutError(f"Hybrid search exceeded {timeout}s deadline")

        ranked_lists = self._collect(futures, stats)
        fused = reciprocal_rank_fusion(ranked_lists, k=k, limit=limit)
        stats.fused_candidates = len(fused)

        records = self._hydrate([c.entity_id for c in fused])
        results = [
            self._make_result(records[c.entity_id], c.score)
            for c in fused
            if c.entity_id in records
        ]
        if deadline is not None and time.monotonic() > deadline:
            raise SearchTimeoutError(f"Hybrid search exceeded {timeout}s deadline")

        stats.results = len(results)
        stats.duration_ms = round((time.perf_counter() - start) * 1000, 3)
        logger.debug(
            f"Hybrid search: {stats.lexical_candidates} lexical + "
            f"{stats.vector_candidates} vector candidates -> {stats.results} results "
            f"in {stats.duration_ms}ms"
        )
        return results

    def close(self) -> None:
        """Stop the worker threads."""
        self._executor.shutdown(wait=True)
