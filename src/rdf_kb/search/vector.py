"""
Vector Index: exact top-k cosine search over chunk embeddings.

Uses DuckDB's ``array_cosine_distance`` on the fixed-size FLOAT[D]
embedding column. Chunks stored without an embedding are skipped.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import duckdb
import numpy as np

from rdf_kb.search.fusion import RankedCandidate
from rdf_kb.storage.database import Database
from rdf_kb.vectors import VectorLike, as_vector

logger = logging.getLogger(__name__)


class VectorIndex:
    """
    Nearest-neighbour search by cosine distance (lower is closer).

    Each entity appears once, at the distance of its closest chunk, so a
    statement with many chunks cannot crowd others out of the top k.
    """

    def __init__(
        self,
        db: Database,
        table: str = "kb_chunks",
        entity_column: str = "statement_id",
    ):
        self._db = db
        self.table = table
        self.entity_column = entity_column

    @property
    def dimension(self) -> int:
        return self._db.dimension

    def _sql(self) -> str:
        return f"""
            WITH scored AS (
                SELECT {self.entity_column} AS entity_id, chunk_id,
                       array_cosine_distance(embedding, $query::FLOAT[{self.dimension}]) AS distance
                FROM {self.table}
                WHERE embedding IS NOT NULL
            ),
            best AS (
                SELECT entity_id, chunk_id, distance,
                       row_number() OVER (
                           PARTITION BY entity_id ORDER BY distance ASC, chunk_id ASC
                       ) AS pos
                FROM scored
            )
            SELECT entity_id, chunk_id, distance
            FROM best
            WHERE pos = 1
            ORDER BY distance ASC, chunk_id ASC
            LIMIT $limit
        """

    def search(
        self,
        query_vector: VectorLike,
        limit: int,
        conn: Optional[duckdb.DuckDBPyConnection] = None,
    ) -> List[RankedCandidate]:
        """
        Rank chunks by cosine distance to a query vector.

        Args:
            query_vector: Vector of the index dimension
            limit: Maximum number of candidates
            conn: Cursor to run on (defaults to a fresh reader)

        Returns:
            Candidates ranked 1..n, one per entity; the candidate score is
            cosine similarity of its closest chunk.
            Empty for a zero vector, which has no direction to compare.

        Raises:
            DimensionMismatchError: If the vector has the wrong dimension
        """
        vector = as_vector(query_vector, self.dimension)
        if limit <= 0 or not np.any(vector):
            return []

        params = {"query": vector.tolist(), "limit": limit}
        if conn is not None:
            rows = conn.execute(self._sql(), params).fetchall()
        else:
            with self._db.reader() as reader:
                rows = reader.execute(self._sql(), params).fetchall()

        return [
            RankedCandidate(entity_id=int(entity_id), rank=rank, score=1.0 - float(distance))
            for rank, (entity_id, _chunk_id, distance) in enumerate(rows, start=1)
        ]
