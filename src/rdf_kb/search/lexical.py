"""
Lexical Index: BM25 full-text ranking over chunk content.

Tokens are lowercase runs of Unicode letters and digits. Scoring is Okapi
BM25 computed by a single DuckDB query over the chunk table, so results
always reflect the committed corpus with no separate index to refresh.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import duckdb

from rdf_kb.search.fusion import RankedCandidate
from rdf_kb.storage.database import Database

logger = logging.getLogger(__name__)

TOKEN_SPLIT_PATTERN = r"[^\p{L}\p{N}]+"

_BM25_SQL = """
WITH
query_terms AS (
    SELECT DISTINCT term FROM (
        SELECT unnest(string_split_regex(lower($query::VARCHAR), '{pattern}')) AS term
    ) WHERE term <> ''
),
chunk_tokens AS (
    SELECT chunk_id, entity_id, token FROM (
        SELECT chunk_id, {entity_column} AS entity_id,
               unnest(string_split_regex(lower(content), '{pattern}')) AS token
        FROM {table}
    ) WHERE token <> ''
),
chunk_lengths AS (
    SELECT chunk_id, count(*) AS doc_len FROM chunk_tokens GROUP BY chunk_id
),
corpus AS (
    SELECT count(*) AS n_docs, avg(doc_len) AS avg_len FROM chunk_lengths
),
term_freqs AS (
    SELECT t.chunk_id, t.entity_id, t.token AS term, count(*) AS tf
    FROM chunk_tokens t JOIN query_terms q ON t.token = q.term
    GROUP BY t.chunk_id, t.entity_id, t.token
),
doc_freqs AS (
    SELECT term, count(*) AS df FROM term_freqs GROUP BY term
),
scored AS (
    SELECT tf.chunk_id, tf.entity_id,
           sum(
               ln(1 + (c.n_docs - d.df + 0.5) / (d.df + 0.5))
               * tf.tf * ($k1::DOUBLE + 1)
               / (tf.tf + $k1::DOUBLE * (1 - $b::DOUBLE + $b::DOUBLE * l.doc_len / c.avg_len))
           ) AS score
    FROM term_freqs tf
    JOIN doc_freqs d ON d.term = tf.term
    JOIN chunk_lengths l ON l.chunk_id = tf.chunk_id
    CROSS JOIN corpus c
    GROUP BY tf.chunk_id, tf.entity_id
),
best AS (
    SELECT entity_id, chunk_id, score,
           row_number() OVER (PARTITION BY entity_id ORDER BY score DESC, chunk_id ASC) AS pos
    FROM scored
)
SELECT entity_id, chunk_id, score
FROM best
WHERE pos = 1
ORDER BY score DESC, chunk_id ASC
LIMIT $limit
"""


class LexicalIndex:
    """
    BM25 search over a chunk table.

    Example:
        index = LexicalIndex(db)
        for candidate in index.search("artificial intelligence", limit=20):
            print(candidate.entity_id, candidate.rank, candidate.score)
    """

    def __init__(
        self,
        db: Database,
        table: str = "kb_chunks",
        entity_column: str = "statement_id",
        k1: float = 1.2,
        b: float = 0.75,
    ):
        self._db = db
        self.table = table
        self.entity_column = entity_column
        self.k1 = k1
        self.b = b
        self._sql = _BM25_SQL.format(
            pattern=TOKEN_SPLIT_PATTERN,
            table=table,
            entity_column=entity_column,
        )

    def search(
        self,
        query_text: str,
        limit: int,
        conn: Optional[duckdb.DuckDBPyConnection] = None,
    ) -> List[RankedCandidate]:
        """
        Rank chunks against a text query.

        Args:
            query_text: Free text; tokenized like chunk content
            limit: Maximum number of candidates
            conn: Cursor to run on (defaults to a fresh reader)

        Returns:
            Candidates ranked 1..n, one per entity, scored by its best
            chunk. Empty when nothing matches or the query has no tokens.
        """
        if limit <= 0 or not query_text or not query_text.strip():
            return []

        params = {"query": query_text, "k1": self.k1, "b": self.b, "limit": limit}
        if conn is not None:
            rows = conn.execute(self._sql, params).fetchall()
        else:
            with self._db.reader() as reader:
                rows = reader.execute(self._sql, params).fetchall()

        return [
            RankedCandidate(entity_id=int(entity_id), rank=rank, score=float(score))
            for rank, (entity_id, _chunk_id, score) in enumerate(rows, start=1)
        ]
