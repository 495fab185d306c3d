"""
Chunk Store.

Chunks are the unit indexed by both lexical and vector search. Each chunk
belongs to exactly one statement and disappears with it. A chunk whose
embedding could not be computed is still written (with a NULL embedding)
so lexical search keeps working without the embedding model.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from rdf_kb.config import ChunkingConfig
from rdf_kb.embeddings import Embedder
from rdf_kb.errors import EmbeddingUnavailable, ReferentialError
from rdf_kb.models import Chunk, Statement, TermType
from rdf_kb.storage.database import Database, run_query
from rdf_kb.storage.integrity import insert_child
from rdf_kb.storage.statements import _SELECT_STATEMENTS
from rdf_kb.vectors import VectorLike, storable_embedding

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_LOCAL_NAME_SPLIT = re.compile(r"[#/:]")


def humanize_term(term: str) -> str:
    """
    Readable label for an RDF term.

    IRIs and CURIEs reduce to their local name with camelCase, underscores
    and hyphens split into words; blank nodes lose their ``_:`` prefix;
    anything containing whitespace is treated as plain text.

        >>> humanize_term("http://example.org/worksAt")
        'works At'
    """
    text = term.strip()
    if text.startswith("<") and text.endswith(">"):
        text = text[1:-1]
    if not text or any(ch.isspace() for ch in text):
        return text
    if text.startswith("_:"):
        text = text[2:]
    elif ":" in text:
        parts = [p for p in _LOCAL_NAME_SPLIT.split(text) if p]
        text = parts[-1] if parts else text
    text = _CAMEL_BOUNDARY.sub(" ", text)
    return " ".join(text.replace("_", " ").replace("-", " ").split())


def object_text(stmt: Statement) -> str:
    """Searchable text of a statement's object."""
    if stmt.term_type == TermType.LITERAL:
        return stmt.object.strip()
    return humanize_term(stmt.object)


def word_windows(text: str, size: int) -> List[str]:
    """Cut text into consecutive windows of at most ``size`` words."""
    words = text.split()
    return [" ".join(words[i:i + size]) for i in range(0, len(words), size)]


def derive_chunk_texts(stmt: Statement, config: Optional[ChunkingConfig] = None) -> List[str]:
    """
    Split a statement into chunk texts.

    The object text is cut into windows of at most ``max_chunk_words``
    words. A "statement sentence" (subject label, predicate label, leading
    object window) is appended when enabled and distinct from the windows.
    """
    config = config or ChunkingConfig()
    texts = word_windows(object_text(stmt), config.max_chunk_words)

    if config.include_statement_sentence:
        parts = [humanize_term(stmt.subject), humanize_term(stmt.predicate)]
        if texts:
            parts.append(texts[0])
        sentence = " ".join(p for p in parts if p)
        if sentence and sentence not in texts:
            texts.append(sentence)
    return texts


class ChunkStore:
    """
    Store for ``kb_chunks``.

    Example:
        chunks = ChunkStore(db, embedder=HashingEmbedder(512))
        chunks.insert_chunks_for_statement(sid, stmt)
    """

    def __init__(
        self,
        db: Database,
        embedder: Optional[Embedder] = None,
        chunking: Optional[ChunkingConfig] = None,
    ):
        self._db = db
        self.embedder = embedder
        self.chunking = chunking or ChunkingConfig()

    @property
    def dimension(self) -> int:
        return self._db.dimension

    def insert_chunk(
        self,
        statement_id: int,
        content: str,
        embedding: Optional[VectorLike] = None,
    ) -> int:
        """
        Append one chunk to a statement.

        Args:
            statement_id: Parent statement
            content: Chunk text
            embedding: Vector of the database dimension, or None

        Returns:
            The new chunk_id

        Raises:
            ReferentialError: If the statement does not exist
            DimensionMismatchError: If the embedding has the wrong dimension
        """
        vector = storable_embedding(embedding, self.dimension)
        with self._db.transaction() as conn:
            return insert_child(
                conn,
                child_table="kb_chunks",
                parent_table="kb_statements",
                parent_key="id",
                foreign_key="statement_id",
                parent_id=statement_id,
                columns=("content", "embedding"),
                values=(content, vector),
                casts=("::VARCHAR", f"::FLOAT[{self.dimension}]"),
            )

    def _embed(self, text: str) -> Optional[VectorLike]:
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except EmbeddingUnavailable as e:
            logger.warning(f"Embedding unavailable, storing chunk without vector: {e}")
            return None

    def insert_chunks_for_statement(self, statement_id: int, stmt: Statement) -> List[int]:
        """
        Derive, embed and insert the chunks of a statement.

        All chunks are written in one transaction (joining the caller's
        transaction if there is one).

        Returns:
            The new chunk ids, in derivation order
        """
        texts = derive_chunk_texts(stmt.normalized(), self.chunking)
        with self._db.transaction():
            chunk_ids = [
                self.insert_chunk(statement_id, text, self._embed(text))
                for text in texts
            ]
        logger.debug(f"Inserted {len(chunk_ids)} chunks for statement {statement_id}")
        return chunk_ids

    def rechunk(self, statement_id: int) -> List[int]:
        """
        Replace a statement's chunks with freshly derived ones.

        Raises:
            ReferentialError: If the statement does not exist
        """
        with self._db.transaction() as conn:
            result = run_query(conn, f"{_SELECT_STATEMENTS} WHERE id = ?", [statement_id])
            if not result.rows:
                raise ReferentialError("Statement", statement_id)
            stmt = Statement.from_row(result.to_dicts()[0])
            conn.execute("DELETE FROM kb_chunks WHERE statement_id = ?", [statement_id])
            return self.insert_chunks_for_statement(statement_id, stmt)

    def for_statement(self, statement_id: int) -> List[Chunk]:
        """Chunks of one statement in insertion order."""
        with self._db.reader() as conn:
            result = run_query(
                conn,
                """
                SELECT chunk_id, statement_id, content, embedding
                FROM kb_chunks WHERE statement_id = ?
                ORDER BY chunk_id
                """,
                [statement_id],
            )
        return [Chunk.from_row(row) for row in result.to_dicts()]

    def count(self, statement_id: Optional[int] = None) -> int:
        with self._db.reader() as conn:
            if statement_id is None:
                row = conn.execute("SELECT count(*) FROM kb_chunks").fetchone()
            else:
                row = conn.execute(
                    "SELECT count(*) FROM kb_chunks WHERE statement_id = ?", [statement_id]
                ).fetchone()
        return int(row[0])
