"""
Document Store: free-text documents and their chunks.

The same chunk/cascade rules as statements, over a generic entity type.
Searched with the same lexical/vector indexes and fusion engine.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from rdf_kb.models import Document, DocumentChunk
from rdf_kb.storage.database import Database, run_query
from rdf_kb.storage.integrity import cascade_delete, insert_child
from rdf_kb.vectors import VectorLike, storable_embedding

logger = logging.getLogger(__name__)


class DocumentStore:
    """Store for ``kb_documents`` and ``kb_document_chunks``."""

    def __init__(self, db: Database):
        self._db = db

    def insert_document(self, content: str) -> int:
        with self._db.transaction() as conn:
            row = conn.execute(
                "INSERT INTO kb_documents (content) VALUES (?) RETURNING id", [content]
            ).fetchone()
        return int(row[0])

    def insert_chunk(
        self,
        document_id: int,
        content: str,
        embedding: Optional[VectorLike] = None,
    ) -> int:
        """
        Append a chunk to a document.

        Raises:
            ReferentialError: If the document does not exist
            DimensionMismatchError: If the embedding has the wrong dimension
        """
        vector = storable_embedding(embedding, self._db.dimension)
        with self._db.transaction() as conn:
            return insert_child(
                conn,
                child_table="kb_document_chunks",
                parent_table="kb_documents",
                parent_key="id",
                foreign_key="document_id",
                parent_id=document_id,
                columns=("content", "embedding"),
                values=(content, vector),
                casts=("::VARCHAR", f"::FLOAT[{self._db.dimension}]"),
                parent_label="Document",
            )

    def get_many(self, document_ids: Iterable[int]) -> Dict[int, Document]:
        ids = [int(i) for i in document_ids]
        if not ids:
            return {}
        with self._db.reader() as conn:
            result = run_query(
                conn,
                "SELECT id, content FROM kb_documents WHERE list_contains(?::BIGINT[], id)",
                [ids],
            )
        documents = [Document.from_row(row) for row in result.to_dicts()]
        return {d.id: d for d in documents}

    def chunks_for_document(self, document_id: int) -> List[DocumentChunk]:
        with self._db.reader() as conn:
            result = run_query(
                conn,
                """
                SELECT chunk_id, document_id, content, embedding
                FROM kb_document_chunks WHERE document_id = ?
                ORDER BY chunk_id
                """,
                [document_id],
            )
        return [DocumentChunk.from_row(row) for row in result.to_dicts()]

    def delete(self, document_id: int) -> bool:
        """Delete a document and its chunks atomically."""
        with self._db.transaction() as conn:
            deleted = cascade_delete(
                conn,
                parent_table="kb_documents",
                parent_key="id",
                child_table="kb_document_chunks",
                foreign_key="document_id",
                parent_id=document_id,
            )
        return bool(deleted)
