"""
KnowledgeBase: the programmatic entry point.

Wires one DuckDB database to the statement/chunk stores, the ingestion
pipeline and the hybrid searcher, plus the document collection that
shares the same search machinery.

Usage:
    with KnowledgeBase.open(load_config("kb.yaml")) as kb:
        kb.insert_statement_with_chunks(
            Statement("ex:AI", "rdfs:label", "Artificial Intelligence",
                      term_type=TermType.LITERAL)
        )
        for hit in kb.search("intelligence", limit=5):
            print(hit.subject, hit.score)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import polars as pl

from rdf_kb.config import ChunkingConfig, KBConfig, SearchConfig
from rdf_kb.embeddings import Embedder, create_embedder
from rdf_kb.errors import DimensionMismatchError, EmbeddingUnavailable
from rdf_kb.ingestion import IngestionPipeline
from rdf_kb.models import (
    Chunk,
    Document,
    DocumentChunk,
    DocumentSearchResult,
    SearchResult,
    Statement,
)
from rdf_kb.search.hybrid import HybridSearcher, SearchStats
from rdf_kb.search.lexical import LexicalIndex
from rdf_kb.search.vector import VectorIndex
from rdf_kb.storage.chunks import ChunkStore, word_windows
from rdf_kb.storage.database import Database
from rdf_kb.storage.documents import DocumentStore
from rdf_kb.storage.statements import StatementStore
from rdf_kb.vectors import VectorLike

logger = logging.getLogger(__name__)


def embed_query(embedder: Optional[Embedder], query_text: str) -> Optional[VectorLike]:
    """
    Embed query text, or return None when no vector can be produced.

    A missing embedder or an unavailable model leaves the search lexical-only.
    """
    if embedder is None or not query_text or not query_text.strip():
        return None
    try:
        return embedder.embed(query_text)
    except EmbeddingUnavailable as e:
        logger.warning(f"Query embedding unavailable, searching lexically only: {e}")
        return None


class DocumentSearcher:
    """
    Free-text documents with the same chunking and hybrid search as statements.

    Example:
        doc_id = kb.documents.add_document("DuckDB is an embedded OLAP database")
        kb.documents.search("embedded database")
    """

    def __init__(
        self,
        db: Database,
        embedder: Optional[Embedder] = None,
        chunking: Optional[ChunkingConfig] = None,
        search: Optional[SearchConfig] = None,
    ):
        self._db = db
        self.embedder = embedder
        self.chunking = chunking or ChunkingConfig()
        search = search or SearchConfig()
        self.store = DocumentStore(db)
        self._searcher: HybridSearcher[Document, DocumentSearchResult] = HybridSearcher(
            db,
            LexicalIndex(
                db,
                table="kb_document_chunks",
                entity_column="document_id",
                k1=search.bm25_k1,
                b=search.bm25_b,
            ),
            VectorIndex(db, table="kb_document_chunks", entity_column="document_id"),
            hydrate=self.store.get_many,
            make_result=DocumentSearchResult.from_document,
            config=search,
        )

    def add_document(self, content: str) -> int:
        """Insert a document and its word-window chunks in one transaction."""
        with self._db.transaction():
            document_id = self.store.insert_document(content)
            for text in word_windows(content, self.chunking.max_chunk_words):
                self.store.insert_chunk(document_id, text, self._embed(text))
        logger.debug(f"Added document {document_id}")
        return document_id

    def _embed(self, text: str) -> Optional[VectorLike]:
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except EmbeddingUnavailable as e:
            logger.warning(f"Embedding unavailable, storing chunk without vector: {e}")
            return None

    def insert_document(self, content: str) -> int:
        return self.store.insert_document(content)

    def insert_chunk(
        self,
        document_id: int,
        content: str,
        embedding: Optional[VectorLike] = None,
    ) -> int:
        return self.store.insert_chunk(document_id, content, embedding)

    def get_many(self, document_ids: Iterable[int]) -> Dict[int, Document]:
        return self.store.get_many(document_ids)

    def chunks_for_document(self, document_id: int) -> List[DocumentChunk]:
        return self.store.chunks_for_document(document_id)

    def delete(self, document_id: int) -> bool:
        return self.store.delete(document_id)

    def perform_hybrid_search(
        self,
        query_text: Optional[str],
        query_vector: Optional[VectorLike],
        limit: Optional[int] = None,
        k: Optional[float] = None,
        timeout: Optional[float] = None,
        stats: Optional[SearchStats] = None,
    ) -> List[DocumentSearchResult]:
        return self._searcher.perform_hybrid_search(
            query_text, query_vector, limit=limit, k=k, timeout=timeout, stats=stats
        )

    def search(
        self,
        query_text: str,
        limit: Optional[int] = None,
        k: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> List[DocumentSearchResult]:
        return self.perform_hybrid_search(
            query_text, embed_query(self.embedder, query_text), limit=limit, k=k, timeout=timeout
        )

    def count(self) -> int:
        with self._db.reader() as conn:
            return int(conn.execute("SELECT count(*) FROM kb_documents").fetchone()[0])

    def close(self) -> None:
        self._searcher.close()


class KnowledgeBase:
    """
    Statements, their chunks, and hybrid search over both, in one DuckDB file.

    Construct with ``KnowledgeBase.open(config, embedder)``; the embedder is
    built from ``config.embedding`` when not passed in.
    """

    def __init__(
        self,
        db: Database,
        embedder: Optional[Embedder] = None,
        config: Optional[KBConfig] = None,
    ):
        self.config = config or KBConfig()
        self.db = db
        self.embedder = embedder

        if embedder is not None and embedder.dimension != db.dimension:
            raise DimensionMismatchError(db.dimension, embedder.dimension)

        search = self.config.search
        self.statements = StatementStore(db)
        self.chunks = ChunkStore(db, embedder=embedder, chunking=self.config.chunking)
        self.ingestion = IngestionPipeline(db, self.statements, self.chunks)
        self.lexical = LexicalIndex(db, k1=search.bm25_k1, b=search.bm25_b)
        self.vector = VectorIndex(db)
        self.searcher: HybridSearcher[Statement, SearchResult] = HybridSearcher(
            db,
            self.lexical,
            self.vector,
            hydrate=self.statements.get_many,
            make_result=SearchResult.from_statement,
            config=search,
        )
        self.documents = DocumentSearcher(
            db, embedder=embedder, chunking=self.config.chunking, search=search
        )

    @classmethod
    def open(
        cls,
        config: Optional[KBConfig] = None,
        embedder: Optional[Embedder] = None,
    ) -> "KnowledgeBase":
        """
        Open (or create) the knowledge base described by ``config``.

        Raises:
            DimensionMismatchError: If the database was created with another
                embedding dimension, or the embedder disagrees with it
            SchemaDriftError: If the database has an unknown schema version
        """
        config = config or KBConfig()
        config.validate()
        if embedder is None:
            embedder = create_embedder(config.embedding)
        db = Database(
            config.storage.database,
            dimension=config.embedding.dimension,
            read_only=config.storage.read_only,
        ).connect()
        try:
            return cls(db, embedder=embedder, config=config)
        except Exception:
            db.close()
            raise

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def insert_statement(self, stmt: Statement) -> int:
        """Insert a statement without chunks; duplicates return the existing id."""
        return self.statements.insert(stmt)

    def select_statements(
        self,
        subject: Optional[str] = None,
        predicate: Optional[str] = None,
        object: Optional[str] = None,
        context: Optional[str] = None,
    ) -> List[Statement]:
        return self.statements.select(
            subject=subject, predicate=predicate, object=object, context=context
        )

    def statements_frame(
        self,
        subject: Optional[str] = None,
        predicate: Optional[str] = None,
        object: Optional[str] = None,
        context: Optional[str] = None,
    ) -> pl.DataFrame:
        return self.statements.to_polars(
            subject=subject, predicate=predicate, object=object, context=context
        )

    def get_statement(self, statement_id: int) -> Optional[Statement]:
        return self.statements.get(statement_id)

    def delete_statement(self, statement_id: int) -> bool:
        """Delete a statement together with its chunks."""
        return self.statements.delete(statement_id)

    # -------------------------------------------------------------------------
    # Chunks
    # -------------------------------------------------------------------------

    def insert_chunk(
        self,
        statement_id: int,
        content: str,
        embedding: Optional[VectorLike] = None,
    ) -> int:
        return self.chunks.insert_chunk(statement_id, content, embedding)

    def insert_chunks_for_statement(self, statement_id: int, stmt: Statement) -> List[int]:
        return self.chunks.insert_chunks_for_statement(statement_id, stmt)

    def rechunk_statement(self, statement_id: int) -> List[int]:
        return self.chunks.rechunk(statement_id)

    def chunks_for_statement(self, statement_id: int) -> List[Chunk]:
        return self.chunks.for_statement(statement_id)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def insert_statement_with_chunks(self, stmt: Statement) -> int:
        return self.ingestion.insert_statement_with_chunks(stmt)

    def insert_statements_with_chunks(self, stmts: Iterable[Statement]) -> List[int]:
        return self.ingestion.insert_statements_with_chunks(stmts)

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def perform_hybrid_search(
        self,
        query_text: Optional[str],
        query_vector: Optional[VectorLike],
        limit: Optional[int] = None,
        k: Optional[float] = None,
        timeout: Optional[float] = None,
        stats: Optional[SearchStats] = None,
    ) -> List[SearchResult]:
        """Fused lexical + vector search; see ``HybridSearcher.perform_hybrid_search``."""
        return self.searcher.perform_hybrid_search(
            query_text, query_vector, limit=limit, k=k, timeout=timeout, stats=stats
        )

    def search(
        self,
        query_text: str,
        limit: Optional[int] = None,
        k: Optional[float] = None,
        timeout: Optional[float] = None,
        stats: Optional[SearchStats] = None,
    ) -> List[SearchResult]:
        """Hybrid search with the query vector computed by the configured embedder."""
        return self.perform_hybrid_search(
            query_text,
            embed_query(self.embedder, query_text),
            limit=limit,
            k=k,
            timeout=timeout,
            stats=stats,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Row counts and settings of the open knowledge base."""
        with self.db.reader() as conn:
            embedded = conn.execute(
                "SELECT count(*) FROM kb_chunks WHERE embedding IS NOT NULL"
            ).fetchone()[0]
        return {
            "database": self.db.path,
            "dimension": self.db.dimension,
            "statements": self.statements.count(),
            "chunks": self.chunks.count(),
            "embedded_chunks": int(embedded),
            "documents": self.documents.count(),
            "embedder": type(self.embedder).__name__ if self.embedder else None,
        }

    def close(self) -> None:
        self.searcher.close()
        self.documents.close()
        self.db.close()

    def __enter__(self) -> "KnowledgeBase":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
