"""
Knowledge Base API Router.

Provides REST endpoints over a KnowledgeBase:
- Insert statements (with chunks) and look them up
- Pattern selection over subject/predicate/object/context
- Cascade delete
- Hybrid search over statements and documents
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rdf_kb import __version__
from rdf_kb.errors import (
    DimensionMismatchError,
    HybridSearchError,
    InvalidQueryError,
    ReferentialError,
    SearchTimeoutError,
)
from rdf_kb.kb import KnowledgeBase
from rdf_kb.models import Statement, TermType
from rdf_kb.search.hybrid import SearchStats


# =============================================================================
# Pydantic Models
# =============================================================================

class StatementRequest(BaseModel):
    """A statement to insert."""
    subject: str = Field(..., description="Subject IRI or blank node")
    predicate: str = Field(..., description="Predicate IRI ('a' is stored as rdf:type)")
    object: str = Field(..., description="Object IRI or literal value")
    context: str = Field(default="", description="Grouping context")
    term_type: Optional[TermType] = Field(None, description="NamedNode, BlankNode, Literal or Quad")
    object_language: Optional[str] = Field(None, description="Language tag for literals")
    object_datatype: Optional[str] = Field(None, description="Datatype IRI for literals")
    with_chunks: bool = Field(default=True, description="Derive and index chunks")

    def to_statement(self) -> Statement:
        return Statement(
            subject=self.subject,
            predicate=self.predicate,
            object=self.object,
            context=self.context,
            term_type=self.term_type,
            object_language=self.object_language,
            object_datatype=self.object_datatype,
        )


class BatchStatementsRequest(BaseModel):
    """Several statements ingested in one transaction."""
    statements: list[StatementRequest]


class SearchRequest(BaseModel):
    """Hybrid search request."""
    query: str = Field(default="", description="Free-text query")
    vector: Optional[list[float]] = Field(None, description="Query embedding; computed from the text when omitted")
    limit: Optional[int] = Field(None, ge=0, description="Maximum number of results")
    k: Optional[float] = Field(None, gt=0, description="RRF constant")
    timeout: Optional[float] = Field(None, gt=0, description="Deadline in seconds")


class DocumentRequest(BaseModel):
    """A free-text document to add."""
    content: str = Field(..., description="Document text")


def _search_error(e: Exception) -> HTTPException:
    if isinstance(e, (DimensionMismatchError, InvalidQueryError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, SearchTimeoutError):
        return HTTPException(status_code=504, detail=str(e))
    return HTTPException(status_code=500, detail=f"Search failed: {str(e)}")


def create_kb_router(kb: KnowledgeBase) -> APIRouter:
    """
    Create the knowledge base API router.

    Args:
        kb: An open KnowledgeBase

    Returns:
        Router mounted under /kb
    """
    router = APIRouter(prefix="/kb", tags=["Knowledge Base"])

    # =========================================================================
    # Statements
    # =========================================================================

    @router.post("/statements")
    async def insert_statement(request: StatementRequest):
        """Insert a statement; duplicates return the existing id."""
        stmt = request.to_statement()
        if request.with_chunks:
            statement_id = await asyncio.to_thread(kb.insert_statement_with_chunks, stmt)
        else:
            statement_id = await asyncio.to_thread(kb.insert_statement, stmt)
        return {"id": statement_id}

    @router.post("/statements/batch")
    async def insert_statements(request: BatchStatementsRequest):
        """Insert statements with their chunks atomically."""
        stmts = [s.to_statement() for s in request.statements]
        ids = await asyncio.to_thread(kb.insert_statements_with_chunks, stmts)
        return {"count": len(ids), "ids": ids}

    @router.get("/statements")
    async def select_statements(
        subject: Optional[str] = Query(None),
        predicate: Optional[str] = Query(None),
        object: Optional[str] = Query(None),
        context: Optional[str] = Query(None),
    ):
        """Statements matching every supplied field."""
        statements = await asyncio.to_thread(
            kb.select_statements, subject, predicate, object, context
        )
        return {
            "count": len(statements),
            "statements": [s.to_dict() for s in statements],
        }

    @router.get("/statements/{statement_id}")
    async def get_statement(statement_id: int):
        stmt = await asyncio.to_thread(kb.get_statement, statement_id)
        if stmt is None:
            raise HTTPException(status_code=404, detail=f"Statement {statement_id} not found")
        return stmt.to_dict()

    @router.delete("/statements/{statement_id}")
    async def delete_statement(statement_id: int):
        """Delete a statement and its chunks."""
        deleted = await asyncio.to_thread(kb.delete_statement, statement_id)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Statement {statement_id} not found")
        return {"success": True, "id": statement_id}

    @router.get("/statements/{statement_id}/chunks")
    async def statement_chunks(statement_id: int):
        if await asyncio.to_thread(kb.get_statement, statement_id) is None:
            raise HTTPException(status_code=404, detail=f"Statement {statement_id} not found")
        chunks = await asyncio.to_thread(kb.chunks_for_statement, statement_id)
        return {
            "count": len(chunks),
            "chunks": [
                {"chunk_id": c.chunk_id, "content": c.content, "embedded": c.embedding is not None}
                for c in chunks
            ],
        }

    @router.post("/statements/{statement_id}/rechunk")
    async def rechunk_statement(statement_id: int):
        try:
            chunk_ids = await asyncio.to_thread(kb.rechunk_statement, statement_id)
        except ReferentialError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"count": len(chunk_ids), "chunk_ids": chunk_ids}

    # =========================================================================
    # Search
    # =========================================================================

    @router.post("/search")
    async def search(request: SearchRequest):
        """Hybrid lexical + vector search over statements."""
        stats = SearchStats()

        def _run():
            if request.vector is not None:
                return kb.perform_hybrid_search(
                    request.query, request.vector,
                    limit=request.limit, k=request.k, timeout=request.timeout, stats=stats,
                )
            return kb.search(
                request.query,
                limit=request.limit, k=request.k, timeout=request.timeout, stats=stats,
            )

        try:
            results = await asyncio.to_thread(_run)
        except (DimensionMismatchError, InvalidQueryError, SearchTimeoutError, HybridSearchError) as e:
            raise _search_error(e)
        return {
            "count": len(results),
            "results": [r.to_dict() for r in results],
            "stats": stats.to_dict(),
        }

    # =========================================================================
    # Documents
    # =========================================================================

    @router.post("/documents")
    async def add_document(request: DocumentRequest):
        document_id = await asyncio.to_thread(kb.documents.add_document, request.content)
        return {"id": document_id}

    @router.delete("/documents/{document_id}")
    async def delete_document(document_id: int):
        deleted = await asyncio.to_thread(kb.documents.delete, document_id)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
        return {"success": True, "id": document_id}

    @router.post("/documents/search")
    async def search_documents(request: SearchRequest):
        def _run():
            if request.vector is not None:
                return kb.documents.perform_hybrid_search(
                    request.query, request.vector,
                    limit=request.limit, k=request.k, timeout=request.timeout,
                )
            return kb.documents.search(
                request.query, limit=request.limit, k=request.k, timeout=request.timeout,
            )

        try:
            results = await asyncio.to_thread(_run)
        except (DimensionMismatchError, InvalidQueryError, SearchTimeoutError, HybridSearchError) as e:
            raise _search_error(e)
        return {"count": len(results), "results": [r.to_dict() for r in results]}

    # =========================================================================
    # Stats
    # =========================================================================

    @router.get("/stats")
    async def stats():
        return await asyncio.to_thread(kb.stats)

    return router


def create_app(kb: KnowledgeBase) -> FastAPI:
    """
    Create the FastAPI application around an open KnowledgeBase.

    Args:
        kb: The knowledge base to serve
    """
    app = FastAPI(
        title="rdf-kb API",
        description="Statement knowledge base with hybrid lexical and vector search",
        version=__version__,
    )
    app.state.kb = kb
    app.include_router(create_kb_router(kb))

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


if __name__ == "__main__":
    import os

    import uvicorn

    from rdf_kb.config import load_config

    app = create_app(KnowledgeBase.open(load_config(os.environ.get("RDFKB_CONFIG"))))
    uvicorn.run(app, host="0.0.0.0", port=8000)
