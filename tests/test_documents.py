"""
Tests for the document store and document search.
"""

import pytest

from rdf_kb.config import ChunkingConfig, KBConfig
from rdf_kb.errors import DimensionMismatchError, ReferentialError
from rdf_kb.kb import KnowledgeBase
from rdf_kb.models import DocumentSearchResult
from rdf_kb.storage import Database, DocumentStore


class TestDocumentStore:
    """Test document persistence rules."""

    @pytest.fixture
    def store(self):
        db = Database(":memory:", dimension=4)
        yield DocumentStore(db)
        db.close()

    def test_insert_and_get(self, store):
        doc_id = store.insert_document("hello world")
        docs = store.get_many([doc_id, 999])
        assert list(docs) == [doc_id]
        assert docs[doc_id].content == "hello world"

    def test_chunk_requires_document(self, store):
        with pytest.raises(ReferentialError) as exc_info:
            store.insert_chunk(999, "orphan")
        assert exc_info.value.entity == "Document"

    def test_chunk_dimension(self, store):
        doc_id = store.insert_document("hello")
        with pytest.raises(DimensionMismatchError):
            store.insert_chunk(doc_id, "hello", [1.0])

    def test_delete_cascades(self, store):
        doc_id = store.insert_document("hello world")
        store.insert_chunk(doc_id, "hello", [1.0, 0.0, 0.0, 0.0])
        store.insert_chunk(doc_id, "world")
        assert len(store.chunks_for_document(doc_id)) == 2

        assert store.delete(doc_id) is True
        assert store.get_many([doc_id]) == {}
        assert store.chunks_for_document(doc_id) == []
        assert store.delete(doc_id) is False


class TestDocumentSearch:
    """Test hybrid search over documents."""

    @pytest.fixture
    def kb(self):
        config = KBConfig()
        config.embedding.dimension = 64
        config.chunking = ChunkingConfig(max_chunk_words=4)
        knowledge_base = KnowledgeBase.open(config)
        yield knowledge_base
        knowledge_base.close()

    def test_add_document_chunks_text(self, kb):
        doc_id = kb.documents.add_document("one two three four five six")
        chunks = kb.documents.chunks_for_document(doc_id)
        assert [c.content for c in chunks] == ["one two three four", "five six"]
        assert all(c.embedding is not None for c in chunks)

    def test_search(self, kb):
        duck = kb.documents.add_document("DuckDB is an embedded analytical database")
        kb.documents.add_document("Bananas are rich in potassium")
        results = kb.documents.search("embedded database", limit=5)
        assert isinstance(results[0], DocumentSearchResult)
        assert results[0].id == duck
        assert results[0].content.startswith("DuckDB")

    def test_lexical_only(self, kb):
        kb.documents.add_document("alpha beta")
        target = kb.documents.add_document("gamma delta")
        results = kb.documents.perform_hybrid_search("delta", None)
        assert [r.id for r in results] == [target]
        assert results[0].score == pytest.approx(1 / 61)

    def test_documents_do_not_leak_into_statement_search(self, kb):
        kb.documents.add_document("zebra crossing")
        assert kb.perform_hybrid_search("zebra", None) == []

    def test_deleted_document_not_returned(self, kb):
        doc_id = kb.documents.add_document("zebra crossing")
        kb.documents.delete(doc_id)
        assert kb.documents.search("zebra") == []

    def test_count(self, kb):
        kb.documents.add_document("a b")
        kb.documents.add_document("c d")
        assert kb.documents.count() == 2
