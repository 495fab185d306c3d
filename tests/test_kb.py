"""
Tests for the KnowledgeBase facade.
"""

import polars as pl
import pytest

from rdf_kb import KnowledgeBase, Statement, TermType
from rdf_kb.config import KBConfig
from rdf_kb.embeddings import HashingEmbedder
from rdf_kb.errors import DimensionMismatchError, EmbeddingUnavailable, ReferentialError
from rdf_kb.models import RDF_TYPE


class OfflineEmbedder:
    dimension = 32

    def embed(self, text):
        raise EmbeddingUnavailable("model offline")

    def embed_many(self, texts):
        raise EmbeddingUnavailable("model offline")


def small_config(tmp_path=None, dimension=32):
    config = KBConfig()
    config.embedding.dimension = dimension
    if tmp_path is not None:
        config.storage.database = str(tmp_path / "kb.duckdb")
    return config


class TestKnowledgeBase:
    """Test the programmatic API."""

    @pytest.fixture
    def kb(self):
        knowledge_base = KnowledgeBase.open(small_config())
        yield knowledge_base
        knowledge_base.close()

    def test_open_builds_embedder(self, kb):
        assert isinstance(kb.embedder, HashingEmbedder)
        assert kb.embedder.dimension == 32

    def test_statement_lifecycle(self, kb):
        sid = kb.insert_statement_with_chunks(Statement("ex:alice", "a", "ex:Person"))
        assert kb.get_statement(sid).predicate == RDF_TYPE
        assert len(kb.chunks_for_statement(sid)) > 0
        assert [s.id for s in kb.select_statements(subject="ex:alice")] == [sid]

        assert kb.delete_statement(sid) is True
        assert kb.get_statement(sid) is None
        assert kb.chunks_for_statement(sid) == []

    def test_insert_statement_without_chunks(self, kb):
        sid = kb.insert_statement(Statement("ex:s", "ex:p", "ex:o"))
        assert kb.chunks_for_statement(sid) == []
        ids = kb.insert_chunks_for_statement(sid, kb.get_statement(sid))
        assert [c.chunk_id for c in kb.chunks_for_statement(sid)] == ids

    def test_insert_chunk_unknown_statement(self, kb):
        with pytest.raises(ReferentialError):
            kb.insert_chunk(404, "orphan")

    def test_rechunk_statement(self, kb):
        sid = kb.insert_statement_with_chunks(
            Statement("ex:s", "ex:p", "some words", term_type=TermType.LITERAL)
        )
        before = kb.chunks_for_statement(sid)
        after_ids = kb.rechunk_statement(sid)
        assert len(after_ids) == len(before)
        assert [c.content for c in kb.chunks_for_statement(sid)] == [c.content for c in before]

    def test_statements_frame(self, kb):
        kb.insert_statements_with_chunks([
            Statement("ex:a", "ex:p", "ex:o1"),
            Statement("ex:b", "ex:p", "ex:o2"),
        ])
        df = kb.statements_frame(predicate="ex:p")
        assert isinstance(df, pl.DataFrame)
        assert df["subject"].to_list() == ["ex:a", "ex:b"]

    def test_stats(self, kb):
        kb.insert_statement_with_chunks(
            Statement("ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
        )
        kb.documents.add_document("a document")
        stats = kb.stats()
        assert stats["statements"] == 1
        assert stats["chunks"] == 2
        assert stats["embedded_chunks"] == 2
        assert stats["documents"] == 1
        assert stats["dimension"] == 32
        assert stats["embedder"] == "HashingEmbedder"


class TestOpen:
    """Test opening, reopening and embedder wiring."""

    def test_embedder_dimension_must_match(self):
        with pytest.raises(DimensionMismatchError):
            KnowledgeBase.open(small_config(dimension=32), embedder=HashingEmbedder(16))

    def test_no_embedder(self):
        config = small_config()
        config.embedding.backend = "none"
        with KnowledgeBase.open(config) as kb:
            assert kb.embedder is None
            sid = kb.insert_statement_with_chunks(
                Statement("ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
            )
            assert all(c.embedding is None for c in kb.chunks_for_statement(sid))
            assert [r.id for r in kb.search("intelligence")] == [sid]

    def test_offline_embedder_falls_back_to_lexical(self, caplog):
        with KnowledgeBase.open(small_config(), embedder=OfflineEmbedder()) as kb:
            sid = kb.insert_statement_with_chunks(
                Statement("ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
            )
            with caplog.at_level("WARNING"):
                results = kb.search("intelligence")
            assert [r.id for r in results] == [sid]
            assert kb.stats()["embedded_chunks"] == 0
        assert "searching lexically only" in caplog.text

    def test_persistence(self, tmp_path):
        config = small_config(tmp_path)
        with KnowledgeBase.open(config) as kb:
            sid = kb.insert_statement_with_chunks(
                Statement("ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
            )
        with KnowledgeBase.open(config) as kb:
            assert kb.get_statement(sid).object == "Artificial Intelligence"
            assert kb.search("intelligence")[0].id == sid

    def test_reopen_with_other_dimension(self, tmp_path):
        with KnowledgeBase.open(small_config(tmp_path, dimension=32)):
            pass
        with pytest.raises(DimensionMismatchError):
            KnowledgeBase.open(small_config(tmp_path, dimension=64))
