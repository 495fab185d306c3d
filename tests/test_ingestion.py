"""
Tests for atomic statement + chunk ingestion.
"""

import pytest

from rdf_kb.embeddings import HashingEmbedder
from rdf_kb.ingestion import IngestionPipeline
from rdf_kb.models import Statement, TermType
from rdf_kb.storage import ChunkStore, Database, StatementStore


class ExplodingEmbedder(HashingEmbedder):
    """Fails hard (not as "unavailable") on texts containing 'boom'."""

    def embed(self, text):
        if "boom" in text:
            raise RuntimeError("embedder crashed")
        return super().embed(text)


def literal(subject, text):
    return Statement(subject, "ex:text", text, term_type=TermType.LITERAL)


class TestIngestionPipeline:
    """Test ingestion atomicity and idempotency."""

    @pytest.fixture
    def pipeline(self):
        db = Database(":memory:", dimension=16)
        statements = StatementStore(db)
        chunks = ChunkStore(db, embedder=ExplodingEmbedder(dimension=16))
        yield IngestionPipeline(db, statements, chunks)
        db.close()

    def test_statement_and_chunks_written(self, pipeline):
        sid = pipeline.insert_statement_with_chunks(literal("ex:AI", "Artificial Intelligence"))
        assert pipeline.statements.get(sid).subject == "ex:AI"
        assert pipeline.chunks.count(sid) == 2

    def test_reingest_is_idempotent(self, pipeline):
        stmt = literal("ex:AI", "Artificial Intelligence")
        first = pipeline.insert_statement_with_chunks(stmt)
        second = pipeline.insert_statement_with_chunks(stmt)
        assert first == second
        assert pipeline.statements.count() == 1
        assert pipeline.chunks.count() == 2

    def test_failure_rolls_back_statement(self, pipeline):
        """A chunk failure leaves neither the statement nor any chunk behind."""
        with pytest.raises(RuntimeError):
            pipeline.insert_statement_with_chunks(literal("ex:bad", "this will boom"))
        assert pipeline.statements.count() == 0
        assert pipeline.chunks.count() == 0

    def test_batch(self, pipeline):
        ids = pipeline.insert_statements_with_chunks([
            literal("ex:a", "alpha"),
            literal("ex:b", "beta"),
            literal("ex:a", "alpha"),
        ])
        assert len(ids) == 3
        assert ids[0] == ids[2]
        assert ids[0] != ids[1]
        assert pipeline.statements.count() == 2

    def test_batch_is_all_or_nothing(self, pipeline):
        with pytest.raises(RuntimeError):
            pipeline.insert_statements_with_chunks([
                literal("ex:a", "alpha"),
                literal("ex:b", "boom"),
            ])
        assert pipeline.statements.count() == 0
        assert pipeline.chunks.count() == 0

    def test_empty_batch(self, pipeline):
        assert pipeline.insert_statements_with_chunks([]) == []

    def test_joins_outer_transaction(self, pipeline):
        db = pipeline._db
        with pytest.raises(KeyError):
            with db.transaction():
                pipeline.insert_statement_with_chunks(literal("ex:a", "alpha"))
                raise KeyError("outer failure")
        assert pipeline.statements.count() == 0
