"""
Tests for record types and row decoding.
"""

import pytest

from rdf_kb.errors import SchemaDriftError
from rdf_kb.models import (
    RDF_TYPE,
    Chunk,
    Document,
    DocumentSearchResult,
    SearchResult,
    Statement,
    TermType,
)


def statement_row(**overrides):
    row = {
        "id": 1,
        "subject": "ex:alice",
        "predicate": "ex:knows",
        "object": "ex:bob",
        "context": "default",
        "term_type": "NamedNode",
        "object_language": "",
        "object_datatype": "",
    }
    row.update(overrides)
    return row


class TestStatement:
    """Test Statement normalization and conversion."""

    def test_normalized_defaults(self):
        stmt = Statement("ex:s", "ex:p", "ex:o").normalized()
        assert stmt.term_type == TermType.NAMED_NODE
        assert stmt.object_language == ""
        assert stmt.object_datatype == ""
        assert stmt.context == ""

    def test_type_alias_rewritten(self):
        stmt = Statement("ex:alice", "a", "ex:Person").normalized()
        assert stmt.predicate == RDF_TYPE

    def test_other_predicates_untouched(self):
        stmt = Statement("ex:alice", "ex:a", "ex:Person").normalized()
        assert stmt.predicate == "ex:a"

    def test_normalized_returns_copy(self):
        original = Statement("ex:alice", "a", "ex:Person")
        original.normalized()
        assert original.predicate == "a"
        assert original.term_type is None

    def test_term_type_coerced_from_string(self):
        stmt = Statement("ex:s", "ex:p", "hello", term_type="Literal")
        assert stmt.term_type is TermType.LITERAL

    def test_unknown_term_type_rejected(self):
        with pytest.raises(ValueError):
            Statement("ex:s", "ex:p", "hello", term_type="Number")

    def test_from_dict_aliases(self):
        stmt = Statement.from_dict({
            "subject": "ex:s",
            "predicate": "ex:p",
            "object": "bonjour",
            "term_type": "Literal",
            "language": "fr",
        })
        assert stmt.object_language == "fr"
        assert stmt.context == ""

    def test_to_dict(self):
        data = Statement("ex:s", "ex:p", "ex:o", "g", TermType.NAMED_NODE, id=7).to_dict()
        assert data["id"] == 7
        assert data["term_type"] == "NamedNode"
        assert data["context"] == "g"


class TestRowDecoding:
    """Test strict decoding of storage rows."""

    def test_statement_from_row(self):
        stmt = Statement.from_row(statement_row())
        assert stmt.id == 1
        assert stmt.term_type is TermType.NAMED_NODE
        assert stmt.key == ("ex:alice", "ex:knows", "ex:bob", "default")

    def test_missing_field(self):
        row = statement_row()
        del row["context"]
        with pytest.raises(SchemaDriftError, match="context"):
            Statement.from_row(row)

    def test_wrong_type(self):
        with pytest.raises(SchemaDriftError, match="subject"):
            Statement.from_row(statement_row(subject=42))

    def test_bool_is_not_an_id(self):
        with pytest.raises(SchemaDriftError):
            Statement.from_row(statement_row(id=True))

    def test_unknown_term_type(self):
        with pytest.raises(SchemaDriftError, match="term_type"):
            Statement.from_row(statement_row(term_type="Number"))

    def test_chunk_from_row(self):
        chunk = Chunk.from_row({
            "chunk_id": 3,
            "statement_id": 1,
            "content": "hello",
            "embedding": (1.0, 0.0),
        })
        assert chunk.embedding == [1.0, 0.0]

    def test_chunk_null_embedding(self):
        chunk = Chunk.from_row({
            "chunk_id": 3, "statement_id": 1, "content": "hello", "embedding": None,
        })
        assert chunk.embedding is None

    def test_chunk_bad_embedding(self):
        with pytest.raises(SchemaDriftError):
            Chunk.from_row({
                "chunk_id": 3, "statement_id": 1, "content": "hello", "embedding": "x",
            })

    def test_document_from_row(self):
        assert Document.from_row({"id": 2, "content": "text"}) == Document(2, "text")


class TestSearchResults:
    """Test result records."""

    def test_search_result_from_statement(self):
        stmt = Statement.from_row(statement_row())
        result = SearchResult.from_statement(stmt, 0.5)
        assert result.subject == "ex:alice"
        assert result.id == 1
        assert result.score == 0.5
        assert result.to_dict()["score"] == 0.5

    def test_document_search_result(self):
        result = DocumentSearchResult.from_document(Document(4, "text"), 0.25)
        assert result.to_dict() == {"id": 4, "content": "text", "score": 0.25}
