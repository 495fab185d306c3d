"""
Record types for the knowledge base.

Statements, chunks and search results are plain dataclasses. Rows coming
out of DuckDB are decoded through an explicit field mapping so that a
schema change surfaces as a SchemaDriftError instead of a silently
misread column.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from rdf_kb.errors import SchemaDriftError


RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"

# Turtle-style shorthand accepted for rdf:type
TYPE_ALIAS = "a"


class TermType(str, Enum):
    """RDF term classification of a statement's object."""
    NAMED_NODE = "NamedNode"
    BLANK_NODE = "BlankNode"
    LITERAL = "Literal"
    QUAD = "Quad"


# =============================================================================
# Row decoding
# =============================================================================

def _field(row: Mapping[str, Any], name: str, expected: type | tuple[type, ...], record: str) -> Any:
    if name not in row:
        raise SchemaDriftError(f"{record} row is missing field '{name}'")
    value = row[name]
    if not isinstance(value, expected) or isinstance(value, bool):
        raise SchemaDriftError(
            f"{record} field '{name}' has type {type(value).__name__}, "
            f"expected {expected}"
        )
    return value


def _embedding_field(row: Mapping[str, Any], record: str) -> Optional[list[float]]:
    if "embedding" not in row:
        return None
    value = row["embedding"]
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise SchemaDriftError(
            f"{record} field 'embedding' has type {type(value).__name__}, expected list"
        )
    return [float(v) for v in value]


# =============================================================================
# Statements
# =============================================================================

@dataclass
class Statement:
    """
    A subject-predicate-object-context fact.

    Attributes:
        subject: Subject IRI or blank node label
        predicate: Predicate IRI (``"a"`` is rewritten to rdf:type on insert)
        object: Object IRI or literal value
        context: Named-graph style grouping
        term_type: Classification of the object
        object_language: Language tag, meaningful for literals only
        object_datatype: Datatype IRI, meaningful for literals only
        id: Surrogate key, assigned by the store
    """
    subject: str
    predicate: str
    object: str
    context: str = ""
    term_type: Optional[TermType] = None
    object_language: Optional[str] = None
    object_datatype: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.term_type is not None and not isinstance(self.term_type, TermType):
            self.term_type = TermType(self.term_type)

    @property
    def key(self) -> tuple[str, str, str, str]:
        """The uniqueness key of the statement."""
        return (self.subject, self.predicate, self.object, self.context)

    def normalized(self) -> "Statement":
        """Return a copy with insert-time defaults applied and the type alias rewritten."""
        predicate = RDF_TYPE if self.predicate == TYPE_ALIAS else self.predicate
        return replace(
            self,
            predicate=predicate,
            term_type=self.term_type or TermType.NAMED_NODE,
            object_language=self.object_language or "",
            object_datatype=self.object_datatype or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "predicate": self.predicate,
            "object": self.object,
            "context": self.context,
            "term_type": self.term_type.value if self.term_type else None,
            "object_language": self.object_language,
            "object_datatype": self.object_datatype,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Statement":
        """Build a statement from user input (e.g. JSON); unknown keys are ignored."""
        return cls(
            subject=data["subject"],
            predicate=data["predicate"],
            object=data["object"],
            context=data.get("context", ""),
            term_type=data.get("term_type"),
            object_language=data.get("object_language", data.get("language")),
            object_datatype=data.get("object_datatype", data.get("datatype")),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Statement":
        """Decode a ``kb_statements`` row."""
        term_type = _field(row, "term_type", str, "Statement")
        try:
            decoded_type = TermType(term_type)
        except ValueError:
            raise SchemaDriftError(f"Statement has unknown term_type '{term_type}'")
        return cls(
            id=_field(row, "id", int, "Statement"),
            subject=_field(row, "subject", str, "Statement"),
            predicate=_field(row, "predicate", str, "Statement"),
            object=_field(row, "object", str, "Statement"),
            context=_field(row, "context", str, "Statement"),
            term_type=decoded_type,
            object_language=_field(row, "object_language", str, "Statement"),
            object_datatype=_field(row, "object_datatype", str, "Statement"),
        )


@dataclass
class Chunk:
    """A text fragment derived from a statement, with its embedding (if any)."""
    chunk_id: int
    statement_id: int
    content: str
    embedding: Optional[list[float]] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Chunk":
        return cls(
            chunk_id=_field(row, "chunk_id", int, "Chunk"),
            statement_id=_field(row, "statement_id", int, "Chunk"),
            content=_field(row, "content", str, "Chunk"),
            embedding=_embedding_field(row, "Chunk"),
        )


@dataclass
class SearchResult(Statement):
    """A statement with its fused relevance score. Never persisted."""
    score: float = 0.0

    @classmethod
    def from_statement(cls, statement: Statement, score: float) -> "SearchResult":
        return cls(
            id=statement.id,
            subject=statement.subject,
            predicate=statement.predicate,
            object=statement.object,
            context=statement.context,
            term_type=statement.term_type,
            object_language=statement.object_language,
            object_datatype=statement.object_datatype,
            score=score,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["score"] = self.score
        return data


# =============================================================================
# Documents (alternate deployment over a generic entity type)
# =============================================================================

@dataclass
class Document:
    """A free-text document."""
    id: int
    content: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Document":
        return cls(
            id=_field(row, "id", int, "Document"),
            content=_field(row, "content", str, "Document"),
        )


@dataclass
class DocumentChunk:
    """A text fragment of a document, with its embedding (if any)."""
    chunk_id: int
    document_id: int
    content: str
    embedding: Optional[list[float]] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DocumentChunk":
        return cls(
            chunk_id=_field(row, "chunk_id", int, "DocumentChunk"),
            document_id=_field(row, "document_id", int, "DocumentChunk"),
            content=_field(row, "content", str, "DocumentChunk"),
            embedding=_embedding_field(row, "DocumentChunk"),
        )


@dataclass
class DocumentSearchResult:
    """A document with its fused relevance score."""
    id: int
    content: str
    score: float

    @classmethod
    def from_document(cls, document: Document, score: float) -> "DocumentSearchResult":
        return cls(id=document.id, content=document.content, score=score)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "score": self.score}
