"""
Exception taxonomy for rdf-kb.

Duplicate statements are deliberately absent: inserting an existing
(subject, predicate, object, context) returns the existing id.
"""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for all knowledge-base errors."""
    pass


class ReferentialError(KnowledgeBaseError):
    """Raised when a chunk references a statement (or document) that does not exist."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} does not exist")


class DimensionMismatchError(KnowledgeBaseError, ValueError):
    """Raised when a vector's dimension differs from the index dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: index expects {expected}, got {actual}"
        )


class EmbeddingUnavailable(KnowledgeBaseError):
    """Raised when the embedding model cannot produce a vector."""
    pass


class CascadeDeleteError(KnowledgeBaseError):
    """Raised when a delete cannot remove all dependent chunks atomically."""
    pass


class SchemaDriftError(KnowledgeBaseError):
    """Raised when a storage row does not match the expected record shape."""
    pass


class InvalidQueryError(KnowledgeBaseError, ValueError):
    """Raised for malformed search input (no query text and no query vector)."""
    pass


class HybridSearchError(KnowledgeBaseError):
    """Raised when both the lexical and the vector sub-search fail."""
    pass


class SearchTimeoutError(KnowledgeBaseError):
    """Raised when a hybrid search exceeds its deadline."""
    pass


class ConfigValidationError(KnowledgeBaseError, ValueError):
    """Raised when configuration validation fails."""
    pass
