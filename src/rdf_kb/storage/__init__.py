"""
rdf-kb storage layer.

DuckDB-backed stores for statements, chunks and documents.
"""

from rdf_kb.storage.database import Database, SQLQueryResult, run_query
from rdf_kb.storage.schema import create_schema, SCHEMA_VERSION
from rdf_kb.storage.statements import StatementStore
from rdf_kb.storage.chunks import (
    ChunkStore,
    derive_chunk_texts,
    humanize_term,
    object_text,
    word_windows,
)
from rdf_kb.storage.documents import DocumentStore

__all__ = [
    "Database",
    "SQLQueryResult",
    "run_query",
    "create_schema",
    "SCHEMA_VERSION",
    "StatementStore",
    "ChunkStore",
    "derive_chunk_texts",
    "humanize_term",
    "object_text",
    "word_windows",
    "DocumentStore",
]
