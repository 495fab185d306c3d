"""
DuckDB schema for the knowledge base.

Tables:
- kb_statements: one row per fact, unique on (subject, predicate, object, context)
- kb_chunks: derived text + embedding per statement
- kb_documents / kb_document_chunks: the generic document deployment
- kb_meta: key/value settings fixed at creation time (embedding dimension)

DuckDB cannot cascade foreign keys, and deleting a parent and its children
in one transaction trips its eager constraint checks. Parent/child linkage
is therefore enforced by the stores: chunk inserts are conditional on the
parent existing, and deletes remove children and parent in one transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from rdf_kb.errors import DimensionMismatchError, SchemaDriftError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"


def _schema_statements(dimension: int) -> list[str]:
    return [
        "CREATE SEQUENCE IF NOT EXISTS kb_statements_id_seq START 1",
        """
        CREATE TABLE IF NOT EXISTS kb_statements (
            id BIGINT PRIMARY KEY DEFAULT nextval('kb_statements_id_seq'),
            subject VARCHAR NOT NULL,
            predicate VARCHAR NOT NULL,
            object VARCHAR NOT NULL,
            context VARCHAR NOT NULL,
            term_type VARCHAR NOT NULL DEFAULT 'NamedNode',
            object_language VARCHAR NOT NULL DEFAULT '',
            object_datatype VARCHAR NOT NULL DEFAULT '',
            UNIQUE (subject, predicate, object, context)
        )
        """,
        "CREATE SEQUENCE IF NOT EXISTS kb_chunks_id_seq START 1",
        f"""
        CREATE TABLE IF NOT EXISTS kb_chunks (
            chunk_id BIGINT PRIMARY KEY DEFAULT nextval('kb_chunks_id_seq'),
            statement_id BIGINT NOT NULL,
            content VARCHAR NOT NULL,
            embedding FLOAT[{dimension}]
        )
        """,
        "CREATE SEQUENCE IF NOT EXISTS kb_documents_id_seq START 1",
        """
        CREATE TABLE IF NOT EXISTS kb_documents (
            id BIGINT PRIMARY KEY DEFAULT nextval('kb_documents_id_seq'),
            content VARCHAR NOT NULL
        )
        """,
        "CREATE SEQUENCE IF NOT EXISTS kb_document_chunks_id_seq START 1",
        f"""
        CREATE TABLE IF NOT EXISTS kb_document_chunks (
            chunk_id BIGINT PRIMARY KEY DEFAULT nextval('kb_document_chunks_id_seq'),
            document_id BIGINT NOT NULL,
            content VARCHAR NOT NULL,
            embedding FLOAT[{dimension}]
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS kb_meta (
            key VARCHAR PRIMARY KEY,
            value VARCHAR NOT NULL
        )
        """,
    ]


def create_schema(conn: Any, dimension: int) -> None:
    """
    Create all tables if missing and pin the embedding dimension.

    Args:
        conn: DuckDB connection
        dimension: Embedding dimension for the vector columns

    Raises:
        DimensionMismatchError: If an existing database was created with another dimension
    """
    for ddl in _schema_statements(dimension):
        conn.execute(ddl)

    rows = conn.execute(
        "SELECT key, value FROM kb_meta WHERE key IN ('dimension', 'schema_version')"
    ).fetchall()
    meta = dict(rows)
    if "dimension" not in meta:
        conn.execute(
            "INSERT INTO kb_meta VALUES ('dimension', ?), ('schema_version', ?)",
            [str(dimension), SCHEMA_VERSION],
        )
        logger.debug(f"Created knowledge-base schema (dimension={dimension})")
        return

    stored = int(meta["dimension"])
    if stored != dimension:
        raise DimensionMismatchError(stored, dimension)
    if meta.get("schema_version") != SCHEMA_VERSION:
        raise SchemaDriftError(
            f"Database schema version {meta.get('schema_version')!r} "
            f"does not match {SCHEMA_VERSION!r}"
        )


def read_dimension(conn: Any) -> int:
    """Embedding dimension recorded for an existing database."""
    row = conn.execute("SELECT value FROM kb_meta WHERE key = 'dimension'").fetchone()
    if row is None:
        raise SchemaDriftError("Database has no recorded embedding dimension")
    return int(row[0])
