"""
Ingestion pipeline: statement plus derived chunks as one atomic unit.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from rdf_kb.models import Statement
from rdf_kb.storage.chunks import ChunkStore
from rdf_kb.storage.database import Database
from rdf_kb.storage.statements import StatementStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """
    Writes statements together with their chunks.

    Either the statement and all of its chunks commit, or nothing does.
    Re-ingesting an existing statement returns its id without adding
    chunks a second time.
    """

    def __init__(self, db: Database, statements: StatementStore, chunks: ChunkStore):
        self._db = db
        self.statements = statements
        self.chunks = chunks

    def _ingest(self, stmt: Statement) -> int:
        statement_id, created = self.statements.insert_if_absent(stmt)
        if created:
            self.chunks.insert_chunks_for_statement(statement_id, stmt)
        else:
            logger.debug(f"Statement {statement_id} already present; chunks unchanged")
        return statement_id

    def insert_statement_with_chunks(self, stmt: Statement) -> int:
        """
        Insert a statement and its chunks in one transaction.

        Returns:
            The id of the inserted (or already existing) statement
        """
        with self._db.transaction():
            return self._ingest(stmt)

    def insert_statements_with_chunks(self, stmts: Iterable[Statement]) -> List[int]:
        """Batch form of ``insert_statement_with_chunks``, all in one transaction."""
        with self._db.transaction():
            ids = [self._ingest(stmt) for stmt in stmts]
        logger.info(f"Ingested {len(ids)} statements")
        return ids
