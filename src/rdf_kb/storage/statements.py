"""
Statement Store.

Persists subject/predicate/object/context statements with term-type and
literal metadata. Inserts are idempotent on the quad key; deletes cascade
to the statement's chunks.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import polars as pl

from rdf_kb.models import Statement
from rdf_kb.storage.database import Database, SQLQueryResult, run_query
from rdf_kb.storage.integrity import cascade_delete

logger = logging.getLogger(__name__)

STATEMENT_COLUMNS = (
    "id",
    "subject",
    "predicate",
    "object",
    "context",
    "term_type",
    "object_language",
    "object_datatype",
)

_SELECT_STATEMENTS = f"SELECT {', '.join(STATEMENT_COLUMNS)} FROM kb_statements"

# Fields a select pattern may constrain
PATTERN_FIELDS = ("subject", "predicate", "object", "context")


class StatementStore:
    """
    Store for statements in ``kb_statements``.

    Example:
        store = StatementStore(db)
        sid = store.insert(Statement("ex:alice", "a", "ex:Person", "default"))
        store.select(subject="ex:alice")
    """

    def __init__(self, db: Database):
        self._db = db

    def insert_if_absent(self, stmt: Statement) -> Tuple[int, bool]:
        """
        Insert a statement unless its quad key already exists.

        Returns:
            (statement id, True if a new row was created)
        """
        stmt = stmt.normalized()
        with self._db.transaction() as conn:
            row = conn.execute(
                """
                SELECT id FROM kb_statements
                WHERE subject = ? AND predicate = ? AND object = ? AND context = ?
                """,
                list(stmt.key),
            ).fetchone()
            if row is not None:
                return int(row[0]), False

            row = conn.execute(
                """
                INSERT INTO kb_statements
                    (subject, predicate, object, context,
                     term_type, object_language, object_datatype)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                [
                    stmt.subject,
                    stmt.predicate,
                    stmt.object,
                    stmt.context,
                    stmt.term_type.value,
                    stmt.object_language,
                    stmt.object_datatype,
                ],
            ).fetchone()
        statement_id = int(row[0])
        logger.debug(f"Inserted statement {statement_id}: {stmt.subject} {stmt.predicate}")
        return statement_id, True

    def insert(self, stmt: Statement) -> int:
        """Insert a statement (or find the existing one) and return its id."""
        statement_id, _ = self.insert_if_absent(stmt)
        return statement_id

    def _pattern_sql(
        self,
        subject: Optional[str],
        predicate: Optional[str],
        object: Optional[str],
        context: Optional[str],
    ) -> Tuple[str, list]:
        values = {"subject": subject, "predicate": predicate, "object": object, "context": context}
        conditions = []
        args = []
        for name in PATTERN_FIELDS:
            if values[name] is not None:
                conditions.append(f"{name} = ?")
                args.append(values[name])

        sql = _SELECT_STATEMENTS
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY id"
        return sql, args

    def _select_result(self, **pattern: Optional[str]) -> SQLQueryResult:
        sql, args = self._pattern_sql(**pattern)
        with self._db.reader() as conn:
            return run_query(conn, sql, args)

    def select(
        self,
        subject: Optional[str] = None,
        predicate: Optional[str] = None,
        object: Optional[str] = None,
        context: Optional[str] = None,
    ) -> List[Statement]:
        """
        Find statements matching every supplied field exactly.

        A field left as None is unconstrained; with no fields, every
        statement is returned. Results are in insertion (id) order.
        """
        result = self._select_result(
            subject=subject, predicate=predicate, object=object, context=context
        )
        return [Statement.from_row(row) for row in result.to_dicts()]

    def to_polars(
        self,
        subject: Optional[str] = None,
        predicate: Optional[str] = None,
        object: Optional[str] = None,
        context: Optional[str] = None,
    ) -> pl.DataFrame:
        """Same selection as ``select`` as a Polars DataFrame."""
        result = self._select_result(
            subject=subject, predicate=predicate, object=object, context=context
        )
        if not result.rows:
            return pl.DataFrame(
                {col: pl.Series([], dtype=pl.Int64 if col == "id" else pl.Utf8)
                 for col in STATEMENT_COLUMNS}
            )
        return result.to_polars()

    def get(self, statement_id: int) -> Optional[Statement]:
        return self.get_many([statement_id]).get(statement_id)

    def get_many(self, statement_ids: Iterable[int]) -> Dict[int, Statement]:
        """
        Fetch statements by id in one query.

        Ids that do not exist are absent from the result.
        """
        ids = [int(i) for i in statement_ids]
        if not ids:
            return {}
        with self._db.reader() as conn:
            result = run_query(
                conn,
                f"{_SELECT_STATEMENTS} WHERE list_contains(?::BIGINT[], id)",
                [ids],
            )
        statements = [Statement.from_row(row) for row in result.to_dicts()]
        return {s.id: s for s in statements}

    def delete(self, statement_id: int) -> bool:
        """
        Delete a statement and all of its chunks atomically.

        Returns:
            True if the statement existed

        Raises:
            CascadeDeleteError: If the post-delete re-count still finds chunks (nothing is deleted)
        """
        with self._db.transaction() as conn:
            deleted = cascade_delete(
                conn,
                parent_table="kb_statements",
                parent_key="id",
                child_table="kb_chunks",
                foreign_key="statement_id",
                parent_id=statement_id,
            )
        return bool(deleted)

    def count(self) -> int:
        with self._db.reader() as conn:
            return int(conn.execute("SELECT count(*) FROM kb_statements").fetchone()[0])
