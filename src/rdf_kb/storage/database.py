"""
DuckDB connection management for the knowledge base.

Provides:
- One write connection, serialized by a re-entrant lock
- Reentrant transactions (the outermost block owns BEGIN/COMMIT/ROLLBACK)
- Per-reader cursors so concurrent searches never share a connection
- Query results with column names, convertible to Polars

Readers on their own cursor see DuckDB's MVCC snapshot: a transaction in
flight on the write connection is invisible to them until it commits.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence, Union

import duckdb
import polars as pl

from rdf_kb.storage.schema import create_schema, read_dimension

logger = logging.getLogger(__name__)

Params = Optional[Union[Sequence[Any], Dict[str, Any]]]


@dataclass
class SQLQueryResult:
    """Result of a SQL query execution."""
    columns: List[str]
    rows: List[tuple]
    execution_time_ms: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_polars(self) -> pl.DataFrame:
        """Convert result to a Polars DataFrame."""
        if not self.rows:
            return pl.DataFrame({col: [] for col in self.columns})
        return pl.DataFrame(self.rows, schema=self.columns, orient="row")


def run_query(conn: duckdb.DuckDBPyConnection, sql: str, params: Params = None) -> SQLQueryResult:
    """Execute SQL on a specific connection or cursor and fetch everything."""
    start = time.perf_counter()
    result = conn.execute(sql, params) if params is not None else conn.execute(sql)
    columns = [desc[0] for desc in result.description] if result.description else []
    rows = result.fetchall() if result.description else []
    elapsed = (time.perf_counter() - start) * 1000
    return SQLQueryResult(
        columns=columns,
        rows=rows,
        execution_time_ms=round(elapsed, 3),
    )


class Database:
    """
    Owner of the DuckDB database backing a knowledge base.

    Example:
        with Database(":memory:", dimension=512) as db:
            with db.transaction() as conn:
                conn.execute("INSERT INTO kb_documents (content) VALUES (?)", ["hello"])
            with db.reader() as cur:
                result = run_query(cur, "SELECT count(*) FROM kb_documents")
    """

    def __init__(
        self,
        path: Union[str, Path] = ":memory:",
        dimension: int = 512,
        read_only: bool = False,
    ):
        """
        Initialize the database handle. The connection opens lazily.

        Args:
            path: Database file, or ":memory:"
            dimension: Embedding dimension for vector columns
            read_only: Open an existing database file without write access
        """
        self.path = str(path)
        self.dimension = dimension
        self.read_only = read_only
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._txn_depth = 0
        self._txn_owner: Optional[int] = None

    def _ensure_connection(self) -> duckdb.DuckDBPyConnection:
        with self._lock:
            if self._conn is None:
                if self.path != ":memory:":
                    Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = duckdb.connect(self.path, read_only=self.read_only)
                try:
                    if self.read_only:
                        self.dimension = read_dimension(conn)
                    else:
                        create_schema(conn, self.dimension)
                except Exception:
                    conn.close()
                    raise
                self._conn = conn
                logger.info(f"Opened knowledge base at {self.path}")
            return self._conn

    def connect(self) -> "Database":
        """Open the connection now instead of on first use."""
        self._ensure_connection()
        return self

    @property
    def in_transaction(self) -> bool:
        """True when the calling thread has a transaction open."""
        return self._txn_depth > 0 and self._txn_owner == threading.get_ident()

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Run a block atomically on the write connection.

        Nested blocks join the outer transaction; only the outermost block
        commits, and an exception escaping any level rolls everything back.
        """
        with self._lock:
            conn = self._ensure_connection()
            outermost = self._txn_depth == 0
            if outermost:
                conn.begin()
                self._txn_owner = threading.get_ident()
            self._txn_depth += 1
            try:
                yield conn
            except BaseException:
                self._txn_depth -= 1
                if outermost:
                    self._txn_owner = None
                    conn.rollback()
                    logger.debug("Transaction rolled back")
                raise
            else:
                self._txn_depth -= 1
                if outermost:
                    self._txn_owner = None
                    conn.commit()

    @contextmanager
    def reader(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Yield a connection for reads.

        Inside the caller's own transaction this is the write connection, so
        uncommitted rows are visible; otherwise a fresh cursor is used.
        """
        if self.in_transaction:
            yield self._conn
            return
        cursor = self.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def cursor(self) -> duckdb.DuckDBPyConnection:
        """A new cursor on the same database, owned by the caller."""
        with self._lock:
            return self._ensure_connection().cursor()

    def execute(self, sql: str, params: Params = None) -> SQLQueryResult:
        """Execute SQL on the write connection (autocommit unless in a transaction)."""
        with self._lock:
            return run_query(self._ensure_connection(), sql, params)

    def query(self, sql: str, params: Params = None) -> SQLQueryResult:
        """Execute read-only SQL on a reader connection."""
        with self.reader() as conn:
            return run_query(conn, sql, params)

    def close(self) -> None:
        """Close the DuckDB connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug(f"Closed knowledge base at {self.path}")

    def __enter__(self) -> "Database":
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
