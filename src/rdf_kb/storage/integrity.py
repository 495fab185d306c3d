"""
Parent/child integrity rules shared by the statement and document stores.

Both rules run inside the caller's transaction, so a reader on another
cursor sees either the complete before-state or the complete after-state.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import duckdb

from rdf_kb.errors import CascadeDeleteError, ReferentialError

logger = logging.getLogger(__name__)


def insert_child(
    conn: duckdb.DuckDBPyConnection,
    child_table: str,
    parent_table: str,
    parent_key: str,
    foreign_key: str,
    parent_id: int,
    columns: Sequence[str],
    values: Sequence[Any],
    casts: Optional[Sequence[str]] = None,
    parent_label: str = "Statement",
) -> int:
    """
    Insert a child row only if its parent exists.

    The existence check and the insert are a single INSERT ... SELECT, so a
    concurrent delete cannot slip in between them.

    Returns:
        The new child's chunk_id

    Raises:
        ReferentialError: If the parent row does not exist
    """
    casts = casts or [""] * len(columns)
    placeholders = ", ".join(f"?{cast}" for cast in casts)
    column_list = ", ".join([foreign_key, *columns])
    sql = f"""
        INSERT INTO {child_table} ({column_list})
        SELECT ?::BIGINT, {placeholders}
        WHERE EXISTS (SELECT 1 FROM {parent_table} WHERE {parent_key} = ?::BIGINT)
        RETURNING chunk_id
    """
    row = conn.execute(sql, [parent_id, *values, parent_id]).fetchone()
    if row is None:
        raise ReferentialError(parent_label, parent_id)
    return int(row[0])


def cascade_delete(
    conn: duckdb.DuckDBPyConnection,
    parent_table: str,
    parent_key: str,
    child_table: str,
    foreign_key: str,
    parent_id: int,
) -> int:
    """
    Delete a parent row together with all of its children.

    Must run inside a transaction. The deletes are atomic within it, so
    concurrent readers see all of the family or none of it. The closing
    re-count is an assertion on the write connection: it only fires if a
    child row escaped the DELETE, and
    then the enclosing transaction rolls the whole delete back.

    Returns:
        Number of parent rows deleted (0 or 1)

    Raises:
        CascadeDeleteError: If the post-delete re-count still finds children
    """
    exists = conn.execute(
        f"SELECT count(*) FROM {parent_table} WHERE {parent_key} = ?", [parent_id]
    ).fetchone()[0]
    if not exists:
        return 0

    conn.execute(f"DELETE FROM {child_table} WHERE {foreign_key} = ?", [parent_id])
    conn.execute(f"DELETE FROM {parent_table} WHERE {parent_key} = ?", [parent_id])

    remaining = conn.execute(
        f"SELECT count(*) FROM {child_table} WHERE {foreign_key} = ?", [parent_id]
    ).fetchone()[0]
    if remaining:
        raise CascadeDeleteError(
            f"{remaining} rows in {child_table} still reference "
            f"{parent_table}.{parent_key}={parent_id}"
        )
    logger.debug(f"Deleted {parent_table} {parent_id} with dependent {child_table} rows")
    return 1
