from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any

from ..core.models import Memory
from ._schema import CHILD_TABLES
from .serialization import deserialize_timestamp, dump_metadata, load_metadata, serialize_timestamp

MEMORY_COLUMNS = "id, content, conversation_id, created_at, metadata"


def memory_row_params(memory: Memory) -> tuple[str, str, str, str, str]:
    return (
        memory.id,
        memory.content,
        memory.conversation_id,
        serialize_timestamp(memory.created_at),
        dump_metadata(memory.metadata),
    )


def child_rows(memory: Memory, field: str) -> list[tuple[str, str]]:
    return [(memory.id, value) for value in getattr(memory, field)]


def insert_children(
    conn: sqlite3.Connection,
    memory: Memory,
    fields: Iterable[str] | None = None,
) -> None:
    selected = set(fields) if fields is not None else None
    for table, column, field in CHILD_TABLES:
        if selected is not None and field not in selected:
            continue
        rows = child_rows(memory, field)
        if rows:
            conn.executemany(
                f"INSERT INTO {table} (memory_id, {column}) VALUES (?, ?)",
                rows,
            )


def delete_children(conn: sqlite3.Connection, memory_id: str, fields: Iterable[str]) -> None:
    selected = set(fields)
    for table, _column, field in CHILD_TABLES:
        if field in selected:
            conn.execute(f"DELETE FROM {table} WHERE memory_id = ?", (memory_id,))


def load_children(
    conn: sqlite3.Connection,
    memory_ids: list[str],
) -> dict[str, dict[str, list[str]]]:
    """Fetch tags, keywords and relationships for a set of memories.

    Values come back in insertion order per memory.
    """
    children: dict[str, dict[str, list[str]]] = {
        memory_id: {field: [] for _, _, field in CHILD_TABLES} for memory_id in memory_ids
    }
    if not memory_ids:
        return children
    placeholders = ", ".join("?" for _ in memory_ids)
    for table, column, field in CHILD_TABLES:
        rows = conn.execute(
            f"SELECT memory_id, {column} AS value FROM {table} "
            f"WHERE memory_id IN ({placeholders}) ORDER BY rowid",
            memory_ids,
        ).fetchall()
        for row in rows:
            children[row["memory_id"]][field].append(row["value"])
    return children


def memory_from_row(row: Mapping[str, Any] | sqlite3.Row, children: dict[str, list[str]]) -> Memory:
    return Memory(
        id=row["id"],
        content=row["content"],
        conversation_id=row["conversation_id"],
        created_at=deserialize_timestamp(row["created_at"]),
        metadata=load_metadata(row["metadata"]),
        tags=children.get("tags", []),
        keywords=children.get("keywords", []),
        related_to=children.get("related_to", []),
    )


def hydrate_memories(conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Memory]:
    """Rebuild full Memory aggregates from parent rows, preserving row order."""
    children = load_children(conn, [row["id"] for row in rows])
    return [memory_from_row(row, children[row["id"]]) for row in rows]
