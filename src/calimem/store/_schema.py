from __future__ import annotations

import sqlite3

SQLITE_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        conversation_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        metadata TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_tags (
        memory_id TEXT NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (memory_id, tag),
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_keywords (
        memory_id TEXT NOT NULL,
        keyword TEXT NOT NULL,
        PRIMARY KEY (memory_id, keyword),
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_relationships (
        memory_id TEXT NOT NULL,
        related_memory_id TEXT NOT NULL,
        PRIMARY KEY (memory_id, related_memory_id),
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE,
        FOREIGN KEY (related_memory_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_conversation_id ON memories (conversation_id)",
    "CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_memory_tags_tag ON memory_tags (tag)",
    "CREATE INDEX IF NOT EXISTS idx_memory_keywords_keyword ON memory_keywords (keyword)",
)

# Child tables and the column each one stores per memory.
CHILD_TABLES = (
    ("memory_tags", "tag", "tags"),
    ("memory_keywords", "keyword", "keywords"),
    ("memory_relationships", "related_memory_id", "related_to"),
)


def create_sqlite_schema(conn: sqlite3.Connection) -> None:
    for statement in SQLITE_SCHEMA_STATEMENTS:
        conn.execute(statement)
    conn.commit()
