from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.models import Memory, MemoryUpdate, utc_now
from ..core.scoring import RelevanceRanker
from ..errors import ConfigurationError, StoreError, ValidationError
from ._records import (
    MEMORY_COLUMNS,
    delete_children,
    hydrate_memories,
    insert_children,
    memory_row_params,
)
from ._schema import create_sqlite_schema
from .base import BaseMemoryStore
from .logging import elapsed_ms, store_log_context
from .serialization import dump_metadata, serialize_timestamp

logger = logging.getLogger(__name__)

_CHILD_FIELDS = ("tags", "keywords", "related_to")


@dataclass(frozen=True)
class MemoryStoreConfig:
    """Settings for SQLiteMemoryStore.

    `relevance_threshold` is accepted for configuration compatibility and is
    not applied to search results.
    """

    db_path: str = "data/memory.db"
    max_memories_per_conversation: int = 500
    relevance_threshold: float = 0.7
    default_memory_retention_ms: int = 2_592_000_000
    prune_interval_ms: int = 86_400_000

    def __post_init__(self) -> None:
        if not self.db_path:
            raise ConfigurationError("db_path must not be empty")
        if self.max_memories_per_conversation <= 0:
            raise ConfigurationError("max_memories_per_conversation must be positive")
        if self.default_memory_retention_ms <= 0:
            raise ConfigurationError("default_memory_retention_ms must be positive")


class SQLiteMemoryStore(BaseMemoryStore):
    """Long-term memory store backed by a single SQLite file.

    Every operation runs under one asyncio lock, so a multi-statement write is
    never interleaved with another caller's reads or writes. The connection is
    opened lazily on first use.
    """

    store_type = "sqlite"

    def __init__(
        self,
        config: MemoryStoreConfig | None = None,
        *,
        ranker: RelevanceRanker | None = None,
    ) -> None:
        self.config = config or MemoryStoreConfig()
        self.db_path = Path(self.config.db_path)
        self.ranker = ranker or RelevanceRanker()
        self._conn: sqlite3.Connection | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._lock = asyncio.Lock()
        self._prune_task: asyncio.Task[None] | None = None

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return

            start = time.perf_counter()
            try:
                if str(self.db_path) != ":memory:":
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path))
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute("PRAGMA foreign_keys=ON")
                create_sqlite_schema(conn)
            except (sqlite3.Error, OSError) as e:
                logger.exception(
                    "Failed to open SQLite memory store at %s",
                    self.db_path,
                    extra=store_log_context(
                        self.store_type, "initialize", duration_ms=elapsed_ms(start)
                    ),
                )
                raise StoreError(
                    f"Could not open database at {self.db_path}",
                    self.store_type,
                    original_error=e,
                ) from e

            self._conn = conn
            self._initialized = True
            logger.info(
                "Initialized SQLite memory store at %s",
                self.db_path,
                extra=store_log_context(
                    self.store_type, "initialize", duration_ms=elapsed_ms(start)
                ),
            )

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Store is not initialized", self.store_type)
        return self._conn

    @contextmanager
    def _guard(
        self,
        operation: str,
        *,
        memory_id: str | None = None,
        conversation_id: str | None = None,
    ) -> Iterator[sqlite3.Connection]:
        """Run a unit of work, rolling back and wrapping sqlite failures."""
        conn = self._require_conn()
        start = time.perf_counter()
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception(
                "Store operation %s failed",
                operation,
                extra=store_log_context(
                    self.store_type,
                    operation,
                    memory_id=memory_id,
                    conversation_id=conversation_id,
                    duration_ms=elapsed_ms(start),
                ),
            )
            raise StoreError(
                f"Failed to {operation} memory",
                self.store_type,
                memory_id=memory_id,
                original_error=e,
            ) from e
        else:
            logger.debug(
                "Store operation %s completed",
                operation,
                extra=store_log_context(
                    self.store_type,
                    operation,
                    memory_id=memory_id,
                    conversation_id=conversation_id,
                    duration_ms=elapsed_ms(start),
                ),
            )

    def _clamp(self, count: int) -> int:
        return min(count, self.config.max_memories_per_conversation)

    # --------------------
    # CRUD Operations
    # --------------------

    async def add(self, memory: Memory | Mapping[str, Any]) -> Memory:
        memory = self._coerce_memory(memory)
        await self.initialize()
        async with self._lock:
            with self._guard(
                "add", memory_id=memory.id, conversation_id=memory.conversation_id
            ) as conn:
                conn.execute(
                    f"INSERT INTO memories ({MEMORY_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    memory_row_params(memory),
                )
                insert_children(conn, memory)
                conn.commit()
        logger.info(
            "Stored memory %s",
            memory.id,
            extra=store_log_context(
                self.store_type,
                "add",
                memory_id=memory.id,
                conversation_id=memory.conversation_id,
            ),
        )
        return memory

    def _coerce_memory(self, memory: Memory | Mapping[str, Any]) -> Memory:
        if isinstance(memory, Memory):
            data: dict[str, Any] = memory.model_dump()
        else:
            data = {k: v for k, v in dict(memory).items() if v is not None}
        if not data.get("content"):
            raise ValidationError("Memory content is required")
        if not data.get("conversation_id"):
            raise ValidationError("Memory conversation_id is required")
        try:
            return Memory(**data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid memory: {e}") from e

    def _fetch_one(self, conn: sqlite3.Connection, memory_id: str) -> Memory | None:
        row = conn.execute(
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE id = ?",
            (memory_id,),
        ).fetchone()
        if row is None:
            return None
        return hydrate_memories(conn, [row])[0]

    async def get(self, memory_id: str) -> Memory | None:
        await self.initialize()
        async with self._lock:
            with self._guard("get", memory_id=memory_id) as conn:
                return self._fetch_one(conn, memory_id)

    async def update(
        self,
        memory_id: str,
        updates: MemoryUpdate | Mapping[str, Any],
    ) -> Memory | None:
        if not isinstance(updates, MemoryUpdate):
            try:
                updates = MemoryUpdate(**dict(updates))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid memory update: {e}") from e

        await self.initialize()
        async with self._lock:
            with self._guard("update", memory_id=memory_id) as conn:
                current = self._fetch_one(conn, memory_id)
                if current is None:
                    return None
                updated = updates.apply(current)
                conn.execute(
                    "UPDATE memories SET content = ?, conversation_id = ?, metadata = ? "
                    "WHERE id = ?",
                    (
                        updated.content,
                        updated.conversation_id,
                        dump_metadata(updated.metadata),
                        memory_id,
                    ),
                )
                replaced = [
                    field for field in _CHILD_FIELDS if getattr(updates, field) is not None
                ]
                if replaced:
                    delete_children(conn, memory_id, replaced)
                    insert_children(conn, updated, replaced)
                conn.commit()
        logger.info(
            "Updated memory %s",
            memory_id,
            extra=store_log_context(
                self.store_type,
                "update",
                memory_id=memory_id,
                conversation_id=updated.conversation_id,
            ),
        )
        return updated

    async def delete(self, memory_id: str) -> bool:
        await self.initialize()
        async with self._lock:
            with self._guard("delete", memory_id=memory_id) as conn:
                cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
                conn.commit()
                deleted = cursor.rowcount > 0
        if deleted:
            logger.info(
                "Deleted memory %s",
                memory_id,
                extra=store_log_context(self.store_type, "delete", memory_id=memory_id),
            )
        return deleted

    # --------------------
    # Retrieval Operations
    # --------------------

    async def search(
        self,
        query: str | None = None,
        *,
        conversation_id: str | None = None,
        tags: list[str] | None = None,
        max_count: int = 10,
        now: datetime | None = None,
    ) -> list[Memory]:
        """Filter, limit, then rank.

        The newest `max_count` candidates are selected in SQL before ranking,
        so a strong match outside that window is not returned.
        """
        limit = self._clamp(max_count)
        if limit <= 0:
            return []

        clauses: list[str] = []
        params: list[Any] = []
        if conversation_id:
            clauses.append("m.conversation_id = ?")
            params.append(conversation_id)

        wanted_tags = list(dict.fromkeys(tag for tag in (tags or []) if tag))
        if wanted_tags:
            placeholders = ", ".join("?" for _ in wanted_tags)
            clauses.append(
                "m.id IN (SELECT memory_id FROM memory_tags "
                f"WHERE tag IN ({placeholders}) "
                "GROUP BY memory_id HAVING COUNT(DISTINCT tag) = ?)"
            )
            params.extend(wanted_tags)
            params.append(len(wanted_tags))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = (
            f"SELECT m.id, m.content, m.conversation_id, m.created_at, m.metadata "
            f"FROM memories m {where} ORDER BY m.created_at DESC LIMIT ?"
        )
        params.append(limit)

        await self.initialize()
        async with self._lock:
            with self._guard("search", conversation_id=conversation_id) as conn:
                rows = conn.execute(sql, params).fetchall()
                memories = hydrate_memories(conn, rows)

        if query:
            memories = self.ranker.rank(memories, query, now=now)
        return memories

    async def search_by_keyword(
        self,
        keyword: str,
        conversation_id: str | None = None,
        max_count: int = 50,
    ) -> list[Memory]:
        limit = self._clamp(max_count)
        if not keyword or limit <= 0:
            return []

        sql = (
            "SELECT m.id, m.content, m.conversation_id, m.created_at, m.metadata "
            "FROM memories m JOIN memory_keywords k ON k.memory_id = m.id "
            "WHERE k.keyword = ?"
        )
        params: list[Any] = [keyword]
        if conversation_id:
            sql += " AND m.conversation_id = ?"
            params.append(conversation_id)
        sql += " ORDER BY m.created_at DESC LIMIT ?"
        params.append(limit)

        await self.initialize()
        async with self._lock:
            with self._guard("search_by_keyword", conversation_id=conversation_id) as conn:
                rows = conn.execute(sql, params).fetchall()
                return hydrate_memories(conn, rows)

    async def list_memories(
        self,
        conversation_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Memory]:
        limit = self._clamp(limit)
        if limit <= 0:
            return []

        sql = f"SELECT {MEMORY_COLUMNS} FROM memories"
        params: list[Any] = []
        if conversation_id:
            sql += " WHERE conversation_id = ?"
            params.append(conversation_id)
        sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, max(0, offset)])

        await self.initialize()
        async with self._lock:
            with self._guard("list", conversation_id=conversation_id) as conn:
                rows = conn.execute(sql, params).fetchall()
                return hydrate_memories(conn, rows)

    # --------------------
    # Retention
    # --------------------

    async def prune(
        self,
        conversation_id: str | None = None,
        *,
        retention_ms: int | None = None,
        now: datetime | None = None,
    ) -> int:
        retention = retention_ms if retention_ms is not None else self.config.default_memory_retention_ms
        cutoff = (now or utc_now()) - timedelta(milliseconds=retention)

        sql = "DELETE FROM memories WHERE created_at <= ?"
        params: list[Any] = [serialize_timestamp(cutoff)]
        if conversation_id:
            sql += " AND conversation_id = ?"
            params.append(conversation_id)

        await self.initialize()
        async with self._lock:
            with self._guard("prune", conversation_id=conversation_id) as conn:
                cursor = conn.execute(sql, params)
                conn.commit()
                removed = cursor.rowcount

        logger.info(
            "Pruned %d memories older than %s",
            removed,
            cutoff.isoformat(),
            extra=store_log_context(
                self.store_type, "prune", conversation_id=conversation_id, removed=removed
            ),
        )
        return removed

    @property
    def pruning(self) -> bool:
        return self._prune_task is not None and not self._prune_task.done()

    def start_pruning(self) -> bool:
        """Schedule periodic pruning on the running loop.

        Returns False when the interval is disabled or a task already runs.
        """
        if self.config.prune_interval_ms <= 0 or self.pruning:
            return False
        self._prune_task = asyncio.get_running_loop().create_task(self._prune_loop())
        return True

    async def stop_pruning(self) -> None:
        task, self._prune_task = self._prune_task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _prune_loop(self) -> None:
        interval = self.config.prune_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                await self.prune()
            except StoreError:
                logger.warning(
                    "Scheduled prune failed; retrying in %.0f seconds",
                    interval,
                    extra=store_log_context(self.store_type, "prune"),
                )

    async def close(self) -> None:
        await self.stop_pruning()
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
            self._conn = None
            self._initialized = False
