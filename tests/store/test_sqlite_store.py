"""Tests for SQLiteMemoryStore against a real database file."""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from calimem.core.models import Memory, MemoryUpdate
from calimem.errors import ConfigurationError, StoreError, ValidationError
from calimem.store import MemoryStoreConfig, SQLiteMemoryStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _memory(memory_id, conversation_id="conv-1", *, age=timedelta(days=3), **kwargs):
    return Memory(
        id=memory_id,
        content=kwargs.pop("content", f"content of {memory_id}"),
        conversation_id=conversation_id,
        created_at=NOW - age,
        **kwargs,
    )


class TestMemoryStoreConfig:
    def test_defaults(self):
        config = MemoryStoreConfig()
        assert config.db_path == "data/memory.db"
        assert config.max_memories_per_conversation == 500
        assert config.default_memory_retention_ms == 30 * 24 * 60 * 60 * 1000

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ConfigurationError):
            MemoryStoreConfig(max_memories_per_conversation=0)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_creates_parent_and_pragmas(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "memory.db"
        async with SQLiteMemoryStore(MemoryStoreConfig(db_path=str(db_path))) as store:
            await store.initialize()
            conn = store._require_conn()
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db_path.exists()

    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        async with SQLiteMemoryStore(MemoryStoreConfig(db_path=":memory:")) as store:
            await store.add(_memory("a"))
            assert await store.get("a") is not None

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, db_config, memory):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(memory)
        async with SQLiteMemoryStore(db_config) as store:
            loaded = await store.get(memory.id)
        assert loaded == memory


class TestCrud:
    @pytest.mark.asyncio
    async def test_add_and_get_round_trip(self, db_config, memory):
        async with SQLiteMemoryStore(db_config) as store:
            stored = await store.add(memory)
            loaded = await store.get(memory.id)

        assert stored == memory
        assert loaded.content == memory.content
        assert loaded.tags == ["preferences"]
        assert loaded.keywords == ["coffee"]
        assert loaded.metadata == {"source": "chat"}
        assert loaded.created_at == memory.created_at

    @pytest.mark.asyncio
    async def test_add_from_mapping_assigns_id(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            stored = await store.add({"content": "fact", "conversation_id": "c", "id": None})
            assert stored.id
            assert (await store.get(stored.id)).content == "fact"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"conversation_id": "c"}, {"content": "x"}, {"content": "", "conversation_id": "c"}],
    )
    async def test_add_rejects_incomplete_memory(self, db_config, payload):
        async with SQLiteMemoryStore(db_config) as store:
            with pytest.raises(ValidationError):
                await store.add(payload)
            assert await store.list_memories() == []

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_store_error_and_rolls_back(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("a", tags=["x"]))
            with pytest.raises(StoreError) as exc_info:
                await store.add(_memory("a", tags=["y"]))
            assert exc_info.value.memory_id == "a"
            assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)
            assert (await store.get("a")).tags == ["x"]

    @pytest.mark.asyncio
    async def test_relationship_to_missing_memory_fails(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            with pytest.raises(StoreError):
                await store.add(_memory("a", related_to=["ghost"]))
            assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_update_replaces_lists_and_merges_metadata(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(
                _memory("a", tags=["x", "y"], keywords=["k"], metadata={"source": "chat"})
            )
            updated = await store.update(
                "a", {"tags": ["z"], "metadata": {"confidence": 0.8}}
            )
            loaded = await store.get("a")

        assert updated == loaded
        assert loaded.tags == ["z"]
        assert loaded.keywords == ["k"]
        assert loaded.metadata == {"source": "chat", "confidence": 0.8}

    @pytest.mark.asyncio
    async def test_update_content_only_keeps_children(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("b"))
            await store.add(_memory("a", tags=["x"], related_to=["b"]))
            await store.update("a", MemoryUpdate(content="new content"))
            loaded = await store.get("a")

        assert loaded.content == "new content"
        assert loaded.tags == ["x"]
        assert loaded.related_to == ["b"]

    @pytest.mark.asyncio
    async def test_failed_update_rolls_back_every_change(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("b"))
            await store.add(_memory("a", content="old", tags=["x"], related_to=["b"]))

            with pytest.raises(StoreError) as exc_info:
                await store.update(
                    "a", {"content": "new", "tags": ["y"], "related_to": ["missing"]}
                )
            loaded = await store.get("a")

        assert exc_info.value.memory_id == "a"
        assert loaded.content == "old"
        assert loaded.tags == ["x"]
        assert loaded.related_to == ["b"]

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            assert await store.update("nope", {"content": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete_cascades(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("b", tags=["t"], keywords=["k"]))
            await store.add(_memory("a", related_to=["b"]))

            assert await store.delete("b") is True
            assert await store.delete("b") is False

            conn = store._require_conn()
            for table in ("memory_tags", "memory_keywords"):
                count = conn.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE memory_id = 'b'"
                ).fetchone()[0]
                assert count == 0
            assert (await store.get("a")).related_to == []


class TestSearch:
    @pytest.mark.asyncio
    async def test_tags_require_all(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("xy", tags=["x", "y"]))
            await store.add(_memory("x", tags=["x"]))
            await store.add(_memory("y", tags=["y"]))
            await store.add(_memory("xyz", tags=["x", "y", "z"]))

            results = await store.search(tags=["x", "y"])
            duplicated = await store.search(tags=["x", "x", "y"])

        assert {m.id for m in results} == {"xy", "xyz"}
        assert {m.id for m in duplicated} == {"xy", "xyz"}

    @pytest.mark.asyncio
    async def test_conversation_filter(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("a", "conv-1"))
            await store.add(_memory("b", "conv-2"))
            results = await store.search(conversation_id="conv-2")
        assert [m.id for m in results] == ["b"]

    @pytest.mark.asyncio
    async def test_without_query_newest_first(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("old", age=timedelta(days=5)))
            await store.add(_memory("new", age=timedelta(days=1)))
            await store.add(_memory("mid", age=timedelta(days=3)))
            results = await store.search()
        assert [m.id for m in results] == ["new", "mid", "old"]

    @pytest.mark.asyncio
    async def test_query_ranks_tag_then_keyword_then_content(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("A", content="we talked about espresso", age=timedelta(days=1)))
            await store.add(_memory("B", content="unrelated", keywords=["espresso"], age=timedelta(days=2)))
            await store.add(_memory("C", content="unrelated", tags=["espresso"], age=timedelta(days=3)))

            results = await store.search("Espresso", now=NOW)

        assert [m.id for m in results] == ["C", "B", "A"]

    @pytest.mark.asyncio
    async def test_limit_applies_before_ranking(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("strong", tags=["tea"], age=timedelta(days=9)))
            await store.add(_memory("weak1", age=timedelta(days=1)))
            await store.add(_memory("weak2", age=timedelta(days=2)))

            results = await store.search("tea", max_count=2, now=NOW)

        assert {m.id for m in results} == {"weak1", "weak2"}

    @pytest.mark.asyncio
    async def test_max_count_is_clamped(self, tmp_path):
        config = MemoryStoreConfig(
            db_path=str(tmp_path / "m.db"), max_memories_per_conversation=2
        )
        async with SQLiteMemoryStore(config) as store:
            for i in range(4):
                await store.add(_memory(f"m{i}"))
            assert len(await store.search(max_count=10)) == 2
            assert len(await store.list_memories(limit=10)) == 2
            assert await store.search(max_count=0) == []

    @pytest.mark.asyncio
    async def test_search_by_keyword(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("a", keywords=["coffee", "morning"]))
            await store.add(_memory("b", "conv-2", keywords=["coffee"]))
            await store.add(_memory("c", keywords=["tea"]))

            everywhere = await store.search_by_keyword("coffee")
            scoped = await store.search_by_keyword("coffee", conversation_id="conv-2")

        assert {m.id for m in everywhere} == {"a", "b"}
        assert [m.id for m in scoped] == ["b"]

    @pytest.mark.asyncio
    async def test_list_memories_pages(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            for i in range(5):
                await store.add(_memory(f"m{i}", age=timedelta(days=i)))
            first = await store.list_memories(limit=2)
            second = await store.list_memories(limit=2, offset=2)
        assert [m.id for m in first] == ["m0", "m1"]
        assert [m.id for m in second] == ["m2", "m3"]


class TestPrune:
    @pytest.mark.asyncio
    async def test_prune_scope_is_one_conversation(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("old-1", "conv-1", age=timedelta(days=40)))
            await store.add(_memory("old-2", "conv-2", age=timedelta(days=40)))
            await store.add(_memory("new-1", "conv-1", age=timedelta(days=1)))

            removed = await store.prune("conv-1", now=NOW)

            assert removed == 1
            assert await store.get("old-1") is None
            assert await store.get("old-2") is not None
            assert await store.get("new-1") is not None

    @pytest.mark.asyncio
    async def test_prune_all_with_custom_retention(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("a", "conv-1", age=timedelta(hours=3)))
            await store.add(_memory("b", "conv-2", age=timedelta(hours=1)))

            removed = await store.prune(retention_ms=2 * 60 * 60 * 1000, now=NOW)

            assert removed == 1
            assert [m.id for m in await store.list_memories()] == ["b"]

    @pytest.mark.asyncio
    async def test_prune_boundary_is_inclusive(self, db_config):
        async with SQLiteMemoryStore(db_config) as store:
            await store.add(_memory("edge", age=timedelta(hours=1)))
            assert await store.prune(retention_ms=60 * 60 * 1000, now=NOW) == 1

    @pytest.mark.asyncio
    async def test_scheduled_pruning(self, tmp_path):
        config = MemoryStoreConfig(db_path=str(tmp_path / "m.db"), prune_interval_ms=10)
        async with SQLiteMemoryStore(config) as store:
            await store.add(_memory("ancient", age=timedelta(days=3650)))
            assert store.start_pruning() is True
            assert store.start_pruning() is False

            for _ in range(100):
                if await store.get("ancient") is None:
                    break
                await asyncio.sleep(0.01)

            assert await store.get("ancient") is None
            await store.stop_pruning()
            assert not store.pruning

    @pytest.mark.asyncio
    async def test_pruning_disabled_with_zero_interval(self, tmp_path):
        config = MemoryStoreConfig(db_path=str(tmp_path / "m.db"), prune_interval_ms=0)
        async with SQLiteMemoryStore(config) as store:
            assert store.start_pruning() is False
