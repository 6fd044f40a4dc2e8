from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from ..core.models import Memory, MemoryUpdate


class BaseMemoryStore(ABC):
    """
    Abstract base class for long-term memory stores.
    """

    store_type = "base"

    # --------------------
    # CRUD Operations
    # --------------------

    @abstractmethod
    async def add(self, memory: Memory | Mapping[str, Any]) -> Memory:
        """
        Persist a new memory together with its tags, keywords and relationships.

        Args:
            memory (Memory | Mapping): The memory, or its fields. `content` and
                `conversation_id` are required.

        Returns:
            Memory: The stored memory, with id and created_at assigned.
        """
        pass

    @abstractmethod
    async def get(self, memory_id: str) -> Memory | None:
        """
        Retrieve a memory by its ID.

        Returns:
            Optional[Memory]: The full aggregate, or None if not found.
        """
        pass

    @abstractmethod
    async def update(
        self,
        memory_id: str,
        updates: MemoryUpdate | Mapping[str, Any],
    ) -> Memory | None:
        """
        Apply a partial update.

        Tag, keyword and relationship lists present in `updates` replace the
        stored ones; metadata is shallow-merged.

        Returns:
            Optional[Memory]: The updated memory, or None if not found.
        """
        pass

    @abstractmethod
    async def delete(self, memory_id: str) -> bool:
        """
        Delete a memory; dependent rows go with it.

        Returns:
            bool: True if a memory was deleted, False if it did not exist.
        """
        pass

    # --------------------
    # Retrieval Operations
    # --------------------

    @abstractmethod
    async def search(
        self,
        query: str | None = None,
        *,
        conversation_id: str | None = None,
        tags: list[str] | None = None,
        max_count: int = 10,
    ) -> list[Memory]:
        """
        Filter memories by conversation and tags, then rank by relevance.

        Args:
            query (Optional[str]): Free text; when given, results are re-ranked.
            conversation_id (Optional[str]): Exact conversation filter.
            tags (Optional[List[str]]): A memory must carry every listed tag.
            max_count (int): Maximum number of results.
        """
        pass

    @abstractmethod
    async def search_by_keyword(
        self,
        keyword: str,
        conversation_id: str | None = None,
        max_count: int = 50,
    ) -> list[Memory]:
        pass

    @abstractmethod
    async def list_memories(
        self,
        conversation_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Memory]:
        pass

    # --------------------
    # Retention
    # --------------------

    @abstractmethod
    async def prune(
        self,
        conversation_id: str | None = None,
        *,
        retention_ms: int | None = None,
    ) -> int:
        """
        Delete memories older than the retention window.

        Returns:
            int: Number of memories deleted.
        """
        pass

    # --------------------
    # Context Management
    # --------------------

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    @abstractmethod
    async def close(self):
        """
        Close the storage connection gracefully.
        """
        pass
