from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .models import Memory, Message


@dataclass(frozen=True)
class GenerationConstraints:
    max_output_chars: int
    temperature: float = 0.3


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(
        self,
        turns: list[dict[str, str]],
        constraints: GenerationConstraints,
    ) -> str: ...


@runtime_checkable
class ContextWriter(Protocol):
    """What chat-facing collaborators need to record a turn."""

    def append(self, message: Message | Mapping[str, Any]) -> Message: ...


@runtime_checkable
class MemoryWriter(Protocol):
    """What collaborators need to persist a long-term memory."""

    async def add(self, memory: Memory | Mapping[str, Any]) -> Memory: ...
