from __future__ import annotations

from .models import Memory, MemoryUpdate, Message, Summary
from .protocols import ContextWriter, GenerationConstraints, MemoryWriter, TextGenerator
from .scoring import RelevanceRanker, tokenize_query

__all__ = [
    "ContextWriter",
    "GenerationConstraints",
    "Memory",
    "MemoryUpdate",
    "MemoryWriter",
    "Message",
    "RelevanceRanker",
    "Summary",
    "TextGenerator",
    "tokenize_query",
]
