from __future__ import annotations

from .configs import ConfiguredSystem, SystemConfig
from .context import ContextBuffer, ContextConfig
from .core.models import Memory, MemoryUpdate, Message, Summary
from .core.scoring import RelevanceRanker
from .errors import (
    CalimemError,
    ConfigurationError,
    GenerationError,
    SerializationError,
    StoreError,
    ValidationError,
)
from .generation import LangchainTextGenerator
from .store import MemoryStoreConfig, SQLiteMemoryStore

__all__ = [
    "ContextBuffer",
    "ContextConfig",
    "SQLiteMemoryStore",
    "MemoryStoreConfig",
    "SystemConfig",
    "ConfiguredSystem",
    "LangchainTextGenerator",
    "RelevanceRanker",
    "Message",
    "Summary",
    "Memory",
    "MemoryUpdate",
    # Error types
    "CalimemError",
    "ValidationError",
    "StoreError",
    "GenerationError",
    "SerializationError",
    "ConfigurationError",
]
