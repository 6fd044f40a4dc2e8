"""
System configuration.

Reads settings from the environment and wires the context buffer and the
memory store together.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from langchain_openai import ChatOpenAI

from calimem.context import ContextBuffer, ContextConfig
from calimem.core.protocols import TextGenerator
from calimem.errors import ConfigurationError
from calimem.generation import LangchainTextGenerator
from calimem.store import MemoryStoreConfig, SQLiteMemoryStore

DEFAULT_SUMMARY_MODEL = "gpt-4o-mini"


def _env_value(env: Mapping[str, str], name: str, cast: Callable[[str], object], default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a valid {cast.__name__}, got {raw!r}") from e


def default_text_generator(
    model: str | None = None,
    temperature: float | None = None,
) -> LangchainTextGenerator:
    """OpenAI-backed generator; the API key comes from OPENAI_API_KEY."""
    llm = ChatOpenAI(
        model=model or os.getenv("SUMMARY_MODEL") or DEFAULT_SUMMARY_MODEL,
        temperature=temperature
        if temperature is not None
        else float(os.getenv("SUMMARY_TEMPERATURE", "0.3")),
    )
    return LangchainTextGenerator(llm)


@dataclass
class SystemConfig:
    """Complete configuration for a context buffer plus memory store."""

    context: ContextConfig = field(default_factory=ContextConfig)
    memory: MemoryStoreConfig = field(default_factory=MemoryStoreConfig)
    summary_model: str = DEFAULT_SUMMARY_MODEL
    generator: TextGenerator | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SystemConfig:
        """Build a config from environment variables.

        Durations (CONTEXT_CACHE_TIMEOUT, DEFAULT_MEMORY_RETENTION,
        MEMORY_PRUNE_INTERVAL) are milliseconds. Unset variables keep their
        defaults.
        """
        env = os.environ if env is None else env
        context_defaults = ContextConfig()
        memory_defaults = MemoryStoreConfig()

        context = ContextConfig(
            max_context_messages=_env_value(
                env, "MAX_CONTEXT_MESSAGES", int, context_defaults.max_context_messages
            ),
            summarization_threshold=_env_value(
                env, "SUMMARIZATION_THRESHOLD", int, context_defaults.summarization_threshold
            ),
            max_summary_length=_env_value(
                env, "MAX_SUMMARY_LENGTH", int, context_defaults.max_summary_length
            ),
            cache_timeout_ms=_env_value(
                env, "CONTEXT_CACHE_TIMEOUT", int, context_defaults.cache_timeout_ms
            ),
            summary_temperature=_env_value(
                env, "SUMMARY_TEMPERATURE", float, context_defaults.summary_temperature
            ),
        )
        memory = MemoryStoreConfig(
            db_path=env.get("DATABASE_PATH") or memory_defaults.db_path,
            max_memories_per_conversation=_env_value(
                env,
                "MAX_MEMORIES_PER_CONVERSATION",
                int,
                memory_defaults.max_memories_per_conversation,
            ),
            relevance_threshold=_env_value(
                env, "RELEVANCE_THRESHOLD", float, memory_defaults.relevance_threshold
            ),
            default_memory_retention_ms=_env_value(
                env,
                "DEFAULT_MEMORY_RETENTION",
                int,
                memory_defaults.default_memory_retention_ms,
            ),
            prune_interval_ms=_env_value(
                env, "MEMORY_PRUNE_INTERVAL", int, memory_defaults.prune_interval_ms
            ),
        )
        return cls(
            context=context,
            memory=memory,
            summary_model=env.get("SUMMARY_MODEL") or DEFAULT_SUMMARY_MODEL,
        )

    def build_system(self) -> ConfiguredSystem:
        """Build the context buffer and memory store.

        Nothing is started here; call `ConfiguredSystem.start()` from a
        running event loop.
        """
        generator = self.generator or default_text_generator(
            model=self.summary_model,
            temperature=self.context.summary_temperature,
        )
        return ConfiguredSystem(
            context=ContextBuffer(generator, self.context),
            memory=SQLiteMemoryStore(self.memory),
        )


@dataclass
class ConfiguredSystem:
    """A context buffer and memory store built from one SystemConfig."""

    context: ContextBuffer
    memory: SQLiteMemoryStore

    async def start(self) -> None:
        await self.memory.initialize()
        await self.context.start()
        self.memory.start_pruning()

    async def close(self) -> None:
        await self.context.close()
        await self.memory.close()
