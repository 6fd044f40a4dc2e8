from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.models import SYSTEM_ROLE, Message, Summary
from ..core.protocols import TextGenerator
from ..errors import ConfigurationError, ValidationError
from .cache import SummaryCache
from .summarization import SummarizationPipeline
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)

NO_CONTEXT_SUMMARY = "No conversation context available."


@dataclass(frozen=True)
class ContextConfig:
    max_context_messages: int = 50
    summarization_threshold: int = 20
    max_summary_length: int = 1000
    cache_timeout_ms: int = 300_000
    summary_temperature: float = 0.3

    def __post_init__(self) -> None:
        for name in (
            "max_context_messages",
            "summarization_threshold",
            "max_summary_length",
            "cache_timeout_ms",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.summarization_threshold >= self.max_context_messages:
            logger.warning(
                "summarization_threshold (%d) is not below max_context_messages (%d); "
                "summaries will only be produced once the window is full",
                self.summarization_threshold,
                self.max_context_messages,
            )


class ContextBuffer:
    """Bounded, ordered window of conversation messages.

    Every append first checks whether the buffer just crossed the
    summarization threshold (queueing a snapshot for the background
    pipeline), then enforces `max_context_messages` by swapping in the
    oldest applicable summary or, failing that, dropping the oldest messages.
    """

    def __init__(
        self,
        generator: TextGenerator,
        config: ContextConfig | None = None,
        *,
        summarizer: ConversationSummarizer | None = None,
        cache: SummaryCache | None = None,
    ):
        """
        Args:
            generator: Text-generation collaborator used for all summaries.
            config: Window size, threshold and cache settings.
            summarizer: Optional summarizer; built from `generator` if omitted.
            cache: Optional summary cache; built from `config` if omitted.
        """
        config = config or ContextConfig()
        self.max_context_messages = config.max_context_messages
        self.summarization_threshold = config.summarization_threshold
        if summarizer is None:
            summarizer = ConversationSummarizer(
                generator,
                max_summary_length=config.max_summary_length,
                temperature=config.summary_temperature,
            )
        self.summarizer = summarizer
        if cache is None:
            cache = SummaryCache(config.cache_timeout_ms / 1000.0)
        self.cache = cache
        self.pipeline = SummarizationPipeline(self.summarizer, self.add_summary)

        self._messages: list[Message] = []
        self._summaries: list[Summary] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def summaries(self) -> list[Summary]:
        return list(self._summaries)

    async def start(self) -> None:
        self.cache.start()
        logger.info("Context buffer started")

    async def close(self) -> None:
        await self.pipeline.drain()
        await self.pipeline.close()
        await self.cache.stop()

    async def wait_for_summaries(self) -> None:
        await self.pipeline.drain()

    def append(self, message: Message | Mapping[str, Any]) -> Message:
        message = self._coerce_message(message)

        previous_length = len(self._messages)
        self._messages.append(message)

        if previous_length < self.summarization_threshold <= len(self._messages):
            self._queue_summarization()

        self._enforce_size()

        logger.debug("Context message added with ID: %s", message.id)
        return message

    def get_all(self, formatted: bool = False) -> list[Message] | list[dict[str, str]]:
        if formatted:
            return [message.to_model_format() for message in self._messages]
        return list(self._messages)

    async def get_summary(self) -> str:
        if not self._messages:
            return NO_CONTEXT_SUMMARY

        snapshot = list(self._messages)
        key = SummaryCache.key_for(message.id for message in snapshot)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Summary cache hit for %d messages", len(snapshot))
            return cached

        try:
            summary = await self.summarizer.summarize(snapshot)
        except Exception:
            logger.warning("Failed to generate context summary; using fallback", exc_info=True)
            summary = self.summarizer.fallback(snapshot)

        self.cache.set(key, summary)
        return summary

    def clear(self, keep_system: bool = True) -> None:
        if keep_system:
            self._messages = [m for m in self._messages if m.role == SYSTEM_ROLE]
        else:
            self._messages = []
        self._summaries = []
        self.cache.clear()
        dropped = self.pipeline.invalidate()
        logger.info(
            "Context cleared, kept system messages: %s, dropped %d pending batch(es)",
            keep_system,
            dropped,
        )

    def add_summary(self, summary: Summary) -> None:
        self._summaries.append(summary)

    def _coerce_message(self, message: Message | Mapping[str, Any]) -> Message:
        if isinstance(message, Message):
            if not message.content or not message.role:
                raise ValidationError("Message content and role are required")
            return message
        if not isinstance(message, Mapping):
            raise ValidationError(f"Unsupported message type: {type(message).__name__}")
        if not message.get("content") or not message.get("role"):
            raise ValidationError("Message content and role are required")

        # None for id/timestamp means "assign one".
        fields = {key: value for key, value in message.items() if value is not None}
        try:
            return Message.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(str(e)) from e

    def _queue_summarization(self) -> None:
        logger.debug(
            "Summarization threshold %d reached; queueing %d messages",
            self.summarization_threshold,
            len(self._messages),
        )
        self.pipeline.enqueue(list(self._messages))

    def _enforce_size(self) -> None:
        if len(self._messages) <= self.max_context_messages:
            return

        excess = len(self._messages) - self.max_context_messages
        present = {message.id for message in self._messages}
        applicable = [s for s in self._summaries if s.is_applicable(present)]

        if not applicable:
            del self._messages[:excess]
            logger.info("Removed %d oldest messages from context", excess)
            return

        # min() keeps the first of equal timestamps.
        summary = min(applicable, key=lambda s: s.timestamp)
        replaced = set(summary.replaces)
        remaining = [m for m in self._messages if m.id not in replaced]
        self._messages = [summary.to_context_message(), *remaining]
        logger.info(
            "Replaced %d messages with summary %s",
            len(present & replaced),
            summary.id,
        )

        overflow = len(self._messages) - self.max_context_messages
        if overflow > 0:
            del self._messages[1 : 1 + overflow]
            logger.info("Removed %d messages behind summary %s", overflow, summary.id)
