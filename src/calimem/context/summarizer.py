from __future__ import annotations

from collections.abc import Sequence

from ..core.models import Message
from ..core.protocols import GenerationConstraints, TextGenerator


class ConversationSummarizer:
    """Generates narrative summaries of conversation messages."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        max_summary_length: int = 1000,
        temperature: float = 0.3,
    ):
        self.generator = generator
        self.max_summary_length = max_summary_length
        self.temperature = temperature

    def _system_template(self) -> str:
        return (
            "You are a context summarizer. Your task is to summarize the following "
            "conversation in a concise way, highlighting key points, decisions, and "
            f"information. Keep your summary under {self.max_summary_length} characters."
        )

    def _closing_template(self) -> str:
        return (
            "Please provide a concise summary of this conversation that captures "
            "the essential information and context."
        )

    def build_turns(self, messages: Sequence[Message]) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self._system_template()},
            *(message.to_model_format() for message in messages),
            {"role": "user", "content": self._closing_template()},
        ]

    @property
    def constraints(self) -> GenerationConstraints:
        return GenerationConstraints(
            max_output_chars=self.max_summary_length,
            temperature=self.temperature,
        )

    async def summarize(self, messages: Sequence[Message]) -> str:
        """Summarize messages; generation errors propagate to the caller."""
        return await self.generator.generate(self.build_turns(messages), self.constraints)

    @staticmethod
    def fallback(messages: Sequence[Message]) -> str:
        """Deterministic description used when generation is unavailable."""
        first = messages[0].timestamp.isoformat()
        last = messages[-1].timestamp.isoformat()
        return (
            f"Conversation with {len(messages)} messages over time period "
            f"{first} to {last}."
        )
