from __future__ import annotations

import logging

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.runnables import Runnable

from ..core.models import langchain_message_for
from ..core.protocols import GenerationConstraints
from ..errors import GenerationError

logger = logging.getLogger(__name__)


class LangchainTextGenerator:
    """TextGenerator backed by a langchain chat model."""

    def __init__(self, llm: BaseChatModel, *, chars_per_token: int = 4):
        """
        Args:
            llm: Chat model used for every generation call.
            chars_per_token: Conservative characters-per-token estimate used
                to turn a character budget into `max_tokens`.
        """
        self.llm = llm
        self.chars_per_token = chars_per_token

    @property
    def model_name(self) -> str | None:
        return getattr(self.llm, "model_name", None) or getattr(self.llm, "model", None)

    def _build_chain(self, constraints: GenerationConstraints) -> Runnable:
        max_tokens = max(1, constraints.max_output_chars // self.chars_per_token)
        bound = self.llm.bind(temperature=constraints.temperature, max_tokens=max_tokens)
        return bound | StrOutputParser()

    async def generate(
        self,
        turns: list[dict[str, str]],
        constraints: GenerationConstraints,
    ) -> str:
        messages = [langchain_message_for(turn["role"], turn["content"]) for turn in turns]
        chain = self._build_chain(constraints)
        try:
            output = await chain.ainvoke(messages)
        except Exception as e:
            logger.warning("Generation call failed: %s", e)
            raise GenerationError("Text generation failed", model=self.model_name) from e
        return output.strip()
