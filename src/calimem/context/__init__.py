from __future__ import annotations

from .buffer import NO_CONTEXT_SUMMARY, ContextBuffer, ContextConfig
from .cache import SummaryCache
from .summarization import SummarizationPipeline
from .summarizer import ConversationSummarizer

__all__ = [
    "NO_CONTEXT_SUMMARY",
    "ContextBuffer",
    "ContextConfig",
    "ConversationSummarizer",
    "SummarizationPipeline",
    "SummaryCache",
]
