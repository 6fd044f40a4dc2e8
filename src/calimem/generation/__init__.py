from __future__ import annotations

from .langchain import LangchainTextGenerator

__all__ = ["LangchainTextGenerator"]
