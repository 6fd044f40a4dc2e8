from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import Memory, coerce_datetime, utc_now


def tokenize_query(query: str | None) -> list[str]:
    """Lowercase a free-text query and split it on whitespace."""
    if not query:
        return []
    return query.lower().split()


class RelevanceRanker:
    """Scores memories against query terms.

    Signals, summed:
    - content_weight per term found as a substring of the content
    - keyword_weight per keyword equal to a term
    - tag_weight per tag equal to a term
    - recency_bonus when the memory is younger than recency_window

    Matching is case-insensitive. A naive `now` is taken as UTC. With no terms only
    the recency bonus can apply.
    """

    def __init__(
        self,
        content_weight: float = 1.0,
        keyword_weight: float = 2.0,
        tag_weight: float = 3.0,
        recency_bonus: float = 0.5,
        recency_window: timedelta = timedelta(hours=24),
    ):
        self.content_weight = content_weight
        self.keyword_weight = keyword_weight
        self.tag_weight = tag_weight
        self.recency_bonus = recency_bonus
        self.recency_window = recency_window

    def score(
        self,
        memory: Memory,
        query_terms: Iterable[str],
        now: datetime | None = None,
    ) -> float:
        terms = [term.lower() for term in query_terms if term]
        term_set = set(terms)
        score = 0.0

        content = (memory.content or "").lower()
        for term in terms:
            if term in content:
                score += self.content_weight

        for keyword in memory.keywords:
            if keyword.lower() in term_set:
                score += self.keyword_weight

        for tag in memory.tags:
            if tag.lower() in term_set:
                score += self.tag_weight

        current_time = coerce_datetime(now, default=utc_now())
        if memory.is_recent(current_time, self.recency_window):
            score += self.recency_bonus

        return score

    def rank(
        self,
        memories: list[Memory],
        query: str | Iterable[str],
        now: datetime | None = None,
    ) -> list[Memory]:
        """Sort memories by descending score.

        Python's sort is stable, so equal scores keep their input order.
        """
        terms = tokenize_query(query) if isinstance(query, str) else list(query)
        current_time = coerce_datetime(now, default=utc_now())
        return sorted(
            memories,
            key=lambda memory: self.score(memory, terms, current_time),
            reverse=True,
        )
