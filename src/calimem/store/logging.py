from __future__ import annotations

import time
from typing import Any


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def store_log_context(
    store_type: str,
    operation: str,
    *,
    memory_id: str | None = None,
    conversation_id: str | None = None,
    duration_ms: float | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build the `extra=` payload attached to every store log record."""
    context = {
        "store_type": store_type,
        "operation": operation,
        "memory_id": memory_id,
        "conversation_id": conversation_id,
        "duration_ms": round(duration_ms, 2) if duration_ms is not None else None,
    }
    if extra:
        context.update(extra)
    return context
