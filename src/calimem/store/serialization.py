"""Column encoding helpers for the SQLite memory store."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from ..core.models import coerce_datetime
from ..errors import SerializationError


def serialize_timestamp(value: datetime | str) -> str:
    """Serialize a timestamp to a fixed-width UTC ISO string.

    Every stored value carries microseconds and a `+00:00` offset, so the
    `created_at` column sorts and compares correctly as text.

    Args:
        value: A datetime object or ISO string

    Returns:
        ISO format string in UTC with microsecond precision
    """
    dt = coerce_datetime(value)
    if dt is None:
        raise SerializationError(f"Cannot serialize timestamp: {value!r}")
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def deserialize_timestamp(value: str) -> datetime:
    dt = coerce_datetime(value)
    if dt is None:
        raise SerializationError(f"Invalid stored timestamp: {value!r}")
    return dt


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return _json_safe(value.model_dump())
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


def dump_metadata(metadata: dict[str, Any] | None) -> str:
    """Encode metadata as JSON, stringifying values JSON can't represent."""
    return json.dumps(_json_safe(metadata or {}), ensure_ascii=False)


def load_metadata(value: str | None) -> dict[str, Any]:
    """Decode a stored metadata column.

    Empty or NULL columns load as an empty dict. Anything else that is not a
    JSON object is treated as corruption.
    """
    if not value:
        return {}
    try:
        loaded = json.loads(value)
    except (json.JSONDecodeError, TypeError) as e:
        raise SerializationError(f"Invalid metadata JSON: {value[:80]!r}") from e
    if not isinstance(loaded, dict):
        raise SerializationError("Stored metadata is not a JSON object")
    return loaded
