"""
Error taxonomy for calimem.

Defines the exception hierarchy shared by the context buffer, the
summarization pipeline and the memory store.
"""

from __future__ import annotations


class CalimemError(Exception):
    """Base exception for all calimem errors.

    Catch this to handle any failure raised by the library itself.
    """

    pass


class ValidationError(CalimemError, ValueError):
    """Input rejected before any state was changed.

    Raised synchronously for messages missing content or role and for
    memories missing content or conversation id. Never retried.
    """

    pass


class StoreError(CalimemError):
    """Store operation failed.

    Attributes:
        message: Human-readable error description
        store_type: Type of store that failed (e.g., "sqlite")
        memory_id: Optional memory ID associated with the error
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        store_type: str,
        memory_id: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.store_type = store_type
        self.memory_id = memory_id
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.args[0]]
        if self.store_type:
            parts.append(f"store={self.store_type}")
        if self.memory_id:
            parts.append(f"memory_id={self.memory_id}")
        return ": ".join(parts)


class GenerationError(CalimemError):
    """The text-generation collaborator failed to produce output."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model

    def __str__(self) -> str:
        if self.model:
            return f"{self.args[0]} (model: {self.model})"
        return self.args[0]


class SerializationError(CalimemError):
    """Failed to serialize or deserialize a stored value."""

    pass


class ConfigurationError(CalimemError):
    """Invalid configuration or settings."""

    pass


# Error handling guidelines:
#
# 1. Store CRUD operations:
#    - get() -> Return None for "not found"
#    - update() -> Return None for "not found"
#    - delete() -> Return False for "not found", True for deleted
#    - sqlite3 failures -> roll back, log, raise StoreError from the cause
#
# 2. Generation:
#    - ContextBuffer.get_summary() never raises; it falls back to a
#      deterministic description of the buffer
#    - SummarizationPipeline logs and abandons the pending queue
#
# 3. Error context:
#    - Always include store_type in store errors
#    - Include memory_id when available
#    - Add structured logging context via extra={}
