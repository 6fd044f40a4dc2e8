# core/models.py
from datetime import datetime, timedelta, timezone
from typing import Any, overload
from uuid import uuid4

from langchain_core.documents import Document
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ConfigDict, Field, field_validator

SYSTEM_ROLE = "system"
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@overload
def coerce_datetime(value: datetime | str | None, default: datetime) -> datetime: ...


@overload
def coerce_datetime(
    value: datetime | str | None,
    default: datetime | None = None,
) -> datetime | None: ...


def coerce_datetime(
    value: datetime | str | None,
    default: datetime | None = None,
) -> datetime | None:
    """Parse datetimes and ISO strings into timezone-aware datetimes.

    Naive values are assumed to be UTC. Unparseable strings yield `default`.
    """
    dt: datetime | None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            dt = default
    else:
        dt = default

    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def langchain_message_for(role: str, content: str) -> BaseMessage:
    """Map a conversation role onto the matching langchain message class.

    Roles other than user/assistant/system are agent ids; they are sent as
    assistant turns named after the agent.
    """
    if role == SYSTEM_ROLE:
        return SystemMessage(content=content)
    if role == USER_ROLE:
        return HumanMessage(content=content)
    if role == ASSISTANT_ROLE:
        return AIMessage(content=content)
    return AIMessage(content=content, name=role)


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class Message(BaseModel):
    """A single conversational turn held by a ContextBuffer.

    Attributes:
        id (str): Unique identifier, generated when absent
        content (str): Message text
        role (str): "user", "assistant", "system", or an agent id
        timestamp (datetime): Creation time in UTC
        user_id (Optional[str]): Sending user, if any
        agent_id (Optional[str]): Sending agent, if any
        metadata (Dict[str, Any]): Free-form attributes; summaries set
            `is_summary` and `replaces` here
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    role: str
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str | None = None
    agent_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v):
        return coerce_datetime(v, default=utc_now())

    @property
    def is_summary(self) -> bool:
        return bool(self.metadata.get("is_summary"))

    def to_model_format(self) -> dict[str, str]:
        """Project to the `{role, content}` turn shape used for generation."""
        return {"role": self.role, "content": self.content}

    def to_langchain_message(self) -> BaseMessage:
        return langchain_message_for(self.role, self.content)


class Summary(BaseModel):
    """Narrative summary standing in for a batch of messages."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    replaces: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v):
        return coerce_datetime(v, default=utc_now())

    def is_applicable(self, present_ids: set[str]) -> bool:
        return any(message_id in present_ids for message_id in self.replaces)

    def to_context_message(self) -> Message:
        """Render as the system message that replaces the summarized turns."""
        return Message(
            id=self.id,
            content=self.content,
            role=SYSTEM_ROLE,
            timestamp=self.timestamp,
            metadata={
                **self.metadata,
                "is_summary": True,
                "replaces": list(self.replaces),
            },
        )


class Memory(BaseModel):
    """A persisted long-term fact scoped to a conversation.

    `tags` and `keywords` behave as sets: duplicates and empty strings are
    dropped while keeping first-seen order. `related_to` holds directed,
    non-owning references to other memory ids.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    conversation_id: str
    created_at: datetime = Field(default_factory=utc_now)
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    related_to: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v):
        return coerce_datetime(v, default=utc_now())

    @field_validator("tags", "keywords", "related_to")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return _unique(v)

    def is_recent(self, now: datetime, window: timedelta = timedelta(days=1)) -> bool:
        return self.created_at > now - window

    def to_str_llm(self) -> str:
        """Render the memory for inclusion in a generation prompt."""
        parts = [f"Memory ({self.created_at.strftime('%Y-%m-%d %H:%M UTC')}):"]
        parts.append(f"Content: {self.content}")
        if self.tags:
            parts.append(f"Tags: {', '.join(self.tags)}")
        if self.keywords:
            parts.append(f"Keywords: {', '.join(self.keywords)}")
        return "\n".join(parts)

    def to_langchain_document(self) -> Document:
        metadata = {
            "memory_id": self.id,
            "conversation_id": self.conversation_id,
            "created_at": self.created_at.isoformat(),
            "tags": self.tags,
            "keywords": self.keywords,
            "related_to": self.related_to or None,
        }
        metadata.update(self.metadata)
        metadata = {k: v for k, v in metadata.items() if v is not None}
        return Document(page_content=self.content, metadata=metadata)


class MemoryUpdate(BaseModel):
    """Partial update payload for `SQLiteMemoryStore.update`.

    A field is applied when it is not None. List fields replace the stored
    values wholesale; `metadata` is shallow-merged into the stored dict.
    """

    content: str | None = None
    conversation_id: str | None = None
    tags: list[str] | None = None
    keywords: list[str] | None = None
    related_to: list[str] | None = None
    metadata: dict[str, Any] | None = None

    def apply(self, memory: Memory) -> Memory:
        changes: dict[str, Any] = {}
        if self.content:
            changes["content"] = self.content
        if self.conversation_id:
            changes["conversation_id"] = self.conversation_id
        if self.tags is not None:
            changes["tags"] = _unique(self.tags)
        if self.keywords is not None:
            changes["keywords"] = _unique(self.keywords)
        if self.related_to is not None:
            changes["related_to"] = _unique(self.related_to)
        if self.metadata is not None:
            changes["metadata"] = {**memory.metadata, **self.metadata}
        return memory.model_copy(update=changes)
