import pytest
from datetime import datetime, timedelta, timezone

from calimem.core.models import Memory, Message
from calimem.core.protocols import GenerationConstraints
from calimem.store import MemoryStoreConfig


class RecordingGenerator:
    """TextGenerator double that records calls and returns scripted output."""

    def __init__(self, outputs=None, error=None):
        self.outputs = list(outputs or [])
        self.error = error
        self.calls: list[tuple[list[dict[str, str]], GenerationConstraints]] = []

    async def generate(self, turns, constraints):
        self.calls.append((turns, constraints))
        if self.error is not None:
            raise self.error
        if self.outputs:
            return self.outputs.pop(0)
        return f"summary #{len(self.calls)}"


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def generator():
    return RecordingGenerator()


@pytest.fixture
def failing_generator():
    return RecordingGenerator(error=RuntimeError("model unavailable"))


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def make_messages():
    base = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    def _make(count: int, start: int = 1, role: str = "user") -> list[Message]:
        return [
            Message(
                id=f"m{i}",
                content=f"message {i}",
                role=role,
                timestamp=base + timedelta(minutes=i),
            )
            for i in range(start, start + count)
        ]

    return _make


@pytest.fixture
def db_config(tmp_path):
    return MemoryStoreConfig(db_path=str(tmp_path / "memory.db"))


@pytest.fixture
def memory():
    return Memory(
        id="mem-1",
        content="User prefers dark roast coffee",
        conversation_id="conv-1",
        tags=["preferences"],
        keywords=["coffee"],
        metadata={"source": "chat"},
    )
