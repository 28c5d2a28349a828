"""Shared fixtures for the intelligence test suite."""

from datetime import datetime, timedelta
from typing import List

import pytest

from intelligence.base_types import ChatContext, ChatMessage, MessageMetadata


class FakeClock:
    """Manually advanced clock for TTL and breaker timing"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_history(*contents: str, minutes_apart: int = 2, start: datetime = NOW) -> List[ChatMessage]:
    """Alternating user/assistant messages, oldest first, ending at `start`"""
    count = len(contents)
    return [
        ChatMessage(
            id=f"m{i + 1}",
            content=content,
            role='user' if i % 2 == 0 else 'assistant',
            timestamp=start - timedelta(minutes=minutes_apart * (count - 1 - i)),
        )
        for i, content in enumerate(contents)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fixed_now():
    return lambda: NOW


@pytest.fixture
def technical_history():
    messages = make_history(
        "My React component throws an error when the state updates",
        "Can you share the component code and the full error?",
        "Here it is: `const [items, setItems] = useState()` then items.map fails",
    )
    messages[2] = ChatMessage(
        id=messages[2].id,
        content=messages[2].content,
        role=messages[2].role,
        timestamp=messages[2].timestamp,
        metadata=MessageMetadata(contained_code=True, error_context=True),
    )
    return messages


@pytest.fixture
def technical_context(technical_history):
    return ChatContext(messages=technical_history, session_id='test')
