"""
Shared pytest fixtures.

Provides fragment feeders that simulate a model's incremental output, an
event collector, and a fake language-model client.
"""

from typing import AsyncIterator, Callable, List, Optional, Sequence

import pytest

from chorus.domain.models import Speaker, StreamMode


async def _feed(fragments: Sequence[str]) -> AsyncIterator[str]:
    for fragment in fragments:
        yield fragment


def chunk_text(text: str, size: int) -> List[str]:
    """Split text into fixed-size chunks, the way a token stream might arrive"""
    return [text[i:i + size] for i in range(0, len(text), size)]


async def _collect(stream) -> list:
    return [item async for item in stream]


class FakeLLMClient:
    """Language-model client returning canned text"""

    def __init__(self, text: str = "", chunk_size: int = 3, error: Optional[Exception] = None):
        self.model_name = "fake-model"
        self.text = text
        self.chunk_size = chunk_size
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, system_prompt, messages) -> str:
        self.calls.append({"system": system_prompt, "messages": list(messages)})
        if self.error is not None:
            raise self.error
        return self.text

    async def stream(self, system_prompt, messages) -> AsyncIterator[str]:
        self.calls.append({"system": system_prompt, "messages": list(messages)})
        for chunk in chunk_text(self.text, self.chunk_size):
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.fixture
def feed() -> Callable[[Sequence[str]], AsyncIterator[str]]:
    """Turn a list of fragments into an async fragment feed"""
    return _feed


@pytest.fixture
def chunked() -> Callable[[str, int], List[str]]:
    return chunk_text


@pytest.fixture
def collect():
    """Drain an async iterator into a list"""
    return _collect


@pytest.fixture
def ann() -> Speaker:
    return Speaker(id=1, name="Ann", avatar_url="https://example.invalid/ann.png")


@pytest.fixture
def bob() -> Speaker:
    return Speaker(id=2, name="Bob")


@pytest.fixture
def line_bob() -> Speaker:
    return Speaker(id=2, name="Bob", stream_mode=StreamMode.LINES)


@pytest.fixture
def fake_client_factory():
    return FakeLLMClient
