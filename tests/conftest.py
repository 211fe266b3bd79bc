from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import pytest

from deepsearch.llm_client import MessageResponse, TextBlock, Usage


class FakeStream:
    def __init__(self, chunks: list[str], usage: Usage | None = None):
        self._chunks = chunks
        self._usage = usage or Usage(input_tokens=100, output_tokens=50)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    @property
    def text_stream(self):
        async def gen():
            for chunk in self._chunks:
                yield chunk
        return gen()

    async def get_final_message(self):
        text = "".join(self._chunks)
        return MessageResponse(content=[TextBlock(type="text", text=text)], usage=self._usage)


class FakeMessages:
    """Scripted replacement for `OpenRouterMessagesAdapter`.

    `replies` items are strings, dicts (JSON-encoded) or exceptions (raised).
    """

    def __init__(self, replies: list[Any] | None = None, stream_chunks: list[str] | None = None):
        self.replies = list(replies or [])
        self.stream_chunks = stream_chunks or ["Answer text."]
        self.create_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []

    async def create(self, **kwargs):
        self.create_calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return MessageResponse(
            content=[TextBlock(type="text", text=reply)] if reply else [],
            usage=Usage(input_tokens=10, output_tokens=5),
        )

    def stream(self, **kwargs):
        self.stream_calls.append(kwargs)
        return FakeStream(self.stream_chunks)


@pytest.fixture
def fake_client():
    def build(replies: list[Any] | None = None, stream_chunks: list[str] | None = None):
        return SimpleNamespace(messages=FakeMessages(replies, stream_chunks))
    return build


class StatusError(Exception):
    """Mimics the attribute shape of SDK HTTP errors."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@pytest.fixture
def status_error():
    return StatusError
