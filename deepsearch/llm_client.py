"""OpenRouter chat client exposing `messages.create` / `messages.stream`.

Agents depend only on this facade, so tests can swap in any object with the
same two coroutine-style methods.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from deepsearch.config import settings

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    @classmethod
    def from_openai(cls, raw: Any) -> "Usage":
        if raw is None:
            return cls()
        return cls(
            input_tokens=getattr(raw, "prompt_tokens", 0) or 0,
            output_tokens=getattr(raw, "completion_tokens", 0) or 0,
        )


@dataclass
class TextBlock:
    type: str
    text: str


@dataclass
class MessageResponse:
    content: list[Any]
    usage: Usage = field(default_factory=Usage)

    @property
    def text(self) -> str:
        return "\n".join(
            block.text
            for block in self.content
            if getattr(block, "type", None) == "text" and isinstance(getattr(block, "text", None), str)
        ).strip()

    @classmethod
    def from_text(cls, text: str | None, usage: Usage | None = None) -> "MessageResponse":
        return cls(content=[TextBlock(type="text", text=text)] if text else [], usage=usage or Usage())

    @classmethod
    def from_completion(cls, completion: Any) -> "MessageResponse":
        message = completion.choices[0].message
        return cls.from_text(
            getattr(message, "content", None),
            Usage.from_openai(getattr(completion, "usage", None)),
        )


class OpenRouterStream:
    """Async context manager over a streamed chat completion.

    Usage arrives in a trailing chunk (``include_usage``), so it is only
    complete once the text stream is exhausted.
    """

    def __init__(self, pending: Any):
        self._pending = pending
        self._completion_stream: Any | None = None
        self._parts: list[str] = []
        self._usage = Usage()
        self._exhausted = False

    async def __aenter__(self) -> "OpenRouterStream":
        self._completion_stream = await self._pending
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._completion_stream is not None:
            await self._completion_stream.close()

    async def _deltas(self) -> AsyncIterator[str]:
        if self._completion_stream is None:
            return
        async for chunk in self._completion_stream:
            if getattr(chunk, "usage", None):
                self._usage = Usage.from_openai(chunk.usage)
            for choice in (getattr(chunk, "choices", None) or [])[:1]:
                delta = getattr(choice, "delta", None)
                piece = getattr(delta, "content", None) if delta else None
                if piece:
                    self._parts.append(piece)
                    yield piece
        self._exhausted = True

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._deltas()

    async def get_final_message(self) -> MessageResponse:
        if not self._exhausted:
            async for _ in self._deltas():
                pass
        return MessageResponse.from_text("".join(self._parts), self._usage)


def temperature_for(model: str) -> int:
    # GPT-5 family endpoints reject temperature=0.
    return 1 if "gpt-5" in (model or "").lower() else 0


class OpenRouterMessagesAdapter:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def request(model: str, max_tokens: int, system: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        chat = [{"role": "system", "content": system}]
        chat.extend({"role": m["role"], "content": str(m["content"])} for m in messages)
        return {
            "model": model,
            "messages": chat,
            "max_tokens": max_tokens,
            "temperature": temperature_for(model),
        }

    async def create(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = False,
    ) -> MessageResponse:
        kwargs = self.request(model, max_tokens, system, messages)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        completion = await self._client.chat.completions.create(**kwargs)
        return MessageResponse.from_completion(completion)

    def stream(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
    ) -> OpenRouterStream:
        pending = self._client.chat.completions.create(
            **self.request(model, max_tokens, system, messages),
            stream=True,
            stream_options={"include_usage": True},
        )
        return OpenRouterStream(pending)


class OpenRouterClientAdapter:
    def __init__(self, openai_client: Any):
        self.messages = OpenRouterMessagesAdapter(openai_client)


def get_client() -> OpenRouterClientAdapter:
    from openai import AsyncOpenAI

    return OpenRouterClientAdapter(
        AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url.strip() or DEFAULT_BASE_URL,
        )
    )


def get_model() -> str:
    return settings.openrouter_model or settings.default_model


_client: OpenRouterClientAdapter | None = None


def client() -> OpenRouterClientAdapter:
    """Process-wide client, created on first use."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
