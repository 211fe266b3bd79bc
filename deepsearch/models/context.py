"""Evidence store for one user question.

`SystemContext` is owned by the orchestrator and mutated only through its
reporting methods. Every other component receives a frozen `ContextSnapshot`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from deepsearch.config import settings
from deepsearch.llm_client import Usage
from deepsearch.models.search import SearchHistoryEntry


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: str

    @classmethod
    def from_any(cls, message: "ChatMessage | Mapping[str, Any]") -> "ChatMessage":
        if isinstance(message, ChatMessage):
            return message
        return cls(role=str(message.get("role", "user")), content=str(message.get("content", "") or ""))


@dataclass(frozen=True, slots=True)
class RequestHints:
    latitude: str | None = None
    longitude: str | None = None
    city: str | None = None
    country: str | None = None

    def render(self) -> str:
        return "\n".join(
            [
                "User's Location:",
                f"- City: {self.city or 'Unknown'}",
                f"- Country: {self.country or 'Unknown'}",
                f"- Latitude: {self.latitude or 'Unknown'}",
                f"- Longitude: {self.longitude or 'Unknown'}",
            ]
        )


@dataclass(frozen=True, slots=True)
class UsageEntry:
    source: str
    usage: Usage

    @property
    def total_tokens(self) -> int:
        return self.usage.input_tokens + self.usage.output_tokens


def render_search_history(entries: Iterable[SearchHistoryEntry]) -> str:
    blocks: list[str] = []
    for entry in entries:
        parts = [f'## Query: "{entry.query}"']
        for result in entry.results:
            parts.append(
                "\n\n".join(
                    [
                        f"### {result.date} - {result.title}",
                        result.url,
                        result.snippet,
                        "<summary>",
                        result.scraped_content,
                        "</summary>",
                    ]
                )
            )
        blocks.append("\n\n".join(parts))
    return "\n\n".join(blocks)


@dataclass(frozen=True, slots=True)
class ContextSnapshot:
    """Read-only view of the evidence store handed to planner, selector and answerer."""
    messages: tuple[ChatMessage, ...]
    step: int
    search_history: tuple[SearchHistoryEntry, ...]
    latest_feedback: str | None
    request_hints: RequestHints | None
    total_tokens: int

    def get_user_question(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""

    def get_conversation_history(self) -> str:
        return "\n\n".join(
            f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in self.messages
        )

    def get_search_history(self) -> str:
        return render_search_history(self.search_history)

    def location_block(self) -> str:
        return self.request_hints.render() if self.request_hints else ""


class SystemContext:
    def __init__(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        request_hints: RequestHints | None = None,
        *,
        step_limit: int | None = None,
    ):
        self._messages: tuple[ChatMessage, ...] = tuple(ChatMessage.from_any(m) for m in messages)
        self._request_hints = request_hints
        self.step_limit = max(int(step_limit if step_limit is not None else settings.step_limit), 1)
        self._step = 0
        self._search_history: list[SearchHistoryEntry] = []
        self._latest_feedback: str | None = None
        self._usage_log: list[UsageEntry] = []

    @property
    def step(self) -> int:
        return self._step

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._messages

    @property
    def request_hints(self) -> RequestHints | None:
        return self._request_hints

    @property
    def search_history(self) -> tuple[SearchHistoryEntry, ...]:
        return tuple(self._search_history)

    @property
    def latest_feedback(self) -> str | None:
        return self._latest_feedback

    @property
    def usage_log(self) -> tuple[UsageEntry, ...]:
        return tuple(self._usage_log)

    def should_stop(self) -> bool:
        return self._step >= self.step_limit

    def increment_step(self) -> None:
        self._step += 1

    def report_search(self, entry: SearchHistoryEntry) -> None:
        self._search_history.append(entry)

    def report_searches(self, entries: Iterable[SearchHistoryEntry]) -> None:
        for entry in entries:
            self.report_search(entry)

    def set_latest_feedback(self, feedback: str | None) -> None:
        # Only overwritten when new feedback is actually provided.
        if feedback and feedback.strip():
            self._latest_feedback = feedback.strip()

    def report_usage(self, source: str, usage: Usage | None) -> None:
        if usage is None:
            return
        entry = UsageEntry(source=source, usage=usage)
        if entry.total_tokens > 0:
            self._usage_log.append(entry)

    def get_total_usage(self) -> int:
        return sum(entry.total_tokens for entry in self._usage_log)

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            messages=self._messages,
            step=self._step,
            search_history=tuple(self._search_history),
            latest_feedback=self._latest_feedback,
            request_hints=self._request_hints,
            total_tokens=self.get_total_usage(),
        )

    # Convenience pass-throughs used by prompts and logs.
    def get_user_question(self) -> str:
        return self.snapshot().get_user_question()

    def get_search_history(self) -> str:
        return render_search_history(self._search_history)

    def get_conversation_history(self) -> str:
        return self.snapshot().get_conversation_history()
