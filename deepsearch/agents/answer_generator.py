from __future__ import annotations

import inspect
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from loguru import logger

from deepsearch.agents.base import ModelAgent, prompt_values
from deepsearch.config import settings
from deepsearch.llm_client import OpenRouterStream, Usage
from deepsearch.models.context import ContextSnapshot
from deepsearch.services import logger as log_service
from deepsearch.services.prompt_store import render_prompt

FinishCallback = Callable[[str], Union[None, Awaitable[None]]]


class AnswerStream:
    """Async iterator over answer text chunks.

    The underlying model stream is opened lazily on first iteration and can
    only be consumed once. `on_finish` receives the full text after the last
    chunk.
    """

    def __init__(
        self,
        open_stream: Callable[[], OpenRouterStream],
        *,
        is_final: bool,
        model: str = "",
        on_finish: Optional[FinishCallback] = None,
    ):
        self._open_stream = open_stream
        self.is_final = is_final
        self.model = model
        self._on_finish = on_finish
        self._chunks: list[str] = []
        self._started = False
        self.finished = False
        self.usage = Usage()

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("AnswerStream can only be consumed once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        t0 = time.monotonic()
        async with self._open_stream() as stream:
            async for chunk in stream.text_stream:
                self._chunks.append(chunk)
                yield chunk
            final = await stream.get_final_message()

        self.usage = getattr(final, "usage", None) or Usage()
        self.finished = True
        log_service.log_llm_call(
            model=self.model,
            caller=AnswerGenerator.name,
            input_tokens=self.usage.input_tokens,
            output_tokens=self.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        if self._on_finish is not None:
            result = self._on_finish(self.text)
            if inspect.isawaitable(result):
                await result

    async def consume(self) -> str:
        async for _ in self:
            pass
        return self.text


class AnswerGenerator(ModelAgent):
    """Streams the final cited answer."""

    name = "answer-question"

    def build_messages(self, snapshot: ContextSnapshot, *, is_final: bool) -> tuple[str, str]:
        values: dict[str, Any] = prompt_values(snapshot)
        values["final_warning"] = render_prompt("answer.final_warning") if is_final else ""
        values["search_history"] = snapshot.get_search_history() or "No search results available."
        return render_prompt("answer.system", **values), render_prompt("answer.user", **values)

    def answer(
        self,
        snapshot: ContextSnapshot,
        *,
        is_final: bool,
        on_finish: Optional[FinishCallback] = None,
    ) -> AnswerStream:
        system, user = self.build_messages(snapshot, is_final=is_final)
        logger.info(
            f"Answering after {snapshot.step} step(s), "
            f"{len(snapshot.search_history)} searches, is_final={is_final}"
        )

        def open_stream() -> OpenRouterStream:
            return self.active_client.messages.stream(
                model=self.model,
                max_tokens=settings.answer_max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
            )

        return AnswerStream(open_stream, is_final=is_final, model=self.model, on_finish=on_finish)
