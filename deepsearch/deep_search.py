from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping

from deepsearch.agents.answer_generator import AnswerStream, FinishCallback
from deepsearch.agents.orchestrator import ObservationListener, ResearchOrchestrator
from deepsearch.models.context import ChatMessage, RequestHints


async def stream_from_deep_search(
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    *,
    on_observation: ObservationListener | None = None,
    on_finish: FinishCallback | None = None,
    request_hints: RequestHints | None = None,
    cancel_event: asyncio.Event | None = None,
    model: str | None = None,
    orchestrator: ResearchOrchestrator | None = None,
) -> AnswerStream:
    """Run the research loop and return the streaming answer."""
    message_list = list(messages or [])
    if not message_list:
        raise ValueError("No messages provided")

    runner = orchestrator or ResearchOrchestrator(model=model)
    return await runner.run(
        message_list,
        on_observation=on_observation,
        on_finish=on_finish,
        request_hints=request_hints,
        cancel_event=cancel_event,
    )


async def ask_deep_search(
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    *,
    model: str | None = None,
    orchestrator: ResearchOrchestrator | None = None,
) -> str:
    """Run the loop to completion and return the final answer text."""
    stream = await stream_from_deep_search(messages, model=model, orchestrator=orchestrator)
    return await stream.consume()
