from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from deepsearch.llm_client import MessageResponse, OpenRouterClientAdapter, Usage
from deepsearch.llm_client import client as llm_client, get_model
from deepsearch.models.context import ContextSnapshot
from deepsearch.services import logger as log_service
from deepsearch.services.prompt_store import current_date_label, render_prompt

T = TypeVar("T")


@dataclass(frozen=True)
class AgentOutput(Generic[T]):
    """A component's result plus the usage the orchestrator should record."""
    value: T
    usage: Usage
    source: str


class ModelAgent:
    """Base for components that make a single model call per invocation."""

    name: str = "base"

    def __init__(self, model: str | None = None, client: OpenRouterClientAdapter | None = None):
        self.model = model or get_model()
        self.client = client

    @property
    def active_client(self) -> OpenRouterClientAdapter:
        return self.client or llm_client()

    async def _complete(
        self,
        *,
        system: str,
        user: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> MessageResponse:
        t0 = time.monotonic()
        try:
            response = await self.active_client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
                json_mode=json_mode,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e) or e.__class__.__name__,
            )
            raise

        usage = getattr(response, "usage", None) or Usage()
        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return response


def prompt_values(snapshot: ContextSnapshot, now: datetime | None = None) -> dict[str, Any]:
    """Values shared by the planner, action selector and answer prompts."""
    moment = now or datetime.now(timezone.utc)
    location = snapshot.location_block()
    feedback = snapshot.latest_feedback
    return {
        "current_date": current_date_label(moment),
        "location_block": f"\n\n{location}" if location else "",
        "conversation_history": snapshot.get_conversation_history(),
        "user_question": snapshot.get_user_question(),
        "feedback_block": (
            "The evaluator provided this feedback on what information is missing or needs "
            f"improvement:\n\n{feedback}"
            if feedback
            else "No previous feedback available."
        ),
        "location_rule": render_prompt("common.location_rule"),
        "recency_rule": render_prompt(
            "common.recency_rule",
            current_year=str(moment.year),
            current_month_year=f"{moment:%B} {moment.year}",
        ),
    }
