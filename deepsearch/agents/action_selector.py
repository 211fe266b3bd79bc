from __future__ import annotations

from loguru import logger

from deepsearch.agents.base import AgentOutput, ModelAgent, prompt_values
from deepsearch.config import settings
from deepsearch.models.actions import Action, NextAction
from deepsearch.models.context import ContextSnapshot
from deepsearch.services.prompt_store import render_prompt
from deepsearch.services.structured import parse_structured


class ActionSelector(ModelAgent):
    """Decides whether to keep researching or to answer."""

    name = "get-next-action"

    def build_messages(self, snapshot: ContextSnapshot) -> tuple[str, str]:
        values = prompt_values(snapshot)
        values["search_history"] = (
            snapshot.get_search_history() or "No searches performed yet for this question"
        )
        return (
            render_prompt("action_selector.system", **values),
            render_prompt("action_selector.user", **values),
        )

    async def decide(self, snapshot: ContextSnapshot) -> AgentOutput[Action]:
        system, user = self.build_messages(snapshot)
        response = await self._complete(
            system=system,
            user=user,
            max_tokens=settings.decide_max_tokens,
            json_mode=True,
        )
        action = parse_structured(response.text, NextAction).unwrap().root
        logger.info(f"Next action at step {snapshot.step}: {action.type} ({action.reasoning[:120]})")
        return AgentOutput(value=action, usage=response.usage, source=self.name)
