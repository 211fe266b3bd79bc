from __future__ import annotations

from loguru import logger

from deepsearch.agents.base import AgentOutput, ModelAgent, prompt_values
from deepsearch.config import settings
from deepsearch.models.actions import QueryPlan
from deepsearch.models.context import ContextSnapshot
from deepsearch.services.prompt_store import render_prompt
from deepsearch.services.structured import parse_structured


class QueryPlanner(ModelAgent):
    """Turns the question, prior evidence and evaluator feedback into 1-5 search queries.

    Malformed output is not retried: `StructuredOutputError` propagates and
    aborts the research run.
    """

    name = "query-planner"

    def __init__(self, model: str | None = None, client=None, *, max_queries: int | None = None):
        planner_override = (settings.planner_model or "").strip()
        super().__init__(model=model or planner_override or None, client=client)
        self.max_queries = min(max(int(max_queries or settings.max_planned_queries), 1), 5)

    def build_messages(self, snapshot: ContextSnapshot) -> tuple[str, str]:
        values = prompt_values(snapshot)
        values["search_history"] = snapshot.get_search_history() or "No searches performed yet"
        values["max_queries"] = str(self.max_queries)
        return render_prompt("planner.system", **values), render_prompt("planner.user", **values)

    async def plan(self, snapshot: ContextSnapshot) -> AgentOutput[QueryPlan]:
        system, user = self.build_messages(snapshot)
        response = await self._complete(
            system=system,
            user=user,
            max_tokens=settings.plan_max_tokens,
            json_mode=True,
        )
        plan = parse_structured(response.text, QueryPlan).unwrap()
        if len(plan.queries) > self.max_queries:
            plan = plan.model_copy(update={"queries": plan.queries[: self.max_queries]})

        logger.info(f"Planned {len(plan.queries)} queries at step {snapshot.step}")
        return AgentOutput(value=plan, usage=response.usage, source=self.name)
