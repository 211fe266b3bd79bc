from __future__ import annotations

from typing import Iterable

from deepsearch.models.actions import AnswerAction, ContinueAction, QueryPlan
from deepsearch.models.events import (
    NewActionObservation,
    QueryPlanObservation,
    SearchSourcesObservation,
    TokenUsageObservation,
)
from deepsearch.models.search import SearchSource


def query_plan(plan: QueryPlan) -> QueryPlanObservation:
    return QueryPlanObservation(plan=plan.plan, queries=tuple(plan.queries))


def search_sources(sources: Iterable[SearchSource]) -> SearchSourcesObservation:
    return SearchSourcesObservation(sources=tuple(sources))


def new_action(action: ContinueAction | AnswerAction) -> NewActionObservation:
    return NewActionObservation(action=action)


def token_usage(total_tokens: int) -> TokenUsageObservation:
    return TokenUsageObservation(total_tokens=int(total_tokens))
