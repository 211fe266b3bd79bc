from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from deepsearch.models.actions import AnswerAction, ContinueAction, PlannedQuery
from deepsearch.models.search import SearchSource


class ObservationType(str, Enum):
    QUERY_PLAN = "QUERY_PLAN"
    SEARCH_SOURCES = "SEARCH_SOURCES"
    NEW_ACTION = "NEW_ACTION"
    TOKEN_USAGE = "TOKEN_USAGE"


@dataclass(frozen=True)
class QueryPlanObservation:
    type: ClassVar[ObservationType] = ObservationType.QUERY_PLAN
    plan: str
    queries: tuple[PlannedQuery, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "plan": self.plan,
            "queries": [q.model_dump() for q in self.queries],
        }


@dataclass(frozen=True)
class SearchSourcesObservation:
    type: ClassVar[ObservationType] = ObservationType.SEARCH_SOURCES
    sources: tuple[SearchSource, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "sources": [s.to_dict() for s in self.sources],
        }


@dataclass(frozen=True)
class NewActionObservation:
    type: ClassVar[ObservationType] = ObservationType.NEW_ACTION
    action: Union[ContinueAction, AnswerAction]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "action": self.action.model_dump()}


@dataclass(frozen=True)
class TokenUsageObservation:
    type: ClassVar[ObservationType] = ObservationType.TOKEN_USAGE
    total_tokens: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "totalTokens": self.total_tokens}


Observation = Union[
    QueryPlanObservation,
    SearchSourcesObservation,
    NewActionObservation,
    TokenUsageObservation,
]


def format_observation(observation: Observation) -> str:
    """Render an observation as a server-sent event frame."""
    return f"event: {observation.type.value}\ndata: {json.dumps(observation.to_dict())}\n\n"
