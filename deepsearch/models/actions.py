from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator


class PlannedQuery(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    query: str = Field(min_length=1, description="A specific search query in natural language")
    purpose: str = Field(
        default="",
        description="The specific purpose this query serves in the overall research plan",
    )


class QueryPlan(BaseModel):
    """Research plan produced by the query planner."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    plan: str
    queries: list[PlannedQuery] = Field(min_length=1, max_length=5)


class ContinueAction(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    type: Literal["continue"] = "continue"
    title: str = ""
    reasoning: str
    feedback: Optional[str] = None


class AnswerAction(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    type: Literal["answer"] = "answer"
    title: str = ""
    reasoning: str
    feedback: Optional[str] = None


Action = Annotated[Union[ContinueAction, AnswerAction], Field(discriminator="type")]


class NextAction(RootModel[Action]):
    """Model-output shape for the action selector.

    Continuing without concrete feedback is rejected here, so the planner
    always has something to act on after a model-chosen continue.
    """

    @model_validator(mode="after")
    def _continue_requires_feedback(self) -> "NextAction":
        action = self.root
        if isinstance(action, ContinueAction) and not (action.feedback or "").strip():
            raise ValueError("feedback is required when type is 'continue'")
        return self
