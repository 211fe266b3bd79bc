"""Parse step for structured model output."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

from deepsearch.services.failures import StructuredOutputError

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class ParseSuccess(Generic[T]):
    value: T
    ok: bool = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class ParseFailure:
    error: str
    raw: str
    ok: bool = False

    def unwrap(self):
        raise StructuredOutputError(self.error, raw=self.raw)


ParseResult = Union[ParseSuccess[T], ParseFailure]


def extract_json_object(raw_text: str) -> dict:
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def parse_structured(raw_text: str, model_cls: type[T]) -> ParseResult:
    """Validate a model response against `model_cls` without raising."""
    if not raw_text or not raw_text.strip():
        return ParseFailure(error=f"Empty response for {model_cls.__name__}", raw=raw_text or "")
    try:
        payload = extract_json_object(raw_text)
    except json.JSONDecodeError as exc:
        return ParseFailure(error=f"Invalid JSON for {model_cls.__name__}: {exc.msg}", raw=raw_text)
    try:
        return ParseSuccess(value=model_cls.model_validate(payload))
    except ValidationError as exc:
        return ParseFailure(
            error=f"Schema validation failed for {model_cls.__name__}: {exc.error_count()} error(s)",
            raw=raw_text,
        )
