"""Error taxonomy and failure classification for model and network calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx


class DeepSearchError(Exception):
    """Base class for errors raised by the research loop and its adapters."""


class SearchProviderError(DeepSearchError):
    """A search request failed at the transport or API level."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class CrawlerError(DeepSearchError):
    """The crawl adapter itself is unusable (not raised for individual URLs)."""


class StructuredOutputError(DeepSearchError):
    """A model response could not be parsed into the expected structure."""

    def __init__(self, message: str, *, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class FailureKind(str, Enum):
    OVERLOADED = "overloaded"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


OVERLOADED_STATUS_CODES = frozenset({503, 529})
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 504})
OVERLOAD_MARKERS = ("overload", "over capacity", "at capacity")


@dataclass(frozen=True, slots=True)
class ErrorDescriptor:
    status_code: int | None = None
    message: str = ""
    provider_code: str = ""
    body_message: str = ""


def _body_message(body: Any) -> str:
    if isinstance(body, str):
        return body
    if not isinstance(body, dict):
        return ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message", "") or "")
    if isinstance(error, str):
        return error
    return str(body.get("message", "") or "")


def describe_error(exc: BaseException) -> ErrorDescriptor:
    """Build a descriptor from whatever shape the SDK exception carries."""
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    if not isinstance(status, int):
        status = None

    code = getattr(exc, "code", None)
    body = getattr(exc, "body", None)
    if body is None:
        body = getattr(exc, "data", None)

    return ErrorDescriptor(
        status_code=status,
        message=str(exc) or exc.__class__.__name__,
        provider_code=str(code) if code is not None else "",
        body_message=_body_message(body),
    )


def classify_failure(error: BaseException | ErrorDescriptor) -> FailureKind:
    """Map an error to OVERLOADED, TRANSIENT or PERMANENT.

    Overload detection is a loose match across status code, provider code,
    body message and exception text.
    """
    descriptor = error if isinstance(error, ErrorDescriptor) else describe_error(error)

    haystack = " ".join(
        (descriptor.provider_code, descriptor.body_message, descriptor.message)
    ).lower()
    if descriptor.status_code in OVERLOADED_STATUS_CODES or any(
        marker in haystack for marker in OVERLOAD_MARKERS
    ):
        return FailureKind.OVERLOADED

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return FailureKind.TRANSIENT
    if descriptor.status_code in TRANSIENT_STATUS_CODES:
        return FailureKind.TRANSIENT
    if descriptor.status_code is not None and descriptor.status_code >= 500:
        return FailureKind.TRANSIENT
    if "timed out" in haystack or "timeout" in haystack or "rate limit" in haystack:
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


def is_retryable(error: BaseException) -> bool:
    return classify_failure(error) is not FailureKind.PERMANENT
