from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from loguru import logger

from deepsearch.config import settings
from deepsearch.models.search import SearchHit
from deepsearch.tools import serper_search, tavily_search

T = TypeVar("T")


async def _with_cancellation(awaitable: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
    """Await `awaitable`, abandoning it as soon as `cancel_event` is set."""
    if cancel_event is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise asyncio.CancelledError("search cancelled before start")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not waiter.done():
            waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    raise asyncio.CancelledError("search cancelled by caller")


async def _search_once(query: str, num: int) -> list[SearchHit]:
    provider = settings.search_provider.lower().strip()

    if provider == "tavily":
        return await tavily_search.search(query, num=num)

    if provider == "serper":
        try:
            return await serper_search.search(query, num=num)
        except Exception as e:
            if not settings.search_fallback_to_tavily:
                raise
            logger.warning(f"Serper search failed for {query!r}, falling back to Tavily: {e}")
            return await tavily_search.search(query, num=num)

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")


async def search(
    query: str,
    num: int | None = None,
    cancel_event: asyncio.Event | None = None,
) -> list[SearchHit]:
    """Search the web; all-or-nothing per query, errors propagate."""
    count = max(int(num if num is not None else settings.search_results_count), 1)
    return await _with_cancellation(_search_once(query, count), cancel_event)
