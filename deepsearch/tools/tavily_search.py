from __future__ import annotations

from tavily import AsyncTavilyClient

from deepsearch.config import settings
from deepsearch.models.search import SearchHit
from deepsearch.services.failures import SearchProviderError


async def search(
    query: str,
    *,
    num: int = 10,
    search_depth: str = "basic",
    topic: str = "general",
) -> list[SearchHit]:
    """Execute a Tavily web search and normalize it to organic hits."""
    if not settings.tavily_api_key:
        raise SearchProviderError("TAVILY_API_KEY is not configured", provider="tavily")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    try:
        response = await client.search(
            query=query,
            search_depth=search_depth,
            max_results=num,
            topic=topic,
        )
    except Exception as exc:
        raise SearchProviderError(f"Tavily request failed: {exc}", provider="tavily") from exc

    return [
        SearchHit(
            title=r.get("title", ""),
            link=r.get("url", ""),
            snippet=r.get("content", ""),
            date=r.get("published_date") or None,
        )
        for r in response.get("results", [])
        if r.get("url")
    ]
