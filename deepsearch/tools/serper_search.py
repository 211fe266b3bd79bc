from __future__ import annotations

from typing import Any

import httpx

from deepsearch.config import settings
from deepsearch.models.search import SearchHit
from deepsearch.services.failures import SearchProviderError

SERPER_SEARCH_URL = "https://google.serper.dev/search"


def parse_organic(payload: dict[str, Any]) -> list[SearchHit]:
    hits: list[SearchHit] = []
    for item in payload.get("organic", []) or []:
        link = item.get("link")
        if not isinstance(link, str) or not link.strip():
            continue
        hits.append(
            SearchHit(
                title=str(item.get("title", "") or ""),
                link=link.strip(),
                snippet=str(item.get("snippet", "") or ""),
                date=item.get("date") or None,
            )
        )
    return hits


async def search(
    query: str,
    *,
    num: int = 10,
    http_client: httpx.AsyncClient | None = None,
) -> list[SearchHit]:
    """Execute a Serper (Google) web search and return organic results."""
    if not settings.serper_api_key:
        raise SearchProviderError("SERPER_API_KEY is not configured", provider="serper")

    headers = {
        "X-API-KEY": settings.serper_api_key,
        "Content-Type": "application/json",
    }
    body = {"q": query, "num": num}

    try:
        if http_client is not None:
            response = await http_client.post(SERPER_SEARCH_URL, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(SERPER_SEARCH_URL, json=body, headers=headers)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as exc:
        raise SearchProviderError(
            f"Serper returned {exc.response.status_code} for query {query!r}",
            provider="serper",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise SearchProviderError(f"Serper request failed: {exc}", provider="serper") from exc

    return parse_organic(payload)
