"""Query-focused page summaries and the per-page fallback chain.

Every search hit that enters the pipeline leaves with a non-empty
`scraped_content`:

* crawl failed          -> "Failed to scrape" note + snippet
* crawl returned nothing -> "No content found" note + snippet
* summarizer overloaded  -> note + raw page text
* summarizer failed      -> note + snippet
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger

from deepsearch.agents.base import AgentOutput, ModelAgent
from deepsearch.config import settings
from deepsearch.llm_client import Usage
from deepsearch.models.search import CrawlResult, SearchHit, SearchResult
from deepsearch.services.failures import FailureKind, classify_failure, describe_error
from deepsearch.services.prompt_store import current_date_label, render_prompt

FAILED_TO_SCRAPE = "Failed to scrape"
NO_CONTENT_FOUND = "No content found"
OVERLOADED_NOTE = "Summarizer temporarily overloaded - using raw scraped content"
SUMMARY_FAILED_NOTE = "Failed to summarize content"
NO_SNIPPET = "(no snippet available)"


class Summarizer(ModelAgent):
    name = "summarize-url"

    def __init__(self, model: str | None = None, client=None):
        override = (settings.summarizer_model or "").strip()
        super().__init__(model=model or override or None, client=client)

    def build_messages(
        self,
        *,
        content: str,
        hit: SearchHit,
        query: str,
        search_history: str,
    ) -> tuple[str, str]:
        system = render_prompt("summarizer.system", current_date=current_date_label())
        user = render_prompt(
            "summarizer.user",
            search_history=search_history or "No previous searches",
            query=query,
            title=hit.title,
            url=hit.link,
            date=hit.date or "Unknown",
            snippet=hit.snippet,
            content=content,
        )
        return system, user

    async def summarize(
        self,
        *,
        content: str,
        hit: SearchHit,
        query: str,
        search_history: str,
    ) -> AgentOutput[str]:
        system, user = self.build_messages(
            content=content, hit=hit, query=query, search_history=search_history
        )
        response = await self._complete(
            system=system,
            user=user,
            max_tokens=settings.summary_max_tokens,
        )
        return AgentOutput(value=response.text, usage=response.usage, source=self.name)


@dataclass(frozen=True)
class SummaryOutcome:
    result: SearchResult
    usage: Usage | None = None
    fallback: str | None = None


def _with_snippet(note: str, snippet: str) -> str:
    return f"{note}\n\nSnippet: {snippet.strip() or NO_SNIPPET}"


def summarizer_failure_content(error: BaseException, hit: SearchHit, raw_content: str) -> tuple[str, str]:
    """Substitute text for a failed summarization, plus the fallback label."""
    kind = classify_failure(error)
    if kind is FailureKind.OVERLOADED and raw_content.strip():
        return f"{OVERLOADED_NOTE}\n\n{raw_content}", "raw_content"

    descriptor = describe_error(error)
    note = SUMMARY_FAILED_NOTE
    if descriptor.status_code:
        note = f"Summarization failed (Error {descriptor.status_code})"
    return _with_snippet(note, hit.snippet), "snippet"


async def summarize_with_fallback(
    summarizer: Summarizer,
    *,
    hit: SearchHit,
    crawl_result: CrawlResult | None,
    query: str,
    search_history: str,
) -> SummaryOutcome:
    """Never raises; converts every per-page failure into substitute evidence."""
    date = hit.date or datetime.now(timezone.utc).isoformat()

    def build(content: str) -> SearchResult:
        return SearchResult(
            date=date,
            title=hit.title,
            url=hit.link,
            snippet=hit.snippet,
            scraped_content=content,
        )

    if crawl_result is None or not crawl_result.success:
        reason = crawl_result.error if crawl_result and crawl_result.error else "no crawl result"
        logger.warning(f"Using snippet for {hit.link}: scrape failed ({reason})")
        return SummaryOutcome(result=build(_with_snippet(FAILED_TO_SCRAPE, hit.snippet)), fallback="scrape_failed")

    raw_content = crawl_result.data or ""
    if not raw_content.strip():
        return SummaryOutcome(result=build(_with_snippet(NO_CONTENT_FOUND, hit.snippet)), fallback="no_content")

    try:
        output = await summarizer.summarize(
            content=raw_content,
            hit=hit,
            query=query,
            search_history=search_history,
        )
    except Exception as e:
        content, fallback = summarizer_failure_content(e, hit, raw_content)
        logger.warning(f"Failed to summarize {hit.link} ({classify_failure(e).value}); using {fallback}: {e}")
        return SummaryOutcome(result=build(content), fallback=fallback)

    summary = output.value.strip()
    if not summary:
        return SummaryOutcome(
            result=build(_with_snippet("Summarizer returned no text", hit.snippet)),
            usage=output.usage,
            fallback="snippet",
        )
    return SummaryOutcome(result=build(summary), usage=output.usage)
