from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, Union
from uuid import uuid4

from loguru import logger

from deepsearch.agents.action_selector import ActionSelector
from deepsearch.agents.answer_generator import AnswerGenerator, AnswerStream, FinishCallback
from deepsearch.agents.planner import QueryPlanner
from deepsearch.agents.summarizer import Summarizer, SummaryOutcome, summarize_with_fallback
from deepsearch.config import settings
from deepsearch.models.actions import AnswerAction
from deepsearch.models.context import ChatMessage, RequestHints, SystemContext
from deepsearch.models.events import Observation
from deepsearch.models.search import BulkCrawlResponse, SearchHistoryEntry, SearchHit, SearchSource
from deepsearch.services import logger as log_service
from deepsearch.services import streaming
from deepsearch.tools import crawler, search_provider, web_utils

SearchFn = Callable[[str, int, Optional[asyncio.Event]], Awaitable[list[SearchHit]]]
CrawlFn = Callable[[list[str]], Awaitable[BulkCrawlResponse]]
ObservationListener = Callable[[Observation], Union[None, Awaitable[None]]]


class LoopState(str, Enum):
    PLANNING = "planning"
    SEARCHING = "searching"
    SUMMARIZING = "summarizing"
    DECIDING = "deciding"
    ANSWERING = "answering"


@dataclass(frozen=True)
class QuerySearch:
    query: str
    hits: tuple[SearchHit, ...]


def collect_sources(searches: Iterable[QuerySearch]) -> list[SearchSource]:
    """Unique sources across all queries of one iteration, first-seen wins."""
    sources: list[SearchSource] = []
    seen_urls: set[str] = set()
    for search in searches:
        for hit in search.hits:
            if not hit.link or hit.link in seen_urls:
                continue
            seen_urls.add(hit.link)
            sources.append(
                SearchSource(
                    title=hit.title,
                    url=hit.link,
                    snippet=hit.snippet,
                    date=hit.date,
                    favicon=web_utils.favicon_url(hit.link),
                )
            )
    return sources


class ResearchOrchestrator:
    """Runs the bounded research loop for one user question.

    Flow per iteration:
      1. Plan 1-5 queries (planner)
      2. Search all queries concurrently, surface deduplicated sources
      3. Per query: crawl its URLs, summarize every page concurrently
      4. Record evidence, ask the action selector to continue or answer

    The loop ends with exactly one answer stream: early when the selector
    answers, or with a best-effort final answer when the step budget is spent.
    Planner, search and selector failures propagate; crawl and summarize
    failures become substitute evidence.
    """

    def __init__(
        self,
        model: str | None = None,
        *,
        search_fn: SearchFn | None = None,
        crawl_fn: CrawlFn | None = None,
        planner: QueryPlanner | None = None,
        summarizer: Summarizer | None = None,
        action_selector: ActionSelector | None = None,
        answer_generator: AnswerGenerator | None = None,
        step_limit: int | None = None,
        results_per_query: int | None = None,
    ):
        self.model = model
        self.search_fn: SearchFn = search_fn or search_provider.search
        self.crawl_fn: CrawlFn = crawl_fn or crawler.bulk_crawl
        self.planner = planner or QueryPlanner(model=model)
        self.summarizer = summarizer or Summarizer(model=model)
        self.action_selector = action_selector or ActionSelector(model=model)
        self.answer_generator = answer_generator or AnswerGenerator(model=model)
        self.step_limit = max(int(settings.step_limit if step_limit is None else step_limit), 1)
        self.results_per_query = max(
            int(settings.search_results_count if results_per_query is None else results_per_query), 1
        )

    async def _emit(self, listener: ObservationListener | None, observation: Observation) -> None:
        if listener is None:
            return
        try:
            result = listener(observation)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Observation listener failed on {observation.type.value}: {e}")

    async def _search_all(
        self, queries: Sequence[str], cancel_event: asyncio.Event | None
    ) -> list[QuerySearch]:
        tasks = [
            asyncio.ensure_future(self.search_fn(query, self.results_per_query, cancel_event))
            for query in queries
        ]
        try:
            hit_lists = await asyncio.gather(*tasks)
        except BaseException:
            # One failed search aborts the question; stop the rest.
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        # gather preserves input order regardless of completion order.
        return [QuerySearch(query=q, hits=tuple(hits)) for q, hits in zip(queries, hit_lists)]

    async def _crawl(self, urls: list[str]) -> BulkCrawlResponse:
        try:
            return await self.crawl_fn(urls)
        except Exception as e:
            logger.warning(f"Crawl batch of {len(urls)} URLs failed outright: {e}")
            return BulkCrawlResponse(success=False, results=[], error=str(e))

    async def _scrape_and_summarize(
        self, search: QuerySearch, search_history: str
    ) -> tuple[SearchHistoryEntry, list[SummaryOutcome]]:
        if not search.hits:
            return SearchHistoryEntry(query=search.query, results=()), []

        crawl = await self._crawl([hit.link for hit in search.hits])
        outcomes = await asyncio.gather(
            *(
                summarize_with_fallback(
                    self.summarizer,
                    hit=hit,
                    crawl_result=crawl.for_url(hit.link),
                    query=search.query,
                    search_history=search_history,
                )
                for hit in search.hits
            )
        )
        entry = SearchHistoryEntry(
            query=search.query,
            results=tuple(outcome.result for outcome in outcomes),
        )
        return entry, list(outcomes)

    def _answer(
        self,
        ctx: SystemContext,
        *,
        is_final: bool,
        on_finish: FinishCallback | None,
        run_id: str,
    ) -> AnswerStream:
        log_service.log_research_step(
            run_id,
            LoopState.ANSWERING.value,
            "started",
            {"step": ctx.step, "is_final": is_final, "total_tokens": ctx.get_total_usage()},
        )
        return self.answer_generator.answer(ctx.snapshot(), is_final=is_final, on_finish=on_finish)

    async def run(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        *,
        on_observation: ObservationListener | None = None,
        on_finish: FinishCallback | None = None,
        request_hints: RequestHints | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AnswerStream:
        ctx = SystemContext(messages, request_hints, step_limit=self.step_limit)
        run_id = uuid4().hex[:12]
        logger.info(f"Research run {run_id} started: {ctx.get_user_question()[:120]!r}")

        while not ctx.should_stop():
            snapshot = ctx.snapshot()

            log_service.log_research_step(run_id, LoopState.PLANNING.value, "started", {"step": ctx.step})
            planned = await self.planner.plan(snapshot)
            ctx.report_usage(planned.source, planned.usage)
            plan = planned.value
            await self._emit(on_observation, streaming.query_plan(plan))

            queries = [q.query for q in plan.queries]
            log_service.log_research_step(
                run_id, LoopState.SEARCHING.value, "started", {"step": ctx.step, "queries": queries}
            )
            searches = await self._search_all(queries, cancel_event)
            sources = collect_sources(searches)
            if sources:
                await self._emit(on_observation, streaming.search_sources(sources))

            log_service.log_research_step(
                run_id,
                LoopState.SUMMARIZING.value,
                "started",
                {"step": ctx.step, "results": sum(len(s.hits) for s in searches)},
            )
            history_text = snapshot.get_search_history()
            summarized = await asyncio.gather(
                *(self._scrape_and_summarize(search, history_text) for search in searches)
            )
            fallbacks: dict[str, int] = {}
            for entry, outcomes in summarized:
                ctx.report_search(entry)
                for outcome in outcomes:
                    if outcome.usage is not None:
                        ctx.report_usage(self.summarizer.name, outcome.usage)
                    if outcome.fallback:
                        fallbacks[outcome.fallback] = fallbacks.get(outcome.fallback, 0) + 1
            if fallbacks:
                log_service.log_event(
                    "evidence_fallback",
                    f"{sum(fallbacks.values())} page(s) recorded without a model summary",
                    run_id=run_id,
                    step=ctx.step,
                    fallbacks=fallbacks,
                )

            log_service.log_research_step(run_id, LoopState.DECIDING.value, "started", {"step": ctx.step})
            decided = await self.action_selector.decide(ctx.snapshot())
            ctx.report_usage(decided.source, decided.usage)
            action = decided.value
            ctx.set_latest_feedback(action.feedback)
            await self._emit(on_observation, streaming.new_action(action))

            if isinstance(action, AnswerAction):
                await self._emit_usage(ctx, on_observation)
                return self._answer(ctx, is_final=False, on_finish=on_finish, run_id=run_id)

            ctx.increment_step()

        logger.info(f"Research run {run_id} hit the step limit ({self.step_limit}); forcing an answer")
        await self._emit_usage(ctx, on_observation)
        return self._answer(ctx, is_final=True, on_finish=on_finish, run_id=run_id)

    async def _emit_usage(self, ctx: SystemContext, listener: ObservationListener | None) -> None:
        total = ctx.get_total_usage()
        if total > 0:
            await self._emit(listener, streaming.token_usage(total))
