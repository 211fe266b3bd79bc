from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from deepsearch.agents.base import AgentOutput
from deepsearch.agents.orchestrator import QuerySearch, ResearchOrchestrator, collect_sources
from deepsearch.agents.summarizer import FAILED_TO_SCRAPE, Summarizer
from deepsearch.llm_client import Usage
from deepsearch.models.actions import AnswerAction, ContinueAction, PlannedQuery, QueryPlan
from deepsearch.models.events import (
    NewActionObservation,
    ObservationType,
    QueryPlanObservation,
    SearchSourcesObservation,
    TokenUsageObservation,
)
from deepsearch.models.search import BulkCrawlResponse, CrawlResult, SearchHit
from deepsearch.services.failures import SearchProviderError, StructuredOutputError


class ScriptedPlanner:
    name = "query-planner"

    def __init__(self, queries_per_step: list[list[str]] | None = None):
        self.queries_per_step = queries_per_step or [["default query"]]
        self.snapshots = []

    async def plan(self, snapshot):
        self.snapshots.append(snapshot)
        index = min(len(self.snapshots) - 1, len(self.queries_per_step) - 1)
        queries = [PlannedQuery(query=q, purpose="") for q in self.queries_per_step[index]]
        return AgentOutput(
            value=QueryPlan(plan=f"plan {len(self.snapshots)}", queries=queries),
            usage=Usage(input_tokens=10, output_tokens=5),
            source=self.name,
        )


class ScriptedSelector:
    name = "get-next-action"

    def __init__(self, actions):
        self.actions = list(actions)
        self.snapshots = []

    async def decide(self, snapshot):
        self.snapshots.append(snapshot)
        action = self.actions.pop(0) if len(self.actions) > 1 else self.actions[0]
        return AgentOutput(value=action, usage=Usage(input_tokens=3, output_tokens=2), source=self.name)


class RecordingAnswerGenerator:
    name = "answer-question"

    def __init__(self):
        self.calls = []

    def answer(self, snapshot, *, is_final, on_finish=None):
        self.calls.append(SimpleNamespace(snapshot=snapshot, is_final=is_final, on_finish=on_finish))
        return SimpleNamespace(is_final=is_final)


def _hits_for(query: str, count: int = 2) -> list[SearchHit]:
    slug = query.replace(" ", "-")
    return [
        SearchHit(title=f"{query} {i}", link=f"https://site{i}.example.com/{slug}", snippet=f"snippet {i}")
        for i in range(count)
    ]


def _search_fn(hits_by_query=None):
    calls: list[tuple[str, int]] = []

    async def search(query, num, cancel_event):
        calls.append((query, num))
        if hits_by_query is not None:
            return list(hits_by_query.get(query, []))
        return _hits_for(query)

    search.calls = calls
    return search


def _crawl_ok():
    async def crawl(urls):
        return BulkCrawlResponse(
            success=True,
            results=[CrawlResult(url=u, success=True, data=f"content of {u}") for u in urls],
        )

    return crawl


def _summarizer(fake_client, reply: str = "summary"):
    return Summarizer(model="m", client=fake_client([reply] * 200))


CONTINUE = ContinueAction(title="More", reasoning="gaps", feedback="need more detail")
ANSWER = AnswerAction(title="Done", reasoning="enough")


def _orchestrator(
    fake_client,
    *,
    planner=None,
    selector=None,
    search_fn=None,
    crawl_fn=None,
    summarizer=None,
    answer_generator=None,
    **kwargs,
):
    return ResearchOrchestrator(
        model="m",
        search_fn=search_fn or _search_fn(),
        crawl_fn=crawl_fn or _crawl_ok(),
        planner=planner or ScriptedPlanner(),
        summarizer=summarizer or _summarizer(fake_client),
        action_selector=selector or ScriptedSelector([ANSWER]),
        answer_generator=answer_generator or RecordingAnswerGenerator(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_never_satisfied_selector_runs_ten_steps_then_final_answer(fake_client):
    planner = ScriptedPlanner()
    selector = ScriptedSelector([CONTINUE])
    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(fake_client, planner=planner, selector=selector, answer_generator=answers)

    await orchestrator.run([{"role": "user", "content": "q"}])

    assert len(planner.snapshots) == 10
    assert len(selector.snapshots) == 10
    assert len(answers.calls) == 1
    assert answers.calls[0].is_final is True
    assert answers.calls[0].snapshot.step == 10
    assert len(answers.calls[0].snapshot.search_history) == 10


@pytest.mark.asyncio
async def test_custom_step_limit_is_honored(fake_client):
    planner = ScriptedPlanner()
    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(
        fake_client,
        planner=planner,
        selector=ScriptedSelector([CONTINUE]),
        answer_generator=answers,
        step_limit=3,
    )
    await orchestrator.run([{"role": "user", "content": "q"}])
    assert len(planner.snapshots) == 3
    assert answers.calls[0].is_final is True


@pytest.mark.asyncio
async def test_zero_step_limit_runs_a_single_iteration(fake_client):
    planner = ScriptedPlanner()
    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(
        fake_client,
        planner=planner,
        selector=ScriptedSelector([CONTINUE]),
        answer_generator=answers,
        step_limit=0,
    )
    assert orchestrator.step_limit == 1
    await orchestrator.run([{"role": "user", "content": "q"}])
    assert len(planner.snapshots) == 1
    assert answers.calls[0].is_final is True


@pytest.mark.asyncio
async def test_typescript_question_answers_after_one_step(fake_client):
    query = "typescript latest version 2025"
    search = _search_fn({query: _hits_for(query, 3)})
    planner = ScriptedPlanner([[query]])
    answers = RecordingAnswerGenerator()
    observations = []
    orchestrator = _orchestrator(
        fake_client,
        planner=planner,
        search_fn=search,
        selector=ScriptedSelector([ANSWER]),
        answer_generator=answers,
    )

    await orchestrator.run(
        [{"role": "user", "content": "What is the latest version of TypeScript?"}],
        on_observation=observations.append,
    )

    assert [type(o) for o in observations] == [
        QueryPlanObservation,
        SearchSourcesObservation,
        NewActionObservation,
        TokenUsageObservation,
    ]
    assert len(observations[1].sources) == 3
    assert all(s.favicon and "site" in s.favicon for s in observations[1].sources)
    assert observations[2].action.type == "answer"

    assert len(answers.calls) == 1
    call = answers.calls[0]
    assert call.is_final is False
    assert call.snapshot.step == 0
    entry = call.snapshot.search_history[0]
    assert entry.query == query
    assert [r.scraped_content for r in entry.results] == ["summary"] * 3

    # plan 15 + selector 5 + three summaries at 15 each
    assert observations[3].total_tokens == 65
    assert call.snapshot.total_tokens == 65


@pytest.mark.asyncio
async def test_no_evidence_is_lost_when_every_crawl_fails(fake_client):
    query = "obscure topic"
    hits = _hits_for(query, 4)

    async def crawl(urls):
        return BulkCrawlResponse(
            success=False,
            results=[CrawlResult(url=u, success=False, error="HTTP 500") for u in urls],
            error="all failed",
        )

    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(
        fake_client,
        planner=ScriptedPlanner([[query]]),
        search_fn=_search_fn({query: hits}),
        crawl_fn=crawl,
        answer_generator=answers,
    )
    await orchestrator.run([{"role": "user", "content": "q"}])

    results = answers.calls[0].snapshot.search_history[0].results
    assert len(results) == 4
    for hit, result in zip(hits, results):
        assert result.url == hit.link
        assert result.scraped_content == f"{FAILED_TO_SCRAPE}\n\nSnippet: {hit.snippet}"


@pytest.mark.asyncio
async def test_crawl_adapter_exception_degrades_to_snippets(fake_client):
    async def crawl(urls):
        raise RuntimeError("crawler offline")

    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(fake_client, crawl_fn=crawl, answer_generator=answers)
    await orchestrator.run([{"role": "user", "content": "q"}])

    results = answers.calls[0].snapshot.search_history[0].results
    assert len(results) == 2
    assert all(r.scraped_content.startswith(FAILED_TO_SCRAPE) for r in results)


@pytest.mark.asyncio
async def test_history_preserves_plan_order_and_hit_order(fake_client):
    queries = ["slow query", "fast query"]

    async def search(query, num, cancel_event):
        if query == "slow query":
            await asyncio.sleep(0.01)
        return _hits_for(query, 3)

    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(
        fake_client,
        planner=ScriptedPlanner([queries]),
        search_fn=search,
        answer_generator=answers,
    )
    await orchestrator.run([{"role": "user", "content": "q"}])

    history = answers.calls[0].snapshot.search_history
    assert [entry.query for entry in history] == queries
    assert [r.url for r in history[0].results] == [h.link for h in _hits_for("slow query", 3)]


@pytest.mark.asyncio
async def test_query_with_no_hits_is_still_recorded(fake_client):
    answers = RecordingAnswerGenerator()
    observations = []
    orchestrator = _orchestrator(
        fake_client,
        planner=ScriptedPlanner([["nothing here"]]),
        search_fn=_search_fn({}),
        answer_generator=answers,
    )
    await orchestrator.run([{"role": "user", "content": "q"}], on_observation=observations.append)

    entry = answers.calls[0].snapshot.search_history[0]
    assert entry.query == "nothing here"
    assert entry.results == ()
    assert ObservationType.SEARCH_SOURCES not in [o.type for o in observations]


@pytest.mark.asyncio
async def test_feedback_reaches_next_planner_call_and_survives_feedbackless_continue(fake_client):
    planner = ScriptedPlanner()
    selector = ScriptedSelector(
        [
            ContinueAction(title="a", reasoning="r", feedback="find the release date"),
            ContinueAction(title="b", reasoning="r"),
            ANSWER,
        ]
    )
    orchestrator = _orchestrator(fake_client, planner=planner, selector=selector)
    await orchestrator.run([{"role": "user", "content": "q"}])

    assert planner.snapshots[0].latest_feedback is None
    assert planner.snapshots[1].latest_feedback == "find the release date"
    assert planner.snapshots[2].latest_feedback == "find the release date"


@pytest.mark.asyncio
async def test_sources_are_deduplicated_across_queries(fake_client):
    shared = SearchHit(title="Shared", link="https://shared.example.com/page", snippet="first")
    duplicate = SearchHit(title="Shared again", link="https://shared.example.com/page", snippet="second")
    search = _search_fn(
        {
            "a": [shared, SearchHit(title="A", link="https://a.example.com", snippet="a")],
            "b": [duplicate, SearchHit(title="B", link="https://b.example.com", snippet="b")],
        }
    )
    observations = []
    orchestrator = _orchestrator(fake_client, planner=ScriptedPlanner([["a", "b"]]), search_fn=search)
    await orchestrator.run([{"role": "user", "content": "q"}], on_observation=observations.append)

    sources = next(o for o in observations if o.type is ObservationType.SEARCH_SOURCES).sources
    assert [s.url for s in sources] == [
        "https://shared.example.com/page",
        "https://a.example.com",
        "https://b.example.com",
    ]
    assert sources[0].title == "Shared"


def test_collect_sources_is_idempotent():
    hits = _hits_for("x", 3)
    searches = [QuerySearch(query="x", hits=tuple(hits)), QuerySearch(query="y", hits=tuple(hits))]
    once = collect_sources(searches)
    assert len(once) == 3
    assert collect_sources(searches) == once
    assert once[0].to_dict()["favicon"] == "https://www.google.com/s2/favicons?domain=site0.example.com"
    assert once[0].to_dict()["date"] is None


def test_collect_sources_keeps_first_seen_date():
    dated = SearchHit(title="t", link="https://a.example.com", snippet="s", date="2025-07-01")
    undated = SearchHit(title="other", link="https://a.example.com", snippet="later")
    sources = collect_sources(
        [QuerySearch(query="x", hits=(dated,)), QuerySearch(query="y", hits=(undated,))]
    )
    assert len(sources) == 1
    assert sources[0].date == "2025-07-01"
    assert sources[0].to_dict()["date"] == "2025-07-01"
    assert sources[0].title == "t"


@pytest.mark.asyncio
async def test_planner_failure_propagates(fake_client):
    class BrokenPlanner:
        async def plan(self, snapshot):
            raise StructuredOutputError("bad plan")

    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(fake_client, planner=BrokenPlanner(), answer_generator=answers)
    with pytest.raises(StructuredOutputError):
        await orchestrator.run([{"role": "user", "content": "q"}])
    assert answers.calls == []


@pytest.mark.asyncio
async def test_search_failure_propagates(fake_client):
    async def search(query, num, cancel_event):
        raise SearchProviderError("quota exceeded", provider="serper", status_code=429)

    orchestrator = _orchestrator(fake_client, search_fn=search)
    with pytest.raises(SearchProviderError):
        await orchestrator.run([{"role": "user", "content": "q"}])


@pytest.mark.asyncio
async def test_search_failure_cancels_sibling_searches(fake_client):
    finished = []

    async def search(query, num, cancel_event):
        if query == "bad":
            raise SearchProviderError("quota exceeded", provider="serper", status_code=429)
        await asyncio.sleep(0.05)
        finished.append(query)
        return _hits_for(query, 1)

    orchestrator = _orchestrator(
        fake_client,
        planner=ScriptedPlanner([["bad", "slow1", "slow2"]]),
        search_fn=search,
    )
    with pytest.raises(SearchProviderError):
        await orchestrator.run([{"role": "user", "content": "q"}])
    await asyncio.sleep(0.1)
    assert finished == []


@pytest.mark.asyncio
async def test_selector_failure_propagates(fake_client):
    class BrokenSelector:
        async def decide(self, snapshot):
            raise StructuredOutputError("bad action")

    orchestrator = _orchestrator(fake_client, selector=BrokenSelector())
    with pytest.raises(StructuredOutputError):
        await orchestrator.run([{"role": "user", "content": "q"}])


@pytest.mark.asyncio
async def test_summarizer_failures_never_abort_the_run(fake_client, status_error):
    summarizer = Summarizer(
        model="m",
        client=fake_client([status_error("Overloaded", status_code=529), RuntimeError("boom")]),
    )
    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(fake_client, summarizer=summarizer, answer_generator=answers)
    await orchestrator.run([{"role": "user", "content": "q"}])

    results = answers.calls[0].snapshot.search_history[0].results
    assert len(results) == 2
    assert all(r.scraped_content.strip() for r in results)


@pytest.mark.asyncio
async def test_listener_errors_are_ignored(fake_client):
    def listener(observation):
        raise RuntimeError("ui disconnected")

    answers = RecordingAnswerGenerator()
    orchestrator = _orchestrator(fake_client, answer_generator=answers)
    await orchestrator.run([{"role": "user", "content": "q"}], on_observation=listener)
    assert len(answers.calls) == 1


@pytest.mark.asyncio
async def test_async_listener_receives_observations(fake_client):
    seen = []

    async def listener(observation):
        seen.append(observation.type)

    await _orchestrator(fake_client).run([{"role": "user", "content": "q"}], on_observation=listener)
    assert seen[0] is ObservationType.QUERY_PLAN
    assert seen[-1] is ObservationType.TOKEN_USAGE


@pytest.mark.asyncio
async def test_search_receives_results_count_and_cancel_event(fake_client):
    received = []

    async def search(query, num, cancel_event):
        received.append((num, cancel_event))
        return []

    event = asyncio.Event()
    orchestrator = _orchestrator(fake_client, search_fn=search, results_per_query=4)
    await orchestrator.run([{"role": "user", "content": "q"}], cancel_event=event)
    assert received == [(4, event)]


@pytest.mark.asyncio
async def test_summarizer_sees_history_from_start_of_iteration(fake_client):
    summarizer = _summarizer(fake_client)
    selector = ScriptedSelector([CONTINUE, ANSWER])
    orchestrator = _orchestrator(fake_client, summarizer=summarizer, selector=selector)
    await orchestrator.run([{"role": "user", "content": "q"}])

    prompts = [call["messages"][0]["content"] for call in summarizer.client.messages.create_calls]
    # First iteration: two pages, no prior searches yet.
    assert all("No previous searches" in p for p in prompts[:2])
    assert all('## Query: "default query"' in p for p in prompts[2:])


@pytest.mark.asyncio
async def test_typescript_scenario_with_model_agents(fake_client):
    from deepsearch.agents.action_selector import ActionSelector
    from deepsearch.agents.answer_generator import AnswerGenerator
    from deepsearch.agents.planner import QueryPlanner
    from deepsearch.deep_search import ask_deep_search

    planner_client = fake_client(
        [
            {
                "plan": "Look up the current TypeScript release.",
                "queries": [{"query": "latest TypeScript version 2025", "purpose": "current release"}],
            }
        ]
    )
    selector_client = fake_client([{"type": "answer", "title": "Found it", "reasoning": "release notes found"}])
    answer_client = fake_client(
        stream_chunks=[
            "The latest stable release is TypeScript 5.8 ",
            "[Announcing TypeScript 5.8](https://devblogs.microsoft.com/typescript/announcing-typescript-5-8/).",
        ]
    )
    search = _search_fn(
        {
            "latest TypeScript version 2025": [
                SearchHit(
                    title="Announcing TypeScript 5.8",
                    link="https://devblogs.microsoft.com/typescript/announcing-typescript-5-8/",
                    snippet="Today we are excited to announce TypeScript 5.8.",
                    date="2025-02-28",
                )
            ]
        }
    )
    orchestrator = ResearchOrchestrator(
        model="m",
        search_fn=search,
        crawl_fn=_crawl_ok(),
        planner=QueryPlanner(model="m", client=planner_client),
        summarizer=_summarizer(fake_client, "TypeScript 5.8 was released on February 28, 2025."),
        action_selector=ActionSelector(model="m", client=selector_client),
        answer_generator=AnswerGenerator(model="m", client=answer_client),
    )

    answer = await ask_deep_search(
        [{"role": "user", "content": "What is the latest version of TypeScript?"}],
        orchestrator=orchestrator,
    )

    assert any("2025" in query for query, _ in search.calls)
    assert "[Announcing TypeScript 5.8](https://" in answer
    answer_prompt = answer_client.messages.stream_calls[0]["messages"][0]["content"]
    assert "TypeScript 5.8 was released on February 28, 2025." in answer_prompt
    assert "best effort answer" not in answer_client.messages.stream_calls[0]["system"]
