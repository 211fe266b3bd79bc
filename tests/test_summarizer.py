from __future__ import annotations

import pytest

from deepsearch.agents.summarizer import (
    FAILED_TO_SCRAPE,
    NO_CONTENT_FOUND,
    OVERLOADED_NOTE,
    SUMMARY_FAILED_NOTE,
    Summarizer,
    summarize_with_fallback,
)
from deepsearch.models.search import CrawlResult, SearchHit

HIT = SearchHit(
    title="TypeScript 5.8 release notes",
    link="https://devblogs.microsoft.com/typescript/announcing-typescript-5-8/",
    snippet="Today we are excited to announce TypeScript 5.8.",
    date="2025-02-28",
)


def _ok(data: str = "TypeScript 5.8 ships granular checks for return expressions.") -> CrawlResult:
    return CrawlResult(url=HIT.link, success=True, data=data)


@pytest.mark.asyncio
async def test_summary_success_records_usage(fake_client):
    client = fake_client(["TypeScript 5.8 was released on Feb 28, 2025."])
    outcome = await summarize_with_fallback(
        Summarizer(model="test-model", client=client),
        hit=HIT,
        crawl_result=_ok(),
        query="typescript latest version",
        search_history="",
    )

    assert outcome.fallback is None
    assert outcome.result.scraped_content == "TypeScript 5.8 was released on Feb 28, 2025."
    assert outcome.result.date == "2025-02-28"
    assert outcome.usage.total_tokens == 15

    call = client.messages.create_calls[0]
    assert call["model"] == "test-model"
    assert "typescript latest version" in call["messages"][0]["content"]
    assert HIT.link in call["messages"][0]["content"]


@pytest.mark.asyncio
async def test_failed_crawl_uses_snippet_without_calling_model(fake_client):
    client = fake_client()
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=client),
        hit=HIT,
        crawl_result=CrawlResult(url=HIT.link, success=False, error="HTTP 403"),
        query="q",
        search_history="",
    )

    assert outcome.fallback == "scrape_failed"
    assert outcome.result.scraped_content == f"{FAILED_TO_SCRAPE}\n\nSnippet: {HIT.snippet}"
    assert outcome.usage is None
    assert client.messages.create_calls == []


@pytest.mark.asyncio
async def test_missing_crawl_result_counts_as_failed_scrape(fake_client):
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=fake_client()),
        hit=HIT,
        crawl_result=None,
        query="q",
        search_history="",
    )
    assert outcome.result.scraped_content.startswith(FAILED_TO_SCRAPE)


@pytest.mark.asyncio
async def test_empty_page_uses_no_content_note(fake_client):
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=fake_client()),
        hit=HIT,
        crawl_result=_ok("   "),
        query="q",
        search_history="",
    )
    assert outcome.fallback == "no_content"
    assert outcome.result.scraped_content == f"{NO_CONTENT_FOUND}\n\nSnippet: {HIT.snippet}"


@pytest.mark.asyncio
async def test_overloaded_summarizer_falls_back_to_raw_content(fake_client, status_error):
    client = fake_client([status_error("Overloaded", status_code=529)])
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=client),
        hit=HIT,
        crawl_result=_ok("raw page text"),
        query="q",
        search_history="",
    )
    assert outcome.fallback == "raw_content"
    assert outcome.result.scraped_content == f"{OVERLOADED_NOTE}\n\nraw page text"


@pytest.mark.asyncio
async def test_summarizer_http_error_uses_status_note(fake_client, status_error):
    client = fake_client([status_error("bad request", status_code=400)])
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=client),
        hit=HIT,
        crawl_result=_ok(),
        query="q",
        search_history="",
    )
    assert outcome.fallback == "snippet"
    assert outcome.result.scraped_content == (
        f"Summarization failed (Error 400)\n\nSnippet: {HIT.snippet}"
    )


@pytest.mark.asyncio
async def test_summarizer_generic_error_uses_generic_note(fake_client):
    client = fake_client([RuntimeError("socket closed")])
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=client),
        hit=SearchHit(title="t", link="https://example.com", snippet=""),
        crawl_result=CrawlResult(url="https://example.com", success=True, data="text"),
        query="q",
        search_history="",
    )
    assert outcome.result.scraped_content == f"{SUMMARY_FAILED_NOTE}\n\nSnippet: (no snippet available)"
    # Undated hits get a timestamp so the result is never missing a date.
    assert outcome.result.date


@pytest.mark.asyncio
async def test_blank_summary_is_replaced(fake_client):
    outcome = await summarize_with_fallback(
        Summarizer(model="m", client=fake_client([""])),
        hit=HIT,
        crawl_result=_ok(),
        query="q",
        search_history="",
    )
    assert outcome.result.scraped_content.strip()
    assert HIT.snippet in outcome.result.scraped_content
