"""Batch page crawler.

Each URL is fetched, checked against robots.txt, and reduced to readable
text independently. A failing URL yields a failed `CrawlResult`; it never
fails the batch.
"""
from __future__ import annotations

import asyncio
import urllib.robotparser
from typing import Awaitable, Callable

import httpx
from loguru import logger

from deepsearch.config import settings
from deepsearch.models.search import BulkCrawlResponse, CrawlResult
from deepsearch.services.failures import CrawlerError
from deepsearch.services.retry import retry_with_backoff
from deepsearch.tools import web_utils
from deepsearch.tools.content_extractor import extract_main_content

ROBOTS_BLOCKED = "Blocked by robots.txt"

PageFetcher = Callable[[httpx.AsyncClient, str], Awaitable[str]]


class RobotsCache:
    """Per-batch robots.txt cache keyed by robots URL."""

    def __init__(self, user_agent: str):
        self.user_agent = user_agent
        self._parsers: dict[str, urllib.robotparser.RobotFileParser | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def allowed(self, client: httpx.AsyncClient, url: str) -> bool:
        robots_url = web_utils.robots_url(url)
        lock = self._locks.setdefault(robots_url, asyncio.Lock())
        async with lock:
            if robots_url not in self._parsers:
                self._parsers[robots_url] = await self._load(client, robots_url)
        parser = self._parsers[robots_url]
        if parser is None:
            return True
        return parser.can_fetch(self.user_agent, url)

    @staticmethod
    async def _load(
        client: httpx.AsyncClient, robots_url: str
    ) -> urllib.robotparser.RobotFileParser | None:
        try:
            response = await client.get(robots_url)
        except httpx.HTTPError:
            # Unreachable robots.txt is treated as allow-all.
            return None
        parser = urllib.robotparser.RobotFileParser()
        parser.set_url(robots_url)
        if response.status_code in (401, 403):
            parser.disallow_all = True
            return parser
        if response.status_code >= 400:
            return None
        parser.parse(response.text.splitlines())
        return parser


async def fetch_page(client: httpx.AsyncClient, url: str) -> str:
    response = await client.get(url)
    response.raise_for_status()
    return response.text


class Crawler:
    def __init__(
        self,
        *,
        max_parallel: int | None = None,
        retry_max: int | None = None,
        retry_initial_delay: float | None = None,
        timeout_seconds: float | None = None,
        max_page_chars: int | None = None,
        user_agent: str | None = None,
        respect_robots: bool | None = None,
        fetcher: PageFetcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.max_parallel = max(
            int(settings.crawl_max_parallel_requests if max_parallel is None else max_parallel), 1
        )
        self.retry_max = max(int(settings.crawl_retry_max if retry_max is None else retry_max), 0)
        self.retry_initial_delay = float(
            settings.crawl_retry_initial_delay if retry_initial_delay is None else retry_initial_delay
        )
        self.timeout_seconds = float(settings.crawl_timeout_seconds if timeout_seconds is None else timeout_seconds)
        self.max_page_chars = int(settings.crawl_max_page_chars if max_page_chars is None else max_page_chars)
        self.user_agent = user_agent or settings.crawl_user_agent
        self.respect_robots = settings.crawl_respect_robots if respect_robots is None else respect_robots
        self._fetcher = fetcher or fetch_page
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    async def _crawl_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        robots: RobotsCache,
        semaphore: asyncio.Semaphore,
    ) -> CrawlResult:
        if not web_utils.is_valid_url(url):
            return CrawlResult(url=url, success=False, error="Invalid URL")

        async with semaphore:
            try:
                if self.respect_robots and not await robots.allowed(client, url):
                    logger.info(f"URL blocked by robots.txt: {url}")
                    return CrawlResult(url=url, success=False, error=ROBOTS_BLOCKED)

                raw = await retry_with_backoff(
                    lambda: self._fetcher(client, url),
                    max_retries=self.retry_max,
                    initial_delay=self.retry_initial_delay,
                    label=f"crawl {url}",
                )
            except Exception as e:
                logger.warning(f"Crawl failed for {url}: {e}")
                return CrawlResult(url=url, success=False, error=str(e) or e.__class__.__name__)

        try:
            extracted = await asyncio.to_thread(
                extract_main_content, url, raw, max_chars=self.max_page_chars
            )
        except Exception as e:
            logger.warning(f"Content extraction failed for {url}: {e}")
            return CrawlResult(url=url, success=False, error=f"Extraction failed: {e}")

        if not extracted.text:
            return CrawlResult(url=url, success=False, error="No readable content")
        return CrawlResult(url=url, success=True, data=extracted.text)

    async def bulk_crawl(self, urls: list[str]) -> BulkCrawlResponse:
        """Crawl `urls` concurrently; results come back in input order."""
        if not urls:
            return BulkCrawlResponse(success=True, results=[])

        semaphore = asyncio.Semaphore(self.max_parallel)
        robots = RobotsCache(self.user_agent)
        try:
            async with self._client() as client:
                results = await asyncio.gather(
                    *(self._crawl_one(client, url, robots, semaphore) for url in urls)
                )
        except httpx.HTTPError as e:
            raise CrawlerError(f"Crawler unavailable: {e}") from e

        failed = [r for r in results if not r.success]
        error = None
        if failed:
            error = f"{len(failed)} of {len(results)} URLs failed to crawl"
        return BulkCrawlResponse(success=not failed, results=list(results), error=error)


async def bulk_crawl(urls: list[str]) -> BulkCrawlResponse:
    return await Crawler().bulk_crawl(urls)
