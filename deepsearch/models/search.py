from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SearchHit:
    """One organic result as returned by the search provider."""
    title: str
    link: str
    snippet: str
    date: str | None = None


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A search hit after crawling and summarizing, as kept in the evidence store."""
    date: str
    title: str
    url: str
    snippet: str
    scraped_content: str


@dataclass(frozen=True, slots=True)
class SearchHistoryEntry:
    query: str
    results: tuple[SearchResult, ...] = ()


@dataclass(frozen=True, slots=True)
class SearchSource:
    title: str
    url: str
    snippet: str
    date: str | None = None
    favicon: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "date": self.date,
            "favicon": self.favicon,
        }


@dataclass(frozen=True, slots=True)
class CrawlResult:
    url: str
    success: bool
    data: str | None = None
    error: str | None = None


@dataclass(slots=True)
class BulkCrawlResponse:
    success: bool
    results: list[CrawlResult] = field(default_factory=list)
    error: str | None = None

    def for_url(self, url: str) -> CrawlResult | None:
        for result in self.results:
            if result.url == url:
                return result
        return None
