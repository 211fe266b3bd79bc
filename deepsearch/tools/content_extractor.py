"""Readable-text extraction for crawled pages."""
from __future__ import annotations

import re
from dataclasses import dataclass

import trafilatura
from bs4 import BeautifulSoup

from deepsearch.config import settings

STRIP_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "form", "svg", "iframe")
NAV_MARKERS = ("main menu", "navigation", "jump to content", "cookie", "subscribe")
MIN_USEFUL_CHARS = 200

_BLANK_RUNS = re.compile(r"\n{3,}")
_INLINE_SPACE = re.compile(r"[ \t\f\v]+")


@dataclass(frozen=True)
class ExtractedContent:
    url: str
    title: str
    text: str
    method: str
    raw_length: int

    @property
    def extracted_length(self) -> int:
        return len(self.text)


def normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ").replace("\r\n", "\n").replace("\r", "\n")
    text = _INLINE_SPACE.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_RUNS.sub("\n\n", "\n".join(lines)).strip()


def clip(text: str, max_chars: int) -> str:
    if max_chars > 0 and len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def is_thin(text: str) -> bool:
    """Too short, or mostly site chrome."""
    if len(text) < MIN_USEFUL_CHARS:
        return True
    lowered = text.lower()
    return len(text) < 1500 and sum(lowered.count(m) for m in NAV_MARKERS) >= 4


def looks_like_html(raw: str) -> bool:
    head = raw[:2048].lower()
    return "<html" in head or "<body" in head or "<!doctype html" in head


def _extract_with_trafilatura(raw_html: str, url: str) -> str:
    extracted = trafilatura.extract(raw_html, url=url, output_format="txt", include_comments=False)
    return normalize_text(extracted) if isinstance(extracted, str) else ""


def _extract_with_soup(raw_html: str) -> tuple[str, str]:
    soup = BeautifulSoup(raw_html, "html.parser")
    title = soup.title.get_text() if soup.title else ""
    for tag in soup(STRIP_TAGS):
        tag.decompose()
    root = soup.find("main") or soup.find("article") or soup.body or soup
    return normalize_text(title), normalize_text(root.get_text("\n"))


def extract_main_content(
    url: str,
    raw_content: str,
    *,
    max_chars: int | None = None,
) -> ExtractedContent:
    limit = int(settings.crawl_max_page_chars if max_chars is None else max_chars)

    if not looks_like_html(raw_content):
        return ExtractedContent(
            url=url,
            title="",
            text=clip(normalize_text(raw_content), limit),
            method="raw",
            raw_length=len(raw_content),
        )

    title, soup_text = _extract_with_soup(raw_content)
    article_text = _extract_with_trafilatura(raw_content, url)

    if article_text and not is_thin(article_text):
        text, method = article_text, "trafilatura"
    elif len(soup_text) >= len(article_text):
        text, method = soup_text, "beautifulsoup"
    else:
        text, method = article_text, "trafilatura"

    return ExtractedContent(
        url=url,
        title=title,
        text=clip(text, limit),
        method=method,
        raw_length=len(raw_content),
    )
