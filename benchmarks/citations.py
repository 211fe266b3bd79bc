"""Citation-quality scorers for research answers.

All scorers take the answer text and return a float in [0, 1].
"""
from __future__ import annotations

import re

MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
SENTENCE_END = re.compile(r"[.!?]+(?=\s|$)")
CITED_HOST = re.compile(r"\(https?://([^/)]+)[^)]*\)")
VAGUE_LINK_TEXT = re.compile(r"^(here|link|this|click)$", re.IGNORECASE)


def contains_links(output: str) -> float:
    return 1.0 if MARKDOWN_LINK.search(output) else 0.0


def citation_density(output: str) -> float:
    """Links per sentence; 0.5+ scores full marks."""
    link_count = len(MARKDOWN_LINK.findall(output))
    prose = MARKDOWN_LINK.sub(r"\1", output)
    sentence_count = len(SENTENCE_END.findall(prose)) or 1
    density = link_count / sentence_count

    if density >= 0.5:
        return 1.0
    if density >= 0.3:
        return 0.7
    if density >= 0.1:
        return 0.4
    return 0.2


def citation_format_quality(output: str) -> float:
    """Share of links with descriptive text and an http(s) target."""
    links = MARKDOWN_LINK.findall(output)
    if not links:
        return 0.0

    valid = 0
    for text, url in links:
        if len(text) > 4 and not VAGUE_LINK_TEXT.match(text) and url.startswith("http"):
            valid += 1
    return valid / len(links)


def source_diversity(output: str) -> float:
    hosts = CITED_HOST.findall(output)
    if not hosts:
        return 0.0

    unique = len({host.lower().removeprefix("www.") for host in hosts})
    if unique >= 5:
        return 1.0
    if unique >= 4:
        return 0.8
    if unique >= 3:
        return 0.6
    if unique >= 2:
        return 0.4
    return 0.2


SCORERS = {
    "contains_links": contains_links,
    "citation_density": citation_density,
    "citation_format_quality": citation_format_quality,
    "source_diversity": source_diversity,
}


def score_all(output: str) -> dict[str, float]:
    return {name: scorer(output) for name, scorer in SCORERS.items()}
