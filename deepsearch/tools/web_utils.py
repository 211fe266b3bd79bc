from __future__ import annotations

from urllib.parse import urlsplit

FAVICON_SERVICE_URL = "https://www.google.com/s2/favicons?domain={domain}"


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def extract_domain(url: str) -> str:
    try:
        return urlsplit(url).netloc
    except ValueError:
        return ""


def favicon_url(url: str) -> str | None:
    domain = extract_domain(url)
    return FAVICON_SERVICE_URL.format(domain=domain) if domain else None


def robots_url(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/robots.txt"
