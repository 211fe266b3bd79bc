from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    """Dotted-key view over a JSON prompt file, reloaded when the file changes."""

    def __init__(self, path: Path):
        self.path = path
        self._data: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def data(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._data is None or self._mtime_ns != mtime_ns:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError(f"Prompt catalog {self.path} must be a JSON object.")
            self._data, self._mtime_ns = payload, mtime_ns
        return self._data

    def template(self, key: str) -> Template:
        node: Any = self.data()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Prompt key not found: {key}")
            node = node[part]

        # Long prompts are stored as a list of lines.
        if isinstance(node, list) and all(isinstance(line, str) for line in node):
            node = "\n".join(node)
        if not isinstance(node, str):
            raise TypeError(f"Prompt key must map to a string: {key}")
        return Template(node)


_catalog: PromptCatalog | None = None


def get_catalog() -> PromptCatalog:
    global _catalog
    if _catalog is None or _catalog.path != PROMPTS_PATH:
        _catalog = PromptCatalog(PROMPTS_PATH)
    return _catalog


def render_prompt(key: str, **values: Any) -> str:
    """Render prompt `key`; unused values are ignored, missing ones raise KeyError."""
    try:
        return get_catalog().template(key).substitute(values)
    except KeyError as exc:
        if str(exc.args[0]).startswith("Prompt key not found"):
            raise
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc


def current_date_label(now: datetime | None = None) -> str:
    """Long-form UTC date, e.g. 'Sunday, October 18, 2026'."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year}"


def clear_prompt_cache() -> None:
    global _catalog
    _catalog = None
