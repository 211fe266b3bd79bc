from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from deepsearch.services import prompt_store


def test_render_prompt_substitutes_values(tmp_path, monkeypatch):
    catalog = tmp_path / "prompts.json"
    catalog.write_text(json.dumps({"demo": {"greet": "Hello $name"}}), encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()

    try:
        assert prompt_store.render_prompt("demo.greet", name="World") == "Hello World"
    finally:
        prompt_store.clear_prompt_cache()


def test_render_prompt_joins_line_lists(tmp_path, monkeypatch):
    catalog = tmp_path / "prompts.json"
    catalog.write_text(json.dumps({"demo": {"multi": ["line one", "", "line $n"]}}), encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()

    try:
        assert prompt_store.render_prompt("demo.multi", n="two") == "line one\n\nline two"
    finally:
        prompt_store.clear_prompt_cache()


def test_render_prompt_missing_key_and_value(tmp_path, monkeypatch):
    catalog = tmp_path / "prompts.json"
    catalog.write_text(json.dumps({"demo": {"greet": "Hello $name", "nested": {"x": 1}}}), encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()

    try:
        with pytest.raises(KeyError, match="Prompt key not found"):
            prompt_store.render_prompt("demo.missing")
        with pytest.raises(KeyError, match="Missing template value 'name'"):
            prompt_store.render_prompt("demo.greet")
        with pytest.raises(TypeError):
            prompt_store.render_prompt("demo.nested")
    finally:
        prompt_store.clear_prompt_cache()


def test_bundled_catalog_renders_all_agent_prompts():
    prompt_store.clear_prompt_cache()
    values = {
        "current_date": "Sunday, October 18, 2026",
        "location_block": "",
        "max_queries": "5",
        "location_rule": "loc",
        "recency_rule": "rec",
        "conversation_history": "User: hi",
        "user_question": "hi",
        "search_history": "none",
        "feedback_block": "none",
        "query": "q",
        "title": "t",
        "url": "https://example.com",
        "date": "2026-01-01",
        "snippet": "s",
        "content": "c",
        "final_warning": "",
        "current_year": "2026",
        "current_month_year": "October 2026",
    }
    for key in (
        "common.location_rule",
        "common.recency_rule",
        "planner.system",
        "planner.user",
        "summarizer.system",
        "summarizer.user",
        "action_selector.system",
        "action_selector.user",
        "answer.system",
        "answer.final_warning",
        "answer.user",
    ):
        assert prompt_store.render_prompt(key, **values).strip()


def test_current_date_label():
    moment = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    assert prompt_store.current_date_label(moment) == "Sunday, October 18, 2026"
