"""Tests for the summarizer providers, metadata parsing and cost estimates."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from link_manager.config import PricingConfig, ProviderConfig, SummaryConfig
from link_manager.core.types import TokenUsage
from link_manager.llm.metadata import normalize_tags, parse_metadata
from link_manager.llm.providers.base import DisabledSummarizer
from link_manager.llm.providers.factory import available_providers, create_summarizer
from link_manager.llm.providers.openai_compatible import OpenAISummarizer
from link_manager.llm.usage import estimate_cost, format_cost


def _completion(content: str, prompt_tokens: int = 12, completion_tokens: int = 7) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def _summarizer(handler) -> OpenAISummarizer:
    return OpenAISummarizer(
        ProviderConfig(api_key="test-key", trust_env=False),
        SummaryConfig(max_input_chars=50),
        api_key="test-key",
        transport=httpx.MockTransport(handler),
    )


def test_parse_metadata_reads_category_and_tags():
    assert parse_metadata("Category: Tech\nTags: a, b, c") == ("Tech", ["a", "b", "c"])


def test_parse_metadata_lowercases_tags_but_not_category():
    category, tags = parse_metadata("Category: Machine Learning\nTags: PyTorch ,  GPU, ,Training")

    assert category == "Machine Learning"
    assert tags == ["pytorch", "gpu", "training"]


def test_parse_metadata_defaults():
    assert parse_metadata("Category: Tech") == ("Tech", ["uncategorized"])
    assert parse_metadata("Tags: x, y") == ("General", ["x", "y"])
    assert parse_metadata("I think this page is about cooking.") == ("General", ["uncategorized"])
    assert parse_metadata("") == ("General", ["uncategorized"])


def test_parse_metadata_ignores_other_layouts():
    # no recovery beyond the documented prefixes
    assert parse_metadata("category: tech\ntags: a") == ("General", ["uncategorized"])


def test_normalize_tags():
    assert normalize_tags(" Python, ASYNC ,,python ") == ["python", "async"]
    assert normalize_tags(["A", "b"]) == ["a", "b"]
    assert normalize_tags(None) == []


def test_summarize_sends_clipped_prompt_and_counts_tokens():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_completion("  A concise summary.  ", 120, 30))

    result = asyncio.run(_summarizer(handler).summarize("Title", "x" * 500))

    assert result.text == "A concise summary."
    assert (result.input_tokens, result.output_tokens) == (120, 30)
    request = requests[0]
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["Authorization"] == "Bearer test-key"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4o-mini"
    assert payload["max_tokens"] == 200
    user_prompt = payload["messages"][1]["content"]
    assert "x" * 50 + "..." in user_prompt
    assert "x" * 51 not in user_prompt


def test_suggest_metadata_parses_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_completion("Category: Science\nTags: Space, NASA, rockets"))

    suggestion = asyncio.run(_summarizer(handler).suggest_metadata("Title", "text"))

    assert suggestion.category == "Science"
    assert suggestion.tags == ["space", "nasa", "rockets"]
    assert (suggestion.input_tokens, suggestion.output_tokens) == (12, 7)


def test_provider_errors_degrade_to_empty_results():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    summarizer = _summarizer(handler)
    summary = asyncio.run(summarizer.summarize("Title", "text"))
    suggestion = asyncio.run(summarizer.suggest_metadata("Title", "text"))

    assert summary.text == ""
    assert summary.input_tokens == summary.output_tokens == 0
    assert suggestion.category == ""
    assert suggestion.tags == []


def test_empty_choices_degrade_to_empty_summary():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    assert asyncio.run(_summarizer(handler).summarize("Title", "text")).text == ""


def test_disabled_summarizer_is_unavailable():
    summarizer = DisabledSummarizer()

    assert summarizer.available is False
    assert asyncio.run(summarizer.summarize("t", "x")).text == ""
    assert asyncio.run(summarizer.suggest_metadata("t", "x")).tags == []


def test_available_providers_contains_openai():
    names = available_providers()
    assert "openai" in names
    assert "openai_compatible" in names


def test_create_summarizer_without_key_is_disabled(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    summarizer = create_summarizer(ProviderConfig(), SummaryConfig())

    assert isinstance(summarizer, DisabledSummarizer)


def test_create_summarizer_with_env_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    summarizer = create_summarizer(ProviderConfig(), SummaryConfig())

    assert isinstance(summarizer, OpenAISummarizer)
    assert summarizer.api_key == "env-key"


def test_create_summarizer_rejects_unknown_backend():
    with pytest.raises(ValueError, match="Unsupported provider"):
        create_summarizer(ProviderConfig(name="unknown-provider", api_key="k"), SummaryConfig())


def test_estimate_cost_uses_per_million_rates():
    usage = TokenUsage(input_tokens=1_000_000, output_tokens=500_000)

    assert estimate_cost(usage) == pytest.approx(0.15 + 0.30)
    assert estimate_cost(usage, PricingConfig(input_per_million=1.0, output_per_million=2.0)) == pytest.approx(2.0)
    assert format_cost(0.000123) == "$0.00012"
