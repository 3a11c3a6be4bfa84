"""
Unit tests for the completion client wrapper and its fallback helpers.
"""
import os
import sys
from types import SimpleNamespace

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.services.errors import ExternalServiceError, ValidationError  # noqa: E402
from app.services.llm_client import (  # noqa: E402
    ERROR_MARKER,
    OpenAICompletionClient,
    build_carbon_multiplier_prompt,
    extract_multiplier,
    get_carbon_multiplier,
    get_recommendation,
    is_degraded,
)
from tests.support import FailingCompletionClient, FakeCompletionClient  # noqa: E402


class _StubCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _stub_openai(*outcomes):
    completions = _StubCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class _NoDelayClient(OpenAICompletionClient):
    LLM_RETRY_DELAY = 0.0
    LLM_MAX_RETRIES = 3


def test_extract_multiplier_takes_first_number() -> None:
    assert extract_multiplier("The multiplier is approximately 2.5 kg/$") == 2.5
    assert extract_multiplier("0.45") == 0.45
    assert extract_multiplier("-0.3 (offsetting)") == -0.3
    assert extract_multiplier("Between 1.2 and 3.4") == 1.2
    assert extract_multiplier("About 3 kg") == 3.0


def test_extract_multiplier_rejects_text_without_numbers() -> None:
    with pytest.raises(ValidationError):
        extract_multiplier("I cannot estimate that.")
    with pytest.raises(ValidationError):
        extract_multiplier("")


def test_get_carbon_multiplier_falls_back_to_none() -> None:
    assert get_carbon_multiplier(FakeCompletionClient("roughly 0.8"), "prompt") == 0.8
    assert get_carbon_multiplier(FakeCompletionClient("no idea"), "prompt") is None
    assert get_carbon_multiplier(FailingCompletionClient(), "prompt") is None


def test_get_recommendation_returns_error_marker_on_failure() -> None:
    text = get_recommendation(FailingCompletionClient("Request timed out."), "prompt")
    assert text.startswith(ERROR_MARKER)
    assert "timed out" in text
    assert is_degraded(text)
    assert not is_degraded(get_recommendation(FakeCompletionClient("1. Walk more often"), "prompt"))


def test_multiplier_prompt_mentions_description_only_when_present() -> None:
    with_description = build_carbon_multiplier_prompt("Transport", "flight to Paris")
    without_description = build_carbon_multiplier_prompt("Transport", "  ")
    assert "'Transport' category" in with_description
    assert "flight to Paris" in with_description
    assert "description" not in without_description
    assert without_description.endswith("Only provide the numeric multiplier.")


def test_openai_client_returns_stripped_content() -> None:
    stub, completions = _stub_openai("  2.5  ")
    client = _NoDelayClient(api_key="test-key", openai_client=stub)
    assert client.complete("prompt") == "2.5"
    request = completions.requests[0]
    assert request["messages"] == [{"role": "system", "content": "prompt"}]
    assert request["model"] == client.LLM_MODEL


def test_openai_client_retries_then_succeeds() -> None:
    stub, completions = _stub_openai(RuntimeError("Connection reset"), "1. Tip number one")
    client = _NoDelayClient(api_key="test-key", openai_client=stub)
    assert client.complete("prompt") == "1. Tip number one"
    assert len(completions.requests) == 2


def test_openai_client_raises_after_exhausting_retries() -> None:
    stub, completions = _stub_openai(
        RuntimeError("Request timed out."),
        RuntimeError("Request timed out."),
        "",
    )
    client = _NoDelayClient(api_key="test-key", openai_client=stub)
    with pytest.raises(ExternalServiceError):
        client.complete("prompt")
    assert len(completions.requests) == 3


def test_openai_client_without_api_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = _NoDelayClient()
    with pytest.raises(ExternalServiceError):
        client.complete("prompt")
    assert get_carbon_multiplier(client, "prompt") is None
