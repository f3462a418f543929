from __future__ import annotations

import json
from types import SimpleNamespace
from datetime import date

import pytest

from ai_newsletter.config.settings import Settings
from ai_newsletter.models.errors import ConfigurationError, SchemaViolation
from ai_newsletter.models.schemas import DiscoveredItem
from ai_newsletter.services.llm_client import LLMClient
from ai_newsletter.services.stages import NewsCurator, NewsDiscoverer


class FakeResponses:
    def __init__(self, text: str) -> None:
        self.text = text
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(output_text=self.text)


def _client(text: str) -> tuple[LLMClient, FakeResponses]:
    llm = LLMClient(Settings(openai_api_key="sk-test", openai_model="test-model"))
    responses = FakeResponses(text)
    llm._client = SimpleNamespace(responses=responses)
    return llm, responses


def test_extract_json_direct() -> None:
    llm, _ = _client("")
    assert llm._extract_json('{"ok": true}') == {"ok": True}


def test_extract_json_from_surrounding_prose() -> None:
    llm, _ = _client("")
    assert llm._extract_json('Sure! Here it is:\n{"articles": []}\nEnjoy.') == {"articles": []}


def test_extract_json_rejects_non_json() -> None:
    llm, _ = _client("")
    with pytest.raises(ValueError, match="did not return JSON"):
        llm._extract_json("no json here")


def test_chat_json_enables_web_search_when_asked() -> None:
    llm, responses = _client('{"ok": 1}')

    assert llm.chat_json("sys", "user", web_search=True) == {"ok": 1}
    assert responses.kwargs["model"] == "test-model"
    assert responses.kwargs["tools"] == [{"type": "web_search"}]
    assert responses.kwargs["input"] == "user"


def test_chat_json_without_tools() -> None:
    llm, responses = _client('{"ok": 1}')
    llm.chat_json("sys", "user")
    assert "tools" not in responses.kwargs


def test_missing_key_is_configuration_error() -> None:
    llm = LLMClient(Settings(openai_api_key=""))
    with pytest.raises(ConfigurationError):
        llm.chat_json("sys", "user")


def test_discoverer_prompt_mentions_date() -> None:
    llm, responses = _client('{"articles": []}')

    assert NewsDiscoverer(llm).discover(date(2026, 10, 19)) == {"articles": []}
    assert "AI news today 2026-10-19" in responses.kwargs["input"]
    assert "Minimum 15 articles, maximum 20" in responses.kwargs["instructions"]


def test_curator_receives_full_batch() -> None:
    llm, responses = _client('{"curatedArticles": []}')
    batch = tuple(
        DiscoveredItem(title=f"T{i}", url=f"https://e.com/{i}", source="S", snippet="x") for i in range(16)
    )

    NewsCurator(llm).curate(batch)

    prompt = responses.kwargs["input"]
    assert "(16 total)" in prompt
    payload = json.loads(prompt.split("\n", 2)[2])
    assert len(payload["articles"]) == 16
    assert "exactly 10" in responses.kwargs["instructions"]


def test_curator_turns_non_json_reply_into_schema_violation() -> None:
    llm, _ = _client("I picked ten great stories for you!")
    batch = tuple(DiscoveredItem(title="T", url="https://e.com/1") for _ in range(15))

    with pytest.raises(SchemaViolation) as exc:
        NewsCurator(llm).curate(batch)

    assert exc.value.stage == "curation"
    assert "did not return JSON" in exc.value.detail
