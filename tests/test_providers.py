"""Test draft providers, the provider chain and the draft generator."""
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from execution.retry_handler import RetryHandler
from summarization.generator import DraftGenerator
from summarization.models import DraftResponse, QuestionReference
from summarization.providers import (
    AnthropicDraftProvider,
    DraftProvider,
    OpenAICompatibleDraftProvider,
    ProviderChain,
)
from utils.errors import DraftFailure, RateLimitFailure, TimeoutFailure

ANTHROPIC_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class FakeProvider(DraftProvider):
    def __init__(self, name, content="draft", finish_reason="stop", error=None):
        self.name = name
        self.content = content
        self.finish_reason = finish_reason
        self.error = error
        self.prompts = []

    def complete(self, system_prompt, user_prompt, max_output_tokens=8192):
        self.prompts.append((system_prompt, user_prompt))
        if self.error:
            raise self.error
        return DraftResponse(content=self.content, finish_reason=self.finish_reason, provider=self.name)


class FakeMessages:
    """Stands in for ``client.messages`` of the Anthropic SDK."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    def create(self, **kwargs):
        self.calls += 1
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _message(text, stop_reason="end_turn"):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)], stop_reason=stop_reason)


def _rate_limit_error():
    return anthropic.RateLimitError(
        "slow down", response=httpx.Response(429, request=ANTHROPIC_REQUEST), body=None
    )


def test_chain_uses_first_provider():
    """Test that the first successful provider wins."""
    first, second = FakeProvider("a"), FakeProvider("b")
    response = ProviderChain([first, second]).complete("system", "user")

    assert response.provider == "a"
    assert second.prompts == []


def test_chain_falls_back_on_failure_and_empty_content():
    """Test fallback past a failing and an empty provider."""
    failing = FakeProvider("a", error=DraftFailure("boom"))
    empty = FakeProvider("b", content="   ")
    working = FakeProvider("c", content="answer")

    response = ProviderChain([failing, empty, working]).complete("system", "user")

    assert response.provider == "c"
    assert response.content == "answer"


def test_chain_all_timeouts_raise_timeout():
    """Test that a chain of timeouts keeps its classification."""
    chain = ProviderChain([
        FakeProvider("a", error=TimeoutFailure("a: slow")),
        FakeProvider("b", error=TimeoutFailure("b: slow")),
    ])

    with pytest.raises(TimeoutFailure):
        chain.complete("system", "user")


def test_chain_mixed_failures_raise_draft_failure():
    """Test the generic failure when causes differ."""
    chain = ProviderChain([
        FakeProvider("a", error=TimeoutFailure("a: slow")),
        FakeProvider("b", content=""),
    ])

    with pytest.raises(DraftFailure) as exc_info:
        chain.complete("system", "user")
    assert "b: empty content" in str(exc_info.value)


def test_chain_requires_providers():
    """Test that an empty chain is rejected."""
    with pytest.raises(ValueError):
        ProviderChain([])


def test_anthropic_provider_reports_truncation():
    """Test that a max_tokens stop is surfaced as truncated."""
    client = SimpleNamespace(messages=FakeMessages([_message("partial", stop_reason="max_tokens")]))
    response = AnthropicDraftProvider(client).complete("system", "user")

    assert response.content == "partial"
    assert response.finish_reason == "truncated"
    assert response.provider == "anthropic"


def test_anthropic_provider_translates_timeout():
    """Test that SDK timeouts become TimeoutFailure."""
    client = SimpleNamespace(messages=FakeMessages([anthropic.APITimeoutError(request=ANTHROPIC_REQUEST)]))
    provider = AnthropicDraftProvider(client, retry_handler=RetryHandler(max_retries=0))

    with pytest.raises(TimeoutFailure):
        provider.complete("system", "user")


def test_anthropic_provider_retries_rate_limits():
    """Test bounded retries on throttling."""
    messages = FakeMessages([_rate_limit_error(), _rate_limit_error(), _message("done")])
    client = SimpleNamespace(messages=messages)
    provider = AnthropicDraftProvider(client, retry_handler=RetryHandler(max_retries=3, base_delay=0))

    response = provider.complete("system", "user")

    assert response.content == "done"
    assert messages.calls == 3


def test_anthropic_provider_gives_up_on_persistent_rate_limit():
    """Test that throttling surfaces once retries run out."""
    messages = FakeMessages([_rate_limit_error() for _ in range(3)])
    provider = AnthropicDraftProvider(
        SimpleNamespace(messages=messages), retry_handler=RetryHandler(max_retries=2, base_delay=0)
    )

    with pytest.raises(RateLimitFailure):
        provider.complete("system", "user")
    assert messages.calls == 3


def test_openai_compatible_provider_maps_length_finish():
    """Test the chat completions adapter."""
    reply = SimpleNamespace(choices=[
        SimpleNamespace(finish_reason="length", message=SimpleNamespace(content="cut off"))
    ])
    completions = SimpleNamespace(create=lambda **kwargs: reply)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

    response = OpenAICompatibleDraftProvider(client).complete("system", "user")

    assert response.content == "cut off"
    assert response.finish_reason == "truncated"
    assert response.provider == "deepseek"


def test_generator_builds_page_prompts():
    """Test the prompts sent for a first draft."""
    provider = FakeProvider("a", content="  ## نظرة عامة\nنص  ", finish_reason="truncated")
    generator = DraftGenerator(ProviderChain([provider]))
    questions = [QuestionReference(number="3", text="احسب الكثافة")]

    result = generator.generate("mixed", "نص الصفحة", questions, page_number=12)

    system_prompt, user_prompt = provider.prompts[0]
    assert "## الأسئلة والحلول الكاملة" in system_prompt
    assert "نص الصفحة" in user_prompt
    assert "3" in user_prompt
    assert result.text == "## نظرة عامة\nنص"
    assert result.truncated
    assert result.provider_used == "a"


def test_generator_continuation_asks_only_for_missing():
    """Test that the continuation prompt lists only the missing questions."""
    provider = FakeProvider("a", content="**س: 7- قارن**\n**ج:** ...")
    generator = DraftGenerator(ProviderChain([provider]))
    missing = [QuestionReference(number="7", text="قارن بين الحالتين")]

    generator.continue_questions("mixed", missing, "نص الصفحة")

    _, user_prompt = provider.prompts[0]
    assert "قارن بين الحالتين" in user_prompt


def test_generator_regenerate_includes_problems():
    """Test that the emergency prompt carries the validation problems."""
    provider = FakeProvider("a")
    generator = DraftGenerator(ProviderChain([provider]))

    generator.regenerate("content-heavy", "نص", [], problems=["Missing section: ## نظرة عامة"])

    _, user_prompt = provider.prompts[0]
    assert "Missing section: ## نظرة عامة" in user_prompt
    assert "## نظرة عامة" in user_prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
