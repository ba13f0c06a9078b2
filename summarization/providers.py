"""Draft providers behind one contract, and the ordered chain over them."""
import abc
from typing import List, Optional

from anthropic import Anthropic
from openai import OpenAI

from execution.retry_handler import RetryHandler
from summarization.models import DraftResponse
from utils.errors import (
    DraftFailure,
    PipelineError,
    RateLimitFailure,
    TimeoutFailure,
    translate_provider_error,
)
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


class DraftProvider(abc.ABC):
    """A language model that turns a prompt pair into markdown."""

    name: str = "provider"

    @abc.abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS,
    ) -> DraftResponse:
        """Return the model's reply.

        Raises:
            PipelineError: On timeout, throttling or any other provider failure
        """
        pass


class AnthropicDraftProvider(DraftProvider):
    """Drafts through the Anthropic Messages API."""

    def __init__(
        self,
        client: Anthropic,
        model: str = config.DRAFT_MODEL,
        name: str = "anthropic",
        retry_handler: Optional[RetryHandler] = None,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.model = model
        self.name = name
        self.retry_handler = retry_handler or RetryHandler()
        self.timeout = timeout

    def _create(self, system_prompt: str, user_prompt: str, max_output_tokens: int) -> DraftResponse:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=max_output_tokens,
                temperature=config.LLM_TEMPERATURE,
                timeout=self.timeout,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except Exception as e:
            raise translate_provider_error(e, self.name) from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        finish_reason = "truncated" if message.stop_reason == "max_tokens" else "stop"
        return DraftResponse(content=text, finish_reason=finish_reason, provider=self.name)

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS,
    ) -> DraftResponse:
        return self.retry_handler.execute_with_retry(
            self._create, system_prompt, user_prompt, max_output_tokens
        )


class OpenAICompatibleDraftProvider(DraftProvider):
    """Drafts through an OpenAI-compatible chat completions endpoint (DeepSeek)."""

    def __init__(
        self,
        client: OpenAI,
        model: str = config.DEEPSEEK_MODEL,
        name: str = "deepseek",
        retry_handler: Optional[RetryHandler] = None,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.model = model
        self.name = name
        self.retry_handler = retry_handler or RetryHandler()
        self.timeout = timeout

    def _create(self, system_prompt: str, user_prompt: str, max_output_tokens: int) -> DraftResponse:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=config.LLM_TEMPERATURE,
                max_tokens=max_output_tokens,
                timeout=self.timeout,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except Exception as e:
            raise translate_provider_error(e, self.name) from e

        if not response.choices:
            return DraftResponse(content="", finish_reason="error", success=False, provider=self.name)

        choice = response.choices[0]
        finish_reason = "truncated" if choice.finish_reason == "length" else "stop"
        return DraftResponse(
            content=choice.message.content or "",
            finish_reason=finish_reason,
            provider=self.name,
        )

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS,
    ) -> DraftResponse:
        return self.retry_handler.execute_with_retry(
            self._create, system_prompt, user_prompt, max_output_tokens
        )


class ProviderChain:
    """Ordered list of interchangeable providers; the first usable reply wins."""

    def __init__(self, providers: List[DraftProvider]):
        if not providers:
            raise ValueError("At least one draft provider is required")
        self.providers = providers

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS,
    ) -> DraftResponse:
        """Ask each provider in turn until one returns non-empty content.

        Raises:
            TimeoutFailure: Every provider timed out
            RateLimitFailure: Every provider was throttled
            DraftFailure: Otherwise, when no provider produced content
        """
        failures: List[PipelineError] = []

        for provider in self.providers:
            try:
                response = provider.complete(system_prompt, user_prompt, max_output_tokens)
            except PipelineError as e:
                logger.warning(f"Draft provider {provider.name} failed: {e}")
                failures.append(e)
                continue

            if not response.success or not response.content.strip():
                logger.warning(f"Draft provider {provider.name} returned empty content")
                failures.append(DraftFailure(f"{provider.name}: empty content"))
                continue

            if response.finish_reason == "truncated":
                logger.warning(f"Draft from {provider.name} was truncated at the output limit")
            logger.info(f"Draft produced by {provider.name} ({len(response.content)} chars)")
            return response

        transient = (TimeoutFailure, RateLimitFailure)
        if failures and all(isinstance(f, transient) for f in failures):
            raise failures[-1]
        details = "; ".join(str(f) for f in failures)
        raise DraftFailure(f"All draft providers failed: {details}")


def build_default_chain(
    anthropic_client: Optional[Anthropic] = None,
    openai_client: Optional[OpenAI] = None,
) -> ProviderChain:
    """Anthropic first, then DeepSeek when a key is configured."""
    providers: List[DraftProvider] = []

    if anthropic_client or config.ANTHROPIC_API_KEY:
        client = anthropic_client or Anthropic(api_key=config.ANTHROPIC_API_KEY, max_retries=0)
        providers.append(AnthropicDraftProvider(client))

    if openai_client or config.DEEPSEEK_API_KEY:
        client = openai_client or OpenAI(
            api_key=config.DEEPSEEK_API_KEY,
            base_url=config.DEEPSEEK_BASE_URL,
            max_retries=0,
        )
        providers.append(OpenAICompatibleDraftProvider(client))

    return ProviderChain(providers)
