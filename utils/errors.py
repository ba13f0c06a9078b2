"""Error taxonomy for the page pipeline."""
from typing import List, Optional

import anthropic
import httpx
import openai


class PipelineError(Exception):
    """Base class for every failure the pipeline surfaces."""

    kind = "error"

    def __init__(
        self,
        message: str,
        missing_questions: Optional[List[str]] = None,
        missing_sections: Optional[List[str]] = None,
        score: Optional[float] = None,
    ):
        super().__init__(message)
        self.missing_questions = list(missing_questions or [])
        self.missing_sections = list(missing_sections or [])
        self.score = score

    def describe(self) -> str:
        """Human-readable message including what is still missing."""
        parts = [str(self)]
        if self.missing_questions:
            parts.append(f"unanswered questions: {', '.join(self.missing_questions)}")
        if self.missing_sections:
            parts.append(f"missing sections: {', '.join(self.missing_sections)}")
        if self.score is not None:
            parts.append(f"score: {self.score}")
        return "; ".join(parts)


class ExtractionFailure(PipelineError):
    """Raised when every extraction provider failed or returned unusable text."""

    kind = "extraction"


class ValidationFailure(PipelineError):
    """Raised when a draft never reaches acceptance after the full repair ladder."""

    kind = "validation"

    def __init__(self, message: str, score: float = 0.0, **kwargs):
        super().__init__(message, score=score, **kwargs)


class TimeoutFailure(PipelineError):
    """Raised when a provider call exceeded its time bound."""

    kind = "timeout"


class FrozenFailure(PipelineError):
    """Raised when a write reported success but nothing was persisted."""

    kind = "frozen"


class RateLimitFailure(PipelineError):
    """Raised when a provider reports throttling."""

    kind = "rate_limit"


class DraftFailure(PipelineError):
    """Raised when every draft provider failed for other reasons."""

    kind = "draft"


class BatchRangeError(ValueError):
    """Raised when a batch request covers more pages than allowed."""
    pass


def translate_provider_error(error: Exception, provider: str, default=DraftFailure) -> PipelineError:
    """Map an SDK or HTTP exception onto the pipeline taxonomy.

    Both the ``anthropic`` and ``openai`` SDKs expose ``APITimeoutError``,
    ``RateLimitError`` and ``APIStatusError``; overload responses (529)
    are treated like throttling.

    Args:
        error: Exception raised by a provider call
        provider: Provider name, used in the message
        default: Failure class for everything that is not a timeout or throttle

    Returns:
        PipelineError instance to raise
    """
    message = f"{provider}: {error}"

    if isinstance(error, PipelineError):
        return error
    if isinstance(error, (anthropic.APITimeoutError, openai.APITimeoutError, httpx.TimeoutException)):
        return TimeoutFailure(message)
    if isinstance(error, (anthropic.RateLimitError, openai.RateLimitError)):
        return RateLimitFailure(message)
    if isinstance(error, (anthropic.APIStatusError, openai.APIStatusError)) and error.status_code in (429, 529):
        return RateLimitFailure(message)
    return default(message)
