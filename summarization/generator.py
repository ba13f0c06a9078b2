"""Draft generation from a page-type prompt contract."""
from typing import List, Optional

from prompts.templates import PromptTemplates, mandatory_sections
from summarization.models import DraftResult, QuestionReference
from summarization.providers import ProviderChain
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


class DraftGenerator:
    """Builds prompts for a page and obtains drafts from the provider chain."""

    def __init__(
        self,
        chain: ProviderChain,
        subject: str = "science",
        max_output_tokens: int = config.MAX_OUTPUT_TOKENS,
    ):
        """Initialize generator.

        Args:
            chain: Ordered draft providers
            subject: Subject named in the system prompt
            max_output_tokens: Output bound for every call
        """
        self.chain = chain
        self.subject = subject
        self.max_output_tokens = max_output_tokens

    def _system_prompt(self, page_type: str, questions: List[QuestionReference]) -> str:
        return PromptTemplates.system_prompt(
            page_type,
            mandatory_sections(page_type, bool(questions)),
            has_multiple_choice=any(q.is_multiple_choice for q in questions),
            subject=self.subject,
        )

    def _call(self, system_prompt: str, user_prompt: str) -> DraftResult:
        response = self.chain.complete(system_prompt, user_prompt, self.max_output_tokens)
        return DraftResult(
            text=response.content.strip(),
            provider_used=response.provider,
            finish_reason=response.finish_reason,
        )

    def generate(
        self,
        page_type: str,
        page_text: str,
        questions: List[QuestionReference],
        structured_block: str = "",
        rag_context: str = "",
        page_number: Optional[int] = None,
    ) -> DraftResult:
        """Produce a first draft for a page.

        Returns:
            DraftResult; ``finish_reason == "truncated"`` when the output hit its limit

        Raises:
            PipelineError: When every provider failed
        """
        user_prompt = PromptTemplates.user_prompt(
            page_text, questions, structured_block, rag_context, page_number
        )
        result = self._call(self._system_prompt(page_type, questions), user_prompt)
        logger.info(
            f"Draft for page {page_number} ({page_type}) from {result.provider_used}, "
            f"finish reason {result.finish_reason}"
        )
        return result

    def continue_questions(
        self,
        page_type: str,
        missing: List[QuestionReference],
        page_text: str,
        structured_block: str = "",
    ) -> DraftResult:
        """Ask for answers to the given questions only."""
        user_prompt = PromptTemplates.continuation_prompt(missing, page_text, structured_block)
        system_prompt = PromptTemplates.continuation_system_prompt(self.subject)
        return self._call(system_prompt, user_prompt)

    def regenerate(
        self,
        page_type: str,
        page_text: str,
        questions: List[QuestionReference],
        structured_block: str = "",
        problems: Optional[List[str]] = None,
    ) -> DraftResult:
        """One stricter re-draft with every mandated header pre-filled."""
        sections = mandatory_sections(page_type, bool(questions))
        user_prompt = PromptTemplates.emergency_prompt(
            sections, questions, page_text, structured_block, problems
        )
        return self._call(self._system_prompt(page_type, questions), user_prompt)
