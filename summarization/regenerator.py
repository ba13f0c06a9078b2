"""One-shot emergency regeneration for drafts far below the acceptance bar."""
from typing import Callable, List, Optional

from ingestion.models import StructuredContext
from prompts.validators import ComplianceValidator
from summarization.generator import DraftGenerator
from summarization.models import ComplianceReport, QuestionReference, RegenerationResult
from utils.errors import PipelineError
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


def needs_regeneration(report: ComplianceReport, threshold: float = config.ACCEPTANCE_THRESHOLD) -> bool:
    """Invalid and under the acceptance threshold."""
    return not report.is_valid and report.score < threshold


class EmergencyRegenerator:
    """Issues exactly one stricter re-draft and keeps whichever scores higher."""

    def __init__(
        self,
        generator: DraftGenerator,
        threshold: float = config.ACCEPTANCE_THRESHOLD,
        validate: Optional[Callable[..., ComplianceReport]] = None,
    ):
        self.generator = generator
        self.threshold = threshold
        self.validate = validate or ComplianceValidator.validate

    def run(
        self,
        draft_text: str,
        report: ComplianceReport,
        page_type: str,
        page_text: str,
        questions: List[QuestionReference],
        structured: Optional[StructuredContext] = None,
    ) -> RegenerationResult:
        """Regenerate once when the report calls for it.

        Args:
            draft_text: Draft after continuation
            report: Its compliance report
            page_type: Page type the draft was written for
            page_text: Cleaned page text
            questions: Parsed questions
            structured: Structured context of the page

        Returns:
            RegenerationResult holding the draft to keep and its report
        """
        if not needs_regeneration(report, self.threshold):
            return RegenerationResult(draft_text=draft_text, report=report)

        logger.warning(f"Score {report.score} below {self.threshold}, regenerating with the strict template")
        structured_block = structured.to_prompt_block() if structured else ""
        problems = report.errors + [
            f"Missing question {number}" for number in report.missing_questions
        ]

        try:
            result = self.generator.regenerate(
                page_type, page_text, questions, structured_block, list(dict.fromkeys(problems))
            )
        except PipelineError as e:
            logger.warning(f"Emergency regeneration failed, keeping the original draft: {e}")
            return RegenerationResult(draft_text=draft_text, report=report, attempted=True)

        new_report = self.validate(result.text, questions, page_text, structured, page_type)
        if new_report.score > report.score:
            logger.info(f"Regenerated draft adopted: {report.score} -> {new_report.score}")
            return RegenerationResult(
                draft_text=result.text, report=new_report, attempted=True, adopted=True
            )

        logger.info(f"Regenerated draft scored {new_report.score}, keeping original {report.score}")
        return RegenerationResult(draft_text=draft_text, report=report, attempted=True)
