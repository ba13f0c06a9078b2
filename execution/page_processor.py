"""
Single-page pipeline.

Stages run strictly in order, each consuming the previous one's output:
extraction, cleaning, structured extraction, question parsing and
classification, context retrieval, drafting, validation, continuation,
emergency regeneration, persistence with read-back, then indexing and
caching.
"""
from typing import Optional

from analysis.classifier import classify_page
from analysis.question_parser import parse_questions, question_numbers
from ingestion.cleaner import clean_ocr_text
from ingestion.models import CleaningOptions, ExtractionResult
from ingestion.page_extractor import PageExtractor
from ingestion.structured_extractor import extract_structured_data
from prompts.validators import ComplianceValidator
from storage.database import Database
from storage.page_cache import CachePort
from storage.vector_store import VectorStore
from summarization.continuation import ContinuationController
from summarization.generator import DraftGenerator
from summarization.models import (
    NON_CONTENT,
    STATE_ACCEPTED,
    STATE_PARTIAL,
    ComplianceReport,
    PageRecord,
    PageResult,
    RagMetadata,
)
from summarization.rag import ContextRetriever
from summarization.regenerator import EmergencyRegenerator
from utils.errors import FrozenFailure, ValidationFailure
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


def is_accepted(report: ComplianceReport, strict_mode: bool, threshold: float = config.ACCEPTANCE_THRESHOLD) -> bool:
    """Strict mode needs a valid draft; otherwise a high enough score also passes."""
    if strict_mode:
        return report.is_valid
    return report.is_valid or report.score >= threshold


class PageProcessor:
    """Turns one page image into a persisted, validated summary."""

    def __init__(
        self,
        extractor: PageExtractor,
        generator: DraftGenerator,
        db: Database,
        cache: Optional[CachePort] = None,
        retriever: Optional[ContextRetriever] = None,
        vector_store: Optional[VectorStore] = None,
        continuation: Optional[ContinuationController] = None,
        regenerator: Optional[EmergencyRegenerator] = None,
        cleaning_options: Optional[CleaningOptions] = None,
        acceptance_threshold: float = config.ACCEPTANCE_THRESHOLD,
    ):
        """Initialize processor.

        Args:
            extractor: Extraction provider chain
            generator: Draft generator over the draft provider chain
            db: Persistence gateway
            cache: Read-through cache of OCR text and summaries
            retriever: Related-page context retriever
            vector_store: Store the page is indexed into once persisted
            continuation: Continuation loop, default cap from config
            regenerator: Emergency regenerator, default built on ``generator``
            cleaning_options: OCR cleaning toggles
            acceptance_threshold: Score accepted in non-strict mode
        """
        self.extractor = extractor
        self.generator = generator
        self.db = db
        self.cache = cache
        self.retriever = retriever
        self.vector_store = vector_store
        self.continuation = continuation or ContinuationController()
        self.regenerator = regenerator or EmergencyRegenerator(generator, threshold=acceptance_threshold)
        self.cleaning_options = cleaning_options or CleaningOptions()
        self.acceptance_threshold = acceptance_threshold

    def _extract(self, book_id: str, page_number: int, image_url: str, language: str):
        if self.cache:
            cached = self.cache.get(book_id, page_number)
            if cached and cached.get("ocr"):
                logger.info(f"Page {page_number}: using cached OCR text")
                return ExtractionResult(text=cached["ocr"], confidence=0.0, provider="cache"), True
        return self.extractor.extract(image_url, language), False

    def _verify_persisted(self, record: PageRecord) -> None:
        stored = self.db.get_page(record.book_id, record.page_number)
        if stored is None or stored.summary_markdown != record.summary_markdown:
            raise FrozenFailure(
                f"Page {record.page_number}: summary reported as written but not found on read-back",
                missing_questions=record.missing_questions,
                missing_sections=record.missing_sections,
                score=record.compliance_score,
            )

    def _index(self, book_id: str, page_number: int, text: str) -> None:
        if not self.vector_store:
            return
        try:
            self.vector_store.index_page(book_id, page_number, text)
        except Exception as e:
            logger.warning(f"Could not index page {page_number}: {e}")

    def process(
        self,
        book_id: str,
        page_number: int,
        image_url: str,
        strict_mode: bool = False,
        language: str = "ar",
    ) -> PageResult:
        """Run the whole pipeline for one page.

        Args:
            book_id: Book identifier
            page_number: Page number
            image_url: URL of the page image
            strict_mode: Strict retrieval profile and validity-only acceptance
            language: Extraction language hint

        Returns:
            PageResult of the accepted summary

        Raises:
            ExtractionFailure: No provider produced usable text
            TimeoutFailure: A provider call exceeded its bound
            RateLimitFailure: Providers kept throttling
            DraftFailure: No draft provider produced content
            FrozenFailure: The write did not show up on read-back
            ValidationFailure: The draft stayed below acceptance; it is persisted as partial
        """
        logger.info(f"Processing page {page_number} of book {book_id}")

        # Extraction and cleaning
        extraction, from_cache = self._extract(book_id, page_number, image_url, language)
        cleaning = clean_ocr_text(extraction.text, self.cleaning_options)
        page_text = cleaning.cleaned_text
        ocr_confidence = cleaning.confidence if from_cache else extraction.confidence

        structured = extract_structured_data(page_text)
        structured.merge_visual_elements(extraction.visual_elements)
        structured_block = structured.to_prompt_block()

        # Questions and page type
        questions = parse_questions(page_text)
        page_type = classify_page(page_text, questions, non_content_hint=not cleaning.is_content)
        logger.info(
            f"Page {page_number}: {page_type}, questions {question_numbers(questions) or 'none'}, "
            f"{len(structured.visual_elements)} visual elements"
        )

        # Related pages
        rag_context, rag_metadata = "", RagMetadata()
        if self.retriever and page_type != NON_CONTENT:
            rag_context, rag_metadata = self.retriever.build_context(
                book_id, page_number, page_text, strict_mode
            )

        # Draft and validation
        draft = self.generator.generate(
            page_type, page_text, questions, structured_block, rag_context, page_number
        )
        draft_text = draft.text
        report = ComplianceValidator.validate(draft_text, questions, page_text, structured, page_type)
        logger.info(f"Page {page_number}: first draft score {report.score}")

        continuation_attempts = 0
        if report.missing_questions:
            result = self.continuation.run(
                draft_text,
                questions,
                lambda missing: self.generator.continue_questions(
                    page_type, missing, page_text, structured_block
                ).text,
            )
            continuation_attempts = result.attempts
            draft_text = result.draft_text
            report = ComplianceValidator.validate(draft_text, questions, page_text, structured, page_type)
            logger.info(f"Page {page_number}: score after continuation {report.score}")

        regeneration = self.regenerator.run(
            draft_text, report, page_type, page_text, questions, structured
        )
        draft_text, report = regeneration.draft_text, regeneration.report

        accepted = is_accepted(report, strict_mode, self.acceptance_threshold)

        # Persistence
        record = PageRecord(
            book_id=book_id,
            page_number=page_number,
            ocr_text=page_text,
            summary_markdown=draft_text,
            ocr_confidence=ocr_confidence,
            summary_confidence=round(report.score / 100, 4),
            compliance_score=report.score,
            page_type=page_type,
            processing_state=STATE_ACCEPTED if accepted else STATE_PARTIAL,
            provider_used=draft.provider_used,
            rag_pages_sent=rag_metadata.pages_sent,
            rag_pages_found=rag_metadata.pages_found,
            rag_context_chars=rag_metadata.context_chars,
            rag_metadata=rag_metadata.model_dump(),
            missing_questions=report.missing_questions,
            missing_sections=report.missing_sections,
        )
        self.db.upsert_page(record)
        self._verify_persisted(record)

        if not accepted:
            message = f"Page {page_number}: compliance score {report.score} below acceptance"
            if draft.truncated:
                message += " (draft was truncated)"
            raise ValidationFailure(
                message,
                score=report.score,
                missing_questions=report.missing_questions,
                missing_sections=report.missing_sections,
            )

        if page_type != NON_CONTENT:
            self._index(book_id, page_number, page_text)
        if self.cache:
            self.cache.set(book_id, page_number, extraction.text, draft_text)

        logger.info(f"Page {page_number}: accepted with score {report.score}")
        return PageResult(
            book_id=book_id,
            page_number=page_number,
            page_type=page_type,
            accepted=True,
            compliance_score=report.score,
            ocr_confidence=ocr_confidence,
            provider_used=draft.provider_used,
            question_numbers=question_numbers(questions),
            continuation_attempts=continuation_attempts,
            regenerated=regeneration.adopted,
            truncated=draft.truncated,
            from_cache=from_cache,
            rag=rag_metadata,
        )
