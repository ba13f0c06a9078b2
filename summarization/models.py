"""Pydantic models for summarization and page processing."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

# Page types
QUESTIONS_FOCUSED = "questions-focused"
CONTENT_HEAVY = "content-heavy"
MIXED = "mixed"
NON_CONTENT = "non-content"
PAGE_TYPES = (QUESTIONS_FOCUSED, CONTENT_HEAVY, MIXED, NON_CONTENT)

# Processing states of a persisted page
STATE_PENDING = "pending"
STATE_ACCEPTED = "accepted"
STATE_PARTIAL = "partial"


class QuestionReference(BaseModel):
    """A numbered question found on a page."""
    number: str  # canonical Western numerals
    text: str
    is_multiple_choice: bool = False


class ValidationResult(BaseModel):
    """Result of a single rubric check."""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "failed"
        return "warning" if self.warnings else "passed"


class ComplianceReport(BaseModel):
    """Rubric outcome for one draft."""
    is_valid: bool
    score: float  # 0-100
    missing_questions: List[str] = Field(default_factory=list)
    missing_sections: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    checks: Dict[str, str] = Field(default_factory=dict)  # check name -> passed, warning, failed


class DraftResponse(BaseModel):
    """What a single draft provider returned."""
    content: str
    finish_reason: str = "stop"  # stop, truncated, error
    success: bool = True
    provider: str = ""


class DraftResult(BaseModel):
    """Draft accepted from the provider chain."""
    text: str
    provider_used: str
    finish_reason: str = "stop"

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "truncated"


class ContinuationState(BaseModel):
    """Accumulator threaded through continuation rounds."""
    draft_text: str
    answered: List[str] = Field(default_factory=list)
    attempt: int = 0


class ContinuationResult(BaseModel):
    """Outcome of the continuation loop."""
    draft_text: str
    success: bool
    attempts: int
    missing_questions: List[str] = Field(default_factory=list)


class RegenerationResult(BaseModel):
    """Outcome of the emergency regeneration step."""
    draft_text: str
    report: ComplianceReport
    attempted: bool = False
    adopted: bool = False


class RagContextPage(BaseModel):
    """A related page returned by the context retriever."""
    page_number: int
    title: str = ""
    content: str
    similarity: float


class RagMetadata(BaseModel):
    """How much retrieved context went into a draft."""
    pages_found: int = 0
    pages_sent: int = 0
    context_chars: int = 0
    included_pages: List[int] = Field(default_factory=list)


class PageRecord(BaseModel):
    """One persisted row per (book, page)."""
    book_id: str
    page_number: int
    ocr_text: Optional[str] = None
    summary_markdown: Optional[str] = None
    ocr_confidence: Optional[float] = None
    summary_confidence: Optional[float] = None
    compliance_score: Optional[float] = None
    page_type: Optional[str] = None
    processing_state: str = STATE_PENDING
    provider_used: Optional[str] = None
    rag_pages_sent: int = 0
    rag_pages_found: int = 0
    rag_context_chars: int = 0
    rag_metadata: Dict[str, Any] = Field(default_factory=dict)
    missing_questions: List[str] = Field(default_factory=list)
    missing_sections: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PageResult(BaseModel):
    """Summary of one successful single-page run."""
    book_id: str
    page_number: int
    page_type: str
    accepted: bool
    compliance_score: float
    ocr_confidence: float
    provider_used: str
    question_numbers: List[str] = Field(default_factory=list)
    continuation_attempts: int = 0
    regenerated: bool = False
    truncated: bool = False
    from_cache: bool = False
    rag: RagMetadata = Field(default_factory=RagMetadata)


class PageOutcome(BaseModel):
    """How one page of a batch ended."""
    page_number: int
    status: str  # success, timeout, frozen, error, skipped
    message: str = ""
    compliance_score: Optional[float] = None
    ocr_confidence: Optional[float] = None
    continuation_attempts: int = 0
    regenerated: bool = False
    truncated: bool = False
    missing_questions: List[str] = Field(default_factory=list)
    missing_sections: List[str] = Field(default_factory=list)


class BatchRequest(BaseModel):
    """A contiguous page range to process."""
    book_id: str
    range_start: int = Field(ge=1)
    range_end: int = Field(ge=1)
    strict_mode: bool = False
    force: bool = False

    @model_validator(mode="after")
    def check_order(self) -> "BatchRequest":
        if self.range_end < self.range_start:
            raise ValueError("range_end must not be smaller than range_start")
        return self

    @property
    def page_count(self) -> int:
        return self.range_end - self.range_start + 1

    def pages(self) -> List[int]:
        return list(range(self.range_start, self.range_end + 1))


class BatchReport(BaseModel):
    """Final counters and statistics of a batch run."""
    book_id: str
    range_start: int
    range_end: int
    status: str = "requested"  # requested, running, completed, cancelled, failed
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    timeouts: int = 0
    frozen: int = 0
    outcomes: List[PageOutcome] = Field(default_factory=list)
    average_ocr_confidence: float = 0.0
    average_compliance_score: float = 0.0
    repairs: int = 0
    regenerations: int = 0
    truncated_pages: List[int] = Field(default_factory=list)
    started_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    finished_at: Optional[str] = None
