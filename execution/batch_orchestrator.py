"""
Batch processing of a contiguous page range.

Pages run one after another with a jittered pause in between. Pages that
already hold an accepted summary are skipped unless forced, each page gets
one local retry for transient failures, and a failing page never stops
the batch.
"""
import threading
from datetime import datetime
from typing import Callable, List, Optional

from execution.page_processor import PageProcessor
from execution.rate_limiter import JitterDelay
from execution.retry_handler import RetryHandler, page_retry_handler
from storage.database import Database
from summarization.models import BatchReport, BatchRequest, PageOutcome, PageResult
from utils.errors import BatchRangeError, FrozenFailure, PipelineError, TimeoutFailure
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

ImageUrlFn = Callable[[str, int], str]
ProgressFn = Callable[[PageOutcome], None]


def check_range(request: BatchRequest, cap: int = config.BATCH_PAGE_CAP) -> None:
    """Reject ranges larger than the cap instead of truncating them.

    Raises:
        BatchRangeError: When the range covers more than ``cap`` pages
    """
    if request.page_count > cap:
        raise BatchRangeError(
            f"Pages {request.range_start}-{request.range_end} is {request.page_count} pages; "
            f"at most {cap} pages can be processed per batch, please split your request"
        )


def _outcome_status(error: Exception) -> str:
    if isinstance(error, TimeoutFailure):
        return "timeout"
    if isinstance(error, FrozenFailure):
        return "frozen"
    return "error"


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


class BatchOrchestrator:
    """Drives a page range through the single-page pipeline."""

    def __init__(
        self,
        processor: PageProcessor,
        db: Database,
        image_url_for: ImageUrlFn,
        jitter: Optional[JitterDelay] = None,
        retry_handler: Optional[RetryHandler] = None,
        cap: int = config.BATCH_PAGE_CAP,
    ):
        """Initialize orchestrator.

        Args:
            processor: Single-page pipeline
            db: Persistence gateway
            image_url_for: Builds the image URL of (book_id, page_number)
            jitter: Pause between pages
            retry_handler: Page level retry policy
            cap: Largest number of pages per batch
        """
        self.processor = processor
        self.db = db
        self.image_url_for = image_url_for
        self.jitter = jitter or JitterDelay()
        self.retry_handler = retry_handler or page_retry_handler()
        self.cap = cap
        self._stop = threading.Event()

    def stop(self) -> None:
        """Ask the running batch to stop before its next page."""
        logger.info("Stop requested; the batch ends after the current page")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _process_page(self, request: BatchRequest, page_number: int) -> PageResult:
        image_url = self.image_url_for(request.book_id, page_number)
        return self.retry_handler.execute_with_retry(
            self.processor.process,
            request.book_id,
            page_number,
            image_url,
            strict_mode=request.strict_mode,
        )

    def run(self, request: BatchRequest, on_page: Optional[ProgressFn] = None) -> BatchReport:
        """Process every page of the request in ascending order.

        Args:
            request: Book and page range
            on_page: Called with each page outcome as it is known

        Returns:
            BatchReport with per-page outcomes and statistics

        Raises:
            BatchRangeError: The range exceeds the cap
        """
        check_range(request, self.cap)
        self._stop.clear()

        report = BatchReport(
            book_id=request.book_id,
            range_start=request.range_start,
            range_end=request.range_end,
        )
        run_id = self.db.insert_batch_run(
            request.book_id, request.range_start, request.range_end, request.strict_mode
        )
        self.db.seed_pages(request.book_id, request.pages())

        report.status = "running"
        self.db.update_batch_run(run_id, report.status, report)
        logger.info(
            f"Batch {run_id}: book {request.book_id}, pages {request.range_start}-{request.range_end}"
            f"{' (strict)' if request.strict_mode else ''}"
        )

        ocr_confidences: List[float] = []
        scores: List[float] = []
        worked_previous = False

        try:
            for page_number in request.pages():
                if self._stop.is_set():
                    report.status = "cancelled"
                    logger.warning(f"Batch cancelled before page {page_number}")
                    break

                if not request.force and self.db.has_valid_summary(request.book_id, page_number):
                    outcome = PageOutcome(
                        page_number=page_number, status="skipped", message="already has a valid summary"
                    )
                    report.skipped += 1
                    logger.info(f"Page {page_number}: skipped, already valid")
                else:
                    if worked_previous:
                        self.jitter.wait()
                    outcome = self._run_page(request, page_number, report, ocr_confidences, scores)
                    worked_previous = True

                report.outcomes.append(outcome)
                self.db.update_batch_run(run_id, report.status, report)
                if on_page:
                    on_page(outcome)
            else:
                report.status = "completed"
        except Exception as e:
            report.status = "failed"
            report.finished_at = datetime.utcnow().isoformat()
            self.db.update_batch_run(run_id, report.status, report, error=str(e))
            logger.error(f"Batch {run_id} failed: {e}")
            raise

        report.average_ocr_confidence = _average(ocr_confidences)
        report.average_compliance_score = _average(scores)
        report.finished_at = datetime.utcnow().isoformat()
        self.db.update_batch_run(run_id, report.status, report)

        logger.info(
            f"Batch {run_id} {report.status}: {report.processed} processed, {report.skipped} skipped, "
            f"{report.errored} errored ({report.timeouts} timeouts, {report.frozen} frozen)"
        )
        return report

    def _run_page(
        self,
        request: BatchRequest,
        page_number: int,
        report: BatchReport,
        ocr_confidences: List[float],
        scores: List[float],
    ) -> PageOutcome:
        try:
            result = self._process_page(request, page_number)
        except PipelineError as e:
            status = _outcome_status(e)
            report.errored += 1
            if status == "timeout":
                report.timeouts += 1
            elif status == "frozen":
                report.frozen += 1
            if e.score is not None:
                scores.append(e.score)
            logger.error(f"Page {page_number}: {status}: {e.describe()}")
            return PageOutcome(
                page_number=page_number,
                status=status,
                message=e.describe(),
                compliance_score=e.score,
                missing_questions=e.missing_questions,
                missing_sections=e.missing_sections,
            )
        except Exception as e:
            report.errored += 1
            logger.exception(f"Page {page_number}: unexpected error: {e}")
            return PageOutcome(page_number=page_number, status="error", message=str(e))

        report.processed += 1
        ocr_confidences.append(result.ocr_confidence)
        scores.append(result.compliance_score)
        if result.continuation_attempts:
            report.repairs += 1
        if result.regenerated:
            report.regenerations += 1
        if result.truncated:
            report.truncated_pages.append(page_number)

        return PageOutcome(
            page_number=page_number,
            status="success",
            compliance_score=result.compliance_score,
            ocr_confidence=result.ocr_confidence,
            continuation_attempts=result.continuation_attempts,
            regenerated=result.regenerated,
            truncated=result.truncated,
        )
