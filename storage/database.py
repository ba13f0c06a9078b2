"""SQLite persistence gateway for page summaries and batch runs."""
import sqlite3
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager

from summarization.models import BatchReport, PageRecord, STATE_ACCEPTED, STATE_PENDING
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

_RECORD_COLUMNS = [
    "ocr_text",
    "summary_markdown",
    "ocr_confidence",
    "summary_confidence",
    "compliance_score",
    "page_type",
    "processing_state",
    "provider_used",
    "rag_pages_sent",
    "rag_pages_found",
    "rag_context_chars",
    "rag_metadata_json",
    "missing_questions_json",
    "missing_sections_json",
]


def _now() -> str:
    return datetime.utcnow().isoformat()


class Database:
    """Manages SQLite database operations."""

    def __init__(self, db_path: Path = config.DB_PATH):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialize_schema()

    def _initialize_schema(self):
        """Create tables if they don't exist."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, 'r', encoding='utf-8') as f:
            schema_sql = f.read()

        with self._get_connection() as conn:
            conn.executescript(schema_sql)
            conn.commit()

        logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PageRecord:
        data = dict(row)
        return PageRecord(
            book_id=data["book_id"],
            page_number=data["page_number"],
            ocr_text=data["ocr_text"],
            summary_markdown=data["summary_markdown"],
            ocr_confidence=data["ocr_confidence"],
            summary_confidence=data["summary_confidence"],
            compliance_score=data["compliance_score"],
            page_type=data["page_type"],
            processing_state=data["processing_state"],
            provider_used=data["provider_used"],
            rag_pages_sent=data["rag_pages_sent"],
            rag_pages_found=data["rag_pages_found"],
            rag_context_chars=data["rag_context_chars"],
            rag_metadata=json.loads(data["rag_metadata_json"] or "{}"),
            missing_questions=json.loads(data["missing_questions_json"] or "[]"),
            missing_sections=json.loads(data["missing_sections_json"] or "[]"),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def seed_pages(self, book_id: str, page_numbers: List[int]) -> int:
        """Create empty rows for pages that have none yet.

        Existing rows, whether in flight or completed, are left untouched.

        Args:
            book_id: Book identifier
            page_numbers: Pages to seed

        Returns:
            Number of rows actually created
        """
        now = _now()
        with self._get_connection() as conn:
            cursor = conn.executemany(
                """
                INSERT OR IGNORE INTO page_summaries
                    (book_id, page_number, processing_state, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [(book_id, page, STATE_PENDING, now, now) for page in page_numbers]
            )
            conn.commit()
            created = cursor.rowcount

        logger.info(f"Seeded {created} of {len(page_numbers)} pages for book {book_id}")
        return created

    def upsert_page(self, record: PageRecord) -> None:
        """Insert or overwrite the row for (book_id, page_number).

        Args:
            record: Full page record; every content column is replaced
        """
        now = _now()
        values = {
            "ocr_text": record.ocr_text,
            "summary_markdown": record.summary_markdown,
            "ocr_confidence": record.ocr_confidence,
            "summary_confidence": record.summary_confidence,
            "compliance_score": record.compliance_score,
            "page_type": record.page_type,
            "processing_state": record.processing_state,
            "provider_used": record.provider_used,
            "rag_pages_sent": record.rag_pages_sent,
            "rag_pages_found": record.rag_pages_found,
            "rag_context_chars": record.rag_context_chars,
            "rag_metadata_json": json.dumps(record.rag_metadata, ensure_ascii=False),
            "missing_questions_json": json.dumps(record.missing_questions),
            "missing_sections_json": json.dumps(record.missing_sections, ensure_ascii=False),
        }
        columns = ", ".join(_RECORD_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in _RECORD_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _RECORD_COLUMNS)

        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO page_summaries
                    (book_id, page_number, {columns}, created_at, updated_at)
                VALUES (:book_id, :page_number, {placeholders}, :now, :now)
                ON CONFLICT (book_id, page_number) DO UPDATE SET
                    {updates}, updated_at = excluded.updated_at
                """,
                {"book_id": record.book_id, "page_number": record.page_number, "now": now, **values}
            )
            conn.commit()

        logger.debug(f"Upserted page {record.page_number} of book {record.book_id}")

    def get_page(self, book_id: str, page_number: int) -> Optional[PageRecord]:
        """Fetch one page record, or None."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM page_summaries WHERE book_id = ? AND page_number = ?",
                (book_id, page_number)
            ).fetchone()

            return self._row_to_record(row) if row else None

    def get_pages(self, book_id: str) -> List[PageRecord]:
        """All page records of a book, by page number."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM page_summaries WHERE book_id = ? ORDER BY page_number",
                (book_id,)
            ).fetchall()

            return [self._row_to_record(row) for row in rows]

    def has_valid_summary(self, book_id: str, page_number: int) -> bool:
        """True when the page was accepted and holds a summary."""
        record = self.get_page(book_id, page_number)
        return bool(
            record
            and record.processing_state == STATE_ACCEPTED
            and record.summary_markdown
            and record.summary_markdown.strip()
        )

    # ------------------------------------------------------------------
    # Batch runs
    # ------------------------------------------------------------------

    def insert_batch_run(
        self,
        book_id: str,
        range_start: int,
        range_end: int,
        strict_mode: bool = False,
        status: str = "requested"
    ) -> str:
        """Insert a batch run record.

        Returns:
            Batch run UUID
        """
        run_id = str(uuid.uuid4())

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO batch_runs (id, book_id, range_start, range_end, strict_mode, status, started_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (run_id, book_id, range_start, range_end, int(strict_mode), status, _now())
            )
            conn.commit()

        return run_id

    def update_batch_run(
        self,
        run_id: str,
        status: str,
        report: Optional[BatchReport] = None,
        error: Optional[str] = None
    ) -> None:
        """Update batch run status and counters.

        Args:
            run_id: Batch run UUID
            status: New status
            report: Current batch report, if any
            error: Error message if failed
        """
        finished = status in ("completed", "cancelled", "failed")

        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_runs
                SET status = ?, processed = ?, skipped = ?, errored = ?,
                    report_json = ?, error = ?, completed_at = ?
                WHERE id = ?
                """,
                (
                    status,
                    report.processed if report else 0,
                    report.skipped if report else 0,
                    report.errored if report else 0,
                    report.model_dump_json() if report else None,
                    error,
                    _now() if finished else None,
                    run_id,
                )
            )
            conn.commit()

    def get_batch_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a batch run as a dict, or None."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM batch_runs WHERE id = ?", (run_id,)).fetchone()
            return dict(row) if row else None
