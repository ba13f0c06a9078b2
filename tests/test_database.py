"""Test the SQLite persistence gateway."""
import pytest
from storage.database import Database
from summarization.models import BatchReport, PageRecord, STATE_ACCEPTED, STATE_PARTIAL, STATE_PENDING


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "pages.db")


def _record(page, summary="## نظرة عامة\nملخص", state=STATE_ACCEPTED, score=95.0):
    return PageRecord(
        book_id="chem-1",
        page_number=page,
        ocr_text="نص",
        summary_markdown=summary,
        compliance_score=score,
        processing_state=state,
        page_type="mixed",
        provider_used="anthropic",
        rag_pages_sent=2,
        rag_pages_found=3,
        rag_metadata={"included_pages": [1, 2]},
        missing_questions=["7"],
    )


def test_seed_creates_pending_rows(db):
    """Test seeding of empty rows."""
    created = db.seed_pages("chem-1", [1, 2, 3])

    assert created == 3
    assert [r.page_number for r in db.get_pages("chem-1")] == [1, 2, 3]
    assert db.get_page("chem-1", 2).processing_state == STATE_PENDING


def test_seed_never_overwrites(db):
    """Test that seeding leaves existing rows untouched."""
    db.upsert_page(_record(2))

    created = db.seed_pages("chem-1", [1, 2])

    assert created == 1
    stored = db.get_page("chem-1", 2)
    assert stored.processing_state == STATE_ACCEPTED
    assert stored.summary_markdown.startswith("## نظرة عامة")


def test_upsert_overwrites_and_round_trips(db):
    """Test the overwrite path and JSON columns."""
    db.upsert_page(_record(4, summary="first"))
    db.upsert_page(_record(4, summary="second", state=STATE_PARTIAL, score=60.0))

    stored = db.get_page("chem-1", 4)
    assert stored.summary_markdown == "second"
    assert stored.processing_state == STATE_PARTIAL
    assert stored.compliance_score == 60.0
    assert stored.rag_metadata == {"included_pages": [1, 2]}
    assert stored.missing_questions == ["7"]
    assert len(db.get_pages("chem-1")) == 1


def test_has_valid_summary(db):
    """Test which rows count as already done."""
    db.upsert_page(_record(1))
    db.upsert_page(_record(2, state=STATE_PARTIAL))
    db.upsert_page(_record(3, summary="   "))
    db.seed_pages("chem-1", [4])

    assert db.has_valid_summary("chem-1", 1)
    assert not db.has_valid_summary("chem-1", 2)
    assert not db.has_valid_summary("chem-1", 3)
    assert not db.has_valid_summary("chem-1", 4)
    assert not db.has_valid_summary("chem-1", 99)


def test_batch_run_lifecycle(db):
    """Test the batch ledger from request to completion."""
    run_id = db.insert_batch_run("chem-1", 1, 5, strict_mode=True)
    assert db.get_batch_run(run_id)["status"] == "requested"

    report = BatchReport(book_id="chem-1", range_start=1, range_end=5, processed=4, skipped=1)
    db.update_batch_run(run_id, "running", report)
    running = db.get_batch_run(run_id)
    assert running["status"] == "running"
    assert running["completed_at"] is None

    db.update_batch_run(run_id, "completed", report)
    completed = db.get_batch_run(run_id)
    assert completed["status"] == "completed"
    assert completed["processed"] == 4
    assert completed["skipped"] == 1
    assert completed["completed_at"] is not None


def test_missing_batch_run(db):
    """Test lookup of an unknown run."""
    assert db.get_batch_run("nope") is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
