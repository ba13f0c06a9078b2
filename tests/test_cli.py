"""Test the command line interface."""
import pytest
from click.testing import CliRunner

import main
from storage.database import Database
from summarization.models import PageRecord, STATE_ACCEPTED


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "pages.db"
    monkeypatch.setattr(main, "Database", lambda: Database(path))
    return path


def test_image_url_builder():
    """Test URL templating."""
    build = main.image_url_builder("https://cdn.example.org/{book_id}/{page}.jpg")
    assert build("chem-1", 12) == "https://cdn.example.org/chem-1/12.jpg"


def test_seed_command(db_path):
    """Test seeding through the CLI."""
    result = CliRunner().invoke(main.cli, ["seed", "--book-id", "chem-1", "--start", "1", "--end", "3"])

    assert result.exit_code == 0
    assert "Seeded 3 new pages" in result.output
    assert len(Database(db_path).get_pages("chem-1")) == 3


def test_process_batch_rejects_large_range(db_path):
    """Test that an oversized range is refused before any work."""
    result = CliRunner().invoke(
        main.cli, ["process-batch", "--book-id", "chem-1", "--start", "1", "--end", "10"]
    )

    assert result.exit_code == 0
    assert "please split your request" in " ".join(result.output.split())
    assert not db_path.exists()


def test_show_page(db_path):
    """Test printing a stored page."""
    Database(db_path).upsert_page(PageRecord(
        book_id="chem-1",
        page_number=4,
        summary_markdown="## نظرة عامة\nملخص الصفحة",
        compliance_score=100,
        processing_state=STATE_ACCEPTED,
    ))

    result = CliRunner().invoke(main.cli, ["show-page", "--book-id", "chem-1", "--page", "4"])

    assert result.exit_code == 0
    assert STATE_ACCEPTED in result.output
    assert "ملخص الصفحة" in result.output


def test_show_missing_page(db_path):
    """Test a page that was never stored."""
    result = CliRunner().invoke(main.cli, ["show-page", "--book-id", "chem-1", "--page", "99"])

    assert "No record for page 99" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
