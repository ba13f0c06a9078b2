"""Test prompt templates."""
import pytest
from prompts.templates import (
    CONTENT_SECTIONS,
    OVERVIEW,
    QUESTIONS_SOLUTIONS,
    PromptTemplates,
    mandatory_sections,
)
from summarization.models import CONTENT_HEAVY, MIXED, NON_CONTENT, QUESTIONS_FOCUSED, QuestionReference

QUESTIONS = [
    QuestionReference(number="3", text="اشرح التفاعل"),
    QuestionReference(number="5", text="احسب الكتلة"),
]


def test_mandatory_sections_per_page_type():
    """Test the section contract of every page type."""
    assert mandatory_sections(NON_CONTENT, False) == [OVERVIEW]
    assert mandatory_sections(QUESTIONS_FOCUSED, True) == [QUESTIONS_SOLUTIONS]
    assert mandatory_sections(CONTENT_HEAVY, False) == CONTENT_SECTIONS
    assert mandatory_sections(MIXED, True) == CONTENT_SECTIONS + [QUESTIONS_SOLUTIONS]

    with pytest.raises(ValueError):
        mandatory_sections("poster", False)


def test_system_prompt_lists_exactly_the_sections():
    """Test that the system prompt names only mandated headers."""
    prompt = PromptTemplates.system_prompt(QUESTIONS_FOCUSED, [QUESTIONS_SOLUTIONS])

    assert QUESTIONS_SOLUTIONS in prompt
    assert all(section not in prompt for section in CONTENT_SECTIONS)
    assert "ascending" in prompt


def test_user_prompt_parts():
    """Test page text, context and question list."""
    prompt = PromptTemplates.user_prompt("نص", QUESTIONS, "**KEY VALUES:**", "Context from previous pages", 12)

    assert prompt.startswith("Context from previous pages")
    assert "PAGE 12 TEXT:\nنص" in prompt
    assert "QUESTIONS ON THIS PAGE (2): 3, 5" in prompt


def test_continuation_prompt_lists_missing_only():
    """Test the continuation request."""
    prompt = PromptTemplates.continuation_prompt(QUESTIONS[1:], "نص")

    assert "in this order: 5." in prompt
    assert "اشرح التفاعل" not in prompt
    assert "#" not in PromptTemplates.continuation_system_prompt().replace("'#'", "")


def test_emergency_prompt_prefills_headers():
    """Test that every mandated header appears in order."""
    sections = mandatory_sections(MIXED, True)
    prompt = PromptTemplates.emergency_prompt(sections, QUESTIONS, "نص", problems=["Missing questions: 5"])

    positions = [prompt.index(header) for header in sections]
    assert positions == sorted(positions)
    assert "- Missing questions: 5" in prompt
    assert "answer questions 3, 5" in prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
