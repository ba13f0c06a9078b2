"""Test compliance validation of drafts."""
import pytest
from analysis.question_parser import parse_questions
from ingestion.models import StructuredContext, VisualElement
from prompts.templates import CONTENT_SECTIONS, QUESTIONS_SOLUTIONS
from prompts.validators import ComplianceValidator, answered_numbers
from summarization.models import CONTENT_HEAVY, NON_CONTENT, QUESTIONS_FOCUSED, QuestionReference

SOURCE = "3. اشرح التفاعل الكيميائي بالتفصيل.\n5. احسب الكتلة المولية للماء."

TABLE = VisualElement(
    type="table",
    number="2-1",
    title="الجدول 2-1",
    headers=["الحرارة (K)", "الضغط (atm)"],
    rows=[["273", "1.0"], ["373", "1.37"]],
)


def _content_draft(sections):
    return "\n\n".join(f"{header}\n- نص القسم" for header in sections)


def test_answered_numbers_across_scripts():
    """Test answer markers in Western and Arabic-Indic digits."""
    draft = "**س: 3- سؤال**\n**س: ٥- سؤال**\n**Q: 12) question**"
    assert answered_numbers(draft) == ["3", "5", "12"]


def test_missing_question_then_completed():
    """Test the 3 and 5 scenario: 5 missing, then answered."""
    questions = parse_questions(SOURCE)
    assert [q.number for q in questions] == ["3", "5"]

    draft = f"{QUESTIONS_SOLUTIONS}\n**س: 3- اشرح التفاعل**\n**ج:** يحدث التفاعل عند التسخين."
    report = ComplianceValidator.validate(draft, questions, SOURCE, StructuredContext(), QUESTIONS_FOCUSED)

    assert not report.is_valid
    assert report.missing_questions == ["5"]
    assert report.score == 80.0

    draft += "\n\n**س: 5- احسب الكتلة المولية للماء**\n**ج:** الكتلة تساوي 18 g/mol"
    report = ComplianceValidator.validate(draft, questions, SOURCE, StructuredContext(), QUESTIONS_FOCUSED)

    assert report.is_valid
    assert report.missing_questions == []
    assert report.score == 100.0


def test_out_of_order_and_duplicates_are_warnings():
    """Test ordering problems reduce the score without invalidating."""
    questions = [QuestionReference(number="1", text="a"), QuestionReference(number="2", text="b")]
    draft = "**س: 2- b**\n**س: 1- a**\n**س: 1- a**"
    result, missing = ComplianceValidator.check_question_coverage(draft, questions)

    assert result.is_valid
    assert missing == []
    assert result.status == "warning"
    assert len(result.warnings) == 2


def test_multiple_choice_final_answer_warning():
    """Test that multiple choice questions need a final answer line."""
    questions = [QuestionReference(number="1", text="ما وحدة الضغط؟", is_multiple_choice=True)]
    result, _ = ComplianceValidator.check_question_coverage("**س: 1- ما وحدة الضغط؟**\n**ج:** باسكال", questions)
    assert result.status == "warning"

    draft = "**س: 1- ما وحدة الضغط؟**\n**ج:** باسكال **الإجابة الصحيحة: أ)**"
    result, _ = ComplianceValidator.check_question_coverage(draft, questions)
    assert result.status == "passed"


def test_visual_citation_by_name_or_value():
    """Test that a table counts as used when named or when its values are reused."""
    structured = StructuredContext(tables=[TABLE])

    named = ComplianceValidator.check_visual_citation("من الجدول 2-1 نجد أن الضغط يزداد", [], structured, CONTENT_HEAVY)
    reused = ComplianceValidator.check_visual_citation("عند 373 K يكون الضغط 1.37 atm", [], structured, CONTENT_HEAVY)
    ignored = ComplianceValidator.check_visual_citation("الضغط يزداد مع الحرارة", [], structured, CONTENT_HEAVY)

    assert named.is_valid
    assert reused.is_valid
    assert not ignored.is_valid


def test_table_number_prefix_is_not_a_citation():
    """Test that "Table 2-12" does not cite "Table 2-1"."""
    structured = StructuredContext(tables=[TABLE.model_copy(update={"rows": [["a", "b"]]})])
    result = ComplianceValidator.check_visual_citation("see Table 2-12", [], structured, CONTENT_HEAVY)

    assert not result.is_valid


def test_question_referencing_missing_element():
    """Test a question citing a numbered table that extraction did not capture."""
    questions = [QuestionReference(number="4", text="احسب الضغط من الجدول 3")]

    missing = ComplianceValidator.check_visual_citation("الضغط 2 atm", questions, StructuredContext(), CONTENT_HEAVY)
    cited = ComplianceValidator.check_visual_citation("من الجدول 3 الضغط 2 atm", questions, StructuredContext(), CONTENT_HEAVY)

    assert not missing.is_valid
    assert cited.is_valid


def test_unnumbered_reference_is_a_warning():
    """Test a question pointing at an unnumbered figure."""
    questions = [QuestionReference(number="1", text="ماذا يوضح الشكل المقابل")]
    result = ComplianceValidator.check_visual_citation("إجابة", questions, StructuredContext(), CONTENT_HEAVY)

    assert result.is_valid
    assert result.status == "warning"


def test_visual_citation_skipped_for_non_content():
    """Test that non-content pages have nothing to cite."""
    structured = StructuredContext(tables=[TABLE])
    assert ComplianceValidator.check_visual_citation("", [], structured, NON_CONTENT).is_valid


def test_assumptions_only_when_unstated():
    """Test forbidden assumption phrasing."""
    draft = "نفترض أن الغاز مثالي"

    assert not ComplianceValidator.check_assumptions(draft, "احسب الحجم").is_valid
    assert ComplianceValidator.check_assumptions(draft, "نفترض أن الغاز مثالي. احسب الحجم").is_valid
    assert not ComplianceValidator.check_assumptions("Let us assume ideal behaviour", "").is_valid


def test_math_checks():
    """Test math well-formedness rules."""
    check = ComplianceValidator.check_math

    assert check("$$\\frac{P_1}{T_1} = \\frac{P_2}{T_2}$$").status == "passed"
    assert not check("$$\\frac{1}{2$$").is_valid
    assert not check("$$a = b").is_valid
    assert not check("$$\\text{mol \\text{L}}$$").is_valid
    assert not check("$$2\\timesx$$").is_valid
    assert check("$$a \\cdot b$$").status == "warning"


def test_structure_complete_and_ordered():
    """Test mandated sections for a content page."""
    result, missing = ComplianceValidator.check_structure(_content_draft(CONTENT_SECTIONS), CONTENT_SECTIONS)
    assert result.is_valid
    assert missing == []


def test_structure_problems():
    """Test missing, extra, out of order sections and preamble text."""
    sections = CONTENT_SECTIONS

    result, missing = ComplianceValidator.check_structure(_content_draft(sections[:-1]), sections)
    assert not result.is_valid
    assert missing == [sections[-1].lstrip("# ")]

    extra = _content_draft(sections) + "\n\n## ملاحظات إضافية\nنص"
    assert not ComplianceValidator.check_structure(extra, sections)[0].is_valid

    swapped = _content_draft([sections[1], sections[0]] + sections[2:])
    assert not ComplianceValidator.check_structure(swapped, sections)[0].is_valid

    preamble = "مرحبا! إليك الملخص\n" + _content_draft(sections)
    assert not ComplianceValidator.check_structure(preamble, sections)[0].is_valid


def test_questions_focused_rejects_content_sections():
    """Test that questions-only pages allow no other top-level section."""
    questions = [QuestionReference(number="1", text="احسب")]
    draft = f"{CONTENT_SECTIONS[0]}\n- تعريف\n\n{QUESTIONS_SOLUTIONS}\n**س: 1- احسب**\n**ج:** 5"
    report = ComplianceValidator.validate(draft, questions, "1. احسب", StructuredContext(), QUESTIONS_FOCUSED)

    assert not report.is_valid
    assert report.checks["structure"] == "failed"


def test_score_counts_warnings_as_half():
    """Test scoring with one warning and everything else passing."""
    questions = [QuestionReference(number="1", text="احسب")]
    draft = f"{QUESTIONS_SOLUTIONS}\n**س: 1- احسب**\n**ج:** $$a \\cdot b$$"
    report = ComplianceValidator.validate(draft, questions, "1. احسب", StructuredContext(), QUESTIONS_FOCUSED)

    assert report.is_valid
    assert report.score == 90.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
