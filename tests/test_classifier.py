"""Test page type classification."""
import pytest
from analysis.classifier import classify_page, compute_signals
from analysis.question_parser import parse_questions
from summarization.models import CONTENT_HEAVY, MIXED, NON_CONTENT, QUESTIONS_FOCUSED

EXPLANATION = (
    "تعريف القانون: ينص قانون بويل على أن حجم الغاز يتناسب عكسيا مع ضغطه عند ثبوت درجة الحرارة. "
    "المعادلة المستخدمة هي P1V1 = P2V2. "
    "مثال على ذلك ضغط الهواء في المكبس. "
)


def test_no_questions_and_few_keywords_is_non_content():
    """Test a sparse page without questions."""
    text = "صورة الغلاف مع اسم الكتاب والمؤلف"
    assert classify_page(text, []) == NON_CONTENT


def test_non_content_hint_without_questions():
    """Test that the cleaner's verdict wins when there are no questions."""
    text = EXPLANATION * 3
    assert classify_page(text, [], non_content_hint=True) == NON_CONTENT


def test_dense_questions_are_questions_focused():
    """Test a page that is just a list of exercises."""
    text = (
        "1. احسب الضغط النهائي.\n"
        "2. احسب الحجم الجديد.\n"
        "3. قارن بين الغازين.\n"
        "4. وضح سبب التغير."
    )
    questions = parse_questions(text)

    assert len(questions) == 4
    assert classify_page(text, questions) == QUESTIONS_FOCUSED


def test_explanation_with_few_questions_is_content_heavy():
    """Test an explanatory page with no questions."""
    text = EXPLANATION * 4
    assert classify_page(text, parse_questions(text)) == CONTENT_HEAVY


def test_explanation_with_several_questions_is_mixed():
    """Test a long explanatory page that also carries three questions."""
    text = EXPLANATION * 15 + (
        "\n1. احسب الضغط النهائي للغاز.\n"
        "2. احسب الحجم الجديد.\n"
        "3. ما العلاقة بين الضغط والحجم؟"
    )
    questions = parse_questions(text)
    signals = compute_signals(text, questions)

    assert len(questions) == 3
    assert signals.is_explanatory
    assert not signals.is_question_dense
    assert classify_page(text, questions) == MIXED


def test_classification_is_deterministic():
    """Test that repeated calls give the same page type."""
    text = EXPLANATION * 2 + "\n1. احسب الضغط.\n2. اشرح القانون."
    questions = parse_questions(text)
    results = {classify_page(text, questions) for _ in range(5)}

    assert len(results) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
