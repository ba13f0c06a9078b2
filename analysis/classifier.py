"""Deterministic page type classification."""
import re
from typing import List

from pydantic import BaseModel

from summarization.models import (
    CONTENT_HEAVY,
    MIXED,
    NON_CONTENT,
    QUESTIONS_FOCUSED,
    QuestionReference,
)
from utils.logger import setup_logger

logger = setup_logger(__name__)

CONTENT_KEYWORDS = [
    "مثال", "تعريف", "قانون", "معادلة", "نظرية", "خاصية", "مفهوم", "شرح",
    "example", "definition", "law", "equation", "theorem", "property", "concept", "explanation",
    "الأهداف", "المفاهيم", "التعاريف", "الصيغ", "الخطوات", "المبادئ",
    "objectives", "concepts", "definitions", "formulas", "steps", "principles",
]

QUESTION_KEYWORDS = [
    "اشرح", "وضح", "قارن", "حدد", "لماذا", "كيف", "ماذا", "أين", "متى", "احسب", "أوجد",
    "explain", "describe", "compare", "identify", "why", "how", "what", "where", "when",
    "calculate", "find",
]

# Questions per 1,000 characters above which a page counts as question-dense
HIGH_QUESTION_DENSITY = 2.0
EXPLANATORY_KEYWORD_COUNT = 3
NON_CONTENT_KEYWORD_COUNT = 2


class PageSignals(BaseModel):
    """Inputs the page type decision is based on."""
    content_keywords: int
    question_keywords: int
    question_count: int
    question_density: float

    @property
    def is_explanatory(self) -> bool:
        return self.content_keywords >= EXPLANATORY_KEYWORD_COUNT

    @property
    def is_question_dense(self) -> bool:
        if self.question_density > HIGH_QUESTION_DENSITY:
            return True
        # Mostly imperative numbered items even on a long page
        return self.question_count >= 3 and self.question_keywords >= self.question_count * 0.7


def _count_keywords(text: str, keywords: List[str]) -> int:
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword.lower() in lowered)


def compute_signals(text: str, questions: List[QuestionReference]) -> PageSignals:
    """Count keyword hits and question density of a page."""
    clean = re.sub(r'[{}",:\[\]]', " ", text)
    length = len(clean)
    count = len(questions)
    density = count / (length / 1000) if count and length else 0.0
    return PageSignals(
        content_keywords=_count_keywords(clean, CONTENT_KEYWORDS),
        question_keywords=_count_keywords(clean, QUESTION_KEYWORDS),
        question_count=count,
        question_density=density,
    )


def classify_page(
    text: str,
    questions: List[QuestionReference],
    non_content_hint: bool = False,
) -> str:
    """Assign a page type.

    Decision order: no questions with few content keywords is
    non-content; dense questions without explanation is
    questions-focused; explanation with at most two questions is
    content-heavy; anything else is mixed.

    Args:
        text: Cleaned page text
        questions: Questions parsed from the same text
        non_content_hint: Cleaner already recognized a non-content page

    Returns:
        One of the page type constants
    """
    if non_content_hint and not questions:
        return NON_CONTENT

    signals = compute_signals(text, questions)

    if signals.question_count == 0 and signals.content_keywords < NON_CONTENT_KEYWORD_COUNT:
        page_type = NON_CONTENT
    elif signals.is_question_dense and not signals.is_explanatory:
        page_type = QUESTIONS_FOCUSED
    elif signals.is_explanatory and signals.question_count <= 2:
        page_type = CONTENT_HEAVY
    else:
        page_type = MIXED

    logger.debug(
        f"Page type {page_type}: {signals.question_count} questions, "
        f"density {signals.question_density:.2f}, {signals.content_keywords} content keywords"
    )
    return page_type
