"""Numbered question detection in cleaned page text."""
import re
from typing import List

from summarization.models import QuestionReference
from utils.logger import setup_logger
from utils.numerals import DIGIT_CLASS, canonical_number, numeral_sort_key

logger = setup_logger(__name__)

MAX_QUESTION_NUMBER = 200
MIN_QUESTION_TEXT = 3

# "<number>. text" or "<number>) text" at a line start or after a finished sentence
QUESTION_MARKER = re.compile(
    rf"(?:^|(?<=[.؟?!:؛]\s))[ \t]*([{DIGIT_CLASS}]{{1,3}})[ \t]*[.)](?![{DIGIT_CLASS}])[ \t]*(?=[^\s.)])",
    re.MULTILINE,
)

MULTIPLE_CHOICE_HEADER = re.compile(
    r"أسئلة الاختيار من متعدد|اختيار من متعدد|multiple choice", re.IGNORECASE
)
OPTION_MARKER = re.compile(r"(?:^|\s|\()([أبجد]|[a-dA-D])\s*\)")


def _has_options(text: str) -> bool:
    return len({m.group(1).lower() for m in OPTION_MARKER.finditer(text)}) >= 2


def parse_questions(text: str) -> List[QuestionReference]:
    """Extract numbered questions from cleaned text.

    Numbers are canonicalized across digit scripts, deduplicated (first
    occurrence wins) and returned in ascending order. Only numbers that
    actually occur in the text are returned; gaps stay gaps.

    Args:
        text: Cleaned page text

    Returns:
        Sorted list of QuestionReference
    """
    markers = list(QUESTION_MARKER.finditer(text))
    header = MULTIPLE_CHOICE_HEADER.search(text)
    header_pos = header.start() if header else None

    questions = {}
    for index, match in enumerate(markers):
        number = canonical_number(match.group(1))
        if number is None or int(number) >= MAX_QUESTION_NUMBER:
            continue

        end = markers[index + 1].start() if index + 1 < len(markers) else len(text)
        body = " ".join(text[match.end():end].split())
        if len(body) < MIN_QUESTION_TEXT:
            continue
        if number in questions:
            continue

        in_choice_section = header_pos is not None and match.start() > header_pos
        questions[number] = QuestionReference(
            number=number,
            text=body,
            is_multiple_choice=in_choice_section or _has_options(body),
        )

    parsed = sorted(questions.values(), key=lambda q: numeral_sort_key(q.number))
    logger.debug(f"Parsed {len(parsed)} questions: {', '.join(q.number for q in parsed)}")
    return parsed


def question_numbers(questions: List[QuestionReference]) -> List[str]:
    return [q.number for q in questions]
