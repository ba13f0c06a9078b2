"""
Compliance validation for page summary drafts.

Five deterministic checks: question coverage, visual citation, unstated
assumptions, math well-formedness and structural completeness. A check
with errors fails, a check with only warnings counts half.
"""

import re
from typing import Dict, List, Optional, Tuple

from ingestion.models import StructuredContext, VisualElement
from prompts.templates import mandatory_sections
from summarization.models import (
    NON_CONTENT,
    ComplianceReport,
    QuestionReference,
    ValidationResult,
)
from utils.numerals import DIGIT_CLASS, canonical_number, normalize_numerals

ANSWER_MARKER = re.compile(rf"\*\*\s*(?:س|Q)\s*[:：]\s*([{DIGIT_CLASS}]+)\s*[-–.)]")
FINAL_CHOICE = re.compile(r"(?:الإجابة الصحيحة|الإجابة)\s*:\s*\**\s*[أابجدa-dA-D]\s*\)")
HEADER_LINE = re.compile(r"^(#{1,2})[ \t]+(.+?)[ \t]*$", re.MULTILINE)

FORBIDDEN_ASSUMPTIONS = [
    r"نفترض",
    r"لنفرض",
    r"يمكننا افتراض",
    r"\blet(?: us|'s) (?:assume|suppose)\b",
    r"\bassum(?:e|ing)\b",
]

# Markers a question or the page uses to point at a visual element
ELEMENT_REFERENCE = re.compile(
    r"(?<!\w)(الجدول|جدول|table|الشكل|شكل|figure|الرسم البياني|graph)\s*(\d+(?:-\d+)?)?",
    re.IGNORECASE,
)
TABLE_WORDS = ("الجدول", "جدول", "table")
FIGURE_WORDS = ("الشكل", "شكل", "figure", "الرسم البياني", "graph")

DISPLAY_MATH = re.compile(r"\$\$(.*?)\$\$", re.DOTALL)
INLINE_MATH = re.compile(r"(?<!\$)\$([^$\n]+?)\$(?!\$)")
NESTED_TEXT = re.compile(r"\\text\s*\{[^{}]*\\text\s*\{")
GLUED_OPERATOR = re.compile(r"\\(?:cdot|cdotp|times)(?=[A-Za-z])")
CDOT = re.compile(r"\\cdotp?(?![A-Za-z])")

CHECK_NAMES = ["question_coverage", "visual_citation", "assumptions", "math", "structure"]


def answered_numbers(draft: str) -> List[str]:
    """Canonical question numbers answered in a draft, in order of appearance."""
    numbers = []
    for match in ANSWER_MARKER.finditer(draft):
        number = canonical_number(match.group(1))
        if number is not None:
            numbers.append(number)
    return numbers


def _normalize_header(text: str) -> str:
    return " ".join(text.replace("*", "").split())


def _element_kind(word: str) -> str:
    return "table" if word.lower() in TABLE_WORDS else "figure"


def _kind_of(element: VisualElement) -> str:
    return "table" if element.type == "table" else "figure"


def _element_names(element: VisualElement) -> List[str]:
    words = TABLE_WORDS if element.type == "table" else FIGURE_WORDS
    if not element.number:
        return [element.title]
    return [f"{word} {element.number}" for word in words] + [f"{word}{element.number}" for word in words]


def _mentions(draft_lower: str, names: List[str]) -> bool:
    for name in names:
        pattern = re.escape(name.lower()) + r"(?![\d-])"
        if re.search(pattern, draft_lower):
            return True
    return False


def _reuses_value(draft: str, element: VisualElement) -> bool:
    for value in element.numeric_values():
        if len(value) < 2 and "." not in value:
            continue
        if re.search(rf"(?<![\d.]){re.escape(value)}(?![\d])", draft):
            return True
    return False


def _balanced(expression: str) -> bool:
    expression = expression.replace("\\{", "").replace("\\}", "")
    pairs = {")": "(", "]": "[", "}": "{"}
    stack = []
    for char in expression:
        if char in "([{":
            stack.append(char)
        elif char in pairs:
            if not stack or stack[-1] != pairs[char]:
                return False
            stack.pop()
    return not stack


class ComplianceValidator:
    """Deterministic rubric over a draft and its source page."""

    @staticmethod
    def check_question_coverage(
        draft: str,
        questions: List[QuestionReference],
    ) -> Tuple[ValidationResult, List[str]]:
        """Every question answered, in ascending order, once.

        Returns:
            The check result and the missing question numbers
        """
        errors, warnings = [], []
        required = [q.number for q in questions]
        answered = answered_numbers(normalize_numerals(draft))

        missing = [n for n in required if n not in answered]
        if missing:
            errors.append(f"Missing questions: {', '.join(missing)} ({len(missing)}/{len(required)})")

        relevant = [n for n in answered if n in required]
        first_seen = list(dict.fromkeys(relevant))
        if any(int(a) > int(b) for a, b in zip(first_seen, first_seen[1:])):
            warnings.append(f"Questions answered out of order: {', '.join(first_seen)}")

        duplicates = sorted({n for n in relevant if relevant.count(n) > 1}, key=int)
        if duplicates:
            warnings.append(f"Questions answered more than once: {', '.join(duplicates)}")

        choice_count = sum(1 for q in questions if q.is_multiple_choice)
        if choice_count:
            found = len(FINAL_CHOICE.findall(draft))
            if found < choice_count:
                warnings.append(
                    f"Missing multiple choice final answers: found {found}, expected {choice_count}"
                )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings), missing

    @staticmethod
    def check_visual_citation(
        draft: str,
        questions: List[QuestionReference],
        structured: Optional[StructuredContext],
        page_type: str,
    ) -> ValidationResult:
        """Visual elements the page or its questions rely on must be used.

        An element counts as used when the draft names it (kind and
        number, either language) or reuses one of its numeric values.
        """
        errors, warnings = [], []
        if page_type == NON_CONTENT:
            return ValidationResult(is_valid=True)

        draft_normalized = normalize_numerals(draft)
        draft_lower = draft_normalized.lower()
        elements = structured.visual_elements if structured else []
        known = {(_kind_of(e), e.number) for e in elements}

        for element in elements:
            if _mentions(draft_lower, _element_names(element)) or _reuses_value(draft_normalized, element):
                continue
            errors.append(f"Visual element not used: {element.title}")

        # Elements a question points at that extraction did not capture
        for question in questions:
            for match in ELEMENT_REFERENCE.finditer(normalize_numerals(question.text)):
                word, number = match.group(1), match.group(2)
                kind = _element_kind(word)
                if number is None:
                    if not any(kind == _kind_of(e) for e in elements):
                        warnings.append(
                            f"Question {question.number} refers to a {kind} that was not extracted"
                        )
                    continue
                if (kind, number) in known:
                    continue
                words = TABLE_WORDS if kind == "table" else FIGURE_WORDS
                if not _mentions(draft_lower, [f"{w} {number}" for w in words] + [f"{w}{number}" for w in words]):
                    errors.append(f"Question {question.number} cites {word} {number} but the draft does not")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=list(dict.fromkeys(warnings)))

    @staticmethod
    def check_assumptions(draft: str, source_text: str) -> ValidationResult:
        """Assumption phrasing is only allowed when the source uses it too."""
        errors = []
        source_lower = source_text.lower()
        for pattern in FORBIDDEN_ASSUMPTIONS:
            for match in re.finditer(pattern, draft, re.IGNORECASE):
                phrase = match.group(0)
                if phrase.lower() in source_lower:
                    continue
                errors.append(f"Unstated assumption: '{phrase}'")
        return ValidationResult(is_valid=not errors, errors=list(dict.fromkeys(errors)))

    @staticmethod
    def check_math(draft: str) -> ValidationResult:
        """Balanced grouping, no nested \\text, no glued operators, no nested delimiters."""
        errors, warnings = [], []

        if draft.count("$$") % 2:
            errors.append("Unbalanced $$ delimiters")

        expressions = []
        for match in DISPLAY_MATH.finditer(draft):
            body = match.group(1)
            if "$" in body:
                errors.append(f"Nested math delimiters in: {body.strip()[:60]}")
                continue
            expressions.append(body)
        expressions.extend(INLINE_MATH.findall(DISPLAY_MATH.sub(" ", draft)))

        for expression in expressions:
            short = expression.strip()[:60]
            if not _balanced(expression):
                errors.append(f"Unbalanced brackets in: {short}")
            if NESTED_TEXT.search(expression):
                errors.append(f"Nested \\text in: {short}")
            if GLUED_OPERATOR.search(expression):
                errors.append(f"Operator glued to a letter in: {short}")
            elif CDOT.search(expression):
                warnings.append(f"Use \\times instead of \\cdot in: {short}")

        return ValidationResult(
            is_valid=not errors,
            errors=list(dict.fromkeys(errors)),
            warnings=list(dict.fromkeys(warnings)),
        )

    @staticmethod
    def check_structure(draft: str, sections: List[str]) -> Tuple[ValidationResult, List[str]]:
        """Mandated headers present, in order, with nothing else at top level.

        Returns:
            The check result and the names of missing sections
        """
        errors = []
        wanted = [_normalize_header(s) for s in sections]
        headers = [
            (match.start(), _normalize_header(match.group(0)))
            for match in HEADER_LINE.finditer(draft)
        ]
        header_texts = [h for _, h in headers]

        missing = [s for s, w in zip(sections, wanted) if w not in header_texts]
        if missing:
            errors.append(f"Missing sections: {', '.join(s.lstrip('# ') for s in missing)}")

        positions = [header_texts.index(w) for w in wanted if w in header_texts]
        if positions != sorted(positions):
            errors.append("Sections are out of order")

        extra = [h for h in header_texts if h not in wanted]
        if extra:
            errors.append(f"Unexpected sections: {', '.join(extra)}")

        duplicated = [w for w in wanted if header_texts.count(w) > 1]
        if duplicated:
            errors.append(f"Repeated sections: {', '.join(duplicated)}")

        first_header = headers[0][0] if headers else len(draft)
        if draft[:first_header].strip():
            errors.append("Text before the first section")

        missing_names = [s.lstrip("# ") for s in missing]
        return ValidationResult(is_valid=not errors, errors=errors), missing_names

    @staticmethod
    def validate(
        draft: str,
        questions: List[QuestionReference],
        source_text: str,
        structured: Optional[StructuredContext],
        page_type: str,
    ) -> ComplianceReport:
        """Run all five checks and score the draft.

        Args:
            draft: Draft markdown
            questions: Questions parsed from the source page
            source_text: Cleaned page text
            structured: Structured context of the page
            page_type: Page type the draft was written for

        Returns:
            ComplianceReport with score, missing questions and sections
        """
        sections = mandatory_sections(page_type, bool(questions))

        coverage, missing_questions = ComplianceValidator.check_question_coverage(draft, questions)
        structure, missing_sections = ComplianceValidator.check_structure(draft, sections)
        results: Dict[str, ValidationResult] = {
            "question_coverage": coverage,
            "visual_citation": ComplianceValidator.check_visual_citation(
                draft, questions, structured, page_type
            ),
            "assumptions": ComplianceValidator.check_assumptions(draft, source_text),
            "math": ComplianceValidator.check_math(draft),
            "structure": structure,
        }

        points = {"passed": 1.0, "warning": 0.5, "failed": 0.0}
        earned = sum(points[results[name].status] for name in CHECK_NAMES)
        errors = [e for name in CHECK_NAMES for e in results[name].errors]
        warnings = [w for name in CHECK_NAMES for w in results[name].warnings]

        return ComplianceReport(
            is_valid=not errors,
            score=round(100 * earned / len(CHECK_NAMES), 2),
            missing_questions=missing_questions,
            missing_sections=missing_sections,
            errors=errors,
            warnings=warnings,
            checks={name: results[name].status for name in CHECK_NAMES},
        )
