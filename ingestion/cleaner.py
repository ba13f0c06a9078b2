"""OCR text cleaning utilities."""
import re
from typing import List, Optional

from ingestion.models import CleaningOptions, CleaningResult, ContentDetection
from utils.logger import setup_logger
from utils.numerals import DIGIT_CLASS, count_alternate_digits, normalize_numerals

logger = setup_logger(__name__)

ARABIC_LETTER = "ء-ي"
_ARABIC_RANGE = re.compile(r"[^؀-ۿ]")
_SENTENCE_END = re.compile(r"[.!؟?]")

# Lines dropped as headers/footers on content pages
HEADER_FOOTER_PATTERNS = [
    re.compile(rf"^[ \t]*(?:الفصل|Chapter)\s*[{DIGIT_CLASS}]+.*$", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"^[ \t]*(?:صفحة|Page)\s*[{DIGIT_CLASS}]+.*$", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"^[ \t]*[{DIGIT_CLASS}]+[ \t]*$", re.MULTILINE),
    re.compile(r"^.*(?:وزارة التعليم|Ministry of Education).*$", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"^.*(?:الطبعة|Edition).*[{DIGIT_CLASS}]+.*$", re.IGNORECASE | re.MULTILINE),
    # Imprint years only as short whole lines ("1445 هـ", "طبعة 2023 م")
    re.compile(rf"^[ \t]*(?:[^\n]{{0,30}}\s)?[{DIGIT_CLASS}]{{4}}\s*هـ[ \t]*$", re.MULTILINE),
    re.compile(rf"^[ \t]*(?:[^\n]{{0,30}}\s)?[{DIGIT_CLASS}]{{4}}\s*(?:م|AD)[ \t]*$", re.MULTILINE),
]

HYPHENATION_PATTERNS = [
    re.compile(rf"([{ARABIC_LETTER}])-[ \t]*\n[ \t]*([{ARABIC_LETTER}])"),
    re.compile(r"([a-zA-Z])-[ \t]*\n[ \t]*([a-zA-Z])"),
    re.compile(r"([0-9])-[ \t]*\n[ \t]*([0-9])"),
]

# Lines that must stay on their own line
_BLOCK_START = re.compile(
    rf"^\s*(?:[{DIGIT_CLASS}]+\s*[.\-)\]]|[أبجدa-dA-D]\s*\)|[#*\-•|]"
    r"|(?:الجدول|جدول|Table|الشكل|شكل|Figure)\s*\S)",
    re.IGNORECASE,
)
_COLUMNAR = re.compile(r"\t|\||\S {2,}\S")
_MERGE_TAIL = re.compile(rf"[{ARABIC_LETTER}a-zA-Z،,]\s*$")
_STANDALONE = re.compile(r"^\s*(?:#|(?:الجدول|جدول|Table|الشكل|شكل|Figure)\s*\S)", re.IGNORECASE)
_MERGE_HEAD = re.compile(rf"^\s*[{ARABIC_LETTER}a-zA-Z]")
_OPERATOR_TAIL = re.compile(r"[=+\-*/]\s*$")
_NUMERIC_HEAD = re.compile(rf"^\s*[{DIGIT_CLASS}]")

TOC_KEYWORDS = re.compile(r"فهرس|المحتويات|contents|table of contents", re.IGNORECASE)
TOC_ROWS = re.compile(
    rf"^\s*(?:الفصل|الوحدة|الدرس|Chapter|Unit|Lesson)\s*[{DIGIT_CLASS}]+.*?[{DIGIT_CLASS}]+\s*$",
    re.IGNORECASE | re.MULTILINE,
)
COVER_PATTERNS = [
    re.compile(r"وزارة التعليم|ministry of education", re.IGNORECASE),
    re.compile(r"المملكة العربية السعودية|kingdom of saudi arabia", re.IGNORECASE),
    re.compile(rf"الطبعة.*[{DIGIT_CLASS}]+|edition.*\d+", re.IGNORECASE),
    re.compile(rf"[{DIGIT_CLASS}]{{4}}\s*هـ|\d{{4}}\s*AD"),
]
INDEX_PATTERNS = [
    re.compile(r"فهرس الموضوعات|فهرس المصطلحات|\bindex\b|glossary", re.IGNORECASE),
    re.compile(rf"^\s*[أبج]\s*-\s*.*[{DIGIT_CLASS}]+", re.MULTILINE),
]
QUESTION_HINT = re.compile(rf"[{DIGIT_CLASS}]+[.\-)\]]\s*[{ARABIC_LETTER}]")
# Numbered questions and list items are never page furniture
_NUMBERED_ITEM = re.compile(rf"^[ \t]*[{DIGIT_CLASS}]{{1,3}}[ \t]*[.)][ \t]*\S")


def detect_content_type(text: str) -> ContentDetection:
    """Decide whether a page carries study content.

    Non-content pages (table of contents, cover, index, references, near
    empty) are recognized by indicator patterns, each with its own
    confidence.

    Args:
        text: Raw OCR text of a page

    Returns:
        ContentDetection for the page
    """
    lines = [line for line in text.split("\n") if line.strip()]

    if len(text.strip()) < 50:
        return ContentDetection(
            is_content=False, page_type="empty", confidence=0.9,
            reason="Text too short (< 50 characters)"
        )

    keyword_hits = len(TOC_KEYWORDS.findall(text))
    row_hits = len(TOC_ROWS.findall(text))
    toc_matches = keyword_hits + row_hits
    if row_hits > 2 or (keyword_hits > 0 and len(lines) < 15):
        return ContentDetection(
            is_content=False, page_type="toc",
            confidence=min(1.0, 0.8 + toc_matches * 0.05),
            reason=f"{toc_matches} table-of-contents pattern matches"
        )

    cover_matches = sum(1 for pattern in COVER_PATTERNS if pattern.search(text))
    if cover_matches >= 2 and len(lines) < 10:
        return ContentDetection(
            is_content=False, page_type="cover",
            confidence=min(1.0, 0.7 + cover_matches * 0.1),
            reason=f"{cover_matches} cover page indicators"
        )

    index_matches = sum(len(pattern.findall(text)) for pattern in INDEX_PATTERNS)
    if index_matches > 3:
        return ContentDetection(
            is_content=False, page_type="index", confidence=0.75,
            reason=f"{index_matches} index pattern matches"
        )

    lower = text.lower()
    if ("مراجع" in lower or "references" in lower) and len(re.findall(r"\d{4}", normalize_numerals(text))) > 3:
        return ContentDetection(
            is_content=False, page_type="references", confidence=0.7,
            reason="References section detected"
        )

    indicators = [
        bool(QUESTION_HINT.search(text)),
        bool(re.search(r"شرح|تفسير|explanation|definition", text, re.IGNORECASE)),
        bool(re.search(r"مثال|example", text, re.IGNORECASE)),
        len(_ARABIC_RANGE.sub("", text)) > 100,
        len(_SENTENCE_END.findall(text)) > 3,
    ]
    score = sum(indicators)
    if score >= 3:
        return ContentDetection(
            is_content=True, page_type="content", confidence=min(1.0, 0.6 + score * 0.1),
            reason=f"{score} content indicators"
        )

    return ContentDetection(
        is_content=True, page_type="unknown", confidence=0.5,
        reason="No strong indicators either way, treating as content"
    )


def strip_headers_footers(text: str, running_titles: Optional[List[str]] = None) -> str:
    """Remove page furniture lines (chapter/page headers, page numbers, imprint)."""
    lines = text.split("\n")
    for index, line in enumerate(lines):
        if _NUMBERED_ITEM.match(line):
            continue
        if any(pattern.match(line) for pattern in HEADER_FOOTER_PATTERNS):
            lines[index] = ""
    text = "\n".join(lines)

    titles = {title.strip() for title in (running_titles or []) if title.strip()}
    if titles:
        text = "\n".join(line for line in text.split("\n") if line.strip() not in titles)

    return text


def fix_hyphenation(text: str) -> str:
    """Join words split across lines with a trailing hyphen."""
    for pattern in HYPHENATION_PATTERNS:
        text = pattern.sub(r"\1\2", text)
    return text


def _can_merge(current: str, following: str) -> bool:
    if not current.strip() or not following.strip():
        return False
    if _COLUMNAR.search(current) or _COLUMNAR.search(following):
        return False
    if _BLOCK_START.match(following) or _STANDALONE.match(current):
        return False
    if _OPERATOR_TAIL.search(current):
        return bool(_MERGE_HEAD.match(following) or _NUMERIC_HEAD.match(following))
    return bool(_MERGE_TAIL.search(current) and _MERGE_HEAD.match(following))


def merge_fragmented_lines(text: str) -> str:
    """Join lines that were wrapped mid-sentence by the scanner.

    Only single line breaks are joined. Blank lines, numbered items,
    option markers, table rows and table/figure captions keep their own
    line.
    """
    lines = text.split("\n")
    if not lines:
        return text

    merged = [lines[0]]
    for line in lines[1:]:
        if _can_merge(merged[-1], line):
            merged[-1] = f"{merged[-1].rstrip()} {line.strip()}"
        else:
            merged.append(line)
    return "\n".join(merged)


def compact_whitespace(text: str) -> str:
    """Trim lines and collapse blank runs; wide gaps become tabs to keep columns."""
    text = re.sub(r"\t+| {2,}", "\t", text)
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def clean_ocr_text(text: str, options: Optional[CleaningOptions] = None) -> CleaningResult:
    """Clean raw OCR text of a single page.

    Non-content pages are returned with minimal cleaning so their sparse
    layout survives.

    Args:
        text: Raw OCR text
        options: Which cleaning steps to apply (all by default)

    Returns:
        CleaningResult with text, improvement notes and confidence
    """
    options = options or CleaningOptions()
    original_length = len(text)
    detection = detect_content_type(text)

    if not detection.is_content:
        logger.debug(f"Detected {detection.page_type} page: {detection.reason}")
        return CleaningResult(
            cleaned_text=text.strip(),
            original_length=original_length,
            cleaned_length=len(text.strip()),
            improvements=[f"Detected {detection.page_type} page, minimal cleaning applied"],
            confidence=detection.confidence,
            content_type=detection.page_type,
            is_content=False,
        )

    cleaned = text
    improvements = []

    if options.strip_headers_footers:
        before = len(cleaned)
        cleaned = strip_headers_footers(cleaned, options.running_titles)
        if len(cleaned) < before:
            improvements.append(f"Removed {before - len(cleaned)} chars of headers/footers")

    if options.fix_hyphenation:
        breaks = len(re.findall(r"\w-[ \t]*\n", cleaned))
        cleaned = fix_hyphenation(cleaned)
        if breaks:
            improvements.append(f"Fixed {breaks} hyphenation breaks")

    if options.merge_fragmented_lines:
        before_lines = cleaned.count("\n")
        cleaned = merge_fragmented_lines(cleaned)
        merged = before_lines - cleaned.count("\n")
        if merged > 0:
            improvements.append(f"Merged {merged} fragmented lines")

    if options.normalize_numerals:
        converted = count_alternate_digits(cleaned)
        cleaned = normalize_numerals(cleaned)
        if converted:
            improvements.append(f"Normalized {converted} Arabic numerals")

    if options.compact_whitespace:
        before = sum(len(ws) for ws in re.findall(r"\s+", cleaned))
        cleaned = compact_whitespace(cleaned)
        after = sum(len(ws) for ws in re.findall(r"\s+", cleaned))
        if after < before:
            improvements.append(f"Cleaned {before - after} excess whitespace chars")

    improvement_score = min(1.0, len(improvements) / 3)
    length_score = min(1.0, len(cleaned) / 200)
    structure_score = min(1.0, len(_SENTENCE_END.findall(cleaned)) / 5)
    confidence = (detection.confidence + improvement_score + length_score + structure_score) / 4

    return CleaningResult(
        cleaned_text=cleaned,
        original_length=original_length,
        cleaned_length=len(cleaned),
        improvements=improvements,
        confidence=min(1.0, max(0.0, confidence)),
        content_type=detection.page_type,
        is_content=True,
    )
