"""Structured data extraction from cleaned page text.

Tables, graphs and figures are found by their numbering markers
("الجدول 2-1", "Table 3", "الشكل 4", "Figure 1-2"). Each block runs until
the next marker or a blank line. Formulas and key values with units are
picked up anywhere on the page.
"""
import re
from typing import List

from ingestion.models import DataPoint, StructuredContext, VisualElement
from utils.logger import setup_logger
from utils.numerals import normalize_numerals

logger = setup_logger(__name__)

TABLE_WORDS = r"(?:الجدول|جدول|Table)"
FIGURE_WORDS = r"(?:الشكل|شكل|Figure)"
ANY_MARKER = rf"(?:{TABLE_WORDS}|{FIGURE_WORDS})\s*\d+(?:-\d+)?"

TABLE_BLOCK = re.compile(
    rf"^[ \t]*{TABLE_WORDS}\s*(\d+(?:-\d+)?)[:\s]*(.*?)(?=\n[ \t]*\n|\n[ \t]*{ANY_MARKER}|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
FIGURE_BLOCK = re.compile(
    rf"^[ \t]*{FIGURE_WORDS}\s*(\d+(?:-\d+)?)[:\s]*(.*?)(?=\n[ \t]*\n|\n[ \t]*{ANY_MARKER}|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)

GRAPH_HINTS = re.compile(r"منحنى|رسم بياني|التمثيل البياني|graph|plot|curve|axis|المحور", re.IGNORECASE)
COLUMN_SPLIT = re.compile(r"\t| {2,}|\|")
NUMBER = re.compile(r"-?\d+(?:\.\d+)?")

DISPLAY_MATH = re.compile(r"\$\$(.+?)\$\$", re.DOTALL)
INLINE_MATH = re.compile(r"(?<!\$)\$([^$\n]+)\$(?!\$)")
EQUATION_PATTERNS = [
    re.compile(r"(P\s*V\s*=\s*n\s*R\s*T)", re.IGNORECASE),
    re.compile(r"(ΔH\s*=\s*(?:[^\n.،]|\.(?=\d))+)"),
    re.compile(r"(?<![A-Za-z])([A-Za-z][A-Za-z0-9_]{0,3}\s*=\s*(?:[^\n.،]|\.(?=\d))+)"),
]

UNITS = r"(?:atm|kPa|Pa|bar|mmHg|mol|mL|L|K|°C|°F|kg|g|cm|mm|m|min|s|h)"
KEY_VALUE_PATTERNS = [
    re.compile(rf"(-?\d+(?:\.\d+)?\s*{UNITS})(?![A-Za-z])"),
    re.compile(r"(\d+(?:\.\d+)?\s*[×xX]\s*10\^?\{?[-+]?\d+\}?)"),
    re.compile(r"(K[a-z]?\s*[=:]\s*\d+(?:\.\d+)?)"),
]


def _split_columns(line: str) -> List[str]:
    return [col.strip() for col in COLUMN_SPLIT.split(line) if col.strip()]


def extract_tables(text: str) -> List[VisualElement]:
    """Parse numbered tables into headers and rows."""
    tables = []
    for match in TABLE_BLOCK.finditer(text):
        number, body = match.group(1), match.group(2).strip()
        lines = [line for line in body.split("\n") if line.strip()]

        caption = ""
        if lines and len(_split_columns(lines[0])) == 1:
            caption = lines.pop(0).strip()

        if len(lines) < 2:
            continue

        headers = _split_columns(lines[0])
        rows = [_split_columns(line) for line in lines[1:]]
        rows = [row for row in rows if row]

        if not headers or not rows:
            continue

        title = f"الجدول {number}" + (f": {caption}" if caption else "")
        tables.append(VisualElement(
            type="table",
            number=number,
            title=title,
            description=f"Table {number} with {len(rows)} data rows",
            headers=headers,
            rows=rows,
        ))
    return tables


def _data_points(body: str) -> List[DataPoint]:
    numbers = [float(n) for n in NUMBER.findall(body)]
    if len(numbers) < 4:
        return []
    return [DataPoint(x=numbers[i], y=numbers[i + 1]) for i in range(0, len(numbers) - 1, 2)]


def extract_figures(text: str) -> List[VisualElement]:
    """Parse numbered figures; those carrying data or plot wording become graphs."""
    elements = []
    for match in FIGURE_BLOCK.finditer(text):
        number, body = match.group(1), " ".join(match.group(2).split())
        points = _data_points(body)
        kind = "graph" if points or GRAPH_HINTS.search(body) else "figure"
        elements.append(VisualElement(
            type=kind,
            number=number,
            title=f"الشكل {number}",
            description=body,
            points=points,
        ))
    return elements


def extract_formulas(text: str) -> List[str]:
    """Collect math expressions and equations, in order of appearance."""
    formulas = []

    def add(expression: str) -> None:
        expression = expression.strip()
        if len(expression) > 2 and expression not in formulas:
            formulas.append(expression)

    for match in DISPLAY_MATH.finditer(text):
        add(match.group(1))
    without_display = DISPLAY_MATH.sub(" ", text)
    for match in INLINE_MATH.finditer(without_display):
        add(match.group(1))

    plain = INLINE_MATH.sub(" ", without_display)
    for pattern in EQUATION_PATTERNS:
        for match in pattern.finditer(plain):
            expression = match.group(1).strip()
            if len(expression) > 3 and not any(expression in f for f in formulas):
                add(expression)

    return formulas


def extract_key_values(text: str) -> List[str]:
    """Collect numeric values carrying a unit or written in scientific notation."""
    values = []
    for pattern in KEY_VALUE_PATTERNS:
        for match in pattern.finditer(text):
            value = " ".join(match.group(1).split())
            if value not in values:
                values.append(value)
    return values


def extract_structured_data(text: str) -> StructuredContext:
    """Extract tables, graphs, figures, formulas and key values.

    Args:
        text: Cleaned page text

    Returns:
        StructuredContext, possibly empty
    """
    text = normalize_numerals(text)
    figures = extract_figures(text)

    context = StructuredContext(
        tables=extract_tables(text),
        graphs=[f for f in figures if f.type == "graph"],
        figures=[f for f in figures if f.type == "figure"],
        formulas=extract_formulas(text),
        key_values=extract_key_values(text),
    )

    logger.debug(
        f"Structured data: {len(context.tables)} tables, {len(context.graphs)} graphs, "
        f"{len(context.figures)} figures, {len(context.formulas)} formulas"
    )
    return context
