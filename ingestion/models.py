"""Pydantic models for ingestion module."""
import re
from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Literal

_NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")


class CleaningOptions(BaseModel):
    """Toggles for the individual OCR cleaning steps."""
    fix_hyphenation: bool = True
    merge_fragmented_lines: bool = True
    normalize_numerals: bool = True
    strip_headers_footers: bool = True
    compact_whitespace: bool = True
    running_titles: List[str] = Field(default_factory=list)


class ContentDetection(BaseModel):
    """Outcome of the content vs. non-content check."""
    is_content: bool
    page_type: str  # content, toc, cover, index, references, empty, unknown
    confidence: float
    reason: str = ""


class CleaningResult(BaseModel):
    """Cleaned OCR text with notes on what was changed."""
    cleaned_text: str
    original_length: int
    cleaned_length: int
    improvements: List[str] = Field(default_factory=list)
    confidence: float
    content_type: str = "content"
    is_content: bool = True


class DataPoint(BaseModel):
    """One (x, y) point read from a graph caption."""
    x: float
    y: float
    unit: Optional[str] = None


class VisualElement(BaseModel):
    """A table, graph or figure found on a page."""
    type: Literal["table", "graph", "figure"]
    number: Optional[str] = None
    title: str
    description: str = ""
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    points: List[DataPoint] = Field(default_factory=list)

    @property
    def citation_key(self) -> str:
        """Stable key used to match citations, e.g. ``table:2-1``."""
        return f"{self.type}:{self.number or self.title}"

    def numeric_values(self) -> List[str]:
        """Numeric tokens carried by the element's rows and points."""
        values = []
        for row in self.rows:
            for cell in row:
                values.extend(_number_tokens(cell))
        for point in self.points:
            values.append(_format_number(point.x))
            values.append(_format_number(point.y))
        values.extend(_number_tokens(self.description))
        # Keep order, drop duplicates
        seen = set()
        unique = []
        for value in values:
            if value not in seen:
                seen.add(value)
                unique.append(value)
        return unique


class StructuredContext(BaseModel):
    """Machine-usable data parsed out of cleaned page text."""
    tables: List[VisualElement] = Field(default_factory=list)
    graphs: List[VisualElement] = Field(default_factory=list)
    figures: List[VisualElement] = Field(default_factory=list)
    formulas: List[str] = Field(default_factory=list)
    key_values: List[str] = Field(default_factory=list)

    @property
    def visual_elements(self) -> List[VisualElement]:
        return self.tables + self.graphs + self.figures

    def is_empty(self) -> bool:
        return not (self.visual_elements or self.formulas or self.key_values)

    def merge_visual_elements(self, elements: List[VisualElement]) -> None:
        """Add provider-reported elements not already present."""
        known = {element.citation_key for element in self.visual_elements}
        for element in elements:
            if element.citation_key in known:
                continue
            known.add(element.citation_key)
            if element.type == "table":
                self.tables.append(element)
            elif element.type == "graph":
                self.graphs.append(element)
            else:
                self.figures.append(element)

    def to_prompt_block(self) -> str:
        """Render the context as a block for the drafting prompt."""
        parts = []

        if self.tables:
            parts.append("**TABLES AVAILABLE FOR CALCULATIONS:**")
            for table in self.tables:
                parts.append(f"{table.title}:")
                if table.headers:
                    parts.append(f"Headers: {' | '.join(table.headers)}")
                for index, row in enumerate(table.rows, start=1):
                    parts.append(f"Row {index}: {' | '.join(row)}")
                if table.description:
                    parts.append(f"Context: {table.description}")

        if self.graphs or self.figures:
            parts.append("**GRAPHS/FIGURES WITH DATA:**")
            for element in self.graphs + self.figures:
                parts.append(f"{element.title}:")
                if element.description:
                    parts.append(f"Description: {element.description}")
                if element.points:
                    points = ", ".join(
                        f"({_format_number(p.x)}, {_format_number(p.y)})"
                        for p in element.points
                    )
                    parts.append(f"Data Points: {points}")

        if self.formulas:
            parts.append("**FORMULAS IDENTIFIED:**")
            parts.extend(f"- {formula}" for formula in self.formulas)

        if self.key_values:
            parts.append("**KEY VALUES:**")
            parts.extend(f"- {value}" for value in self.key_values)

        return "\n".join(parts)


class ExtractionResult(BaseModel):
    """Response of an extraction provider for one page image."""
    text: str
    confidence: float
    provider: str
    structured_sections: Dict[str, str] = Field(default_factory=dict)
    visual_elements: List[VisualElement] = Field(default_factory=list)


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _number_tokens(text: str) -> List[str]:
    return _NUMBER_PATTERN.findall(text)
