"""Numeral normalization shared by the parser and the validator.

Textbook pages mix Western digits with Arabic-Indic (٠-٩) and Eastern
Arabic-Indic (۰-۹) digits. Everything that parses or compares question
numbers goes through this module so both sides see canonical numerals.
"""
import re
from typing import Optional

ARABIC_INDIC_DIGITS = "٠١٢٣٤٥٦٧٨٩"
EASTERN_ARABIC_DIGITS = "۰۱۲۳۴۵۶۷۸۹"

DIGIT_MAP = {
    **{d: str(i) for i, d in enumerate(ARABIC_INDIC_DIGITS)},
    **{d: str(i) for i, d in enumerate(EASTERN_ARABIC_DIGITS)},
}

_TRANSLATION = str.maketrans(DIGIT_MAP)

# Character class matching a digit in any supported script
DIGIT_CLASS = "0-9" + ARABIC_INDIC_DIGITS + EASTERN_ARABIC_DIGITS

_NON_WESTERN = re.compile(f"[{ARABIC_INDIC_DIGITS}{EASTERN_ARABIC_DIGITS}]")


def normalize_numerals(text: str) -> str:
    """Replace every alternate-script digit with its Western equivalent."""
    return text.translate(_TRANSLATION)


def count_alternate_digits(text: str) -> int:
    """Count digits that normalization would rewrite."""
    return len(_NON_WESTERN.findall(text))


def canonical_number(value: str) -> Optional[str]:
    """Return the canonical string form of a numeral, or None if not numeric.

    "٠٥" -> "5", "12" -> "12", "abc" -> None.
    """
    normalized = normalize_numerals(value.strip())
    if not normalized.isdigit():
        return None
    return str(int(normalized))


def numeral_sort_key(value: str) -> int:
    """Sort key placing canonical numerals in numeric order."""
    canonical = canonical_number(value)
    return int(canonical) if canonical is not None else -1
