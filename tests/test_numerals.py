"""Test numeral normalization."""
import pytest
from utils.numerals import canonical_number, count_alternate_digits, normalize_numerals, numeral_sort_key


def test_normalize_arabic_indic_digits():
    """Test Arabic-Indic and Eastern digits map to Western digits."""
    assert normalize_numerals("السؤال ٤٥") == "السؤال 45"
    assert normalize_numerals("۱۲۳") == "123"
    assert normalize_numerals("no digits") == "no digits"


def test_count_alternate_digits():
    """Test counting only digits that normalization rewrites."""
    assert count_alternate_digits("١٢ and 34") == 2
    assert count_alternate_digits("1234") == 0


def test_canonical_number():
    """Test canonical form across scripts and leading zeros."""
    assert canonical_number("٠٥") == "5"
    assert canonical_number(" 12 ") == "12"
    assert canonical_number("۴۶") == "46"
    assert canonical_number("abc") is None
    assert canonical_number("") is None


def test_numeral_sort_key_is_numeric():
    """Test that sorting is numeric, not lexicographic."""
    values = ["102", "٤٥", "46", "9"]
    assert sorted(values, key=numeral_sort_key) == ["9", "٤٥", "46", "102"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
