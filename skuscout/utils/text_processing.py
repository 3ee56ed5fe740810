"""
Text processing utilities for SKU Scout.

Normalisation helpers shared by validation, parsing and spreadsheet ingestion.
"""

from typing import Iterable, Optional

import re

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")


def normalize_brand_name(brand: str) -> str:
    """
    Lower-case a brand, strip everything but letters/digits/spaces and collapse whitespace.

    Example:
        >>> normalize_brand_name("  Acme   Tools, Inc. ")
        'acme tools inc'
    """
    lowered = str(brand).lower()
    return _WHITESPACE.sub(" ", _NON_ALNUM.sub("", lowered)).strip()


def digits_only(value) -> str:
    """Remove every non-digit character (``"0 12-345"`` -> ``"012345"``)."""
    return _NON_DIGIT.sub("", str(value))


def clean_cell_value(value) -> str:
    """
    Turn a spreadsheet cell into a trimmed string.

    Numeric cells read through pandas come back as floats, so ``12345.0``
    is rendered as ``"12345"``. Missing values (None/NaN) become "".
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    if re.fullmatch(r"\d+\.0", text):
        text = text[:-2]
    return text


def contains_any(text: Optional[str], markers: Iterable[str], case_sensitive: bool = False) -> Optional[str]:
    """
    Return the first marker found as a literal substring of ``text`` (or None).

    Args:
        text: Haystack, may be None
        markers: Literal substrings to look for
        case_sensitive: Compare without lower-casing when True
    """
    if not text:
        return None
    haystack = text if case_sensitive else text.lower()
    for marker in markers:
        needle = marker if case_sensitive else marker.lower()
        if needle and needle in haystack:
            return marker
    return None


def first_number(text: Optional[str], pattern: str) -> Optional[str]:
    """Return group 1 of ``pattern`` searched case-insensitively in ``text``."""
    if not text:
        return None
    match = re.search(pattern, text, re.IGNORECASE)
    return match.group(1) if match else None
