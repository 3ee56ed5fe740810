"""
Best-effort matching of extracted product attributes against the expected inputs.

The catalog returns superset and variant strings ("Acme Tools Inc" for "acme",
zero-padded codes), so both checks are containment checks on normalised text.
"""

from typing import Optional

from skuscout.utils.text_processing import digits_only, normalize_brand_name


def validate_brand(extracted: Optional[str], expected: Optional[str]) -> bool:
    """
    True when the normalised expected brand is contained in the normalised extracted brand.

    Example:
        >>> validate_brand("Acme Tools Inc", "acme")
        True
        >>> validate_brand("Bolt Co", "acme")
        False
    """
    if not extracted or not expected:
        return False
    expected_norm = normalize_brand_name(expected)
    if not expected_norm:
        return False
    return expected_norm in normalize_brand_name(extracted)


def validate_code(extracted: Optional[str], expected: Optional[str]) -> bool:
    """
    True when the digits of the expected code appear in the digits of the extracted code.

    Example:
        >>> validate_code("00012345678905", "12345678905")
        True
    """
    if not extracted or not expected:
        return False
    expected_digits = digits_only(expected)
    if not expected_digits:
        return False
    return expected_digits in digits_only(extracted)
