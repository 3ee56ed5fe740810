"""
Shared utility functions.
"""

from skuscout.utils.config_helpers import load_config, merge_configs
from skuscout.utils.helpers import parse_iso, relative_to_project, utc_now_iso
from skuscout.utils.text_processing import (
    clean_cell_value,
    contains_any,
    digits_only,
    first_number,
    normalize_brand_name,
)

__all__ = [
    # Misc utilities
    "relative_to_project",
    "utc_now_iso",
    "parse_iso",
    # Text processing
    "normalize_brand_name",
    "digits_only",
    "clean_cell_value",
    "contains_any",
    "first_number",
    # Configuration utilities
    "merge_configs",
    "load_config",
]
