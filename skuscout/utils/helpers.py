"""
General utility functions for SKU Scout.

Contains helper functions used across different modules.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

# Load environment variables
load_dotenv()
PROJECT_ROOT = Path(os.getenv("PROJECT_ROOT", "."))


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (the timestamp format stored in job documents)."""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO-8601 timestamp, treating naive values as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def relative_to_project(path: Union[str, Path]) -> str:
    path = str(Path(path))
    proj_root_str = str(PROJECT_ROOT.resolve())

    if proj_root_str.endswith("/"):
        proj_root_str = proj_root_str[:-1]

    # Remove project root part of path to make it relative
    return path.replace(proj_root_str + "/", "")
