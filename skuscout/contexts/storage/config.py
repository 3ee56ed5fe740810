"""
Storage configuration for SKU Scout.

Handles loading backend selection and credentials from environment and creating store configurations.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()
STORAGE_PATH = Path(os.getenv("STORAGE_PATH", "outs/storage"))
EXPORTS_PATH = Path(os.getenv("EXPORTS_PATH", "outs/exports"))
STORE_BACKEND = os.getenv("STORE_BACKEND", "file")


def _get_required_env(key: str) -> str:
    """Get required environment variable or raise clear error."""
    try:
        return os.environ[key]
    except KeyError:
        raise EnvironmentError(
            f"Required environment variable '{key}' not found. "
            f"Ensure .env file exists and contains {key}."
        )


def get_postgres_credentials() -> dict:
    """
    Get PostgreSQL credentials from environment.

    Only the postgres backend needs these, so they are read on demand rather than at import.

    Returns:
        Dictionary with host, port, user, password
    """
    return {
        "host": _get_required_env("POSTGRES_HOST"),
        "port": int(_get_required_env("POSTGRES_PORT")),
        "user": _get_required_env("POSTGRES_USER"),
        "password": _get_required_env("POSTGRES_PASSWORD"),
    }


@dataclass
class StoreConfig:
    """Where and how job state is persisted."""

    backend: str = "file"
    root: Path = field(default_factory=lambda: STORAGE_PATH)
    database: str = "skuscout"
    table: str = "job_documents"

    def __post_init__(self):
        self.backend = self.backend.lower()
        self.root = Path(self.root)
        if not self.database:
            raise ValueError("Database name is required")

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create StoreConfig from STORE_BACKEND / STORAGE_PATH / POSTGRES_DB."""
        return cls(
            backend=STORE_BACKEND,
            root=STORAGE_PATH,
            database=os.getenv("POSTGRES_DB", "skuscout"),
        )
