from typing import Optional

from skuscout.contexts.storage.config import StoreConfig
from skuscout.contexts.storage.filesystem import FileStateStore
from skuscout.contexts.storage.postgres import PostgresStateStore
from skuscout.contexts.storage.base import StateStore

# Supported storage backends
backend_class_map = {"file": FileStateStore, "postgres": PostgresStateStore}
ALLOWED_BACKENDS = list(backend_class_map.keys())


def get_state_store(config: Optional[StoreConfig] = None, ensure_exists: bool = True) -> StateStore:
    """
    Factory function to create the appropriate StateStore for the configured backend.

    Args:
        config: StoreConfig; defaults to StoreConfig.from_env() (STORE_BACKEND env var)
        ensure_exists: If True, create directories / database / table if missing

    Returns:
        StateStore implementation for the configured backend

    Raises:
        ValueError: If the backend is unsupported
    """
    config = config or StoreConfig.from_env()

    if config.backend in ALLOWED_BACKENDS:
        return backend_class_map[config.backend].from_config(config, ensure_exists=ensure_exists)
    else:
        raise ValueError(
            f"Unsupported storage backend: '{config.backend}'. "
            f"Supported backends: {', '.join(ALLOWED_BACKENDS)}"
        )
