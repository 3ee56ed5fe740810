"""
PostgreSQL-specific storage operations for SKU Scout.

Provides PostgreSQL-specific utilities:
- Database creation and existence checking
- PostgreSQL implementation of StateStore (one JSONB row per job document)
- Cross-process job locks via advisory locks
"""

import threading
from contextlib import contextmanager
from typing import Any, List, Optional

import psycopg2
from loguru import logger
from psycopg2 import sql
from psycopg2.extras import Json

from skuscout.contexts.storage.config import StoreConfig, get_postgres_credentials
from skuscout.contexts.storage.base import JOB_DOC, StateStore


class PostgresStateStore(StateStore):
    """
    PostgreSQL implementation of StateStore.

    Documents live in a single table keyed on ``(job_id, kind)``. Locks use
    ``pg_advisory_lock`` on a dedicated connection held for the duration of the
    ``locked`` block, so several worker processes can share one database.
    """

    def __init__(
        self,
        config: StoreConfig,
        host: str = None,
        user: str = None,
        port: int = None,
        password: str = None,
    ):
        super().__init__(config)

        # Get credentials from environment if not provided
        creds = get_postgres_credentials()
        self.host = host or creds["host"]
        self.user = user or creds["user"]
        self.port = port or creds["port"]
        self.password = password or creds["password"]
        self.name = config.database
        self.table = config.table

        # job_id -> nesting depth, per thread
        self._held = threading.local()

    def connect(self):
        """Create a new PostgreSQL database connection."""
        return psycopg2.connect(
            dbname=self.name,
            host=self.host,
            user=self.user,
            port=self.port,
            password=self.password,
        )

    def _ensure_ready(self) -> None:
        if not db_exists(self.name):
            create_db(self.name)

        create_table = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {} (
                job_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                body JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                PRIMARY KEY (job_id, kind)
            )
            """
        ).format(sql.Identifier(self.table))
        self._execute(create_table)

    def _execute(self, query, params=None, fetch: bool = False):
        conn = self.connect()
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    if fetch:
                        return cur.fetchall()
        finally:
            conn.close()
        return None

    def read(self, job_id: str, kind: str) -> Optional[Any]:
        self._check_kind(kind)
        query = sql.SQL("SELECT body FROM {} WHERE job_id = %s AND kind = %s").format(
            sql.Identifier(self.table)
        )
        rows = self._execute(query, (job_id, kind), fetch=True)
        # psycopg2 decodes JSONB columns into Python objects
        return rows[0][0] if rows else None

    def write(self, job_id: str, kind: str, value: Any) -> None:
        self._check_kind(kind)
        query = sql.SQL(
            """
            INSERT INTO {} (job_id, kind, body, updated_at)
            VALUES (%s, %s, %s, now())
            ON CONFLICT (job_id, kind)
            DO UPDATE SET body = EXCLUDED.body, updated_at = EXCLUDED.updated_at
            """
        ).format(sql.Identifier(self.table))
        self._execute(query, (job_id, kind, Json(value)))

    def delete(self, job_id: str) -> None:
        query = sql.SQL("DELETE FROM {} WHERE job_id = %s").format(sql.Identifier(self.table))
        self._execute(query, (job_id,))
        logger.debug(f"[{job_id}] Removed documents from {self.name}.{self.table}")

    def list_jobs(self) -> List[str]:
        query = sql.SQL("SELECT job_id FROM {} WHERE kind = %s ORDER BY job_id").format(
            sql.Identifier(self.table)
        )
        rows = self._execute(query, (JOB_DOC,), fetch=True)
        return [row[0] for row in rows]

    @contextmanager
    def locked(self, job_id: str):
        depths = getattr(self._held, "depths", None)
        if depths is None:
            depths = self._held.depths = {}

        if depths.get(job_id):
            depths[job_id] += 1
            try:
                yield
            finally:
                depths[job_id] -= 1
            return

        conn = self.connect()
        conn.autocommit = True
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_advisory_lock(hashtext(%s))", (job_id,))
            depths[job_id] = 1
            try:
                yield
            finally:
                depths[job_id] = 0
                with conn.cursor() as cur:
                    cur.execute("SELECT pg_advisory_unlock(hashtext(%s))", (job_id,))
        finally:
            conn.close()


def db_exists(name: str) -> bool:
    """
    Check if a PostgreSQL database exists.

    Args:
        name: Database name to check

    Returns:
        True if database exists, False otherwise
    """
    creds = get_postgres_credentials()
    conn = psycopg2.connect(
        database="postgres",
        user=creds["user"],
        password=creds["password"],
        host=creds["host"],
        port=creds["port"],
    )
    cursor = conn.cursor()
    cursor.execute("SELECT 1 FROM pg_database WHERE datname = %s;", (name,))
    fetched = cursor.fetchone()
    conn.close()
    return fetched is not None


def create_db(name: str) -> None:
    """
    Create a new PostgreSQL database.

    Args:
        name: Name of the database to create
    """
    creds = get_postgres_credentials()
    conn = psycopg2.connect(
        database="postgres",
        user=creds["user"],
        password=creds["password"],
        host=creds["host"],
        port=creds["port"],
    )

    conn.autocommit = True
    cursor = conn.cursor()
    cursor.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))
    logger.info(f"Database named '{name}' created successfully")
    conn.close()
