"""
SQLite store for brands, projects, work items, jobs, runs and run images.

Uses aiosqlite for async SQLite operations. One ``Store`` owns one connection
and one write lock; every mutation runs inside :meth:`Store.transaction`, so
writes issued by request handlers and by the worker are applied one at a time.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiosqlite

from imagegen.utils.logging import store_logger as logger

from .errors import PersistenceError

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS brands (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        default_brand_id INTEGER NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY(default_brand_id) REFERENCES brands(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS work_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        slug TEXT NOT NULL,
        type TEXT NOT NULL,
        prompt TEXT NOT NULL,
        brand_id INTEGER NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE(project_id, slug),
        FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE,
        FOREIGN KEY(brand_id) REFERENCES brands(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        work_item_id INTEGER NOT NULL,
        run_id INTEGER NULL,
        status TEXT NOT NULL CHECK (status IN ('queued', 'running', 'succeeded', 'failed')),
        payload_json TEXT NOT NULL,
        error_message TEXT NULL,
        created_at TEXT NOT NULL,
        started_at TEXT NULL,
        finished_at TEXT NULL,
        FOREIGN KEY(work_item_id) REFERENCES work_items(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL UNIQUE,
        work_item_id INTEGER NOT NULL,
        prompt_snapshot TEXT NOT NULL,
        settings_json TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('running', 'succeeded', 'failed')),
        error_message TEXT NULL,
        created_at TEXT NOT NULL,
        finished_at TEXT NULL,
        FOREIGN KEY(job_id) REFERENCES jobs(id) ON DELETE CASCADE,
        FOREIGN KEY(work_item_id) REFERENCES work_items(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS run_images (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        filename TEXT NOT NULL,
        rel_path TEXT NOT NULL,
        format TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY(run_id) REFERENCES runs(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_work_item_created ON jobs(work_item_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_runs_work_item_created ON runs(work_item_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_run_images_run_created ON run_images(run_id, created_at)",
)


def utc_now() -> str:
    """
    Current UTC time as an ISO-8601 string.

    Fixed microsecond precision keeps lexical order identical to
    chronological order, which the FIFO claim relies on.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class Store:
    """Handles the SQLite connection, schema and write serialization"""

    def __init__(
        self,
        root: str | Path,
        db_filename: str = "imagegen.db",
        busy_timeout: float = 10.0
    ):
        self.root = Path(root).expanduser().resolve()
        self.db_path = self.root / db_filename
        self.busy_timeout = busy_timeout
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def connect(self):
        """Connect to database and create tables if needed"""
        if self._conn is not None:
            return
        self.root.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._conn.execute("PRAGMA journal_mode = WAL")
            await self._create_tables()
        except aiosqlite.Error as e:
            raise PersistenceError(f"cannot open store at {self.db_path}: {e}") from e

        logger.info("Store opened", db_path=str(self.db_path))

    async def _create_tables(self):
        for statement in SCHEMA_STATEMENTS:
            await self._conn.execute(statement)
        await self._conn.commit()

    async def close(self):
        """Close database connection"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise PersistenceError("store is not connected")
        return self._conn

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        try:
            async with self.conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(str(e)) from e
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            async with self.conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(str(e)) from e
        return [dict(row) for row in rows]

    # =========================================================================
    # Writes
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialize one write transaction.

        Commits when the block exits normally and rolls back otherwise.
        Integrity violations propagate unchanged so services can turn them
        into ConflictError; every other driver error becomes PersistenceError.
        """
        conn = self.conn
        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.IntegrityError:
                await conn.rollback()
                raise
            except aiosqlite.Error as e:
                await self._safe_rollback(conn)
                raise PersistenceError(str(e)) from e
            except BaseException:
                await self._safe_rollback(conn)
                raise

    async def _safe_rollback(self, conn: aiosqlite.Connection):
        try:
            await conn.rollback()
        except aiosqlite.Error as e:
            logger.error("Rollback failed", error=str(e))

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Cursor:
        """Run a single write statement in its own transaction."""
        async with self.transaction() as conn:
            return await conn.execute(sql, params)

    # =========================================================================
    # Paths
    # =========================================================================

    def relative_path(self, path: str | Path) -> str:
        """Express ``path`` relative to the data root with forward slashes."""
        return Path(path).resolve().relative_to(self.root).as_posix()

    def absolute_path(self, rel_path: str) -> Path:
        return self.root / rel_path
