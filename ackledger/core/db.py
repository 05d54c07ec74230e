"""SQLite storage handle, schema and connection management."""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import DB_PATH, ensure_db_directory
from ..util.logging import logger

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        external_id TEXT UNIQUE,
        role TEXT CHECK(role IN ('ADMIN','EDITOR','STAFF','CONTRIBUTOR')) NOT NULL DEFAULT 'STAFF',
        created_at TIMESTAMP NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        version TEXT NOT NULL,
        status TEXT CHECK(status IN ('DRAFT','IN_REVIEW','APPROVED','SUPERSEDED')) NOT NULL,
        requires_acknowledgement INTEGER NOT NULL DEFAULT 0,
        owner_user_id TEXT NOT NULL REFERENCES users(id),
        last_changed_date TIMESTAMP,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS acknowledgments (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
        document_version TEXT NOT NULL,
        acknowledged_at TIMESTAMP NOT NULL,
        UNIQUE (user_id, document_id, document_version)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS staff_roster (
        id TEXT PRIMARY KEY,
        external_id TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL,
        display_name TEXT NOT NULL,
        last_synced_at TIMESTAMP NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS roster_config (
        id TEXT PRIMARY KEY,
        group_id TEXT NOT NULL UNIQUE,
        group_name TEXT NOT NULL,
        last_synced_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_acknowledgments_user ON acknowledgments(user_id)',
    'CREATE INDEX IF NOT EXISTS idx_acknowledgments_document ON acknowledgments(document_id, document_version)',
    'CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status, requires_acknowledgement)',
    'CREATE INDEX IF NOT EXISTS idx_staff_roster_email ON staff_roster(email)',
]

REQUIRED_TABLES = {'users', 'documents', 'acknowledgments', 'staff_roster', 'roster_config'}


class Database:
    """Explicit storage handle passed to every component.

    The process entry point owns the lifecycle: ``connect()`` prepares the file
    and schema, ``close()`` stops handing out connections. Each operation gets its
    own short-lived SQLite connection, so the handle is safe to share across
    request threads.
    """

    def __init__(self, path: Optional[str] = None, timeout: float = 30.0):
        self.path = path or DB_PATH
        self.timeout = timeout
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> "Database":
        """Create the database file and schema if needed."""
        ensure_db_directory(self.path)

        conn = self._open()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        finally:
            conn.close()

        self._connected = True
        logger.info(f"Database initialized at {self.path}")
        return self

    def close(self) -> None:
        self._connected = False
        logger.info(f"Database closed at {self.path}")

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row  # Enable dict-like access to rows
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection that commits on success and rolls back on error."""
        if not self._connected:
            raise RuntimeError("Database is not connected; call connect() first")

        conn = self._open()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def health_check(self) -> bool:
        """Check if the database is reachable and has the expected tables."""
        try:
            with self.connection() as conn:
                cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
                tables = {row[0] for row in cursor.fetchall()}
                return REQUIRED_TABLES.issubset(tables)
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
