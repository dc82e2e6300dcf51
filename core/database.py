"""
Novel Shelf - Database Module
SQLite with WAL mode, schema management, and connection handling
"""

import sqlite3
from pathlib import Path
from typing import Optional, List, Tuple
from contextlib import contextmanager

from core.logger import log_success, log_error, log_config, log_section

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL schema definition
SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Imported novels, keyed by the source slug
CREATE TABLE IF NOT EXISTS novels (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    chapter_count INTEGER NOT NULL DEFAULT 0,
    cover_ref TEXT NOT NULL DEFAULT '',
    author_name TEXT NOT NULL DEFAULT '',
    source_book_number INTEGER,

    -- Reading state (survives re-import)
    last_read_at TIMESTAMP,
    completed_at TIMESTAMP,

    imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Chapters, keyed by (book, chapter slug)
-- sort_order is the position in the linearized reading order
CREATE TABLE IF NOT EXISTS chapters (
    book_id TEXT NOT NULL,
    chapter_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    body TEXT NOT NULL DEFAULT '',
    declared_next_id TEXT,
    declared_prev_id TEXT,
    sort_order INTEGER NOT NULL,

    -- Derived data (survives re-import)
    summary TEXT,

    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (book_id, chapter_id)
);

-- Current reading position, one row per book
CREATE TABLE IF NOT EXISTS current_positions (
    book_id TEXT PRIMARY KEY,
    chapter_id TEXT NOT NULL,
    chapter_title TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chapters_book_order ON chapters(book_id, sort_order);
"""


class Database:
    """SQLite database manager with WAL mode and per-call connections."""

    def __init__(
        self,
        db_path: Path,
        busy_timeout_ms: int = 10000,
    ):
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout_ms: Timeout for busy/locked database
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms

    def initialize(self) -> bool:
        """
        Initialize the database: create file, set WAL mode, apply schema.

        Returns:
            True if successful, False otherwise
        """
        try:
            # Ensure data directory exists
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            log_section("Initializing database", "📁")
            log_config("Path", str(self.db_path), indent=1)

            with self.get_connection() as conn:
                # Enable WAL mode for better concurrency
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")

                # Check current schema version
                cursor = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
                )
                if cursor.fetchone() is None:
                    # Fresh database, apply full schema
                    conn.executescript(SCHEMA_SQL)
                    conn.execute(
                        "INSERT INTO schema_version (version) VALUES (?)",
                        (SCHEMA_VERSION,)
                    )
                    log_config("Schema", f"Created (v{SCHEMA_VERSION})", indent=1)
                else:
                    cursor = conn.execute(
                        "SELECT MAX(version) FROM schema_version"
                    )
                    current_version = cursor.fetchone()[0] or 0
                    if current_version > SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Database schema v{current_version} is newer than "
                            f"this build supports (v{SCHEMA_VERSION})"
                        )
                    log_config("Schema", f"Version {current_version}", indent=1)

                # Verify WAL mode
                cursor = conn.execute("PRAGMA journal_mode")
                mode = cursor.fetchone()[0]
                log_config("Mode", f"{mode.upper()} (Write-Ahead Logging)", indent=1)

            log_success("Database ready")
            return True

        except Exception as e:
            log_error(f"Database initialization failed: {e}")
            return False

    @contextmanager
    def get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection with proper configuration.

        Commits on clean exit, rolls back if the block raises.

        Yields:
            Configured SQLite connection
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout_ms / 1000,
            check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms}")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> sqlite3.Connection:
        """
        Get a connection holding the write lock for the whole block.

        Every statement inside the block is committed together or not at
        all; use this for writes that touch more than one table.
        """
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn

    def execute(
        self,
        sql: str,
        params: Tuple = (),
        fetch: bool = False
    ) -> Optional[List[sqlite3.Row]]:
        """
        Execute a SQL statement.

        Args:
            sql: SQL statement
            params: Parameters for the statement
            fetch: Whether to fetch and return results

        Returns:
            List of rows if fetch=True, None otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            if fetch:
                return cursor.fetchall()
            return None

    def get_stats(self) -> dict:
        """Get database statistics."""
        stats = {}

        with self.get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) FROM novels")
            stats["total_novels"] = cursor.fetchone()[0]

            cursor = conn.execute(
                "SELECT COUNT(*) FROM novels WHERE completed_at IS NOT NULL"
            )
            stats["completed_novels"] = cursor.fetchone()[0]

            cursor = conn.execute("SELECT COUNT(*) FROM chapters")
            stats["total_chapters"] = cursor.fetchone()[0]

            cursor = conn.execute(
                "SELECT COUNT(*) FROM chapters WHERE summary IS NOT NULL AND summary != ''"
            )
            stats["summarized_chapters"] = cursor.fetchone()[0]

            cursor = conn.execute("SELECT COUNT(*) FROM current_positions")
            stats["novels_in_progress"] = cursor.fetchone()[0]

        return stats


# Global database instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get the global database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _db


def init_database(db_path: Path, busy_timeout_ms: int = 10000) -> Optional[Database]:
    """
    Initialize the global database instance.

    Returns:
        The database, or None if initialization failed
    """
    global _db
    db = Database(db_path, busy_timeout_ms)
    if not db.initialize():
        return None
    _db = db
    return _db
