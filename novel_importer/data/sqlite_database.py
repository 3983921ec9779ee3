"""
SQLite database connection and management utilities.
"""

import sqlite3
from typing import Optional, Any, Dict, List
from contextlib import contextmanager
from pathlib import Path

from novel_importer.utils.errors import DatabaseError
from novel_importer.utils.logging import get_business_logger


logger = get_business_logger('database')


CREATE_NOVELS_TABLE = """
CREATE TABLE IF NOT EXISTS novels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author TEXT NOT NULL,
    description TEXT,
    source_url TEXT NOT NULL,
    total_chapters INTEGER NOT NULL DEFAULT 0,
    discovered_chapters INTEGER NOT NULL DEFAULT 0,
    latest_chapter_title TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
"""

CREATE_CHAPTERS_TABLE = """
CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    novel_id INTEGER NOT NULL,
    chapter_index INTEGER NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    source_url TEXT,
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (novel_id) REFERENCES novels(id) ON DELETE CASCADE,
    UNIQUE(novel_id, chapter_index)
);
"""

CREATE_PARSER_RULES_TABLE = """
CREATE TABLE IF NOT EXISTS parser_rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    domain TEXT NOT NULL,
    chapter_list_selector TEXT NOT NULL,
    chapter_title_selector TEXT,
    chapter_link_selector TEXT,
    content_selector TEXT NOT NULL,
    remove_selectors TEXT,
    create_time INTEGER NOT NULL
);
"""

# Columns added after the first release, applied to databases created before them
ADDED_COLUMNS = [
    ("novels", "discovered_chapters", "INTEGER NOT NULL DEFAULT 0"),
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_novels_source_url ON novels(source_url);",
    "CREATE INDEX IF NOT EXISTS idx_chapters_novel ON chapters(novel_id, chapter_index);",
    "CREATE INDEX IF NOT EXISTS idx_parser_rules_domain ON parser_rules(domain);",
    "CREATE INDEX IF NOT EXISTS idx_parser_rules_create_time ON parser_rules(create_time);",
]


class SQLiteDatabaseManager:
    """Manages SQLite database connections and operations."""

    def __init__(self, database_path: str = "data/novel_importer.db"):
        """
        Initialize SQLite database manager.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        """Initialize the database and create tables."""
        self.create_tables()
        logger.info("SQLite database initialized", path=str(self.database_path))

    @contextmanager
    def get_connection(self):
        """
        Get a database connection.

        Yields:
            SQLite database connection

        Raises:
            DatabaseError: If SQLite reports an error
        """
        conn = None
        try:
            conn = sqlite3.connect(
                str(self.database_path),
                timeout=30.0,
                check_same_thread=False
            )
            conn.execute("PRAGMA foreign_keys = ON")
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise DatabaseError(
                "SQLite database operation failed",
                {"error": str(e), "database_path": str(self.database_path)}
            ) from e
        finally:
            if conn:
                conn.close()

    @contextmanager
    def get_cursor(self):
        """
        Get a database cursor with automatic commit or rollback.

        Yields:
            SQLite database cursor
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def execute_query(
        self,
        query: str,
        params: Optional[tuple] = None,
        fetch: bool = True
    ) -> Optional[List[sqlite3.Row]]:
        """
        Execute a SQL query.

        Args:
            query: SQL query string
            params: Query parameters
            fetch: Whether to fetch results

        Returns:
            Query results if fetch=True, None otherwise
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params or ())
            if fetch:
                return cursor.fetchall()
            return None

    def execute_insert(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an INSERT and return the new row id."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.lastrowid

    def execute_many(self, query: str, params_list: List[tuple]) -> None:
        """
        Execute a query with multiple parameter sets in one transaction.

        Args:
            query: SQL query string
            params_list: List of parameter tuples
        """
        with self.get_cursor() as cursor:
            cursor.executemany(query, params_list)

    def create_tables(self) -> None:
        """Create database tables if they don't exist."""
        with self.get_cursor() as cursor:
            cursor.execute(CREATE_NOVELS_TABLE)
            cursor.execute(CREATE_CHAPTERS_TABLE)
            cursor.execute(CREATE_PARSER_RULES_TABLE)
            for table, column, definition in ADDED_COLUMNS:
                cursor.execute(f"PRAGMA table_info({table})")
                if column not in {row["name"] for row in cursor.fetchall()}:
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
                    logger.info("SQLite column added", table=table, column=column)
            for index_sql in CREATE_INDEXES:
                cursor.execute(index_sql)

        logger.debug("SQLite database tables created")

    def get_connection_stats(self) -> Dict[str, Any]:
        """
        Get database statistics.

        Returns:
            Dictionary with table counts and file size
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()

            counts = {}
            for table in ("novels", "chapters", "parser_rules"):
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                counts[f"{table}_count"] = cursor.fetchone()[0]

            cursor.execute("PRAGMA page_count")
            page_count = cursor.fetchone()[0]
            cursor.execute("PRAGMA page_size")
            page_size = cursor.fetchone()[0]

        return {
            "status": "active",
            "database_path": str(self.database_path),
            "database_size_bytes": page_count * page_size,
            **counts
        }

    def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            result = self.execute_query("SELECT 1")
            return result is not None and len(result) > 0
        except DatabaseError as e:
            logger.error("SQLite database health check failed", error=str(e))
            return False
