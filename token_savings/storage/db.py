"""
Database connection management.

Provides the SQLite connection backing the invocation history.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from token_savings.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def get_connection(db_path: str) -> sqlite3.Connection:
    """Create and return a SQLite connection, creating parent directories.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Open SQLite connection

    Raises:
        StoreUnavailableError: If the database cannot be opened
    """
    path = Path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
    except (OSError, sqlite3.Error) as e:
        raise StoreUnavailableError(f"Cannot open history database {db_path}: {e}", db_path) from e
    return conn


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the commands table and its timestamp index if missing.

    The table is an append-only ledger; rows are never updated.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS commands (
            id INTEGER PRIMARY KEY,
            timestamp TEXT NOT NULL,
            original_cmd TEXT NOT NULL,
            rtk_cmd TEXT NOT NULL,
            input_tokens INTEGER NOT NULL,
            output_tokens INTEGER NOT NULL,
            saved_tokens INTEGER NOT NULL,
            savings_pct REAL NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_timestamp ON commands(timestamp)")
    conn.commit()


@contextmanager
def open_store(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open the history store for the lifetime of one request.

    The schema is created if missing and the connection is closed on
    every exit path.

    Raises:
        StoreUnavailableError: If the database cannot be opened or prepared
    """
    conn = get_connection(db_path)
    logger.debug("Opened history store at %s", db_path)
    try:
        try:
            create_tables(conn)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot prepare history database {db_path}: {e}", db_path) from e
        yield conn
    finally:
        conn.close()
