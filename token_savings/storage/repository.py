"""
Repository pattern for data access.

Handles reads and appends against the invocation history ledger.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from token_savings.core.errors import StoreUnavailableError
from .db import open_store
from .models import InvocationRecord

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d+)")

_SELECT_COLUMNS = "timestamp, original_cmd, rtk_cmd, input_tokens, output_tokens"

_INSERT_SQL = """
    INSERT INTO commands
    (timestamp, original_cmd, rtk_cmd, input_tokens, output_tokens,
     saved_tokens, savings_pct)
    VALUES (?, ?, ?, ?, ?, ?, ?)
"""


class MalformedRecordError(ValueError):
    """Raised when a stored row cannot be turned into an InvocationRecord."""


@dataclass
class FetchResult:
    """Records read from the store plus the number of rows that were skipped."""
    records: List[InvocationRecord] = field(default_factory=list)
    skipped: int = 0


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp into an aware datetime.

    Naive values are taken to be UTC, which is what the write path stores.

    Raises:
        MalformedRecordError: If the value is not a valid timestamp
    """
    if not isinstance(value, str) or not value.strip():
        raise MalformedRecordError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 takes exactly 6 fractional digits (RFC 3339 writers emit 9)
    text = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedRecordError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_token_count(value, column: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRecordError(f"Invalid {column}: {value!r}")
    if value < 0:
        raise MalformedRecordError(f"Negative {column}: {value!r}")
    return value


def row_to_record(row: Tuple) -> InvocationRecord:
    """Convert a ``commands`` row into an InvocationRecord.

    Raises:
        MalformedRecordError: If any field fails validation
    """
    return InvocationRecord(
        timestamp=parse_timestamp(row[0]),
        original_cmd=row[1] if row[1] is not None else "",
        rtk_cmd=row[2] if row[2] is not None else "",
        input_tokens=_parse_token_count(row[3], "input_tokens"),
        output_tokens=_parse_token_count(row[4], "output_tokens"),
    )


def _record_params(record: InvocationRecord) -> Tuple:
    timestamp = record.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (
        timestamp.astimezone(timezone.utc).isoformat(),
        record.original_cmd,
        record.rtk_cmd,
        record.input_tokens,
        record.output_tokens,
        record.saved_tokens,
        record.savings_pct,
    )


class RecordRepository:
    """Read access to the invocation history over an open connection.

    The connection is owned by the caller (see ``open_store``); the
    repository never opens or closes it.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: str = ""):
        self.conn = conn
        self.db_path = db_path

    def _query(self, query: str, params: Sequence = ()) -> List[Tuple]:
        try:
            return self.conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot query history database: {e}", self.db_path) from e

    def _parse_rows(self, rows: List[Tuple], since: Optional[datetime] = None) -> FetchResult:
        """Parse rows, dropping those before ``since``.

        Rows outside the window are ignored even when malformed; rows whose
        timestamp cannot be parsed cannot be placed and are always counted.
        """
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        result = FetchResult()
        for row in rows:
            try:
                timestamp = parse_timestamp(row[0])
                if since is not None and timestamp < since:
                    continue
                result.records.append(row_to_record(row))
            except MalformedRecordError as e:
                result.skipped += 1
                logger.warning("Skipping malformed history row: %s", e)
        return result

    def fetch_records(self, since: Optional[datetime] = None) -> FetchResult:
        """Fetch all records in ascending timestamp order.

        Args:
            since: Optional lower bound (inclusive) on the record timestamp

        Returns:
            FetchResult with parsed records and the count of skipped rows
        """
        rows = self._query(f"SELECT {_SELECT_COLUMNS} FROM commands ORDER BY timestamp ASC, id ASC")
        result = self._parse_rows(rows, since)
        logger.debug("Fetched %d records (%d skipped)", len(result.records), result.skipped)
        return result

    def get_recent(self, limit: int = 10, since: Optional[datetime] = None) -> List[InvocationRecord]:
        """Return the most recent records within the window, newest first."""
        rows = self._query(
            f"SELECT {_SELECT_COLUMNS} FROM commands ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,)
        )
        return self._parse_rows(rows, since).records

    def count(self) -> int:
        """Return the number of stored rows, malformed ones included."""
        return self._query("SELECT COUNT(*) FROM commands")[0][0]


def initialize_schema(db_path: str) -> None:
    """Create the commands table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    with open_store(db_path):
        pass


def insert_record(record: InvocationRecord, db_path: str) -> None:
    """Append a single record to the history ledger.

    Args:
        record: The invocation to record
        db_path: Path to SQLite database file
    """
    insert_records([record], db_path)


def insert_records(records: List[InvocationRecord], db_path: str) -> None:
    """Append multiple records atomically.

    All records are inserted in a single transaction.

    Args:
        records: Invocations to record
        db_path: Path to SQLite database file

    Raises:
        StoreUnavailableError: If the write fails
    """
    if not records:
        return

    with open_store(db_path) as conn:
        try:
            with conn:
                conn.executemany(_INSERT_SQL, [_record_params(r) for r in records])
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot write history database: {e}", db_path) from e
