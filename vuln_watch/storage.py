"""SQLite catalog of vulnerability records."""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional
import logging

from .errors import PersistenceError
from .models import StoredVuln, VulnInfo

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, key, title, description, severity, cve, disclosure, solutions, "
    "refs, tags, source, pushed"
)

# Columns that may be used in query() filters
_QUERYABLE = {"key", "cve", "source", "severity", "pushed"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_vuln(row) -> StoredVuln:
    return StoredVuln(
        id=row[0],
        key=row[1],
        title=row[2],
        description=row[3],
        severity=row[4],
        cve=row[5],
        disclosure=row[6],
        solutions=row[7],
        references=json.loads(row[8] or "[]"),
        tags=json.loads(row[9] or "[]"),
        source=row[10],
        pushed=bool(row[11]),
    )


class Storage:
    """Manages the SQLite catalog, one row per vulnerability key.

    All access is serialized through a single lock so concurrent collector
    threads see a consistent order of reads and writes.
    """

    def __init__(self, db_path: str = "data/vulns.sqlite"):
        """Initialize storage with database path."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                conn = sqlite3.connect(self.db_path, timeout=5)
            except sqlite3.Error as e:
                raise PersistenceError(f"failed opening {self.db_path}: {e}") from e
            try:
                yield conn.cursor()
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(str(e)) from e
            finally:
                conn.close()

    def _init_db(self):
        """Initialize the database schema."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS vulns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    cve TEXT NOT NULL,
                    disclosure TEXT NOT NULL,
                    solutions TEXT NOT NULL,
                    refs TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    source TEXT NOT NULL,
                    pushed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_vulns_cve ON vulns (cve)")
        logger.debug(f"Initialized database at {self.db_path}")

    @staticmethod
    def _select_key(cursor: sqlite3.Cursor, key: str) -> Optional[StoredVuln]:
        cursor.execute(f"SELECT {_COLUMNS} FROM vulns WHERE key = ?", (key,))
        row = cursor.fetchone()
        return _row_to_vuln(row) if row else None

    def find_by_key(self, key: str) -> Optional[StoredVuln]:
        """Return the stored record for key, or None."""
        with self._cursor() as cursor:
            return self._select_key(cursor, key)

    def create(self, info: VulnInfo) -> StoredVuln:
        """Insert a new record with pushed=False.

        Raises:
            PersistenceError: if the key already exists or the write fails
        """
        now = _now()
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO vulns (key, title, description, severity, cve, disclosure,
                                       solutions, refs, tags, source, pushed, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                    """,
                    (
                        info.unique_key,
                        info.title,
                        info.description,
                        info.severity,
                        info.cve,
                        info.disclosure,
                        info.solutions,
                        json.dumps(info.references),
                        json.dumps(info.tags),
                        info.source,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise PersistenceError(f"vuln {info.unique_key} already exists: {e}") from e
            return self._select_key(cursor, info.unique_key)

    def update(self, key: str, info: VulnInfo) -> StoredVuln:
        """Overwrite every crawled field of an existing record. Never touches pushed."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE vulns SET title = ?, description = ?, severity = ?, cve = ?,
                                 disclosure = ?, solutions = ?, refs = ?, tags = ?,
                                 source = ?, updated_at = ?
                WHERE key = ?
                """,
                (
                    info.title,
                    info.description,
                    info.severity,
                    info.cve,
                    info.disclosure,
                    info.solutions,
                    json.dumps(info.references),
                    json.dumps(info.tags),
                    info.source,
                    _now(),
                    key,
                ),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"vuln {key} not found")
            return self._select_key(cursor, key)

    def set_pushed(self, key: str) -> StoredVuln:
        """Mark a record as pushed. There is no way to unset it."""
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE vulns SET pushed = 1, updated_at = ? WHERE key = ?", (_now(), key)
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"vuln {key} not found")
            return self._select_key(cursor, key)

    def set_references(self, key: str, references: List[str]) -> StoredVuln:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE vulns SET refs = ?, updated_at = ? WHERE key = ?",
                (json.dumps(references), _now(), key),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"vuln {key} not found")
            return self._select_key(cursor, key)

    def query(self, **filters) -> List[StoredVuln]:
        """Return all records matching every given column=value filter.

        Example: storage.query(cve="CVE-2024-0001", pushed=True)
        """
        unknown = set(filters) - _QUERYABLE
        if unknown:
            raise ValueError(f"Unsupported query fields: {sorted(unknown)}")
        clauses = []
        params = []
        for column, value in sorted(filters.items()):
            clauses.append(f"{column} = ?")
            params.append(int(value) if column == "pushed" else value)
        sql = f"SELECT {_COLUMNS} FROM vulns"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            return [_row_to_vuln(row) for row in cursor.fetchall()]

    def count(self) -> int:
        """Get total count of catalog records."""
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM vulns")
            return cursor.fetchone()[0]
