"""SQLite audit database: schema and operations.

Stores an immutable log of every applied correction and a row per
analysis run, so any corrected roof can be traced back to its
footprint source and repair history.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from roofline.core.exceptions import AuditError

logger = logging.getLogger("roofline.audit.database")

SCHEMA = """\
CREATE TABLE IF NOT EXISTS correction_log (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp         TEXT    NOT NULL,
    session_id        TEXT    NOT NULL DEFAULT '',
    building_id       TEXT    NOT NULL,
    correction_type   TEXT    NOT NULL,
    reason            TEXT,
    feature_ids       TEXT    NOT NULL DEFAULT '',
    before_wkt        TEXT,
    after_wkt         TEXT,
    confidence_delta  REAL    NOT NULL DEFAULT 0,
    from_version      INTEGER NOT NULL,
    to_version        INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS analysis_runs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp         TEXT    NOT NULL,
    session_id        TEXT    NOT NULL DEFAULT '',
    building_id       TEXT    NOT NULL,
    source            TEXT    NOT NULL,
    status            TEXT    NOT NULL,
    confidence        REAL    NOT NULL,
    footprint_wkt     TEXT,
    features_wkt      TEXT,
    corrections       INTEGER NOT NULL DEFAULT 0,
    warnings          INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_correction_session ON correction_log(session_id);
CREATE INDEX IF NOT EXISTS idx_correction_building ON correction_log(building_id);
CREATE INDEX IF NOT EXISTS idx_correction_type ON correction_log(correction_type);
CREATE INDEX IF NOT EXISTS idx_run_building ON analysis_runs(building_id);
"""

CORRECTION_COLUMNS = (
    "timestamp", "session_id", "building_id", "correction_type", "reason",
    "feature_ids", "before_wkt", "after_wkt", "confidence_delta",
    "from_version", "to_version",
)

RUN_COLUMNS = (
    "timestamp", "session_id", "building_id", "source", "status",
    "confidence", "footprint_wkt", "features_wkt", "corrections", "warnings",
)


class AuditDatabase:
    """SQLite-backed audit log for roof corrections.

    Usage::

        db = AuditDatabase(Path("roofline_audit.db"))
        db.insert_correction(entry_dict)
        rows = db.query(building_id="parcel-42")
        db.close()
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(str(self.db_path))
                self._conn.row_factory = sqlite3.Row
                self._conn.executescript(SCHEMA)
            except (OSError, sqlite3.Error) as exc:
                raise AuditError(f"Cannot open audit database {self.db_path}: {exc}") from exc
            logger.info("Audit database opened: %s", self.db_path)
        return self._conn

    def _insert(self, table: str, columns: tuple[str, ...], entry: dict) -> int:
        # Absent keys are left out so the column DEFAULTs apply.
        present = [c for c in columns if c in entry]
        values = [entry[c] for c in present]
        placeholders = ", ".join("?" * len(present))
        col_names = ", ".join(present)
        try:
            cursor = self.conn.execute(
                f"INSERT INTO {table} ({col_names}) VALUES ({placeholders})",
                values,
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise AuditError(f"Audit write to {table} failed: {exc}") from exc
        return cursor.lastrowid

    def insert_correction(self, entry: dict) -> int:
        """Insert a single correction row. Returns the row ID."""
        return self._insert("correction_log", CORRECTION_COLUMNS, entry)

    def insert_run(self, entry: dict) -> int:
        """Insert a single analysis-run row. Returns the row ID."""
        return self._insert("analysis_runs", RUN_COLUMNS, entry)

    def query(
        self,
        building_id: Optional[str] = None,
        session_id: Optional[str] = None,
        correction_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query correction rows with optional filters, newest first."""
        sql = "SELECT * FROM correction_log WHERE 1=1"
        params: list = []

        if building_id:
            sql += " AND building_id = ?"
            params.append(building_id)
        if session_id:
            sql += " AND session_id = ?"
            params.append(session_id)
        if correction_type:
            sql += " AND correction_type = ?"
            params.append(correction_type)

        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        rows = self.conn.execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    def runs(self, building_id: Optional[str] = None, limit: int = 100) -> list[dict]:
        sql = "SELECT * FROM analysis_runs"
        params: list = []
        if building_id:
            sql += " WHERE building_id = ?"
            params.append(building_id)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def count(self, session_id: Optional[str] = None) -> int:
        """Count correction rows."""
        if session_id:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM correction_log WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        else:
            row = self.conn.execute("SELECT COUNT(*) FROM correction_log").fetchone()
        return row[0]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
