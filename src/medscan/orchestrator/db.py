from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from ..errors import StorageError
from ..domain.models import MedicineRecord
from ..logging import get_logger


LOG = get_logger("medicine-db")


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS medicines (
  id            INTEGER PRIMARY KEY AUTOINCREMENT,
  owner_id      TEXT NOT NULL,
  name          TEXT NOT NULL,
  expiry_date   TEXT NOT NULL,          -- "YYYY-MM-DD"
  batch_number  TEXT NOT NULL DEFAULT 'N/A',
  manufacturer  TEXT NOT NULL DEFAULT '',
  image_path    TEXT,
  created_at    TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_medicines_owner_created ON medicines(owner_id, created_at);
"""

_COLUMNS = ("id", "owner_id", "name", "expiry_date", "batch_number", "manufacturer", "image_path", "created_at")


class MedicineDatabase:
    """SQLite-backed medicine record store.

    - Creates the parent folder and schema on first use.
    - Records are insert-only; reads are scoped to one owner.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = os.path.abspath(db_path)
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        LOG.info(f"Medicine DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError:
                LOG.debug("WAL journal mode unavailable; continuing with defaults")
            cur.executescript(SCHEMA_SQL)
            conn.commit()
            LOG.debug("Medicine DB schema ensured.")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MedicineRecord:
        return MedicineRecord(
            id=int(row["id"]),
            owner_id=row["owner_id"],
            name=row["name"],
            expiry_date=row["expiry_date"],
            batch_number=row["batch_number"],
            manufacturer=row["manufacturer"] or "",
            image_path=row["image_path"] or "",
            created_at=row["created_at"],
        )

    def insert(self, record: MedicineRecord) -> int:
        """Persist a new record and return its assigned id."""
        try:
            with self.connect() as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    INSERT INTO medicines (
                        owner_id, name, expiry_date, batch_number, manufacturer, image_path, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, COALESCE(?, datetime('now')))
                    RETURNING id;
                    """,
                    (
                        record.owner_id,
                        record.name,
                        record.expiry_date,
                        record.batch_number,
                        record.manufacturer,
                        record.image_path,
                        record.created_at,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to insert medicine record: {exc}") from exc
        new_id = int(row[0])
        LOG.debug(f"Inserted medicine id={new_id} owner={record.owner_id}")
        return new_id

    def list_by_owner(self, owner_id: str) -> List[MedicineRecord]:
        """Return the owner's records, newest first."""
        try:
            with self.connect() as conn:
                cur = conn.cursor()
                cur.execute(
                    f"SELECT {', '.join(_COLUMNS)} FROM medicines WHERE owner_id = ? "
                    "ORDER BY created_at DESC, id DESC;",
                    (owner_id,),
                )
                rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list medicines: {exc}") from exc
        return [self._row_to_record(r) for r in rows]

    def count(self) -> Dict[str, Any]:
        """Totals used by the health check and `medscan init`."""
        try:
            with self.connect() as conn:
                cur = conn.cursor()
                cur.execute("SELECT COUNT(*) AS n, COUNT(DISTINCT owner_id) AS owners FROM medicines;")
                row = cur.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count medicines: {exc}") from exc
        return {"medicines": int(row["n"]), "owners": int(row["owners"])}
