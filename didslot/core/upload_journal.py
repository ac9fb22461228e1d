"""Append-only, hash-chained upload journal backed by SQLite.

Design:
- Append-only: only ``append()`` writes; no update, no delete.
- Hash-chained per ``(app_id, address)`` stream.
- WAL journal mode for concurrent readers.
- entry_hash UNIQUE constraint for tamper detection.

The journal records what this client did.  Upload state is always read
from the contract, never from here.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from didslot.core.hasher import compute_entry_hash
from didslot.models.journal import JournalEntry


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_JOURNAL = """
CREATE TABLE IF NOT EXISTS upload_journal (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id             TEXT NOT NULL UNIQUE,
    app_id               INTEGER NOT NULL,
    address              TEXT NOT NULL,
    operation            TEXT NOT NULL,
    state_transition     TEXT NOT NULL,
    timestamp_utc        TEXT NOT NULL,
    tx_ids_json          TEXT NOT NULL DEFAULT '[]',
    detail               TEXT NOT NULL DEFAULT '',
    document_digest      TEXT NOT NULL DEFAULT '',
    previous_entry_hash  TEXT NOT NULL DEFAULT '',
    entry_hash           TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_STREAM = """
CREATE INDEX IF NOT EXISTS idx_stream ON upload_journal(app_id, address, id);
"""


class JournalIntegrityError(RuntimeError):
    """Raised when the hash chain is broken."""


class UploadJournal:
    """Append-only, hash-chained upload journal.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_JOURNAL)
            conn.execute(_CREATE_IDX_STREAM)
            conn.commit()

    # ------------------------------------------------------------------
    # Core: append-only write
    # ------------------------------------------------------------------

    def append(self, entry: JournalEntry) -> JournalEntry:
        """Append an entry, linking it to the previous entry of its stream.

        Returns the sealed entry with ``previous_entry_hash`` and
        ``entry_hash`` set.
        """
        previous_hash = self._get_latest_hash(entry.app_id, entry.address)

        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_entry_hash"] = previous_hash
        entry_dict["entry_hash"] = ""

        sealed = entry.model_copy(
            update={
                "previous_entry_hash": previous_hash,
                "entry_hash": compute_entry_hash(entry_dict),
            }
        )
        self._insert(sealed)
        return sealed

    def _insert(self, entry: JournalEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO upload_journal
                    (entry_id, app_id, address, operation, state_transition,
                     timestamp_utc, tx_ids_json, detail, document_digest,
                     previous_entry_hash, entry_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    entry.app_id,
                    entry.address,
                    entry.operation,
                    entry.state_transition,
                    entry.timestamp_utc.isoformat()
                    if isinstance(entry.timestamp_utc, datetime)
                    else entry.timestamp_utc,
                    json.dumps(entry.tx_ids),
                    entry.detail,
                    entry.document_digest,
                    entry.previous_entry_hash,
                    entry.entry_hash,
                ),
            )
            conn.commit()

    def _get_latest_hash(self, app_id: int, address: str) -> str:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_hash FROM upload_journal "
                "WHERE app_id = ? AND address = ? ORDER BY id DESC LIMIT 1",
                (app_id, address),
            ).fetchone()
        return row[0] if row else ""

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get_entries(self, app_id: int, address: str) -> list[JournalEntry]:
        """Return a stream's entries, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM upload_journal WHERE app_id = ? AND address = ? ORDER BY id ASC",
                (app_id, address),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get_latest(self, app_id: int, address: str) -> JournalEntry | None:
        entries = self.get_entries(app_id, address)
        return entries[-1] if entries else None

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, app_id: int, address: str) -> bool:
        """Verify the hash chain of one stream.

        Returns True if the chain is valid, raises JournalIntegrityError otherwise.
        """
        prev_hash = ""
        for entry in self.get_entries(app_id, address):
            if entry.previous_entry_hash != prev_hash:
                raise JournalIntegrityError(
                    f"Chain broken at entry {entry.entry_id}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {entry.previous_entry_hash!r}"
                )
            expected_hash = compute_entry_hash(entry.model_dump(mode="json"))
            if entry.entry_hash != expected_hash:
                raise JournalIntegrityError(
                    f"Tampered entry {entry.entry_id}: "
                    f"expected hash={expected_hash!r}, got {entry.entry_hash!r}"
                )
            prev_hash = entry.entry_hash
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_entry(row: tuple) -> JournalEntry:
        (
            _id,
            entry_id,
            app_id,
            address,
            operation,
            state_transition,
            timestamp_utc,
            tx_ids_json,
            detail,
            document_digest,
            previous_entry_hash,
            entry_hash,
        ) = row
        return JournalEntry(
            entry_id=entry_id,
            app_id=app_id,
            address=address,
            operation=operation,
            state_transition=state_transition,
            timestamp_utc=timestamp_utc,
            tx_ids=json.loads(tx_ids_json),
            detail=detail,
            document_digest=document_digest,
            previous_entry_hash=previous_entry_hash,
            entry_hash=entry_hash,
        )
