# sharevault/storage/sqlite.py
import json
import os
import sqlite3
from pathlib import Path
from typing import List, Optional

from sharevault.core.canon import canonical_json_str
from sharevault.core.types import LedgerEntry, Proof
from sharevault.crypto.hashing import entry_hash
from sharevault.errors import LedgerError
from . import StorageBackend


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for the signed ledger entry log."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("SHAREVAULT_LEDGER_DB")
            db_path = env_path if env_path else Path.cwd() / "sharevault-ledger.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None,
                                         check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot open ledger database {self.db_path}: {e}") from e

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                idx             INTEGER PRIMARY KEY,
                entry_id        TEXT    NOT NULL,
                kind            TEXT    NOT NULL,
                sender          TEXT    NOT NULL,
                timestamp       INTEGER NOT NULL,
                prev_hash       TEXT    NOT NULL,
                entry_hash      TEXT    NOT NULL,
                canonical_json  TEXT    NOT NULL,
                proof_json      TEXT    NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_kind   ON entries(kind)")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_sender ON entries(sender)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LedgerError("Storage connection is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    def append(self, entry: LedgerEntry) -> None:
        if entry.proof is None:
            raise ValueError("Cannot persist unsigned entry")

        proof_str = json.dumps(entry.proof.__dict__, sort_keys=True, separators=(",", ":"))
        try:
            self.conn.execute("""
                INSERT INTO entries
                (idx, entry_id, kind, sender, timestamp, prev_hash, entry_hash,
                 canonical_json, proof_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.index, entry.id, entry.kind, entry.sender, entry.timestamp,
                entry.prev_hash, entry_hash(entry),
                canonical_json_str(entry.unsigned_dict()), proof_str,
            ))
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to persist entry {entry.index}: {e}") from e

    def _rows_to_entries(self, rows) -> List[LedgerEntry]:
        loaded = []
        for cjson, pjson in rows:
            payload = json.loads(cjson)
            loaded.append(LedgerEntry(
                id=payload["id"],
                index=payload["index"],
                timestamp=payload["timestamp"],
                kind=payload["kind"],
                sender=payload["sender"],
                payload=payload.get("payload", {}),
                prev_hash=payload.get("prev_hash", ""),
                proof=Proof(**json.loads(pjson)),
            ))
        return loaded

    def load_entries(self, verify_links: bool = True) -> List[LedgerEntry]:
        try:
            cursor = self.conn.execute(
                "SELECT canonical_json, proof_json FROM entries ORDER BY idx ASC"
            )
            loaded = self._rows_to_entries(cursor.fetchall())
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to load ledger entries: {e}") from e

        if not verify_links:
            return loaded

        for i, entry in enumerate(loaded):
            if entry.index != i:
                raise LedgerError(f"Gap in ledger at index {i} (found {entry.index})")
            if i > 0 and entry.prev_hash != entry_hash(loaded[i - 1]):
                raise LedgerError(f"Chain broken at index {i}")
        return loaded

    def get_entry_count(self) -> int:
        try:
            return self.conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to count ledger entries: {e}") from e

    def query_entries(self, kind: str | None = None, limit: int = 50) -> List[LedgerEntry]:
        """Most recent entries (optionally of one kind), oldest first. No chain check."""
        try:
            if kind:
                cursor = self.conn.execute("""
                    SELECT canonical_json, proof_json FROM entries
                    WHERE kind = ? ORDER BY idx DESC LIMIT ?
                """, (kind, limit))
            else:
                cursor = self.conn.execute("""
                    SELECT canonical_json, proof_json FROM entries
                    ORDER BY idx DESC LIMIT ?
                """, (limit,))
            loaded = self._rows_to_entries(cursor.fetchall())
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to query ledger entries: {e}") from e
        loaded.reverse()
        return loaded

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
