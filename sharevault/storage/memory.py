# sharevault/storage/memory.py
from typing import List

from sharevault.core.types import LedgerEntry
from sharevault.errors import LedgerError
from . import StorageBackend


class MemoryStorage(StorageBackend):
    """Volatile storage; the ledger lives only as long as the process."""

    def __init__(self):
        self._entries: List[LedgerEntry] = []
        self._closed = False

    def append(self, entry: LedgerEntry) -> None:
        if self._closed:
            raise LedgerError("Storage is closed")
        if entry.proof is None:
            raise ValueError("Cannot persist unsigned entry")
        if entry.index != len(self._entries):
            raise LedgerError(f"Out-of-order append: expected index {len(self._entries)}, got {entry.index}")
        self._entries.append(entry)

    def load_entries(self, verify_links: bool = True) -> List[LedgerEntry]:
        if self._closed:
            raise LedgerError("Storage is closed")
        return list(self._entries)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
