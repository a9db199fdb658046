# sharevault/storage/__init__.py
"""
Persistence back-ends for the ledger's append-only entry log.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from sharevault.core.types import LedgerEntry
from sharevault.errors import ValidationError


class StorageBackend(ABC):
    """Abstract base for all ledger storage implementations."""

    @abstractmethod
    def append(self, entry: LedgerEntry) -> None:
        pass

    @abstractmethod
    def load_entries(self, verify_links: bool = True) -> List[LedgerEntry]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    def closed(self) -> bool:
        return False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_storage(uri: str) -> StorageBackend:
    uri = uri.strip()
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValidationError("sqlite:// URI needs a database path")
        return SQLiteStorage(Path(raw_path).expanduser().resolve())

    elif uri == "memory:" or uri.startswith("memory:"):
        from .memory import MemoryStorage
        return MemoryStorage()
    else:
        raise ValidationError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "MemoryStorage", "SQLiteStorage"]
