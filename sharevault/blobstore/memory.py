# sharevault/blobstore/memory.py
import hashlib
import threading
from typing import Dict

from sharevault.core.types import Readiness
from sharevault.errors import NotFoundError, StoreError
from . import BlobStore


class InMemoryBlobStore(BlobStore):
    """Process-local store keyed by sha256. Used by tests and `memory` configs."""

    name = "memory-blob-store"

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._closed = False

    def put(self, data: bytes) -> str:
        if self._closed:
            raise StoreError("Blob store is closed")
        address = hashlib.sha256(data).hexdigest()
        with self._lock:
            self._blobs.setdefault(address, bytes(data))
        return address

    def get(self, address: str) -> bytes:
        if self._closed:
            raise StoreError("Blob store is closed")
        with self._lock:
            data = self._blobs.get(address)
        if data is None:
            raise NotFoundError(f"No blob pinned at {address}")
        return data

    def unpin(self, address: str) -> None:
        with self._lock:
            self._blobs.pop(address, None)

    def __contains__(self, address: str) -> bool:
        return address in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)

    def readiness(self) -> Readiness:
        if self._closed:
            return Readiness(self.name, False, "closed")
        return Readiness(self.name, True)

    def close(self) -> None:
        self._closed = True
