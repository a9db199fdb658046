# sharevault/blobstore/__init__.py
"""
Content-addressed blob store back-ends.

The provider is chosen once from `BlobStoreConfig` by `create_blob_store`;
callers only ever hold a `BlobStore`.
"""

from abc import ABC, abstractmethod

from sharevault.config import BlobProvider, BlobStoreConfig, RetryPolicy
from sharevault.core.types import Readiness
from sharevault.errors import ValidationError


class BlobStore(ABC):
    """Abstract base for all blob store implementations."""

    name = "blob-store"

    @abstractmethod
    def put(self, data: bytes) -> str:
        """Persist (and pin) `data`, returning its content address."""

    @abstractmethod
    def get(self, address: str) -> bytes:
        """Fetch bytes by content address. NotFoundError if unknown or unpinned."""

    def readiness(self) -> Readiness:
        return Readiness(self.name, True)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_blob_store(config: BlobStoreConfig, retry: RetryPolicy | None = None) -> BlobStore:
    if config.provider is BlobProvider.MEMORY:
        from .memory import InMemoryBlobStore
        store: BlobStore = InMemoryBlobStore()

    elif config.provider is BlobProvider.FILESYSTEM:
        if config.root is None:
            raise ValidationError("filesystem blob store requires a root directory")
        from .filesystem import FileSystemBlobStore
        store = FileSystemBlobStore(config.root)

    elif config.provider is BlobProvider.IPFS:
        from .http import IpfsHttpBlobStore
        store = IpfsHttpBlobStore(
            endpoint=config.endpoint or IpfsHttpBlobStore.DEFAULT_ENDPOINT,
            credentials=config.credentials,
            timeout=config.timeout,
        )

    elif config.provider is BlobProvider.PINATA:
        from .http import PinataBlobStore
        store = PinataBlobStore(
            credentials=config.credentials,
            endpoint=config.endpoint or PinataBlobStore.DEFAULT_ENDPOINT,
            gateway=config.gateway or PinataBlobStore.DEFAULT_GATEWAY,
            timeout=config.timeout,
        )
    else:
        raise ValidationError(f"Unsupported blob provider: {config.provider}")

    if retry is not None:
        from .retry import RetryingBlobStore
        store = RetryingBlobStore(store, retry)
    return store


from .memory import InMemoryBlobStore
from .filesystem import FileSystemBlobStore
from .retry import RetryingBlobStore

__all__ = [
    "BlobStore",
    "create_blob_store",
    "InMemoryBlobStore",
    "FileSystemBlobStore",
    "RetryingBlobStore",
]
