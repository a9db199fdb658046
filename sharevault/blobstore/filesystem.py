# sharevault/blobstore/filesystem.py
import hashlib
import os
import re
import tempfile
from pathlib import Path

from sharevault.core.types import Readiness
from sharevault.errors import NotFoundError, StoreError, ValidationError
from . import BlobStore

_ADDRESS_RE = re.compile(r"^[0-9a-f]{64}$")


class FileSystemBlobStore(BlobStore):
    """
    Content-addressed directory: each blob lives at <root>/ab/cd/<sha256>.
    Writes go through a temp file and an atomic rename, so a blob is either
    fully present or absent. Storing the same bytes twice is a no-op.
    """

    name = "filesystem-blob-store"

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create blob root {self.root}: {e}") from e
        self.root = self.root.resolve()

    def _path_for(self, address: str) -> Path:
        if not _ADDRESS_RE.match(address):
            raise ValidationError(f"Malformed content address: {address!r}")
        return self.root / address[:2] / address[2:4] / address

    def put(self, data: bytes) -> str:
        address = hashlib.sha256(data).hexdigest()
        target = self._path_for(address)
        if target.exists():
            return address

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write blob {address}: {e}") from e
        return address

    def get(self, address: str) -> bytes:
        path = self._path_for(address)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"No blob pinned at {address}") from None
        except OSError as e:
            raise StoreError(f"Failed to read blob {address}: {e}") from e

    def unpin(self, address: str) -> None:
        self._path_for(address).unlink(missing_ok=True)

    def readiness(self) -> Readiness:
        if not self.root.is_dir():
            return Readiness(self.name, False, f"root {self.root} is missing")
        if not os.access(self.root, os.W_OK):
            return Readiness(self.name, False, f"root {self.root} is not writable")
        return Readiness(self.name, True)
