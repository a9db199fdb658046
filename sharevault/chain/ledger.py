# sharevault/chain/ledger.py
import logging
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sharevault.core.types import (
    AccessGrant,
    AuditEvent,
    Confirmation,
    FileRecord,
    LedgerEntry,
    Readiness,
)
from sharevault.crypto.hashing import entry_hash, tx_id
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.errors import (
    AuthorizationError,
    LedgerError,
    NotFoundError,
    ShareVaultError,
    ValidationError,
)
from sharevault.storage import StorageBackend, create_storage

logger = logging.getLogger(__name__)

_COMMITMENT_RE = re.compile(r"^[0-9a-f]{64}$")


def unix_now() -> int:
    return int(time.time())


def coerce_file_id(file_id: Union[int, str]) -> int:
    """File ids are positive integers; their stringified form is accepted too."""
    if isinstance(file_id, bool):
        raise ValidationError(f"Invalid file id: {file_id!r}")
    if isinstance(file_id, str) and file_id.strip().isdigit():
        file_id = int(file_id.strip())
    if not isinstance(file_id, int) or file_id < 1:
        raise ValidationError(f"Invalid file id: {file_id!r}")
    return file_id


def _require(value: str, name: str) -> str:
    """Identities and addresses are compared in their stripped form on every path."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


@dataclass
class AccessLedger:
    """
    Authoritative record of files, grants and access attempts.

    State is never mutated in place: every operation appends a signed,
    hash-chained entry, and the file/grant/audit views are projections of the
    entry log. Mutations are linearized under one lock; the wait for it is
    bounded by `finality_timeout`. An entry is applied to the projections
    only after the storage back-end has accepted it.
    """
    signer: LedgerKeyPair
    storage: Optional[Union[StorageBackend, str]] = None
    clock: Callable[[], int] = unix_now
    finality_timeout: float = 30.0

    _entries: List[LedgerEntry] = field(default_factory=list, init=False, repr=False)
    _files: Dict[int, FileRecord] = field(default_factory=dict, init=False, repr=False)
    _by_owner: Dict[str, List[int]] = field(default_factory=dict, init=False, repr=False)
    _grants: Dict[Tuple[int, str], AccessGrant] = field(default_factory=dict, init=False, repr=False)
    _audit: Dict[int, List[AuditEvent]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.storage, str):
            stripped = self.storage.strip()
            if stripped.startswith(("sqlite://", "memory:")):
                self.storage = create_storage(stripped)
            elif stripped:
                # Plain file path → SQLite
                self.storage = create_storage(f"sqlite://{stripped}")
            else:
                self.storage = None

        if self.storage is not None:
            loaded = self.storage.load_entries()
            for entry in loaded:
                self._apply(entry)
                self._entries.append(entry)
            if loaded:
                logger.info("Replayed %d ledger entries (%d files)", len(loaded), len(self._files))

    # ── ordering ────────────────────────────────────────────────────────────

    @contextmanager
    def _ordered(self):
        if self._closed:
            raise LedgerError("Ledger is closed")
        if not self._lock.acquire(timeout=self.finality_timeout):
            raise LedgerError(f"No ledger finality within {self.finality_timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    def _submit(self, kind: str, sender: str, payload: Dict[str, Any]) -> Confirmation:
        """Build, sign, persist and apply one entry. Caller holds the lock."""
        index = len(self._entries)
        unsigned = LedgerEntry(
            id=f"entry-{index:06d}",
            index=index,
            timestamp=int(self.clock()),
            kind=kind,
            sender=sender,
            payload=payload,
            prev_hash=entry_hash(self._entries[-1]) if self._entries else "",
        )
        signed = self.signer.sign_entry(unsigned)

        if self.storage is not None:
            try:
                self.storage.append(signed)
            except LedgerError:
                raise
            except Exception as e:
                raise LedgerError(f"Ledger rejected entry {index}: {e}") from e

        self._apply(signed)
        self._entries.append(signed)
        return Confirmation(tx_id=tx_id(signed), index=index)

    def _apply(self, entry: LedgerEntry) -> None:
        p = entry.payload
        if entry.kind == "file_registered":
            record = FileRecord(
                id=p["file_id"],
                owner=entry.sender,
                content_address=p["content_address"],
                key_commitment=p["key_commitment"],
                created_at=entry.timestamp,
            )
            self._files[record.id] = record
            self._by_owner.setdefault(record.owner, []).append(record.id)

        elif entry.kind == "access_granted":
            self._grants[(p["file_id"], p["grantee"])] = AccessGrant(
                file_id=p["file_id"],
                grantee=p["grantee"],
                expires_at=p["expires_at"],
                granted_at=entry.timestamp,
            )

        elif entry.kind == "access_revoked":
            key = (p["file_id"], p["grantee"])
            current = self._grants.get(key)
            if current is not None:
                self._grants[key] = replace(current, revoked=True)

        elif entry.kind == "access_logged":
            trail = self._audit.setdefault(p["file_id"], [])
            if p["sequence"] != len(trail):
                raise LedgerError(
                    f"Audit sequence gap for file {p['file_id']}: "
                    f"expected {len(trail)}, got {p['sequence']}"
                )
            trail.append(AuditEvent(
                file_id=p["file_id"],
                user=p["user"],
                granted=p["granted"],
                timestamp=entry.timestamp,
                sequence=p["sequence"],
                confirmation=tx_id(entry),
            ))
        else:
            raise LedgerError(f"Unknown entry kind '{entry.kind}' at index {entry.index}")

    def _file(self, file_id: Union[int, str]) -> FileRecord:
        fid = coerce_file_id(file_id)
        record = self._files.get(fid)
        if record is None:
            raise NotFoundError(f"File {fid} does not exist")
        return record

    def _owned_file(self, sender: str, file_id: Union[int, str]) -> FileRecord:
        record = self._file(file_id)
        if record.owner != sender:
            raise AuthorizationError(f"{sender} is not the owner of file {record.id}")
        return record

    # ── mutations ───────────────────────────────────────────────────────────

    def upload_file(self, sender: str, content_address: str, key_commitment: str) -> Tuple[int, Confirmation]:
        """Register a new file owned by `sender`. Not idempotent: every call allocates a new id."""
        sender = _require(sender, "sender")
        content_address = _require(content_address, "content_address")
        key_commitment = _require(key_commitment, "key_commitment").lower()
        if not _COMMITMENT_RE.match(key_commitment):
            raise ValidationError("key_commitment must be a 256-bit hex digest")

        with self._ordered():
            file_id = len(self._files) + 1
            confirmation = self._submit("file_registered", sender, {
                "file_id": file_id,
                "content_address": content_address,
                "key_commitment": key_commitment,
            })
        logger.info("Registered file %d for %s at %s (%s)", file_id, sender, content_address, confirmation)
        return file_id, confirmation

    def grant_access(self, sender: str, file_id: Union[int, str], grantee: str, expires_at: int = 0) -> Confirmation:
        """
        Append a grant for (file_id, grantee), superseding any earlier fact for
        the pair. An `expires_at` already in the past is accepted; such a grant
        simply never satisfies `check_access`.
        """
        sender = _require(sender, "sender")
        grantee = _require(grantee, "grantee")
        if isinstance(expires_at, bool) or not isinstance(expires_at, int) or expires_at < 0:
            raise ValidationError("expires_at must be 0 or a unix timestamp")

        with self._ordered():
            record = self._owned_file(sender, file_id)
            confirmation = self._submit("access_granted", sender, {
                "file_id": record.id,
                "grantee": grantee,
                "expires_at": expires_at,
            })
        logger.info("Granted %s access to file %d (expires_at=%d)", grantee, record.id, expires_at)
        return confirmation

    def revoke_access(self, sender: str, file_id: Union[int, str], grantee: str) -> Confirmation:
        """Append a revoke fact. Revoking a pair that was never granted is a confirmed no-op."""
        sender = _require(sender, "sender")
        grantee = _require(grantee, "grantee")

        with self._ordered():
            record = self._owned_file(sender, file_id)
            confirmation = self._submit("access_revoked", sender, {
                "file_id": record.id,
                "grantee": grantee,
            })
        logger.info("Revoked %s access to file %d", grantee, record.id)
        return confirmation

    def log_access(self, file_id: Union[int, str], user: str, granted: bool) -> Confirmation:
        """Append an audit event at the file's next sequence number."""
        user = _require(user, "user")
        with self._ordered():
            record = self._file(file_id)
            confirmation = self._submit("access_logged", user, {
                "file_id": record.id,
                "user": user,
                "granted": bool(granted),
                "sequence": len(self._audit.get(record.id, [])),
            })
        return confirmation

    # ── queries ─────────────────────────────────────────────────────────────

    def check_access(self, file_id: Union[int, str], user: str) -> bool:
        user = _require(user, "user")
        with self._ordered():
            record = self._file(file_id)
            if user == record.owner:
                return True
            grant = self._grants.get((record.id, user))
            return grant is not None and grant.is_active(int(self.clock()))

    def get_file(self, file_id: Union[int, str]) -> FileRecord:
        with self._ordered():
            return self._file(file_id)

    def get_files_by_owner(self, owner: str) -> List[int]:
        owner = _require(owner, "owner")
        with self._ordered():
            return list(self._by_owner.get(owner, []))

    def get_file_count(self) -> int:
        with self._ordered():
            return len(self._files)

    def get_grant(self, file_id: Union[int, str], grantee: str) -> Optional[AccessGrant]:
        grantee = _require(grantee, "grantee")
        with self._ordered():
            record = self._file(file_id)
            return self._grants.get((record.id, grantee))

    def list_grants(self, file_id: Union[int, str]) -> List[AccessGrant]:
        """Latest fact per grantee, expired and revoked ones included."""
        with self._ordered():
            record = self._file(file_id)
            return [g for (fid, _), g in self._grants.items() if fid == record.id]

    def get_audit_trail(self, file_id: Union[int, str], from_sequence: int = 0) -> List[AuditEvent]:
        if isinstance(from_sequence, bool) or not isinstance(from_sequence, int) or from_sequence < 0:
            raise ValidationError("from_sequence must be a non-negative integer")
        with self._ordered():
            record = self._file(file_id)
            trail = self._audit.get(record.id, [])
            return trail[from_sequence:]

    def get_entries(self) -> List[LedgerEntry]:
        """Copy of the full signed entry log."""
        with self._ordered():
            return self._entries.copy()

    def get_last_hash(self) -> Optional[str]:
        with self._lock:
            if not self._entries:
                return None
            return entry_hash(self._entries[-1])

    @property
    def length(self) -> int:
        with self._lock:
            return len(self._entries)

    def readiness(self) -> Readiness:
        if self._closed:
            return Readiness("ledger", False, "closed")
        if not self.signer.can_sign:
            return Readiness("ledger", False, "signing key has no private part")
        if self.storage is not None and self.storage.closed:
            return Readiness("ledger", False, "storage is closed")
        return Readiness("ledger", True)

    def close(self) -> None:
        """Release the storage back-end. The ledger refuses further calls; closing twice is a no-op."""
        if self._closed:
            return
        with self._ordered():
            self._closed = True
            if self.storage is not None:
                try:
                    self.storage.close()
                except ShareVaultError as e:
                    logger.warning("Error closing ledger storage: %s", e)
                self.storage = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
