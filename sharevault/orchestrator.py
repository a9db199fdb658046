# sharevault/orchestrator.py
"""
Upload and download workflows over the ledger and the blob store.

The orchestrator holds no state of its own between calls. Every decision is
re-read from the ledger, and every ledger call blocks until the ledger
confirms it before the next step runs.
"""

import logging
from dataclasses import dataclass
from typing import List, Union

from sharevault.blobstore import BlobStore
from sharevault.chain.ledger import AccessLedger, coerce_file_id
from sharevault.core.types import (
    AccessCheck,
    AuditEvent,
    AuditOutcome,
    Confirmation,
    DownloadResult,
    FileRecord,
    Readiness,
    UploadResult,
)
from sharevault.crypto import envelope, keys
from sharevault.errors import (
    AuthorizationError,
    CryptoError,
    LedgerError,
    NotReadyError,
    ShareVaultError,
    ValidationError,
    describe,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class DistributionOrchestrator:
    ledger: AccessLedger
    blob_store: BlobStore

    def readiness(self) -> Readiness:
        for component in (self.ledger.readiness(), self.blob_store.readiness()):
            if not component:
                return component
        return Readiness("orchestrator", True)

    def _require_ready(self) -> None:
        readiness = self.readiness()
        if not readiness:
            raise NotReadyError(readiness)

    def _record_attempt(self, file_id: int, user: str, granted: bool) -> AuditOutcome:
        """Best-effort audit append. Failures are reported, never raised."""
        try:
            confirmation = self.ledger.log_access(file_id, user, granted)
        except ShareVaultError as e:
            logger.warning("Audit log for file %s / %s (granted=%s) failed: %s", file_id, user, granted, e)
            return AuditOutcome(error=describe(e))
        return AuditOutcome(confirmation=confirmation)

    # ── workflows ───────────────────────────────────────────────────────────

    def upload(self, owner: str, plaintext: bytes) -> UploadResult:
        """
        Encrypt `plaintext` under a fresh key, store the envelope and register
        it on the ledger. The raw key is only ever returned here.

        There is no rollback: if registration fails after the blob was stored,
        the blob is left orphaned and the LedgerError propagates.
        """
        if not isinstance(owner, str) or not owner.strip():
            raise ValidationError("owner is required")
        if not isinstance(plaintext, (bytes, bytearray)):
            raise ValidationError("plaintext must be bytes")
        self._require_ready()

        key = keys.generate_key()
        sealed = envelope.encrypt(bytes(plaintext), key)
        content_address = self.blob_store.put(sealed)
        commitment = keys.commit(key)

        try:
            file_id, confirmation = self.ledger.upload_file(owner, content_address, commitment)
        except LedgerError:
            logger.warning("Registration failed; blob %s is now orphaned", content_address)
            raise

        logger.info("Uploaded file %d (%d bytes) for %s", file_id, len(plaintext), owner)
        return UploadResult(
            file_id=file_id,
            content_address=content_address,
            confirmation=confirmation,
            key=key,
        )

    def download(self, file_id: Union[int, str], user: str, key: Union[str, bytes]) -> DownloadResult:
        """
        Authorize, fetch and decrypt. A denied attempt is logged and raises
        AuthorizationError without touching the blob store. Authorization is
        not re-checked after the fetch.
        """
        file_id = coerce_file_id(file_id)
        self._require_ready()

        if not self.ledger.check_access(file_id, user):
            audit = self._record_attempt(file_id, user, False)
            logger.info("Denied download of file %d to %s", file_id, user)
            raise AuthorizationError(f"{user} has no access to file {file_id}", audit=audit)

        record = self.ledger.get_file(file_id)
        if not keys.matches_commitment(key, record.key_commitment):
            raise CryptoError(f"Key does not match the commitment registered for file {file_id}")

        sealed = self.blob_store.get(record.content_address)
        plaintext = envelope.decrypt(sealed, key)

        audit = self._record_attempt(file_id, user, True)
        logger.info("Delivered file %d to %s", file_id, user)
        return DownloadResult(file_id=file_id, plaintext=plaintext, audit=audit)

    def check_access(self, file_id: Union[int, str], user: str) -> AccessCheck:
        """Access decision plus a logged attempt; the log outcome never changes the decision."""
        file_id = coerce_file_id(file_id)
        self._require_ready()
        granted = self.ledger.check_access(file_id, user)
        audit = self._record_attempt(file_id, user, granted)
        return AccessCheck(file_id=file_id, user=user, granted=granted, audit=audit)

    # ── grants ──────────────────────────────────────────────────────────────

    def grant(self, owner: str, file_id: Union[int, str], grantee: str, expires_at: int = 0) -> Confirmation:
        self._require_ready()
        return self.ledger.grant_access(owner, file_id, grantee, expires_at)

    def grant_for_days(self, owner: str, file_id: Union[int, str], grantee: str, days: int) -> Confirmation:
        """Grant that lapses `days` from now on the ledger clock; 0 days never expires."""
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError("days must be a non-negative integer")
        expires_at = 0 if days == 0 else int(self.ledger.clock()) + days * SECONDS_PER_DAY
        return self.grant(owner, file_id, grantee, expires_at)

    def revoke(self, owner: str, file_id: Union[int, str], grantee: str) -> Confirmation:
        self._require_ready()
        return self.ledger.revoke_access(owner, file_id, grantee)

    # ── queries ─────────────────────────────────────────────────────────────

    def list_files(self, owner: str) -> List[FileRecord]:
        self._require_ready()
        return [self.ledger.get_file(fid) for fid in self.ledger.get_files_by_owner(owner)]

    def audit_trail(self, file_id: Union[int, str], from_sequence: int = 0) -> List[AuditEvent]:
        self._require_ready()
        return self.ledger.get_audit_trail(file_id, from_sequence)
