# sharevault/core/types.py
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Literal, Optional

EntryKind = Literal["file_registered", "access_granted", "access_revoked", "access_logged"]


@dataclass(frozen=True)
class Proof:
    """Ed25519 signature over the canonical form of an entry."""
    type: str = "Ed25519Signature2020"
    created: str = ""
    verification_method: str = ""           # base64url public key of the ledger signer
    proof_purpose: str = "assertionMethod"
    proof_value: str = ""                   # base64url encoded signature


@dataclass(frozen=True)
class LedgerEntry:
    """Single signed fact in the append-only ledger log."""
    id: str
    index: int                      # global position, 0-based and gapless
    timestamp: int                  # unix seconds, ledger clock
    kind: EntryKind
    sender: str
    payload: Dict[str, Any] = field(default_factory=dict)
    prev_hash: str = ""             # hex(sha256) of previous entry, empty for the first
    proof: Optional[Proof] = None   # None until signed

    def to_dict(self) -> dict:
        d = asdict(self)
        if d["proof"] is None:
            d["proof"] = {}
        return d

    def unsigned_dict(self) -> dict:
        """Payload that gets signed: everything except the proof."""
        return {k: v for k, v in self.to_dict().items() if k != "proof"}


@dataclass(frozen=True)
class Confirmation:
    """Ledger confirmation reference for a finalized entry."""
    tx_id: str
    index: int

    def __str__(self) -> str:
        return self.tx_id


@dataclass(frozen=True)
class FileRecord:
    id: int
    owner: str
    content_address: str
    key_commitment: str
    created_at: int


@dataclass(frozen=True)
class AccessGrant:
    """Current projection of the latest grant/revoke fact for a (file, grantee) pair."""
    file_id: int
    grantee: str
    expires_at: int          # 0 = never expires
    granted_at: int
    revoked: bool = False

    def is_active(self, now: int) -> bool:
        if self.revoked:
            return False
        return self.expires_at == 0 or self.expires_at > now


@dataclass(frozen=True)
class AuditEvent:
    file_id: int
    user: str
    granted: bool
    timestamp: int
    sequence: int
    confirmation: str = ""


@dataclass(frozen=True)
class AuditOutcome:
    """Result of a best-effort audit append. Never raised, only reported."""
    confirmation: Optional[Confirmation] = None
    error: Optional[str] = None

    @property
    def recorded(self) -> bool:
        return self.confirmation is not None


@dataclass(frozen=True)
class Readiness:
    component: str
    ready: bool
    reason: str = ""

    def __bool__(self):
        return self.ready


@dataclass(frozen=True)
class UploadResult:
    file_id: int
    content_address: str
    confirmation: Confirmation
    key: str = field(repr=False)   # raw key, handed to the caller exactly once


@dataclass(frozen=True)
class AccessCheck:
    file_id: int
    user: str
    granted: bool
    audit: AuditOutcome = field(default_factory=AuditOutcome)


@dataclass(frozen=True)
class DownloadResult:
    file_id: int
    plaintext: bytes = field(repr=False)
    audit: AuditOutcome = field(default_factory=AuditOutcome)
