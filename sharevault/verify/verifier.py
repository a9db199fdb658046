# sharevault/verify/verifier.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sharevault.core.types import LedgerEntry
from sharevault.crypto.hashing import entry_hash
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.errors import ShareVaultError
from sharevault.storage import StorageBackend


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # "hash_chain", "signature", "sequence", "audit", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)
    entries: int = 0

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"Ledger is valid ✓ ({self.entries} entries)"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class LedgerVerifier:
    """
    Offline verifier for a ledger entry log.
    Checks index continuity, the hash chain, the operator signature on every
    entry, and that each file's audit sequence runs 0, 1, 2, ... without gaps.
    """

    def __init__(self, trusted_key_b64url: str):
        if not trusted_key_b64url:
            raise ValueError("trusted ledger public key is required")
        self.trusted_key_b64url = trusted_key_b64url
        self._keys = LedgerKeyPair.from_public_b64url(trusted_key_b64url)

    def verify(self, chain: List[LedgerEntry]) -> VerificationResult:
        if not chain:
            return VerificationResult(True, "Empty ledger is valid")

        result = VerificationResult(True, entries=len(chain))

        # 1. Index continuity and presence of proofs
        for i, entry in enumerate(chain):
            if entry.index != i:
                result.failures.append(VerificationFailure(i, f"Index mismatch: expected {i}, got {entry.index}", "sequence"))
            if entry.proof is None:
                result.failures.append(VerificationFailure(i, "Missing proof/signature", "signature"))

        if result.failures:
            result.is_valid = False
            result.message = f"Failed with {len(result.failures)} issues"
            return result

        # 2. Hash chain
        if chain[0].prev_hash != "":
            result.failures.append(VerificationFailure(0, "First entry must not reference a predecessor", "hash_chain"))
        for i in range(1, len(chain)):
            if chain[i].prev_hash != entry_hash(chain[i - 1]):
                result.failures.append(VerificationFailure(i, "prev_hash does not match previous entry hash", "hash_chain"))

        # 3. Signatures
        for i, entry in enumerate(chain):
            if entry.proof.verification_method and entry.proof.verification_method != self.trusted_key_b64url:
                result.failures.append(VerificationFailure(i, "Signed by an untrusted key", "signature"))
                continue
            if not self._keys.verify_entry(entry):
                result.failures.append(VerificationFailure(i, "Invalid signature", "signature"))

        # 4. Per-file audit sequences
        expected: Dict[int, int] = {}
        for i, entry in enumerate(chain):
            if entry.kind != "access_logged":
                continue
            file_id = entry.payload.get("file_id")
            want = expected.get(file_id, 0)
            got = entry.payload.get("sequence")
            if got != want:
                result.failures.append(VerificationFailure(
                    i, f"Audit sequence for file {file_id}: expected {want}, got {got}", "audit"))
            expected[file_id] = want + 1

        result.is_valid = not result.failures
        result.message = "Valid ledger" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def verify_from_storage(self, storage: StorageBackend) -> VerificationResult:
        """Load entries from persistent storage and verify them."""
        try:
            chain = storage.load_entries(verify_links=False)
        except ShareVaultError as e:
            return VerificationResult(
                False,
                f"Failed to load ledger from storage: {e}",
                [VerificationFailure(-1, str(e), "storage")],
            )
        return self.verify(chain)
