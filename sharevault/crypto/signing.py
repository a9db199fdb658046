# sharevault/crypto/signing.py
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from sharevault.core.canon import canonical_json
from sharevault.core.encoding import b64url_decode, b64url_encode
from sharevault.core.types import LedgerEntry, Proof
from sharevault.errors import LedgerError, ValidationError

logger = logging.getLogger(__name__)


class LedgerKeyPair:
    """
    Ed25519 key of the ledger operator. Every entry appended to the ledger is
    signed with it so the log can be verified offline against one public key.
    A verify-only pair (public key alone) can check but not sign.
    """

    def __init__(self, private_key: Ed25519PrivateKey | None = None,
                 public_key: Ed25519PublicKey | None = None):
        if private_key is None and public_key is None:
            raise ValueError("Either a private or a public key is required")
        self._private = private_key
        self._public = public_key or private_key.public_key()

    @classmethod
    def generate(cls) -> "LedgerKeyPair":
        return cls(private_key=Ed25519PrivateKey.generate())

    @classmethod
    def from_private_b64url(cls, value: str) -> "LedgerKeyPair":
        raw = b64url_decode(value.strip())
        try:
            return cls(private_key=Ed25519PrivateKey.from_private_bytes(raw))
        except ValueError as e:
            raise ValidationError(f"Invalid Ed25519 private key: {e}") from e

    @classmethod
    def from_public_b64url(cls, value: str) -> "LedgerKeyPair":
        raw = b64url_decode(value.strip())
        try:
            return cls(public_key=Ed25519PublicKey.from_public_bytes(raw))
        except ValueError as e:
            raise ValidationError(f"Invalid Ed25519 public key: {e}") from e

    @classmethod
    def load_or_create(cls, path: Union[str, Path]) -> "LedgerKeyPair":
        """Load the signing key from `path`, generating and saving one on first use."""
        path = Path(path).expanduser()
        if path.exists():
            return cls.from_private_b64url(path.read_text(encoding="utf-8"))

        keys = cls.generate()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(keys.private_key_b64url())
        logger.info("Generated new ledger signing key at %s", path)
        return keys

    @property
    def can_sign(self) -> bool:
        return self._private is not None

    def public_key_b64url(self) -> str:
        raw = self._public.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return b64url_encode(raw)

    def private_key_b64url(self) -> str:
        if self._private is None:
            raise LedgerError("Verify-only key pair has no private key")
        raw = self._private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return b64url_encode(raw)

    def sign_bytes(self, data: bytes) -> bytes:
        if self._private is None:
            raise LedgerError("Verify-only key pair cannot sign")
        return self._private.sign(data)

    def verify_bytes(self, signature: bytes, data: bytes) -> bool:
        try:
            self._public.verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def sign_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Return a copy of `entry` carrying a proof over its unsigned canonical form."""
        if entry.proof is not None:
            raise ValueError("Entry is already signed")
        signature = self.sign_bytes(canonical_json(entry.unsigned_dict()))
        proof = Proof(
            created=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            verification_method=self.public_key_b64url(),
            proof_value=b64url_encode(signature),
        )
        return replace(entry, proof=proof)

    def verify_entry(self, entry: LedgerEntry) -> bool:
        if entry.proof is None or not entry.proof.proof_value:
            return False
        try:
            signature = b64url_decode(entry.proof.proof_value)
        except ValidationError:
            return False
        return self.verify_bytes(signature, canonical_json(entry.unsigned_dict()))
