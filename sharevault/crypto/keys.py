# sharevault/crypto/keys.py
"""
Symmetric file keys and their ledger commitments.

A key travels as 64 lowercase hex chars. The ledger only ever sees
`commit(key)`; the key itself is returned to the uploader once and never
persisted by any component.
"""

import hashlib
import hmac
import secrets
from typing import Union

from sharevault.errors import CryptoError

KEY_SIZE = 32           # bytes, AES-256
KEY_HEX_LENGTH = KEY_SIZE * 2


def generate_key() -> str:
    """Fresh 256-bit key from the OS CSPRNG, hex encoded."""
    return secrets.token_bytes(KEY_SIZE).hex()


def key_bytes(key: Union[str, bytes]) -> bytes:
    """Accept the hex transport form or 32 raw bytes; anything else is a CryptoError."""
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    elif isinstance(key, str):
        try:
            raw = bytes.fromhex(key.strip())
        except ValueError as e:
            raise CryptoError("Key is not valid hex") from e
    else:
        raise CryptoError(f"Unsupported key type: {type(key).__name__}")

    if len(raw) != KEY_SIZE:
        raise CryptoError(f"Key must be {KEY_SIZE * 8} bits, got {len(raw) * 8}")
    return raw


def key_hex(key: Union[str, bytes]) -> str:
    """Normalized hex form, the exact string the commitment is computed over."""
    return key_bytes(key).hex()


def commit(key: Union[str, bytes]) -> str:
    """SHA-256 over the key's hex representation."""
    return hashlib.sha256(key_hex(key).encode("utf-8")).hexdigest()


def matches_commitment(key: Union[str, bytes], commitment: str) -> bool:
    try:
        candidate = commit(key)
    except CryptoError:
        return False
    return hmac.compare_digest(candidate, commitment.lower())
