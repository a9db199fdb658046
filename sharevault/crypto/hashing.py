# sharevault/crypto/hashing.py
import hashlib

from sharevault.core.types import LedgerEntry
from sharevault.core.canon import canonical_json


def entry_hash(entry: LedgerEntry) -> str:
    """sha256 hex over the canonical form of the full entry, proof included."""
    return hashlib.sha256(canonical_json(entry.to_dict())).hexdigest()


def tx_id(entry: LedgerEntry) -> str:
    """Confirmation reference handed back to callers."""
    return "0x" + entry_hash(entry)
