# sharevault/__init__.py
"""
sharevault: encrypted file distribution over a tamper-evident access ledger.

Files are sealed client-side in an AES-256-CBC envelope, parked in a
content-addressed blob store, and registered on an append-only ledger that
records ownership, time-bounded grants and an audit trail of every access
attempt. Ledger entries are hash-chained and Ed25519-signed.
"""

__version__ = "0.1.0"

from sharevault.chain.ledger import AccessLedger
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.orchestrator import DistributionOrchestrator
from sharevault.verify.verifier import LedgerVerifier

__all__ = ["AccessLedger", "DistributionOrchestrator", "LedgerKeyPair", "LedgerVerifier"]
