# sharevault/errors.py
"""
Error taxonomy shared by every component.

Back-end exceptions (sqlite3, requests, OSError, cryptography) are translated
into these at the component boundary so callers only ever see one family.
"""

from typing import Optional


class ShareVaultError(Exception):
    """Base class for all sharevault failures."""


class ValidationError(ShareVaultError):
    """Malformed input or configuration, including rejected credentials. Never retried."""


class NotFoundError(ShareVaultError):
    """Unknown file id or content address."""


class AuthorizationError(ShareVaultError):
    """Access denied. Carries the outcome of the paired audit log attempt, if any."""

    def __init__(self, message: str, audit=None):
        super().__init__(message)
        self.audit = audit


class CryptoError(ShareVaultError):
    """Malformed envelope, wrong key size or padding failure."""


class StoreError(ShareVaultError):
    """Transient blob store failure; the caller may retry."""


class LedgerError(ShareVaultError):
    """Ledger submission, persistence or confirmation failure."""


class NotReadyError(ShareVaultError):
    """A collaborator is not initialized; raised before any side effect."""

    def __init__(self, readiness):
        super().__init__(f"{readiness.component} not ready: {readiness.reason}")
        self.readiness = readiness


def describe(exc: Optional[BaseException]) -> Optional[str]:
    """Short `Type: message` form used in audit outcomes and CLI output."""
    if exc is None:
        return None
    return f"{type(exc).__name__}: {exc}"
