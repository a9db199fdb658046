# sharevault/config.py
"""Configuration primitives, resolved once at startup."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from sharevault.errors import ValidationError


def default_home() -> Path:
    return Path.home() / ".sharevault"


class BlobProvider(str, Enum):
    MEMORY = "memory"
    FILESYSTEM = "filesystem"
    IPFS = "ipfs"
    PINATA = "pinata"

    @classmethod
    def parse(cls, value: str) -> "BlobProvider":
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValidationError(f"Unknown blob provider '{value}' (expected one of: {choices})")


@dataclass(frozen=True)
class Credentials:
    key: str
    secret: str

    def __repr__(self) -> str:
        return f"Credentials(key={self.key[:4]}..., secret=***)"


@dataclass
class RetryPolicy:
    attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 5.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.attempts < 1:
            raise ValidationError("RetryPolicy.attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValidationError("RetryPolicy delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        return min(self.max_delay, self.initial_delay * (self.multiplier ** (attempt - 1)))


@dataclass
class BlobStoreConfig:
    provider: BlobProvider = BlobProvider.FILESYSTEM
    endpoint: Optional[str] = None
    credentials: Optional[Credentials] = None
    root: Optional[Path] = None             # filesystem provider only
    gateway: Optional[str] = None           # pinata read gateway
    timeout: float = 30.0


@dataclass
class LedgerConfig:
    storage_uri: str = field(default_factory=lambda: f"sqlite://{default_home() / 'ledger.db'}")
    key_path: Path = field(default_factory=lambda: default_home() / "ledger.key")
    finality_timeout: float = 30.0


@dataclass
class VaultConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    blob_store: BlobStoreConfig = field(default_factory=BlobStoreConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    log_level: str = "WARNING"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "VaultConfig":
        """
        Resolve configuration from SHAREVAULT_* environment variables, falling
        back to defaults under ~/.sharevault. CLI flags override the result.
        """
        env = os.environ if env is None else env

        ledger = LedgerConfig()
        if env.get("SHAREVAULT_LEDGER_DB"):
            db = env["SHAREVAULT_LEDGER_DB"]
            ledger.storage_uri = db if db.startswith(("sqlite://", "memory:")) else f"sqlite://{db}"
        if env.get("SHAREVAULT_LEDGER_KEY"):
            ledger.key_path = Path(env["SHAREVAULT_LEDGER_KEY"])
        if env.get("SHAREVAULT_FINALITY_TIMEOUT"):
            ledger.finality_timeout = _parse_float(env, "SHAREVAULT_FINALITY_TIMEOUT")

        blob = BlobStoreConfig()
        if env.get("SHAREVAULT_BLOB_PROVIDER"):
            blob.provider = BlobProvider.parse(env["SHAREVAULT_BLOB_PROVIDER"])
        blob.endpoint = env.get("SHAREVAULT_BLOB_ENDPOINT") or None
        blob.gateway = env.get("SHAREVAULT_BLOB_GATEWAY") or None
        if env.get("SHAREVAULT_BLOB_ROOT"):
            blob.root = Path(env["SHAREVAULT_BLOB_ROOT"])
        elif blob.provider is BlobProvider.FILESYSTEM:
            blob.root = default_home() / "blobs"
        key, secret = env.get("SHAREVAULT_BLOB_KEY"), env.get("SHAREVAULT_BLOB_SECRET")
        if key and secret:
            blob.credentials = Credentials(key=key, secret=secret)

        retry = RetryPolicy()
        if env.get("SHAREVAULT_BLOB_RETRIES"):
            retry.attempts = int(_parse_float(env, "SHAREVAULT_BLOB_RETRIES"))
            retry.__post_init__()

        return VaultConfig(
            ledger=ledger,
            blob_store=blob,
            retry=retry,
            log_level=parse_log_level(env.get("SHAREVAULT_LOG_LEVEL", "WARNING")),
        )


def parse_log_level(value: str) -> str:
    """Upper-cased standard logging level name; anything else is a ValidationError."""
    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValidationError(f"Unknown log level '{value}' (expected DEBUG, INFO, WARNING, ERROR or CRITICAL)")
    return level


def _parse_float(env: Mapping[str, str], name: str) -> float:
    try:
        return float(env[name])
    except ValueError:
        raise ValidationError(f"{name} must be a number, got '{env[name]}'")
