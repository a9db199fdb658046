# sharevault/runtime.py
"""Wires configured collaborators into an orchestrator."""

import logging

from sharevault.blobstore import create_blob_store
from sharevault.chain.ledger import AccessLedger
from sharevault.config import VaultConfig
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.errors import LedgerError
from sharevault.orchestrator import DistributionOrchestrator
from sharevault.storage import create_storage

logger = logging.getLogger(__name__)


def open_ledger(config: VaultConfig) -> AccessLedger:
    """
    Open the configured ledger. A signing key is only generated for an empty
    ledger: entries signed by a lost key cannot be extended by a new one.
    """
    key_path = config.ledger.key_path.expanduser()
    storage = create_storage(config.ledger.storage_uri)
    try:
        if not key_path.exists() and storage.load_entries(verify_links=False):
            raise LedgerError(
                f"Signing key {key_path} is missing but the ledger at "
                f"{config.ledger.storage_uri} already has entries; restore the key file"
            )
        signer = LedgerKeyPair.load_or_create(key_path)
        return AccessLedger(
            signer=signer,
            storage=storage,
            finality_timeout=config.ledger.finality_timeout,
        )
    except Exception:
        storage.close()
        raise


def build_orchestrator(config: VaultConfig) -> DistributionOrchestrator:
    ledger = open_ledger(config)
    try:
        blob_store = create_blob_store(config.blob_store, retry=config.retry)
    except Exception:
        ledger.close()
        raise
    logger.debug("Using %s with ledger at %s", blob_store.name, config.ledger.storage_uri)
    return DistributionOrchestrator(ledger=ledger, blob_store=blob_store)


def close_orchestrator(orchestrator: DistributionOrchestrator) -> None:
    orchestrator.ledger.close()
    orchestrator.blob_store.close()
