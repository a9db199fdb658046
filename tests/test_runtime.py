# tests/test_runtime.py
import pytest

from sharevault import runtime
from sharevault.chain.ledger import AccessLedger
from sharevault.config import BlobProvider, BlobStoreConfig, LedgerConfig, VaultConfig
from sharevault.errors import LedgerError, ValidationError

COMMITMENT = "12" * 32


@pytest.fixture
def config(tmp_path) -> VaultConfig:
    return VaultConfig(
        ledger=LedgerConfig(
            storage_uri=f"sqlite://{tmp_path / 'ledger.db'}",
            key_path=tmp_path / "ledger.key",
        ),
        blob_store=BlobStoreConfig(provider=BlobProvider.FILESYSTEM, root=tmp_path / "blobs"),
    )


def test_build_and_close(config):
    orchestrator = runtime.build_orchestrator(config)
    assert orchestrator.readiness()
    result = orchestrator.upload("alice", b"hello")
    runtime.close_orchestrator(orchestrator)

    reopened = runtime.build_orchestrator(config)
    try:
        assert reopened.download(result.file_id, "alice", result.key).plaintext == b"hello"
    finally:
        runtime.close_orchestrator(reopened)


def test_blob_store_failure_closes_ledger(config, monkeypatch):
    config.blob_store.root = None
    closed = []
    original_close = AccessLedger.close

    def tracking_close(self):
        closed.append(self)
        original_close(self)

    monkeypatch.setattr(AccessLedger, "close", tracking_close)
    with pytest.raises(ValidationError):
        runtime.build_orchestrator(config)
    assert len(closed) == 1
    assert closed[0].storage is None


def test_missing_key_with_existing_entries_is_refused(config):
    ledger = runtime.open_ledger(config)
    ledger.upload_file("alice", "bafy", COMMITMENT)
    ledger.close()

    config.ledger.key_path.unlink()
    with pytest.raises(LedgerError, match="missing"):
        runtime.open_ledger(config)
    assert not config.ledger.key_path.exists()


def test_key_is_created_for_empty_ledger(config):
    ledger = runtime.open_ledger(config)
    try:
        assert config.ledger.key_path.exists()
        assert ledger.readiness()
    finally:
        ledger.close()
