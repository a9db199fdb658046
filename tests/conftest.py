# tests/conftest.py
import pytest

from sharevault.blobstore import InMemoryBlobStore
from sharevault.chain.ledger import AccessLedger
from sharevault.crypto.signing import LedgerKeyPair
from sharevault.orchestrator import DistributionOrchestrator

NOW = 1_767_225_600  # 2026-01-01T00:00:00Z


class FakeClock:
    """Ledger clock the tests can move by hand."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signer() -> LedgerKeyPair:
    return LedgerKeyPair.generate()


@pytest.fixture
def ledger(signer: LedgerKeyPair, clock: FakeClock) -> AccessLedger:
    return AccessLedger(signer=signer, storage="memory:", clock=clock)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def vault(ledger: AccessLedger, blob_store: InMemoryBlobStore) -> DistributionOrchestrator:
    return DistributionOrchestrator(ledger=ledger, blob_store=blob_store)
