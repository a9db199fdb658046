# tests/test_orchestrator.py
import pytest

from sharevault.blobstore import InMemoryBlobStore
from sharevault.crypto import envelope, keys
from sharevault.errors import (
    AuthorizationError,
    CryptoError,
    LedgerError,
    NotFoundError,
    NotReadyError,
    ValidationError,
)
from sharevault.orchestrator import SECONDS_PER_DAY, DistributionOrchestrator

DOCUMENT = b"quarterly numbers, do not forward"


class CountingBlobStore(InMemoryBlobStore):
    def __init__(self):
        super().__init__()
        self.gets = 0

    def get(self, address):
        self.gets += 1
        return super().get(address)


@pytest.fixture
def counting_vault(ledger):
    return DistributionOrchestrator(ledger=ledger, blob_store=CountingBlobStore())


def test_upload_registers_file(vault, blob_store):
    result = vault.upload("alice", DOCUMENT)

    assert result.file_id == 1
    assert len(result.key) == 64
    assert result.key not in repr(result)

    record = vault.ledger.get_file(1)
    assert record.owner == "alice"
    assert record.content_address == result.content_address
    assert record.key_commitment == keys.commit(result.key)

    # only ciphertext reaches the store
    sealed = blob_store.get(result.content_address)
    assert DOCUMENT not in sealed
    assert envelope.decrypt(sealed, result.key) == DOCUMENT


def test_upload_twice_creates_two_files(vault):
    first = vault.upload("alice", DOCUMENT)
    second = vault.upload("alice", DOCUMENT)
    assert (first.file_id, second.file_id) == (1, 2)
    assert first.key != second.key
    assert first.content_address != second.content_address


def test_upload_empty_file(vault):
    result = vault.upload("alice", b"")
    assert vault.download(result.file_id, "alice", result.key).plaintext == b""


@pytest.mark.parametrize("owner,data", [("", DOCUMENT), ("alice", "text, not bytes")])
def test_upload_validation(vault, owner, data):
    with pytest.raises(ValidationError):
        vault.upload(owner, data)
    assert vault.ledger.length == 0


def test_owner_download_is_audited(vault):
    up = vault.upload("alice", DOCUMENT)
    result = vault.download(up.file_id, "alice", up.key)

    assert result.plaintext == DOCUMENT
    assert result.audit.recorded
    trail = vault.audit_trail(up.file_id)
    assert [(e.user, e.granted, e.sequence) for e in trail] == [("alice", True, 0)]
    assert trail[0].confirmation == result.audit.confirmation.tx_id


def test_granted_user_downloads_until_revoked(vault):
    up = vault.upload("alice", DOCUMENT)
    vault.grant("alice", up.file_id, "userB")
    assert vault.download(up.file_id, "userB", up.key).plaintext == DOCUMENT

    vault.revoke("alice", up.file_id, "userB")
    with pytest.raises(AuthorizationError):
        vault.download(up.file_id, "userB", up.key)

    trail = vault.audit_trail(up.file_id)
    assert [(e.user, e.granted) for e in trail] == [("userB", True), ("userB", False)]


def test_denied_download_skips_blob_store(counting_vault):
    up = counting_vault.upload("alice", DOCUMENT)

    with pytest.raises(AuthorizationError) as excinfo:
        counting_vault.download(up.file_id, "userC", up.key)

    assert counting_vault.blob_store.gets == 0
    assert excinfo.value.audit.recorded
    trail = counting_vault.audit_trail(up.file_id)
    assert len(trail) == 1
    assert (trail[0].user, trail[0].granted, trail[0].sequence) == ("userC", False, 0)


def test_expired_grant_denies_download(vault, clock):
    up = vault.upload("alice", DOCUMENT)
    vault.grant("alice", up.file_id, "userB", clock.now - 1)
    with pytest.raises(AuthorizationError):
        vault.download(up.file_id, "userB", up.key)


def test_wrong_key_is_rejected_before_fetch(counting_vault):
    up = counting_vault.upload("alice", DOCUMENT)
    with pytest.raises(CryptoError, match="commitment"):
        counting_vault.download(up.file_id, "alice", keys.generate_key())
    assert counting_vault.blob_store.gets == 0
    assert counting_vault.audit_trail(up.file_id) == []


def test_malformed_key_is_rejected(vault):
    up = vault.upload("alice", DOCUMENT)
    with pytest.raises(CryptoError):
        vault.download(up.file_id, "alice", "too-short")


def test_missing_blob_is_not_found(vault, blob_store):
    up = vault.upload("alice", DOCUMENT)
    blob_store.unpin(up.content_address)
    with pytest.raises(NotFoundError):
        vault.download(up.file_id, "alice", up.key)
    assert vault.audit_trail(up.file_id) == []


def test_download_unknown_file(vault):
    with pytest.raises(NotFoundError):
        vault.download(99, "alice", keys.generate_key())


def test_audit_failure_does_not_fail_download(vault, monkeypatch):
    up = vault.upload("alice", DOCUMENT)

    def broken_log(*args, **kwargs):
        raise LedgerError("ledger node went away")

    monkeypatch.setattr(vault.ledger, "log_access", broken_log)
    result = vault.download(up.file_id, "alice", up.key)

    assert result.plaintext == DOCUMENT
    assert not result.audit.recorded
    assert result.audit.error == "LedgerError: ledger node went away"


def test_audit_failure_on_denial_still_denies(vault, monkeypatch):
    up = vault.upload("alice", DOCUMENT)

    def broken_log(*args, **kwargs):
        raise LedgerError("down")

    monkeypatch.setattr(vault.ledger, "log_access", broken_log)
    with pytest.raises(AuthorizationError) as excinfo:
        vault.download(up.file_id, "mallory", up.key)
    assert excinfo.value.audit.error == "LedgerError: down"


def test_registration_failure_orphans_blob(vault, blob_store, monkeypatch):
    def refuse(*args, **kwargs):
        raise LedgerError("no finality")

    monkeypatch.setattr(vault.ledger, "upload_file", refuse)
    with pytest.raises(LedgerError):
        vault.upload("alice", DOCUMENT)
    assert len(blob_store) == 1
    assert vault.ledger.get_file_count() == 0


def test_not_ready_raised_before_side_effects(vault, blob_store):
    vault.ledger.close()
    assert not vault.readiness()
    with pytest.raises(NotReadyError, match="ledger not ready"):
        vault.upload("alice", DOCUMENT)
    assert len(blob_store) == 0


def test_closed_blob_store_is_not_ready(vault, blob_store):
    blob_store.close()
    readiness = vault.readiness()
    assert readiness.component == blob_store.name
    with pytest.raises(NotReadyError):
        vault.check_access(1, "alice")


def test_check_access_logs_attempt(vault):
    up = vault.upload("alice", DOCUMENT)
    allowed = vault.check_access(up.file_id, "alice")
    denied = vault.check_access(str(up.file_id), "userC")

    assert allowed.granted and not denied.granted
    assert allowed.audit.recorded and denied.audit.recorded
    assert [e.sequence for e in vault.audit_trail(up.file_id)] == [0, 1]


def test_grant_for_days(vault, clock):
    up = vault.upload("alice", DOCUMENT)
    vault.grant_for_days("alice", up.file_id, "userB", 2)
    assert vault.ledger.get_grant(up.file_id, "userB").expires_at == clock.now + 2 * SECONDS_PER_DAY

    vault.grant_for_days("alice", up.file_id, "userD", 0)
    assert vault.ledger.get_grant(up.file_id, "userD").expires_at == 0

    clock.advance(2 * SECONDS_PER_DAY)
    assert not vault.check_access(up.file_id, "userB").granted
    assert vault.check_access(up.file_id, "userD").granted

    with pytest.raises(ValidationError):
        vault.grant_for_days("alice", up.file_id, "userB", -1)


def test_grant_by_non_owner(vault):
    up = vault.upload("alice", DOCUMENT)
    with pytest.raises(AuthorizationError):
        vault.grant("mallory", up.file_id, "mallory")


def test_list_files(vault):
    vault.upload("alice", b"one")
    vault.upload("bob", b"two")
    vault.upload("alice", b"three")
    assert [f.id for f in vault.list_files("alice")] == [1, 3]
    assert vault.list_files("nobody") == []
