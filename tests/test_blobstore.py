# tests/test_blobstore.py
import hashlib

import pytest
import requests

from sharevault.blobstore import (
    BlobStore,
    FileSystemBlobStore,
    InMemoryBlobStore,
    RetryingBlobStore,
    create_blob_store,
)
from sharevault.blobstore.http import IpfsHttpBlobStore, PinataBlobStore
from sharevault.config import BlobProvider, BlobStoreConfig, Credentials, RetryPolicy
from sharevault.errors import NotFoundError, StoreError, ValidationError


# ── memory ─────────────────────────────────────────────────────────────────

def test_memory_store_roundtrip():
    store = InMemoryBlobStore()
    address = store.put(b"sealed bytes")
    assert address == hashlib.sha256(b"sealed bytes").hexdigest()
    assert store.get(address) == b"sealed bytes"
    assert address in store
    assert store.put(b"sealed bytes") == address
    assert len(store) == 1


def test_memory_store_unpinned_blob_is_not_found():
    store = InMemoryBlobStore()
    address = store.put(b"data")
    store.unpin(address)
    with pytest.raises(NotFoundError):
        store.get(address)


def test_memory_store_closed():
    store = InMemoryBlobStore()
    store.close()
    assert not store.readiness()
    with pytest.raises(StoreError):
        store.put(b"x")


# ── filesystem ─────────────────────────────────────────────────────────────

def test_filesystem_store_layout(tmp_path):
    store = FileSystemBlobStore(tmp_path / "blobs")
    address = store.put(b"payload")
    path = tmp_path / "blobs" / address[:2] / address[2:4] / address
    assert path.read_bytes() == b"payload"
    assert store.get(address) == b"payload"
    assert store.readiness()


def test_filesystem_store_is_idempotent_and_leaves_no_temp_files(tmp_path):
    store = FileSystemBlobStore(tmp_path)
    first = store.put(b"same")
    second = store.put(b"same")
    assert first == second
    assert not list(tmp_path.rglob(".tmp-*"))


def test_filesystem_store_errors(tmp_path):
    store = FileSystemBlobStore(tmp_path)
    with pytest.raises(NotFoundError):
        store.get("0" * 64)
    with pytest.raises(ValidationError):
        store.get("../../etc/passwd")

    address = store.put(b"gone soon")
    store.unpin(address)
    with pytest.raises(NotFoundError):
        store.get(address)


def test_filesystem_store_survives_reopen(tmp_path):
    address = FileSystemBlobStore(tmp_path).put(b"durable")
    assert FileSystemBlobStore(tmp_path).get(address) == b"durable"


# ── retry ──────────────────────────────────────────────────────────────────

class FlakyStore(BlobStore):
    name = "flaky"

    def __init__(self, failures: int, error=StoreError):
        self.failures = failures
        self.error = error
        self.calls = 0
        self.inner = InMemoryBlobStore()

    def put(self, data):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("temporarily unavailable")
        return self.inner.put(data)

    def get(self, address):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("temporarily unavailable")
        return self.inner.get(address)


def test_retry_recovers_with_backoff():
    sleeps = []
    flaky = FlakyStore(failures=2)
    store = RetryingBlobStore(flaky, RetryPolicy(attempts=3), sleep=sleeps.append)

    address = store.put(b"data")
    assert flaky.inner.get(address) == b"data"
    assert flaky.calls == 3
    assert sleeps == pytest.approx([0.2, 0.4])
    assert store.name == "flaky"


def test_retry_gives_up_after_attempts():
    sleeps = []
    flaky = FlakyStore(failures=10)
    store = RetryingBlobStore(flaky, RetryPolicy(attempts=3), sleep=sleeps.append)

    with pytest.raises(StoreError):
        store.get("anything")
    assert flaky.calls == 3
    assert len(sleeps) == 2


def test_retry_does_not_retry_not_found():
    sleeps = []
    flaky = FlakyStore(failures=5, error=NotFoundError)
    store = RetryingBlobStore(flaky, RetryPolicy(attempts=4), sleep=sleeps.append)

    with pytest.raises(NotFoundError):
        store.get("missing")
    assert flaky.calls == 1
    assert sleeps == []


def test_backoff_is_capped():
    policy = RetryPolicy(attempts=10, initial_delay=1.0, max_delay=3.0)
    assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


# ── http back-ends ─────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status_code=200, json_body=None, content=b"", reason="OK"):
        self.status_code = status_code
        self._json = json_body
        self.content = content
        self.reason = reason
        self.text = content.decode("utf-8", "replace") if content else str(json_body)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


class FakeSession:
    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []
        self.auth = None
        self.closed = False

    def _respond(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    def post(self, url, **kwargs):
        return self._respond("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)

    def close(self):
        self.closed = True


def test_ipfs_put_and_get():
    session = FakeSession(
        FakeResponse(json_body={"Hash": "bafybeigdyr", "Size": "12"}),
        FakeResponse(content=b"sealed"),
    )
    store = IpfsHttpBlobStore("http://node:5001/", credentials=Credentials("id", "secret"),
                              session=session)

    assert store.put(b"sealed") == "bafybeigdyr"
    assert store.get("bafybeigdyr") == b"sealed"
    assert session.auth == ("id", "secret")

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://node:5001/api/v0/add")
    assert kwargs["params"]["pin"] == "true"
    assert kwargs["files"]["file"][1] == b"sealed"
    assert session.calls[1][1] == "http://node:5001/api/v0/cat"
    assert session.calls[1][2]["params"] == {"arg": "bafybeigdyr"}

    store.close()
    assert session.closed


def test_ipfs_error_mapping():
    store = IpfsHttpBlobStore(session=FakeSession(FakeResponse(status_code=404, reason="Not Found")))
    with pytest.raises(NotFoundError):
        store.get("bafy-missing")

    kubo_missing = FakeResponse(
        status_code=500, reason="Internal Server Error",
        content=b'{"Message":"block was not found locally (offline): ipld: could not find bafy","Code":0}',
    )
    store = IpfsHttpBlobStore(session=FakeSession(kubo_missing))
    with pytest.raises(NotFoundError):
        store.get("bafy")

    store = IpfsHttpBlobStore(session=FakeSession(FakeResponse(status_code=502, reason="Bad Gateway")))
    with pytest.raises(StoreError):
        store.get("bafy")

    store = IpfsHttpBlobStore(session=FakeSession(error=requests.ConnectionError("refused")))
    with pytest.raises(StoreError, match="unreachable"):
        store.put(b"data")

    store = IpfsHttpBlobStore(session=FakeSession(FakeResponse(json_body={"Name": "x"})))
    with pytest.raises(StoreError, match="Unexpected"):
        store.put(b"data")


def test_missing_cid_on_kubo_is_not_retried():
    missing = FakeResponse(status_code=500, reason="Internal Server Error",
                           content=b'{"Message":"merkledag: not found","Code":0}')
    session = FakeSession(missing)
    sleeps = []
    store = RetryingBlobStore(IpfsHttpBlobStore(session=session), RetryPolicy(attempts=3), sleep=sleeps.append)

    with pytest.raises(NotFoundError):
        store.get("bafy-unpinned")
    assert len(session.calls) == 1
    assert sleeps == []


def test_other_kubo_500_is_retried():
    failing = [FakeResponse(status_code=500, reason="Internal Server Error",
                            content=b'{"Message":"context deadline exceeded","Code":0}') for _ in range(2)]
    session = FakeSession(*failing, FakeResponse(content=b"sealed"))
    sleeps = []
    store = RetryingBlobStore(IpfsHttpBlobStore(session=session), RetryPolicy(attempts=3), sleep=sleeps.append)

    assert store.get("bafy") == b"sealed"
    assert len(session.calls) == 3
    assert sleeps == pytest.approx([0.2, 0.4])


def test_pinata_put_sends_credentials():
    session = FakeSession(FakeResponse(json_body={"IpfsHash": "QmPinned"}))
    store = PinataBlobStore(Credentials("api-key", "api-secret"), session=session)

    assert store.readiness()
    assert store.put(b"blob") == "QmPinned"
    method, url, kwargs = session.calls[0]
    assert url == "https://api.pinata.cloud/pinning/pinFileToIPFS"
    assert kwargs["headers"] == {"pinata_api_key": "api-key", "pinata_secret_api_key": "api-secret"}


def test_pinata_get_uses_gateway():
    session = FakeSession(FakeResponse(content=b"blob"))
    store = PinataBlobStore(None, gateway="https://gw.example/", session=session)
    assert store.get("QmPinned") == b"blob"
    assert session.calls[0][:2] == ("GET", "https://gw.example/ipfs/QmPinned")


def test_pinata_without_credentials_is_not_ready():
    store = PinataBlobStore(None, session=FakeSession())
    assert not store.readiness()
    with pytest.raises(ValidationError):
        store.put(b"blob")


def test_pinata_rejected_credentials():
    store = PinataBlobStore(Credentials("k", "s"),
                            session=FakeSession(FakeResponse(status_code=401, reason="Unauthorized")))
    with pytest.raises(ValidationError, match="credentials"):
        store.put(b"blob")


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_credentials_are_not_retried(status):
    session = FakeSession(*[FakeResponse(status_code=status, reason="Forbidden") for _ in range(3)])
    sleeps = []
    store = RetryingBlobStore(PinataBlobStore(Credentials("k", "s"), session=session),
                              RetryPolicy(attempts=3), sleep=sleeps.append)

    with pytest.raises(ValidationError):
        store.put(b"blob")
    assert len(session.calls) == 1
    assert sleeps == []


# ── factory ────────────────────────────────────────────────────────────────

def test_factory_builds_each_provider(tmp_path):
    assert isinstance(create_blob_store(BlobStoreConfig(provider=BlobProvider.MEMORY)), InMemoryBlobStore)

    fs = create_blob_store(BlobStoreConfig(provider=BlobProvider.FILESYSTEM, root=tmp_path))
    assert isinstance(fs, FileSystemBlobStore)

    ipfs = create_blob_store(BlobStoreConfig(provider=BlobProvider.IPFS, endpoint="http://ipfs:5001"))
    assert isinstance(ipfs, IpfsHttpBlobStore)
    assert ipfs.endpoint == "http://ipfs:5001"
    ipfs.close()

    pinata = create_blob_store(BlobStoreConfig(provider=BlobProvider.PINATA))
    assert isinstance(pinata, PinataBlobStore)
    assert pinata.gateway == PinataBlobStore.DEFAULT_GATEWAY
    pinata.close()


def test_factory_wraps_with_retry(tmp_path):
    store = create_blob_store(BlobStoreConfig(provider=BlobProvider.MEMORY), retry=RetryPolicy())
    assert isinstance(store, RetryingBlobStore)
    assert store.name == InMemoryBlobStore.name


def test_factory_requires_filesystem_root():
    with pytest.raises(ValidationError):
        create_blob_store(BlobStoreConfig(provider=BlobProvider.FILESYSTEM, root=None))
