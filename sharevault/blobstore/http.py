# sharevault/blobstore/http.py
"""
IPFS-backed stores reached over HTTP.

`IpfsHttpBlobStore` talks to any node exposing the Kubo RPC API (local node,
Infura, ...). `PinataBlobStore` uses Pinata's pinning REST API for writes and
its public gateway for reads.
"""

import logging
import re
from typing import Optional

import requests

from sharevault.config import Credentials
from sharevault.core.types import Readiness
from sharevault.errors import NotFoundError, StoreError, ValidationError
from . import BlobStore

logger = logging.getLogger(__name__)


# Kubo answers `cat` for an unknown or unpinned CID with a 500 and one of these messages.
_KUBO_NOT_FOUND_RE = re.compile(r"not found|could not find|no link named", re.IGNORECASE)


def _raise_for_status(response: requests.Response, op: str, address: str = "") -> None:
    if response.status_code == 404:
        raise NotFoundError(f"No blob pinned at {address}")
    if response.status_code == 500 and address and _KUBO_NOT_FOUND_RE.search(response.text or ""):
        raise NotFoundError(f"No blob pinned at {address}")
    if response.status_code in (401, 403):
        # credential rejections are never retried
        raise ValidationError(f"{op} rejected ({response.status_code}): check blob store credentials")
    if response.status_code >= 400:
        raise StoreError(f"{op} failed: {response.status_code} {response.reason} - {response.text[:200]}")


class IpfsHttpBlobStore(BlobStore):
    name = "ipfs-blob-store"
    DEFAULT_ENDPOINT = "http://127.0.0.1:5001"

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, credentials: Optional[Credentials] = None,
                 timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if credentials is not None:
            self.session.auth = (credentials.key, credentials.secret)

    def _post(self, path: str, **kwargs) -> requests.Response:
        try:
            return self.session.post(f"{self.endpoint}/api/v0/{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"IPFS node unreachable at {self.endpoint}: {e}") from e

    def put(self, data: bytes) -> str:
        response = self._post("add", params={"pin": "true", "cid-version": "1"},
                              files={"file": ("blob", data, "application/octet-stream")})
        _raise_for_status(response, "IPFS add")
        try:
            address = response.json()["Hash"]
        except (ValueError, KeyError) as e:
            raise StoreError(f"Unexpected IPFS add response: {response.text[:200]}") from e
        logger.debug("Pinned %d bytes on IPFS as %s", len(data), address)
        return address

    def get(self, address: str) -> bytes:
        if not address:
            raise ValidationError("Content address is required")
        response = self._post("cat", params={"arg": address})
        _raise_for_status(response, "IPFS cat", address)
        return response.content

    def readiness(self) -> Readiness:
        if not self.endpoint:
            return Readiness(self.name, False, "no endpoint configured")
        return Readiness(self.name, True)

    def close(self) -> None:
        self.session.close()


class PinataBlobStore(BlobStore):
    name = "pinata-blob-store"
    DEFAULT_ENDPOINT = "https://api.pinata.cloud"
    DEFAULT_GATEWAY = "https://gateway.pinata.cloud"

    def __init__(self, credentials: Optional[Credentials], endpoint: str = DEFAULT_ENDPOINT,
                 gateway: str = DEFAULT_GATEWAY, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.credentials = credentials
        self.endpoint = endpoint.rstrip("/")
        self.gateway = gateway.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def put(self, data: bytes) -> str:
        if self.credentials is None:
            raise ValidationError("Pinata API key and secret are not configured")
        headers = {
            "pinata_api_key": self.credentials.key,
            "pinata_secret_api_key": self.credentials.secret,
        }
        try:
            response = self.session.post(
                f"{self.endpoint}/pinning/pinFileToIPFS",
                headers=headers,
                files={"file": ("file", data, "application/octet-stream")},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"Pinata unreachable: {e}") from e
        _raise_for_status(response, "Pinata pin")
        try:
            address = response.json()["IpfsHash"]
        except (ValueError, KeyError) as e:
            raise StoreError(f"Unexpected Pinata response: {response.text[:200]}") from e
        logger.debug("Pinned %d bytes on Pinata as %s", len(data), address)
        return address

    def get(self, address: str) -> bytes:
        if not address:
            raise ValidationError("Content address is required")
        try:
            response = self.session.get(f"{self.gateway}/ipfs/{address}", timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreError(f"Pinata gateway unreachable: {e}") from e
        _raise_for_status(response, "Pinata gateway fetch", address)
        return response.content

    def readiness(self) -> Readiness:
        if self.credentials is None:
            return Readiness(self.name, False, "set SHAREVAULT_BLOB_KEY and SHAREVAULT_BLOB_SECRET")
        return Readiness(self.name, True)

    def close(self) -> None:
        self.session.close()
