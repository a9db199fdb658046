# sharevault/blobstore/retry.py
import logging
import time
from typing import Callable, TypeVar

from sharevault.config import RetryPolicy
from sharevault.core.types import Readiness
from sharevault.errors import StoreError
from . import BlobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryingBlobStore(BlobStore):
    """
    Wraps another store and retries transient `StoreError`s with exponential
    backoff. `NotFoundError` and `ValidationError` pass straight through.
    """

    def __init__(self, inner: BlobStore, policy: RetryPolicy,
                 sleep: Callable[[float], None] = time.sleep):
        self.inner = inner
        self.policy = policy
        self._sleep = sleep
        self.name = inner.name

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except StoreError as e:
                if attempt >= self.policy.attempts:
                    logger.warning("%s %s failed after %d attempts: %s",
                                   self.name, op, attempt, e)
                    raise
                delay = self.policy.delay_for(attempt)
                logger.warning("%s %s failed (attempt %d/%d), retrying in %.2fs: %s",
                               self.name, op, attempt, self.policy.attempts, delay, e)
                self._sleep(delay)
                attempt += 1

    def put(self, data: bytes) -> str:
        return self._call("put", lambda: self.inner.put(data))

    def get(self, address: str) -> bytes:
        return self._call("get", lambda: self.inner.get(address))

    def readiness(self) -> Readiness:
        return self.inner.readiness()

    def close(self) -> None:
        self.inner.close()
