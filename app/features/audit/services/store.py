"""
Scan Record Store

Single source of truth for scan state. Values are always replaced whole:
readers get their own copy, writers hand over a complete record, so nobody
observes a half-written scan. Short read-modify-write sequences (runner
merge, final enrichment write) hold the per-record lock from `lock()`.
Enrichment itself runs outside that lock behind a claim from
`claim_enrichment()`, so only one request calls the suggestion generator.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from redis import Redis
from redis.exceptions import LockError, LockNotOwnedError, WatchError

from app.features.audit.schemas.audit import ScanRecord
from app.platform.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class ScanStore(ABC):
    """Interface shared by the in-memory and Redis stores."""

    @abstractmethod
    def create(self, record: ScanRecord) -> str: ...

    @abstractmethod
    def get(self, scan_id: str) -> ScanRecord: ...

    @abstractmethod
    def put(self, scan_id: str, record: ScanRecord) -> None: ...

    @abstractmethod
    def lock(self, scan_id: str):
        """Context manager holding the per-record lock."""

    @abstractmethod
    def claim_enrichment(self, scan_id: str) -> Optional[str]:
        """Return a claim token, or None when another request holds the claim."""

    @abstractmethod
    def release_enrichment(self, scan_id: str, token: str) -> None: ...


class InMemoryScanStore(ScanStore):
    def __init__(self):
        self._records: Dict[str, ScanRecord] = {}
        self._record_locks: Dict[str, threading.Lock] = {}
        self._claims: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, record: ScanRecord) -> str:
        with self._lock:
            if record.scan_id in self._records:
                raise ValueError(f"Scan {record.scan_id} already exists")
            self._records[record.scan_id] = record.model_copy(deep=True)
            self._record_locks[record.scan_id] = threading.Lock()
        return record.scan_id

    def get(self, scan_id: str) -> ScanRecord:
        with self._lock:
            record = self._records.get(scan_id)
        if record is None:
            raise NotFoundError("Scan not found")
        return record.model_copy(deep=True)

    def put(self, scan_id: str, record: ScanRecord) -> None:
        snapshot = record.model_copy(deep=True)
        with self._lock:
            if scan_id not in self._records:
                raise NotFoundError("Scan not found")
            self._records[scan_id] = snapshot

    @contextmanager
    def lock(self, scan_id: str) -> Iterator[None]:
        with self._lock:
            record_lock = self._record_locks.get(scan_id)
        if record_lock is None:
            raise NotFoundError("Scan not found")
        with record_lock:
            yield

    def claim_enrichment(self, scan_id: str) -> Optional[str]:
        with self._lock:
            if scan_id not in self._records:
                raise NotFoundError("Scan not found")
            if scan_id in self._claims:
                return None
            token = uuid.uuid4().hex
            self._claims[scan_id] = token
            return token

    def release_enrichment(self, scan_id: str, token: str) -> None:
        with self._lock:
            if self._claims.get(scan_id) == token:
                del self._claims[scan_id]


class RedisScanStore(ScanStore):
    """
    Records stored as JSON under scan:<id>.

    Locks and enrichment claims expire after `lock_timeout` seconds so a
    crashed worker cannot wedge a scan.
    """

    KEY_PREFIX = "scan:"
    LOCK_PREFIX = "scan-lock:"
    CLAIM_PREFIX = "scan-enriching:"

    def __init__(self, client: Redis, lock_timeout: float = 180):
        self.client = client
        self.lock_timeout = lock_timeout

    @classmethod
    def from_url(cls, url: str, lock_timeout: float = 180) -> "RedisScanStore":
        client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, lock_timeout=lock_timeout)

    def _key(self, scan_id: str) -> str:
        return f"{self.KEY_PREFIX}{scan_id}"

    def create(self, record: ScanRecord) -> str:
        created = self.client.set(self._key(record.scan_id), record.model_dump_json(), nx=True)
        if not created:
            raise ValueError(f"Scan {record.scan_id} already exists")
        return record.scan_id

    def get(self, scan_id: str) -> ScanRecord:
        raw = self.client.get(self._key(scan_id))
        if raw is None:
            raise NotFoundError("Scan not found")
        return ScanRecord.model_validate_json(raw)

    def put(self, scan_id: str, record: ScanRecord) -> None:
        replaced = self.client.set(self._key(scan_id), record.model_dump_json(), xx=True)
        if not replaced:
            raise NotFoundError("Scan not found")

    @contextmanager
    def lock(self, scan_id: str) -> Iterator[None]:
        if not self.client.exists(self._key(scan_id)):
            raise NotFoundError("Scan not found")
        lock = self.client.lock(
            f"{self.LOCK_PREFIX}{scan_id}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_timeout,
        )
        if not lock.acquire():
            raise LockError(f"Could not acquire lock for scan {scan_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockNotOwnedError:
                # the guarded write already went through
                logger.warning(f"Lock for scan {scan_id} expired before release")

    def claim_enrichment(self, scan_id: str) -> Optional[str]:
        if not self.client.exists(self._key(scan_id)):
            raise NotFoundError("Scan not found")
        token = uuid.uuid4().hex
        claimed = self.client.set(
            f"{self.CLAIM_PREFIX}{scan_id}",
            token,
            nx=True,
            px=int(self.lock_timeout * 1000),
        )
        return token if claimed else None

    def release_enrichment(self, scan_id: str, token: str) -> None:
        key = f"{self.CLAIM_PREFIX}{scan_id}"
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                if pipe.get(key) == token:
                    pipe.multi()
                    pipe.delete(key)
                    pipe.execute()
                else:
                    pipe.unwatch()
            except WatchError:
                logger.warning(f"Enrichment claim for scan {scan_id} changed during release")


def build_scan_store(redis_url: str = None, lock_timeout: float = 180) -> ScanStore:
    if redis_url:
        logger.info("Using Redis scan store")
        return RedisScanStore.from_url(redis_url, lock_timeout=lock_timeout)
    logger.info("Using in-memory scan store")
    return InMemoryScanStore()
