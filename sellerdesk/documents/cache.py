"""Read-through / write-through cache over a single document path."""

import asyncio
import copy
import time
from collections.abc import Callable
from typing import Any

from sellerdesk.documents.store import DocumentStore
from sellerdesk.errors import ConsistencyConflict
from sellerdesk.logging.audit import get_logger

logger = get_logger("documents.cache")

DEFAULT_TTL = 5.0


class CachedDocument:
    """Short-TTL cache for one document, normalized on every load and save.

    All loads and writes for the path go through one asyncio.Lock, so this
    process never races itself on the version token. Writers in other
    processes can still win the compare-and-swap; that surfaces as a conflict.
    """

    def __init__(
        self,
        store: DocumentStore,
        path: str,
        normalizer: Callable[[Any], Any],
        ttl: float = DEFAULT_TTL,
    ):
        self._store = store
        self._path = path
        self._normalize = normalizer
        self._ttl = ttl
        self._lock = asyncio.Lock()
        self._value: Any = normalizer([])
        self._version_token: str | None = None
        self._fetched_at: float | None = None

    @property
    def path(self) -> str:
        return self._path

    def is_fresh(self) -> bool:
        return self._fetched_at is not None and time.monotonic() - self._fetched_at < self._ttl

    def invalidate(self) -> None:
        self._fetched_at = None

    async def load(self, force: bool = False) -> tuple[Any, str | None]:
        """Return (value, version_token), hitting the store only when stale."""
        async with self._lock:
            # Re-checked under the lock so concurrent readers share one fetch
            if not force and self.is_fresh():
                return self._value, self._version_token
            return await self._fetch()

    async def save(self, value: Any, message: str) -> Any:
        """Replace the whole document with normalize(value)."""
        return await self.mutate(lambda _current: value, message)

    async def mutate(self, fn: Callable[[Any], Any], message: str) -> Any:
        """Read-modify-write: apply fn to the latest stored value and write it back.

        fn receives a private copy and returns the new value; anything it
        raises aborts the write. A stale-token rejection re-reads and re-applies
        fn once; a second rejection raises ConsistencyConflict.
        """
        async with self._lock:
            for attempt in (1, 2):
                current, token = await self._fetch()
                normalized = self._normalize(fn(copy.deepcopy(current)))
                result = await self._store.put(self._path, normalized, token, message)

                if result.conflict:
                    logger.warning(
                        "Version token rejected",
                        extra={"audit_data": {"path": self._path, "attempt": attempt}},
                    )
                    continue

                if not result.ok:
                    logger.warning(
                        "Document not durably persisted",
                        extra={"audit_data": {"path": self._path, "commit_message": message}},
                    )
                # Cached even when ok=False so reads reflect the attempted state
                self._remember(normalized, result.version_token)
                return normalized

            self.invalidate()
            raise ConsistencyConflict(f"Document {self._path} changed concurrently, retry")

    async def _fetch(self) -> tuple[Any, str | None]:
        blob = await self._store.get(self._path)
        self._remember(self._normalize(blob.content), blob.version_token)
        return self._value, self._version_token

    def _remember(self, value: Any, version_token: str | None) -> None:
        self._value = value
        self._version_token = version_token
        self._fetched_at = time.monotonic()
