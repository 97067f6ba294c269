"""Document store abstraction + local snapshot and fallback implementations."""

import asyncio
import hashlib
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sellerdesk.documents.models import DocumentBlob, PutResult
from sellerdesk.logging.audit import get_logger

logger = get_logger("documents")


def encode_document(content: Any) -> bytes:
    """Serialized form shared by every backend (2-space indented JSON)."""
    return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


class DocumentStore(ABC):
    """Named JSON documents guarded by an opaque version token."""

    @abstractmethod
    async def get(self, path: str) -> DocumentBlob:
        """Read a document. Never raises: failures come back with ok=False."""
        ...

    @abstractmethod
    async def put(
        self, path: str, content: Any, version_token: str | None, message: str
    ) -> PutResult:
        """Write a document if version_token still matches the stored revision.

        A None token means "create". On failure the old token is returned
        unchanged with ok=False.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if the store holds connections."""
        pass


class LocalSnapshotStore(DocumentStore):
    """One JSON file per document path under a local directory.

    The version token is the SHA-1 of the file bytes, so compare-and-swap
    works the same way it does against the remote host. Nothing here is
    durable across deployments; it is a continuity copy, not a source of truth.
    """

    def __init__(self, directory: str):
        self._dir = Path(directory)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    def _file(self, path: str) -> Path:
        return self._dir / path

    async def get(self, path: str) -> DocumentBlob:
        return await asyncio.to_thread(self._read, path)

    async def put(
        self, path: str, content: Any, version_token: str | None, message: str
    ) -> PutResult:
        return await asyncio.to_thread(self._compare_and_write, path, content, version_token)

    async def write(self, path: str, content: Any) -> str | None:
        """Mirror content without a version check. Returns the new token."""
        return await asyncio.to_thread(self._mirror, path, content)

    def _read(self, path: str) -> DocumentBlob:
        try:
            raw = self._file(path).read_bytes()
        except FileNotFoundError:
            return DocumentBlob(content=[], version_token=None)
        except OSError as e:
            logger.warning(
                "Snapshot read failed",
                extra={"audit_data": {"path": path, "error": str(e)}},
            )
            return DocumentBlob(content=[], version_token=None, ok=False)

        try:
            content = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            content = []
        return DocumentBlob(content=content, version_token=_digest(raw))

    def _compare_and_write(self, path: str, content: Any, version_token: str | None) -> PutResult:
        with self._lock:
            try:
                current = self._current_token(path)
                if current != version_token:
                    return PutResult(version_token=version_token, ok=False, conflict=True)
                return PutResult(version_token=self._replace(path, encode_document(content)), ok=True)
            except OSError as e:
                logger.warning(
                    "Snapshot write failed",
                    extra={"audit_data": {"path": path, "error": str(e)}},
                )
                return PutResult(version_token=version_token, ok=False)

    def _mirror(self, path: str, content: Any) -> str | None:
        data = encode_document(content)
        with self._lock:
            try:
                if self._current_token(path) == _digest(data):
                    return _digest(data)
                return self._replace(path, data)
            except OSError as e:
                logger.warning(
                    "Snapshot mirror failed",
                    extra={"audit_data": {"path": path, "error": str(e)}},
                )
                return None

    def _current_token(self, path: str) -> str | None:
        try:
            return _digest(self._file(path).read_bytes())
        except FileNotFoundError:
            return None

    def _replace(self, path: str, data: bytes) -> str:
        """Atomic write: temp file in the same directory, then rename."""
        target = self._file(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return _digest(data)


class FallbackDocumentStore(DocumentStore):
    """Remote store with a local snapshot behind it.

    Successful remote reads and writes refresh the snapshot. When the remote
    fails, reads are served from the snapshot and writes land there while
    still reporting ok=False, so callers know nothing was durably persisted.
    """

    def __init__(self, remote: DocumentStore, snapshot: LocalSnapshotStore):
        self._remote = remote
        self._snapshot = snapshot

    async def get(self, path: str) -> DocumentBlob:
        blob = await self._remote.get(path)
        if blob.ok:
            await self._snapshot.write(path, blob.content)
            return blob

        local = await self._snapshot.get(path)
        logger.warning(
            "Remote read failed, serving local snapshot",
            extra={"audit_data": {"path": path, "snapshot_found": local.version_token is not None}},
        )
        # A snapshot token means nothing to the remote host
        return DocumentBlob(content=local.content, version_token=None, ok=False)

    async def put(
        self, path: str, content: Any, version_token: str | None, message: str
    ) -> PutResult:
        result = await self._remote.put(path, content, version_token, message)
        if result.conflict:
            return result
        if not result.ok:
            logger.warning(
                "Remote write failed, keeping local snapshot only",
                extra={"audit_data": {"path": path}},
            )
        await self._snapshot.write(path, content)
        return result

    async def close(self) -> None:
        await self._remote.close()
        await self._snapshot.close()


def _digest(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()
