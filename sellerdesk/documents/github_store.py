"""GitHub contents API document store.

Each document is a JSON file in one repository branch. The blob sha GitHub
returns is the version token; sending it back on write makes the update a
compare-and-swap.
"""

import base64
import json
from typing import Any
from urllib.parse import quote

import httpx

from sellerdesk.documents.models import DocumentBlob, PutResult
from sellerdesk.documents.store import DocumentStore, encode_document
from sellerdesk.logging.audit import get_logger

logger = get_logger("documents.github")


class GitHubDocumentStore(DocumentStore):
    """Reads and writes JSON files through the GitHub contents API."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 20.0,
    ):
        self._token = token
        self._owner = owner
        self._repo = repo
        self._branch = branch
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=10.0))
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self._owner}/{self._repo}/contents/{quote(path, safe='/')}"

    def _headers(self) -> dict:
        return {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "sellerdesk",
        }

    async def get(self, path: str) -> DocumentBlob:
        client = await self._get_client()
        try:
            response = await client.get(
                self._url(path), headers=self._headers(), params={"ref": self._branch}
            )
        except httpx.HTTPError as e:
            _log_failure("get", path, None, str(e))
            return DocumentBlob(content=[], version_token=None, ok=False)

        if response.status_code == 404:
            return DocumentBlob(content=[], version_token=None)
        if response.status_code != 200:
            _log_failure("get", path, response.status_code, response.text)
            return DocumentBlob(content=[], version_token=None, ok=False)

        try:
            payload = response.json()
        except ValueError:
            _log_failure("get", path, response.status_code, "response is not JSON")
            return DocumentBlob(content=[], version_token=None, ok=False)

        sha = payload.get("sha") or None
        return DocumentBlob(content=_decode_content(payload.get("content", "")), version_token=sha)

    async def put(
        self, path: str, content: Any, version_token: str | None, message: str
    ) -> PutResult:
        body = {
            "message": message,
            "content": base64.b64encode(encode_document(content)).decode("ascii"),
            "branch": self._branch,
        }
        if version_token:
            body["sha"] = version_token

        client = await self._get_client()
        try:
            response = await client.put(self._url(path), json=body, headers=self._headers())
        except httpx.HTTPError as e:
            _log_failure("put", path, None, str(e))
            return PutResult(version_token=version_token, ok=False)

        if response.status_code in (200, 201):
            try:
                new_sha = (response.json().get("content") or {}).get("sha")
            except ValueError:
                new_sha = None
            return PutResult(version_token=new_sha or version_token, ok=True)

        _log_failure("put", path, response.status_code, response.text)
        return PutResult(
            version_token=version_token,
            ok=False,
            conflict=_is_conflict(response),
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _decode_content(encoded: str) -> Any:
    """Contents API returns base64 with embedded newlines."""
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return []


def _is_conflict(response: httpx.Response) -> bool:
    # 409: sha does not match the branch head. 422: sha missing for an existing file.
    if response.status_code == 409:
        return True
    return response.status_code == 422 and "sha" in response.text


def _log_failure(operation: str, path: str, status: int | None, detail: str) -> None:
    logger.warning(
        "Document store request failed",
        extra={"audit_data": {
            "operation": operation,
            "path": path,
            "upstream_status": status,
            "detail": detail[:500],
        }},
    )
