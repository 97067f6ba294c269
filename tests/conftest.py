"""Shared fixtures for the SellerDesk test suite."""

import json
from unittest.mock import MagicMock

import pytest

from sellerdesk.config.settings import get_settings
from sellerdesk.documents.cache import CachedDocument
from sellerdesk.documents.store import LocalSnapshotStore
from sellerdesk.marketplace.client import MarketplaceClient
from sellerdesk.replies.library import ReplyLibrary, normalize_replies
from sellerdesk.tenants.models import Tenant, normalize_tenants
from sellerdesk.tenants.registry import CredentialRegistry
from sellerdesk.tenants.tokens import TokenManager

TENANTS_PATH = "stores_ml.json"
REPLIES_PATH = "quick_replies.json"


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(GITHUB_TOKEN="ghp_x", DOCUMENT_STORE_BACKEND="local")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_settings.cache_clear()

    yield _override

    get_settings.cache_clear()


@pytest.fixture
def snapshot_dir(tmp_path):
    return tmp_path / "snapshots"


@pytest.fixture
def snapshot_store(snapshot_dir) -> LocalSnapshotStore:
    return LocalSnapshotStore(str(snapshot_dir))


@pytest.fixture
def write_document(snapshot_dir):
    """Write a document straight to disk, bypassing every cache."""
    def _write(path: str, content) -> None:
        target = snapshot_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(content, indent=2), encoding="utf-8")

    return _write


@pytest.fixture
def read_document(snapshot_dir):
    def _read(path: str):
        return json.loads((snapshot_dir / path).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def marketplace() -> MagicMock:
    """MarketplaceClient double: async methods become AsyncMocks."""
    client = MagicMock(spec=MarketplaceClient)
    client.authorization_url.return_value = "https://auth.example/authorization?client_id=app-1"
    return client


@pytest.fixture
def tenant_records() -> list[dict]:
    return [
        {
            "tenant_id": 1001,
            "display_name": "Loja Centro",
            "access_token": "APP_USR-access-1001",
            "refresh_token": "TG-refresh-1001",
        },
        {
            "tenant_id": "2002",
            "display_name": "Loja Norte",
            "access_token": "APP_USR-access-2002",
            "refresh_token": "TG-refresh-2002",
        },
    ]


@pytest.fixture
def tenant_document(snapshot_store) -> CachedDocument:
    return CachedDocument(snapshot_store, TENANTS_PATH, normalize_tenants)


@pytest.fixture
def registry(tenant_document) -> CredentialRegistry:
    return CredentialRegistry(tenant_document)


@pytest.fixture
def seeded_registry(registry, write_document, tenant_records) -> CredentialRegistry:
    write_document(TENANTS_PATH, tenant_records)
    return registry


@pytest.fixture
def tokens(marketplace, registry) -> TokenManager:
    return TokenManager(marketplace, registry)


@pytest.fixture
def reply_document(snapshot_store) -> CachedDocument:
    return CachedDocument(snapshot_store, REPLIES_PATH, normalize_replies)


@pytest.fixture
def library(reply_document) -> ReplyLibrary:
    return ReplyLibrary(reply_document)


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(
        tenant_id=1001,
        display_name="Loja Centro",
        access_token="APP_USR-access-1001",
        refresh_token="TG-refresh-1001",
    )
