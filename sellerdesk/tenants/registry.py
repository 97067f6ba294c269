"""Credential registry: the connected seller accounts."""

from sellerdesk.documents.cache import CachedDocument
from sellerdesk.logging.audit import get_logger
from sellerdesk.tenants.models import Tenant

logger = get_logger("tenants")


class CredentialRegistry:
    """In-memory tenant records kept in sync with the credentials document.

    Tenant objects handed out stay the same objects across reloads, so a
    token refreshed on one of them is visible to every holder. Records with
    changes not yet persisted are never overwritten by a reload.
    """

    def __init__(self, document: CachedDocument):
        self._document = document
        self._tenants: list[Tenant] = []
        self._pending: set[str] = set()

    async def all(self, force: bool = False) -> list[Tenant]:
        records, _ = await self._document.load(force)
        self._merge(records)
        return list(self._tenants)

    async def find(self, tenant_id) -> Tenant | None:
        key = str(tenant_id)
        for tenant in await self.all():
            if tenant.key == key:
                return tenant
        return None

    async def upsert(self, tenant: Tenant) -> Tenant:
        """Insert or update by tenant_id. Call persist() to write it out."""
        await self.all(force=True)
        self._pending.add(tenant.key)
        for existing in self._tenants:
            if existing.key == tenant.key:
                existing.access_token = tenant.access_token
                existing.refresh_token = tenant.refresh_token
                existing.display_name = tenant.display_name
                return existing
        self._tenants.append(tenant)
        return tenant

    def update_tokens(self, tenant: Tenant, access_token: str, refresh_token: str | None = None) -> bool:
        """Apply refreshed tokens in memory. True when the refresh token rotated."""
        tenant.access_token = access_token
        if not refresh_token or refresh_token == tenant.refresh_token:
            return False
        tenant.refresh_token = refresh_token
        self._pending.add(tenant.key)
        return True

    async def persist(self, message: str = "Update store credentials") -> list[Tenant]:
        """Write the in-memory records over the latest stored set."""
        ours = {t.key: t.to_record() for t in self._tenants}

        def overlay(stored: list[dict]) -> list[dict]:
            pending = dict(ours)
            merged = [pending.pop(str(r["tenant_id"]), r) for r in stored]
            merged.extend(pending.values())
            return merged

        saved = await self._document.mutate(overlay, message)
        for tenant in self._tenants:
            # Changed again while we were writing: still pending
            if ours.get(tenant.key) == tenant.to_record():
                self._pending.discard(tenant.key)
        self._merge(saved)
        logger.info(
            "Credentials persisted",
            extra={"audit_data": {"tenant_count": len(saved), "commit_message": message}},
        )
        return list(self._tenants)

    def _merge(self, records: list[dict]) -> None:
        current = {t.key: t for t in self._tenants}
        merged = []
        for record in records:
            key = str(record["tenant_id"])
            tenant = current.pop(key, None)
            if tenant is None:
                merged.append(Tenant.from_record(record))
                continue
            if key not in self._pending:
                # Same refresh token: our access token may be a newer, unpersisted one
                if tenant.refresh_token != record["refresh_token"] or not tenant.access_token:
                    tenant.access_token = record["access_token"]
                    tenant.refresh_token = record["refresh_token"]
                tenant.display_name = record["display_name"]
            merged.append(tenant)
        merged.extend(t for key, t in current.items() if key in self._pending)
        self._tenants = merged
