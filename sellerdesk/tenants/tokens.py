"""OAuth token lifecycle: connect, refresh, and refresh-once-then-retry."""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sellerdesk.errors import AuthExpired, MarketplaceError
from sellerdesk.logging.audit import get_logger, mask_secret
from sellerdesk.marketplace.client import MarketplaceClient
from sellerdesk.tenants.models import Tenant
from sellerdesk.tenants.registry import CredentialRegistry

logger = get_logger("tenants.tokens")

T = TypeVar("T")


class TokenManager:
    """Wraps upstream calls for a tenant with a single refresh-and-retry."""

    def __init__(self, client: MarketplaceClient, registry: CredentialRegistry):
        self._client = client
        self._registry = registry
        # One refresh at a time per tenant
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def authorization_url(self) -> str:
        return self._client.authorization_url()

    async def with_auth(self, tenant: Tenant, request_fn: Callable[[str], Awaitable[T]]) -> T:
        """Call request_fn(access_token); on AuthExpired refresh once and retry once.

        Any other error, or a second failure after the refresh, propagates
        unchanged. At most one refresh per call.
        """
        used_token = tenant.access_token
        try:
            return await request_fn(used_token)
        except AuthExpired:
            logger.info(
                "Access token expired, refreshing",
                extra={"audit_data": {"tenant_id": tenant.key}},
            )

        await self.refresh(tenant, stale_token=used_token)
        return await request_fn(tenant.access_token)

    async def refresh(self, tenant: Tenant, stale_token: str | None = None) -> Tenant:
        """Exchange the refresh token for a new access token.

        With stale_token given, the refresh is skipped when another coroutine
        already replaced that token while we waited for the lock.
        """
        async with self._locks[tenant.key]:
            if stale_token is not None and tenant.access_token != stale_token:
                return tenant

            payload = await self._client.refresh_access_token(tenant.refresh_token)
            access_token = payload.get("access_token") if isinstance(payload, dict) else None
            if not access_token:
                raise AuthExpired("Token refresh returned no access token")

            rotated = self._registry.update_tokens(
                tenant, access_token, payload.get("refresh_token")
            )
            logger.info(
                "Access token refreshed",
                extra={"audit_data": {
                    "tenant_id": tenant.key,
                    "access_token": mask_secret(access_token),
                    "refresh_token_rotated": rotated,
                }},
            )
            if rotated:
                await self._registry.persist("Update refresh token")
            return tenant

    async def connect(self, code: str) -> Tenant:
        """Finish the OAuth authorization-code flow and store the tenant."""
        tokens = await self._client.exchange_code(code)
        access_token = tokens.get("access_token", "")
        refresh_token = tokens.get("refresh_token", "")
        if not access_token or not refresh_token:
            raise MarketplaceError("Authorization response is missing tokens")

        user = await self._client.get_me(access_token)
        tenant_id = user.get("id") if isinstance(user, dict) else None
        if not tenant_id:
            raise MarketplaceError("Identity lookup returned no user id")
        tenant = await self._registry.upsert(Tenant(
            tenant_id=tenant_id,
            display_name=user.get("nickname") or f"Store {tenant_id}",
            access_token=access_token,
            refresh_token=refresh_token,
        ))
        await self._registry.persist("Connect/Update store")
        logger.info(
            "Store connected",
            extra={"audit_data": {"tenant_id": tenant.key, "display_name": tenant.display_name}},
        )
        return tenant
