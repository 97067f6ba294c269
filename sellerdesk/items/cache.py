"""Item metadata cache with batched upstream lookups."""

import time
from collections.abc import Iterable
from dataclasses import dataclass

from sellerdesk.errors import SellerDeskError
from sellerdesk.logging.audit import get_logger
from sellerdesk.marketplace.client import MarketplaceClient
from sellerdesk.tenants.models import Tenant
from sellerdesk.tenants.tokens import TokenManager

logger = get_logger("items")

DEFAULT_TTL = 6 * 60 * 60
DEFAULT_BATCH_SIZE = 20


@dataclass(frozen=True)
class ItemMetadata:
    item_id: str
    title: str = ""
    thumbnail_url: str = ""
    permalink: str = ""


class ItemMetadataCache:
    """Maps item id -> display metadata, refreshed every TTL seconds.

    Process-local and unbounded: expired entries are replaced on the next
    lookup of the same id.
    """

    def __init__(
        self,
        client: MarketplaceClient,
        tokens: TokenManager,
        ttl: float = DEFAULT_TTL,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._client = client
        self._tokens = tokens
        self._ttl = ttl
        self._batch_size = batch_size
        self._cache: dict[str, tuple[ItemMetadata, float]] = {}

    async def resolve(self, tenant: Tenant, item_ids: Iterable[str]) -> dict[str, ItemMetadata]:
        """Metadata for every id the marketplace could answer for.

        Missing items and failed batches are simply absent from the result.
        """
        found: dict[str, ItemMetadata] = {}
        missing = []
        now = time.monotonic()
        for item_id in dict.fromkeys(i for i in item_ids if i):
            cached = self._cache.get(item_id)
            if cached is not None and now < cached[1]:
                found[item_id] = cached[0]
            else:
                missing.append(item_id)

        for batch in chunk(missing, self._batch_size):
            found.update(await self._fetch_batch(tenant, batch))
        return found

    async def _fetch_batch(self, tenant: Tenant, batch: list[str]) -> dict[str, ItemMetadata]:
        try:
            entries = await self._tokens.with_auth(
                tenant, lambda token: self._client.get_items(token, batch)
            )
        except SellerDeskError as e:
            logger.warning(
                "Item lookup failed, skipping batch",
                extra={"audit_data": {"tenant_id": tenant.key, "batch_size": len(batch), "error": e.message}},
            )
            return {}

        result = {}
        expires_at = time.monotonic() + self._ttl
        for entry in entries if isinstance(entries, list) else []:
            metadata = parse_item_entry(entry)
            if metadata is not None:
                self._cache[metadata.item_id] = (metadata, expires_at)
                result[metadata.item_id] = metadata
        return result


def parse_item_entry(entry) -> ItemMetadata | None:
    """One element of a bulk lookup: {"code": 200, "body": {...}}."""
    if not isinstance(entry, dict) or entry.get("code") != 200:
        return None
    body = entry.get("body")
    if not isinstance(body, dict):
        return None
    item_id = body.get("id") or entry.get("id")
    if not item_id:
        return None
    return ItemMetadata(
        item_id=str(item_id),
        title=body.get("title") or "",
        thumbnail_url=pick_thumbnail(body),
        permalink=body.get("permalink") or "",
    )


def pick_thumbnail(body: dict) -> str:
    pictures = body.get("pictures")
    first = pictures[0] if isinstance(pictures, list) and pictures else {}
    if not isinstance(first, dict):
        first = {}
    candidates = (
        body.get("secure_thumbnail"),
        body.get("thumbnail"),
        first.get("secure_url"),
        first.get("url"),
    )
    return force_https(next((c for c in candidates if c and isinstance(c, str)), ""))


def force_https(url: str) -> str:
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def chunk(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]
