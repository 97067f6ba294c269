"""Service context: every long-lived component, wired once per process."""

from dataclasses import dataclass

from sellerdesk.config.settings import Settings
from sellerdesk.documents.cache import CachedDocument
from sellerdesk.documents.factory import get_document_store
from sellerdesk.documents.store import DocumentStore
from sellerdesk.items.cache import ItemMetadataCache
from sellerdesk.marketplace.client import MarketplaceClient
from sellerdesk.questions.service import QuestionService
from sellerdesk.replies.library import ReplyLibrary, normalize_replies
from sellerdesk.tenants.models import normalize_tenants
from sellerdesk.tenants.registry import CredentialRegistry
from sellerdesk.tenants.tokens import TokenManager


@dataclass
class ServiceContext:
    settings: Settings
    store: DocumentStore
    marketplace: MarketplaceClient
    registry: CredentialRegistry
    tokens: TokenManager
    replies: ReplyLibrary
    items: ItemMetadataCache
    questions: QuestionService

    async def close(self) -> None:
        await self.marketplace.close()
        await self.store.close()


def build_context(
    settings: Settings,
    store: DocumentStore | None = None,
    marketplace: MarketplaceClient | None = None,
) -> ServiceContext:
    """Wire the components. store/marketplace can be swapped in for tests."""
    store = store or get_document_store(settings)
    marketplace = marketplace or MarketplaceClient(settings)
    ttl = settings.document_cache_ttl_seconds

    registry = CredentialRegistry(
        CachedDocument(store, settings.github_stores_path, normalize_tenants, ttl)
    )
    tokens = TokenManager(marketplace, registry)
    replies = ReplyLibrary(
        CachedDocument(store, settings.github_qr_path, normalize_replies, ttl)
    )
    items = ItemMetadataCache(
        marketplace, tokens,
        ttl=settings.item_cache_ttl_seconds,
        batch_size=settings.item_batch_size,
    )
    questions = QuestionService(
        registry, tokens, marketplace, items,
        max_age_days=settings.question_max_age_days,
    )
    return ServiceContext(
        settings=settings,
        store=store,
        marketplace=marketplace,
        registry=registry,
        tokens=tokens,
        replies=replies,
        items=items,
        questions=questions,
    )
