"""Buyer questions across every connected store: list, history, answer."""

from datetime import datetime, timedelta, timezone

from sellerdesk.errors import EmptyText, NotFound, SellerDeskError
from sellerdesk.items.cache import ItemMetadataCache
from sellerdesk.logging.audit import get_logger, tenant_id_var
from sellerdesk.marketplace.client import MarketplaceClient
from sellerdesk.tenants.models import Tenant
from sellerdesk.tenants.registry import CredentialRegistry
from sellerdesk.tenants.tokens import TokenManager

logger = get_logger("questions")

HISTORY_DEFAULT_LIMIT = 10
HISTORY_MAX_LIMIT = 30


class QuestionService:
    def __init__(
        self,
        registry: CredentialRegistry,
        tokens: TokenManager,
        client: MarketplaceClient,
        items: ItemMetadataCache,
        max_age_days: int = 90,
    ):
        self._registry = registry
        self._tokens = tokens
        self._client = client
        self._items = items
        self._max_age = timedelta(days=max_age_days)

    async def list_all(self) -> list[dict]:
        """Unanswered questions of every store, one store at a time.

        A store whose calls fail is logged and skipped so the rest still show.
        """
        questions = []
        for tenant in await self._registry.all():
            token = tenant_id_var.set(tenant.key)
            try:
                questions.extend(await self.for_tenant(tenant))
            except SellerDeskError as e:
                logger.warning(
                    "Failed to load questions for store",
                    extra={"audit_data": {"error": e.message, "status": e.status_code}},
                )
            except Exception:
                logger.exception("Unexpected failure loading questions for store")
            finally:
                tenant_id_var.reset(token)
        return questions

    async def for_tenant(self, tenant: Tenant, now: datetime | None = None) -> list[dict]:
        payload = await self._tokens.with_auth(
            tenant, lambda token: self._client.search_questions(token, tenant.tenant_id)
        )
        cutoff = (now or datetime.now(timezone.utc)) - self._max_age
        recent = [
            q for q in _questions_of(payload)
            if (created := parse_timestamp(q.get("date_created"))) is not None and created >= cutoff
        ]

        items = await self._items.resolve(tenant, (q.get("item_id") for q in recent))
        enriched = []
        for q in recent:
            item = items.get(q.get("item_id"))
            enriched.append({
                **q,
                "store_id": tenant.tenant_id,
                "store_name": tenant.display_name,
                "item_title": item.title if item else "",
                "item_thumbnail": item.thumbnail_url if item else "",
                "item_permalink": item.permalink if item else "",
            })
        return enriched

    async def history(self, store_id, item_id: str, limit=HISTORY_DEFAULT_LIMIT) -> list[dict]:
        """Recent questions and answers on one listing."""
        tenant = await self._require_tenant(store_id)
        limit = clamp_limit(limit)
        payload = await self._tokens.with_auth(
            tenant,
            lambda token: self._client.question_history(token, item_id, tenant.tenant_id, limit),
        )
        rows = []
        for q in _questions_of(payload):
            answer = q.get("answer") or {}
            sender = q.get("from") or {}
            rows.append({
                "id": q.get("id"),
                "date_created": q.get("date_created"),
                "text": q.get("text") or "",
                "answer_text": answer.get("text") or "",
                "answer_date": answer.get("date_created") or "",
                "from_id": sender.get("id"),
                "from_nickname": sender.get("nickname") or "",
            })
        return rows

    async def answer(self, store_id, question_id, text: str) -> dict:
        """Post an answer. ``refreshed`` tells whether a token refresh was needed."""
        text = (text or "").strip()
        if not text:
            raise EmptyText()
        tenant = await self._require_tenant(store_id)

        attempts = 0

        async def send(token: str):
            nonlocal attempts
            attempts += 1
            return await self._client.post_answer(token, question_id, text)

        await self._tokens.with_auth(tenant, send)
        logger.info(
            "Answer posted",
            extra={"audit_data": {"tenant_id": tenant.key, "question_id": question_id}},
        )
        return {"refreshed": attempts > 1}

    async def _require_tenant(self, store_id) -> Tenant:
        tenant = await self._registry.find(store_id)
        if tenant is None:
            raise NotFound("Store not found")
        return tenant


def _questions_of(payload) -> list[dict]:
    questions = payload.get("questions") if isinstance(payload, dict) else None
    return [q for q in questions or [] if isinstance(q, dict)]


def parse_timestamp(value) -> datetime | None:
    """ISO-8601 with offset, e.g. 2024-05-01T10:00:00.000-04:00. Naive means UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def clamp_limit(limit) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = HISTORY_DEFAULT_LIMIT
    if value == 0:
        value = HISTORY_DEFAULT_LIMIT
    return max(1, min(value, HISTORY_MAX_LIMIT))
