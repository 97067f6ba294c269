"""Marketplace API client (OAuth, questions, items, answers)."""

from urllib.parse import urlencode

import httpx

from sellerdesk.config.settings import Settings
from sellerdesk.errors import AuthExpired, MarketplaceError, TransportError, UpstreamTimeout


class MarketplaceClient:
    """Thin async wrapper over the marketplace REST API.

    Every call is one-shot: no retries and no token handling here. A 401 is
    raised as AuthExpired so TokenManager can refresh and retry.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._base_url = settings.marketplace_api_url.rstrip("/")
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.upstream_timeout_seconds, connect=10.0)
            )
        return self._client

    def authorization_url(self) -> str:
        query = urlencode({
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
        })
        return f"{self._settings.marketplace_auth_url}?{query}"

    async def exchange_code(self, code: str) -> dict:
        return await self._request("POST", "/oauth/token", json={
            "grant_type": "authorization_code",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "code": code,
            "redirect_uri": self._settings.redirect_uri,
        })

    async def refresh_access_token(self, refresh_token: str) -> dict:
        return await self._request("POST", "/oauth/token", json={
            "grant_type": "refresh_token",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "refresh_token": refresh_token,
        })

    async def get_me(self, access_token: str) -> dict:
        return await self._request("GET", "/users/me", access_token)

    async def search_questions(
        self, access_token: str, seller_id, status: str = "UNANSWERED"
    ) -> dict:
        return await self._request(
            "GET", "/questions/search", access_token,
            params={"seller_id": str(seller_id), "status": status},
        )

    async def get_items(self, access_token: str, item_ids: list[str]) -> list:
        """Bulk lookup. Each entry is {"code": int, "body": {...}}."""
        return await self._request(
            "GET", "/items", access_token, params={"ids": ",".join(item_ids)}
        )

    async def question_history(
        self, access_token: str, item_id: str, seller_id, limit: int
    ) -> dict:
        return await self._request(
            "GET", "/questions/search", access_token,
            params={"item_id": item_id, "seller_id": str(seller_id), "limit": limit},
        )

    async def post_answer(self, access_token: str, question_id, text: str) -> dict:
        return await self._request(
            "POST", "/answers", access_token, json={"question_id": question_id, "text": text}
        )

    async def _request(self, method: str, path: str, access_token: str = "", **kwargs):
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        client = await self._get_client()
        try:
            response = await client.request(
                method, f"{self._base_url}{path}", headers=headers, **kwargs
            )
        except httpx.TimeoutException:
            raise UpstreamTimeout("Marketplace API timed out")
        except httpx.HTTPError as e:
            raise TransportError(f"Cannot reach marketplace API: {e}")

        if response.status_code == 401:
            raise AuthExpired("Marketplace access token expired")
        if response.status_code >= 400:
            raise MarketplaceError(
                f"Marketplace API returned {response.status_code}",
                upstream_status=response.status_code,
                details=_safe_json(response),
            )
        return _safe_json(response)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _safe_json(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text
