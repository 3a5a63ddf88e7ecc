"""HTTP clients for the Vetrina services used by the storefront."""

from __future__ import annotations

from typing import Any, Sequence

import httpx


class ServiceAPIError(Exception):
    """Raised when a service answers with an error envelope or cannot be reached."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _normalize_base(url: str | None) -> str:
    if not url:
        return ""
    return url.rstrip("/")


class _SessionClient:
    """Thin wrapper over ``httpx.AsyncClient`` carrying the session cookie."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        user_id: int,
        base_url: str | None = None,
        cookie_name: str = "session",
    ) -> None:
        self._client = client
        self._base_url = _normalize_base(base_url)
        self._headers = {"Cookie": f"{cookie_name}={user_id}"}

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(
                method, f"{self._base_url}{path}", headers=self._headers, **kwargs
            )
        except httpx.HTTPError as exc:
            # Transport failures surface as 503.
            raise ServiceAPIError(503, str(exc) or exc.__class__.__name__) from exc
        if response.is_error:
            message = response.reason_phrase
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            raise ServiceAPIError(response.status_code, message)
        return response.json()


class OrderingClient(_SessionClient):
    async def search_products(self, query: str, brand_id: str, variant: str | None = None) -> list[dict[str, Any]]:
        params = {"q": query, "brand_id": brand_id}
        if variant:
            params["variant"] = variant
        return await self._request("GET", "/products/search", params=params)

    async def resolve_size_group(self, size_group_id: int) -> list[dict[str, Any]]:
        return await self._request("GET", f"/size-groups/{size_group_id}/sizes")

    async def get_order(self, order_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    async def get_order_lines(self, order_id: int) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/orders/{order_id}/products")
        return list(payload.get("lines", []))

    async def save_order_lines(self, order_id: int, products: Sequence[dict[str, Any]]) -> dict[str, Any]:
        return await self._request("POST", f"/orders/{order_id}/products", json={"products": list(products)})


class NotificationClient(_SessionClient):
    async def list_notifications(self, page: int = 1) -> dict[str, Any]:
        return await self._request("GET", "/notifications", params={"page": page})

    async def unread_count(self) -> int:
        payload = await self._request("GET", "/notifications/unread-count")
        return int(payload.get("count", 0))

    async def mark_read(self, notification_id: int) -> dict[str, Any]:
        return await self._request("POST", f"/notifications/{notification_id}/read")
