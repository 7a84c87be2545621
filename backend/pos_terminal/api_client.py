# backend/pos_terminal/api_client.py
"""Async HTTP client for the POS backend."""
from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

# Terminals pull the whole catalog in one page
CACHE_PAGE_SIZE = 1000


class ApiError(Exception):
    """Request failed: network error (status_code None) or non-2xx response."""
    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}

    @property
    def is_transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class PosApiClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "PosApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(str(exc) or type(exc).__name__) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            details = body.get("details") if isinstance(body, dict) else None
            raise ApiError(
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
                details=details,
            )

        if not isinstance(body, dict):
            raise ApiError("Malformed response body", status_code=response.status_code)
        return body

    async def create_sale(self, payload: dict) -> dict:
        """POST /api/sales. Returns the server's sale dict."""
        body = await self._request("POST", "/api/sales", json=payload)
        sale = body.get("sale")
        if not isinstance(sale, dict) or sale.get("id") is None:
            raise ApiError("Malformed sale response")
        return sale

    async def list_products(self) -> list[dict]:
        body = await self._request(
            "GET", "/api/products", params={"page": 1, "limit": CACHE_PAGE_SIZE, "is_active": "true"}
        )
        return list(body.get("items") or [])

    async def list_customers(self) -> list[dict]:
        body = await self._request("GET", "/api/customers", params={"page": 1, "limit": CACHE_PAGE_SIZE})
        return list(body.get("items") or [])

    async def health(self) -> bool:
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return response.status_code == 200
