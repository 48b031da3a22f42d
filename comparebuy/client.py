"""Async HTTP client for the CompareBuy REST API."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from comparebuy.models import Definition, PriceUpdateResult, Product, ProductSummary

logger = logging.getLogger(__name__)


def _path(*segments: str) -> str:
    return "/" + "/".join(quote(s, safe="") for s in segments)


class CatalogClient:
    """Thin wrapper over ``httpx.AsyncClient``.

    Non-2xx responses raise ``httpx.HTTPStatusError``; connection problems
    raise the usual ``httpx.TransportError`` subclasses. Callers decide
    what to surface.
    """

    def __init__(self, base_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._http = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        response = await self._http.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, body: Any) -> Any:
        response = await self._http.post(path, json=body)
        response.raise_for_status()
        return response.json()

    # ── Selection cascade ────────────────────────────────────────────────

    async def categories(self) -> list[str]:
        return await self._get("/categories")

    async def brands(self, category: str) -> list[str]:
        return await self._get(_path(category, "brands"))

    async def models(self, category: str, brand: str) -> list[str]:
        return await self._get(_path(category, brand, "models"))

    async def product_details(self, category: str, brand: str, model: str) -> Product:
        data = await self._get(_path(category, brand, model, "productDetails"))
        return Product.model_validate(data)

    async def definitions(self, category: str) -> dict[str, Definition]:
        data = await self._get(_path("definitions", category))
        return {
            feature: Definition(category=category, **entry)
            for feature, entry in data.items()
        }

    # ── Search & prices ──────────────────────────────────────────────────

    async def search(self, query: str, category: Optional[str] = None) -> list[ProductSummary]:
        """Search by name or brand. A 404 (no matches) returns an empty list."""
        path = _path(category, "search") if category else "/search"
        try:
            data = await self._get(path, params={"query": query})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return []
            raise
        return [ProductSummary.model_validate(p) for p in data["products"]]

    async def update_price(self, category: str, brand: str, name: str,
                           price: Any) -> PriceUpdateResult:
        data = await self._post("/update-price", {
            "category": category, "brand": brand, "name": name, "price": price,
        })
        return PriceUpdateResult.model_validate(data)
