"""Tests for CatalogClient against the real app and a mock transport."""

from __future__ import annotations

import httpx
import pytest

from comparebuy.client import CatalogClient


@pytest.fixture
def asgi_client(app) -> CatalogClient:
    return CatalogClient("http://testserver", transport=httpx.ASGITransport(app=app))


class TestAgainstApp:
    @pytest.mark.asyncio
    async def test_cascade(self, asgi_client) -> None:
        async with asgi_client as client:
            assert await client.categories() == ["Phones"]
            assert await client.brands("Phones") == ["Apple", "Samsung"]
            assert await client.models("Phones", "Apple") == ["iPhone 15"]
            product = await client.product_details("Phones", "Apple", "iPhone 15")

        assert product.name == "iPhone 15"
        assert product.rating == 4.7

    @pytest.mark.asyncio
    async def test_definitions_carry_category(self, asgi_client) -> None:
        async with asgi_client as client:
            definitions = await client.definitions("Phones")

        assert definitions["Rear Camera"].category == "Phones"
        assert definitions["Rear Camera"].definition == "Cameras on the back of the phone."

    @pytest.mark.asyncio
    async def test_missing_product_raises(self, asgi_client) -> None:
        async with asgi_client as client:
            with pytest.raises(httpx.HTTPStatusError) as exc:
                await client.product_details("Phones", "Apple", "iPhone 99")
        assert exc.value.response.status_code == 404

    @pytest.mark.asyncio
    async def test_search_no_matches_is_empty(self, asgi_client) -> None:
        async with asgi_client as client:
            assert await client.search("nokia") == []
            found = await client.search("galaxy", category="Phones")
        assert [p.name for p in found] == ["Galaxy S24"]

    @pytest.mark.asyncio
    async def test_update_price(self, asgi_client) -> None:
        async with asgi_client as client:
            result = await client.update_price("Phones", "Apple", "iPhone 15", 749)

        assert result.success is True
        assert result.updatedProduct["price"] == 749


class TestPaths:
    @pytest.mark.asyncio
    async def test_segments_are_quoted(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json=["Beosound A1"])

        client = CatalogClient("http://api.test", transport=httpx.MockTransport(handler))
        async with client:
            await client.models("Audio", "Bang & Olufsen/B&O")

        assert seen == ["/Audio/Bang%20%26%20Olufsen%2FB%26O/models"]

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        client = CatalogClient(
            "http://api.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, json={"error": "x"})),
        )
        async with client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.search("galaxy")
