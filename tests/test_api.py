"""Tests for the REST surface using FastAPI's TestClient."""

from __future__ import annotations

from comparebuy.models import Product


class TestCascade:
    def test_categories(self, client) -> None:
        response = client.get("/categories")
        assert response.status_code == 200
        assert response.json() == ["Phones"]

    def test_brands_case_insensitive(self, client) -> None:
        assert client.get("/phones/brands").json() == ["Apple", "Samsung"]

    def test_models(self, client) -> None:
        assert client.get("/Phones/Samsung/models").json() == ["Galaxy S24"]

    def test_product_details(self, client) -> None:
        response = client.get("/Phones/Apple/iPhone%2015/productDetails")

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "iPhone 15"
        assert body["features"]["Battery"]["Wireless Charging"] is True

    def test_product_details_not_found(self, client) -> None:
        response = client.get("/Phones/Apple/iPhone%2099/productDetails")

        assert response.status_code == 404
        assert response.json() == {"error": "Product not found"}

    def test_unknown_category_lists_nothing(self, client) -> None:
        assert client.get("/Kitchen/brands").json() == []


class TestSearch:
    def test_short_query(self, client) -> None:
        response = client.get("/search", params={"query": "ga"})

        assert response.status_code == 400
        assert "at least 3 characters" in response.json()["error"]

    def test_missing_query(self, client) -> None:
        assert client.get("/search").status_code == 400

    def test_no_matches(self, client) -> None:
        response = client.get("/search", params={"query": "nokia"})

        assert response.status_code == 404
        assert response.json() == {"error": "No matching products found", "count": 0}

    def test_matches(self, client) -> None:
        response = client.get("/search", params={"query": "sam"})

        assert response.status_code == 200
        assert response.json() == {
            "count": 1,
            "products": [{"name": "Galaxy S24", "brand": "Samsung"}],
        }

    def test_category_search(self, client, product_repo) -> None:
        product_repo.products.extend(
            Product(name=f"Galaxy A{i}", brand="Samsung", category="Phones") for i in range(25))

        body = client.get("/Phones/search", params={"query": "galaxy"}).json()

        assert body["count"] == 20
        assert len(body["products"]) == 20


class TestWrites:
    def test_insert_product(self, client) -> None:
        response = client.post("/insert-products", json={
            "name": "Pixel 8", "brand": "Google", "category": "Phones",
            "features": {"Display": {"Size": "6.2 in"}},
        })

        assert response.status_code == 200
        assert response.json() == {"message": "Product inserted successfully"}
        assert client.get("/Phones/Google/models").json() == ["Pixel 8"]

    def test_insert_missing_field(self, client) -> None:
        response = client.post("/insert-products", json=[
            {"name": "Pixel 8", "brand": "Google", "category": "Phones"},
            {"name": "Pixel 9", "category": "Phones"},
        ])

        assert response.status_code == 400
        assert response.json() == {"error": "Missing or empty mandatory field: brand"}
        assert client.get("/Phones/Google/models").json() == []

    def test_insert_unknown_category(self, client) -> None:
        response = client.post("/insert-products", json={
            "name": "Kettle", "brand": "Acme", "category": "Kitchen"})

        assert response.status_code == 400
        assert response.json() == {"error": "Schema not found for category: Kitchen"}

    def test_invalid_json(self, client) -> None:
        response = client.post(
            "/insert-products", content=b"{not json",
            headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON"}

    def test_update_price_twice(self, client) -> None:
        body = {"category": "Phones", "brand": "Samsung", "name": "Galaxy S24", "price": 699}

        first = client.post("/update-price", json=body)
        second = client.post("/update-price", json=body)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["updatedProduct"]["price"] == 699
        assert second.json() == {"success": False, "message": "No price change detected"}

        history = client.get("/price-history/Phones/Samsung/Galaxy%20S24").json()
        assert history["count"] == 1
        assert history["history"][0]["price"] == 699

    def test_update_price_missing_fields(self, client) -> None:
        response = client.post("/update-price", json={"category": "Phones"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_insert_schema(self, client) -> None:
        response = client.post("/insert-schema", json={
            "Category": "Laptops", "settings": {"mandatory_fields": ["name"]}})

        assert response.status_code == 200
        assert response.json()["schema"]["Category"] == "Laptops"
        assert client.get("/categories").json() == ["Laptops", "Phones"]
        assert client.get("/get-schema/Laptops").json()["settings"] == {"mandatory_fields": ["name"]}

    def test_insert_schema_requires_category(self, client) -> None:
        response = client.post("/insert-schema", json={"settings": {}})

        assert response.status_code == 400
        assert response.json() == {"error": "'Category' is required"}

    def test_definitions_round_trip(self, client) -> None:
        response = client.post("/insert-definitions", json={
            "category": "Phones",
            "definitions": [{"feature": "Zoom", "definition": "Optical magnification"}],
        })

        assert response.json() == {"success": True, "count": 1}
        definitions = client.get("/definitions/Phones").json()
        assert definitions["Zoom"] == {"feature": "Zoom", "definition": "Optical magnification"}


class TestListings:
    def test_products_in_category(self, client) -> None:
        body = client.get("/products/Phones").json()

        assert body["count"] == 2
        assert {"name": "Galaxy S24", "brand": "Samsung",
                "image": "galaxy.png", "price": 799} in body["products"]

    def test_products_in_empty_category(self, client) -> None:
        response = client.get("/products/Kitchen")
        assert response.status_code == 404
        assert response.json() == {"error": "No products found in this category"}

    def test_recommended_limited(self, client, product_repo) -> None:
        product_repo.products.extend(
            Product(name=f"A{i}", brand="Acme", category="Phones") for i in range(15))

        by_brand = client.get("/recommended/brand/Phones/Acme").json()
        by_category = client.get("/recommended/category/Phones").json()

        assert by_brand["count"] == 10
        assert by_category["count"] == 10
        assert len(by_category["recommendedProducts"]) == 10

    def test_hot_selling(self, client) -> None:
        body = client.get("/hot-selling").json()
        assert [p["name"] for p in body["hotSellingProducts"]] == ["iPhone 15", "Galaxy S24"]


class TestCompare:
    PARAMS = {"brand1": "Samsung", "model1": "Galaxy S24",
              "brand2": "Apple", "model2": "iPhone 15"}

    def test_json(self, client) -> None:
        response = client.get("/Phones/compare", params=self.PARAMS)

        assert response.status_code == 200
        body = response.json()
        assert body["headers"] == ["Feature", "Galaxy S24", "iPhone 15"]
        assert body["rows"][0] == {
            "kind": "section",
            "cells": [{"text": "Display", "colspan": 3, "definition": None}],
            "background": "#e0e0e0",
            "bold": True,
        }

    def test_html(self, client) -> None:
        response = client.get("/Phones/compare", params={**self.PARAMS, "format": "html"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "definition-label" in response.text

    def test_missing_params(self, client) -> None:
        response = client.get("/Phones/compare", params={"brand1": "Samsung"})
        assert response.status_code == 400

    def test_missing_product(self, client) -> None:
        response = client.get("/Phones/compare", params={**self.PARAMS, "model2": "iPhone 99"})

        assert response.status_code == 404
        assert response.json() == {"error": "Product not found: iPhone 99"}


class TestSystem:
    def test_health(self, client) -> None:
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert set(body["components"]) == {"products", "prices"}

    def test_health_reports_request_count(self, client) -> None:
        client.get("/categories")
        client.get("/categories")

        body = client.get("/health").json()

        assert body["request_count"] >= 3

    def test_response_time_header(self, client) -> None:
        response = client.get("/categories")
        assert "X-Response-Time-Ms" in response.headers

    def test_unexpected_error_is_500(self, client, product_repo, monkeypatch) -> None:
        async def boom(*args, **kwargs):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(product_repo, "list_categories", boom)

        response = client.get("/categories")

        assert response.status_code == 500
        assert response.json() == {"error": "Error fetching categories"}
