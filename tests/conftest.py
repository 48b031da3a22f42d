"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from comparebuy.api import create_app
from comparebuy.catalog import CatalogService
from comparebuy.config import Settings
from comparebuy.models import CategorySchema, Definition, Product
from comparebuy.repository import InMemoryPriceRepository, InMemoryProductRepository


def galaxy_doc() -> dict[str, Any]:
    return {
        "name": "Galaxy S24",
        "brand": "Samsung",
        "category": "Phones",
        "price": 799,
        "rating": 4.4,
        "image": "galaxy.png",
        "features": {
            "Display": {"Size": "6.2 in", "Refresh Rate": "120Hz"},
            "Camera": {
                "Rear Camera": {
                    "Main": "50MP",
                    "Telephoto": {"Resolution": "10MP", "Zoom": "3x"},
                },
                "Front Camera": "12MP",
            },
        },
    }


def iphone_doc() -> dict[str, Any]:
    return {
        "name": "iPhone 15",
        "brand": "Apple",
        "category": "Phones",
        "price": 799,
        "rating": 4.7,
        "features": {
            "Display": {"Size": "6.1 in"},
            "Camera": {"Rear Camera": {"Main": "48MP"}, "Front Camera": "12MP"},
            "Battery": {"Wireless Charging": True},
        },
    }


@pytest.fixture
def galaxy() -> Product:
    return Product.model_validate(galaxy_doc())


@pytest.fixture
def iphone() -> Product:
    return Product.model_validate(iphone_doc())


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def product_repo() -> InMemoryProductRepository:
    repo = InMemoryProductRepository()
    repo.schemas["Phones"] = CategorySchema.model_validate({
        "Category": "Phones",
        "settings": {"mandatory_fields": ["name", "brand", "category"]},
    })
    repo.products.extend([
        Product.model_validate(galaxy_doc()),
        Product.model_validate(iphone_doc()),
    ])
    repo.definitions["Phones"] = {
        "Refresh Rate": Definition(
            feature="Refresh Rate", category="Phones",
            definition="How many times per second the screen redraws."),
        "Rear Camera": Definition(
            feature="Rear Camera", category="Phones",
            definition="Cameras on the back of the phone."),
    }
    return repo


@pytest.fixture
def price_repo() -> InMemoryPriceRepository:
    return InMemoryPriceRepository()


@pytest.fixture
def catalog(product_repo, price_repo, settings) -> CatalogService:
    return CatalogService(product_repo, price_repo, settings)


@pytest.fixture
def app(settings, catalog):
    return create_app(settings=settings, catalog=catalog)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
