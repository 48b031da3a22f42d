"""
catalog.py — Business rules behind the REST surface.

CatalogService owns both store handles and implements:
  - category / brand / model cascades and product lookup
  - loose search (minimum query length, bounded result count)
  - product insertion gated by each category's mandatory fields
  - price updates that only record actual changes
  - schema and definition upserts
  - bounded listings and server-side comparison
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from comparebuy.config import Settings
from comparebuy.errors import (
    InvalidRequest, MissingMandatoryField, NoMatches, NotFound, SchemaNotFound,
)
from comparebuy.models import (
    CategorySchema, ComparisonTable, Definition, PriceRecord, PriceUpdateRequest,
    PriceUpdateResult, Product, ProductListing, ProductSummary, product_document,
)
from comparebuy.renderer import build_comparison
from comparebuy.repository import PriceRepository, ProductRepository

logger = logging.getLogger(__name__)


def missing_mandatory_field(document: dict[str, Any], fields: list[str]) -> Optional[str]:
    """Return the first mandatory field that is absent, falsy or blank."""
    for name in fields:
        value = document.get(name)
        if not value:
            return name
        if isinstance(value, str) and not value.strip():
            return name
    return None


class CatalogService:

    def __init__(self, products: ProductRepository, prices: PriceRepository,
                 settings: Settings):
        self.products = products
        self.prices = prices
        self.settings = settings

    # ----------------------------------------------------------
    # Cascade lookups
    # ----------------------------------------------------------

    async def categories(self) -> list[str]:
        return await self.products.list_categories()

    async def brands(self, category: str) -> list[str]:
        return await self.products.distinct_brands(category)

    async def models(self, category: str, brand: str) -> list[str]:
        return await self.products.distinct_models(category, brand)

    async def product_details(self, category: str, brand: str, model: str) -> Product:
        product = await self.products.find_product(category, brand, model)
        if product is None:
            raise NotFound("Product not found")
        return product

    # ----------------------------------------------------------
    # Search
    # ----------------------------------------------------------

    async def search(self, query: Optional[str],
                     category: Optional[str] = None) -> list[ProductSummary]:
        if not query or len(query) < self.settings.min_query_length:
            raise InvalidRequest(
                "Query parameter is required and must be at least "
                f"{self.settings.min_query_length} characters long for suggestions."
            )
        found = await self.products.search_products(
            query, category=category, limit=self.settings.search_limit)
        if not found:
            raise NoMatches()
        return found

    # ----------------------------------------------------------
    # Insertion
    # ----------------------------------------------------------

    async def _validate_product(self, document: Any) -> Product:
        if not isinstance(document, dict):
            raise InvalidRequest("Each product must be a JSON object")

        category = document.get("category")
        schema = None
        if isinstance(category, str) and category:
            schema = await self.products.get_schema(category)
        if schema is None:
            raise SchemaNotFound(category)

        missing = missing_mandatory_field(document, schema.settings.mandatory_fields)
        if missing is not None:
            raise MissingMandatoryField(missing)

        try:
            return Product.model_validate(document)
        except ValidationError as e:
            raise InvalidRequest(f"Invalid product: {e.errors()[0]['msg']}")

    async def insert_products(self, payload: Union[dict, list]) -> str:
        """Validate every product first; insert only if all pass."""
        if isinstance(payload, list):
            validated = [await self._validate_product(doc) for doc in payload]
            if not validated:
                raise InvalidRequest("No products to insert")
            await self.products.insert_products(validated)
            logger.info(f"[insert] bulk count={len(validated)}")
            return "Bulk products inserted successfully"

        product = await self._validate_product(payload)
        await self.products.insert_products([product])
        logger.info(f"[insert] product={product.name} category={product.category}")
        return "Product inserted successfully"

    # ----------------------------------------------------------
    # Prices
    # ----------------------------------------------------------

    async def update_price(self, request: PriceUpdateRequest) -> PriceUpdateResult:
        if not (request.category and request.brand and request.name and request.price):
            raise InvalidRequest("Missing required fields")

        last = await self.prices.latest_price(request.category, request.brand, request.name)
        if last is not None and last.price == request.price:
            return PriceUpdateResult(success=False, message="No price change detected")

        await self.prices.add_price(PriceRecord(
            category=request.category,
            brand=request.brand,
            product_name=request.name,
            price=request.price,
        ))
        updated = await self.products.set_price(
            request.category, request.brand, request.name, request.price)

        logger.info(
            f"[price] {request.category}/{request.brand}/{request.name} "
            f"{last.price if last else None} -> {request.price}")
        return PriceUpdateResult(
            success=True,
            message="Price updated successfully",
            updatedProduct=product_document(updated) if updated else None,
        )

    async def price_history(self, category: str, brand: str, model: str) -> list[PriceRecord]:
        return await self.prices.price_history(category, brand, model)

    # ----------------------------------------------------------
    # Schemas & definitions
    # ----------------------------------------------------------

    async def upsert_schema(self, payload: Any) -> CategorySchema:
        if not isinstance(payload, dict) or not payload.get("Category"):
            raise InvalidRequest("'Category' is required")
        try:
            schema = CategorySchema.model_validate(payload)
        except ValidationError as e:
            raise InvalidRequest(f"Invalid schema: {e.errors()[0]['msg']}")
        return await self.products.upsert_schema(schema)

    async def get_schema(self, category: str) -> CategorySchema:
        schema = await self.products.get_schema(category)
        if schema is None:
            raise NotFound("Schema not found for this category")
        return schema

    async def definitions(self, category: str) -> dict[str, Definition]:
        return await self.products.get_definitions(category)

    async def upsert_definitions(self, category: Optional[str],
                                 definitions: list[Definition]) -> int:
        if not category or not definitions:
            raise InvalidRequest("'category' and 'definitions' are required")
        return await self.products.upsert_definitions(category, definitions)

    # ----------------------------------------------------------
    # Listings
    # ----------------------------------------------------------

    async def products_in_category(self, category: str) -> list[ProductListing]:
        found = await self.products.list_products(
            self.settings.listing_limit, category=category)
        if not found:
            raise NotFound("No products found in this category")
        return [ProductListing(name=p.name, brand=p.brand, image=p.image, price=p.price)
                for p in found]

    async def recommended_by_brand(self, category: str, brand: str) -> list[Product]:
        found = await self.products.list_products(
            self.settings.listing_limit, category=category, brand=brand)
        if not found:
            raise NotFound("No recommended products found from the same brand")
        return found

    async def recommended_by_category(self, category: str) -> list[Product]:
        found = await self.products.list_products(
            self.settings.listing_limit, category=category)
        if not found:
            raise NotFound("No recommended products found from the same category")
        return found

    async def hot_selling(self) -> list[Product]:
        return await self.products.top_rated(self.settings.listing_limit)

    # ----------------------------------------------------------
    # Comparison
    # ----------------------------------------------------------

    async def compare(self, category: str, brand1: str, model1: str,
                      brand2: str, model2: str) -> ComparisonTable:
        """Fetch both products concurrently; render only if both exist."""
        product1, product2 = await asyncio.gather(
            self.products.find_product(category, brand1, model1),
            self.products.find_product(category, brand2, model2),
        )
        if product1 is None or product2 is None:
            missing = model1 if product1 is None else model2
            raise NotFound(f"Product not found: {missing}")

        definitions = await self.products.get_definitions(category)
        return build_comparison(category, product1, product2, definitions)

    # ----------------------------------------------------------
    # Health
    # ----------------------------------------------------------

    async def health(self) -> dict[str, dict]:
        return {
            "products": await self.products.health_check(),
            "prices": await self.prices.health_check(),
        }
