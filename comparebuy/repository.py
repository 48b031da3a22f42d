"""
repository.py — Store interfaces and in-memory implementations.

Two stores back the service:
  - ProductRepository: products, category schemas and feature definitions
  - PriceRepository: the timestamped price history

Category, brand and model lookups are case-insensitive. Price history is
keyed by the exact (category, brand, product_name) triple.
"""
from __future__ import annotations

from typing import Any, Optional

from comparebuy.models import (
    CategorySchema, Definition, PriceRecord, Product, ProductSummary,
)


# ============================================================
# Database Abstraction Layer (Repository Pattern)
# ============================================================

class ProductRepository:
    """
    Abstract access to the product store. Implementations are swappable:
    InMemoryProductRepository for tests, AsyncPGProductRepository in production.
    """

    async def list_categories(self) -> list[str]:
        raise NotImplementedError

    async def get_schema(self, category: str) -> Optional[CategorySchema]:
        raise NotImplementedError

    async def upsert_schema(self, schema: CategorySchema) -> CategorySchema:
        raise NotImplementedError

    async def distinct_brands(self, category: str) -> list[str]:
        raise NotImplementedError

    async def distinct_models(self, category: str, brand: str) -> list[str]:
        raise NotImplementedError

    async def find_product(self, category: str, brand: str, name: str) -> Optional[Product]:
        raise NotImplementedError

    async def search_products(self, query: str, category: Optional[str] = None,
                              limit: int = 20) -> list[ProductSummary]:
        raise NotImplementedError

    async def insert_products(self, products: list[Product]) -> int:
        raise NotImplementedError

    async def set_price(self, category: str, brand: str, name: str,
                        price: Any) -> Optional[Product]:
        raise NotImplementedError

    async def list_products(self, limit: int, category: Optional[str] = None,
                            brand: Optional[str] = None) -> list[Product]:
        raise NotImplementedError

    async def top_rated(self, limit: int) -> list[Product]:
        raise NotImplementedError

    async def get_definitions(self, category: str) -> dict[str, Definition]:
        raise NotImplementedError

    async def upsert_definitions(self, category: str,
                                 definitions: list[Definition]) -> int:
        raise NotImplementedError

    async def health_check(self) -> dict:
        raise NotImplementedError


class PriceRepository:
    """Abstract access to the price history store."""

    async def latest_price(self, category: str, brand: str,
                           product_name: str) -> Optional[PriceRecord]:
        raise NotImplementedError

    async def add_price(self, record: PriceRecord) -> PriceRecord:
        raise NotImplementedError

    async def price_history(self, category: str, brand: str, product_name: str,
                            limit: int = 100) -> list[PriceRecord]:
        raise NotImplementedError

    async def health_check(self) -> dict:
        raise NotImplementedError


# ============================================================
# In-Memory Repositories (for testing / local dev)
# ============================================================

def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").casefold() == (b or "").casefold()


class InMemoryProductRepository(ProductRepository):
    """In-memory implementation for testing without a database."""

    def __init__(self):
        self.products: list[Product] = []
        self.schemas: dict[str, CategorySchema] = {}
        self.definitions: dict[str, dict[str, Definition]] = {}

    async def list_categories(self) -> list[str]:
        return sorted({s.category for s in self.schemas.values()})

    async def get_schema(self, category: str) -> Optional[CategorySchema]:
        for key, schema in self.schemas.items():
            if _same(key, category):
                return schema
        return None

    async def upsert_schema(self, schema: CategorySchema) -> CategorySchema:
        existing = await self.get_schema(schema.category)
        if existing:
            merged = {**existing.model_dump(by_alias=True),
                      **schema.model_dump(by_alias=True, exclude_unset=True)}
            # The first spelling of a category stays its key.
            merged["Category"] = existing.category
            schema = CategorySchema.model_validate(merged)
        self.schemas[schema.category] = schema
        return schema

    async def distinct_brands(self, category: str) -> list[str]:
        return sorted({
            p.brand for p in self.products
            if p.brand and _same(p.category, category)
        })

    async def distinct_models(self, category: str, brand: str) -> list[str]:
        return sorted({
            p.name for p in self.products
            if _same(p.category, category) and _same(p.brand, brand)
        })

    async def find_product(self, category: str, brand: str, name: str) -> Optional[Product]:
        for p in self.products:
            if _same(p.category, category) and _same(p.brand, brand) and _same(p.name, name):
                return p
        return None

    async def search_products(self, query: str, category: Optional[str] = None,
                              limit: int = 20) -> list[ProductSummary]:
        needle = query.casefold()
        found = []
        for p in self.products:
            if category is not None and not _same(p.category, category):
                continue
            if needle in p.name.casefold() or needle in (p.brand or "").casefold():
                found.append(ProductSummary(name=p.name, brand=p.brand))
            if len(found) >= limit:
                break
        return found

    async def insert_products(self, products: list[Product]) -> int:
        self.products.extend(p.model_copy(deep=True) for p in products)
        return len(products)

    async def set_price(self, category: str, brand: str, name: str,
                        price: Any) -> Optional[Product]:
        for idx, p in enumerate(self.products):
            if p.category == category and p.brand == brand and p.name == name:
                updated = p.model_copy(update={"price": price})
                self.products[idx] = updated
                return updated
        return None

    async def list_products(self, limit: int, category: Optional[str] = None,
                            brand: Optional[str] = None) -> list[Product]:
        matched = [
            p for p in self.products
            if (category is None or _same(p.category, category))
            and (brand is None or _same(p.brand, brand))
        ]
        return matched[:limit]

    async def top_rated(self, limit: int) -> list[Product]:
        rated = sorted(
            self.products,
            key=lambda p: (p.rating is None, -(p.rating or 0.0)),
        )
        return rated[:limit]

    async def get_definitions(self, category: str) -> dict[str, Definition]:
        for key, entries in self.definitions.items():
            if _same(key, category):
                return dict(entries)
        return {}

    async def upsert_definitions(self, category: str,
                                 definitions: list[Definition]) -> int:
        bucket = self.definitions.setdefault(category, {})
        for d in definitions:
            bucket[d.feature] = d.model_copy(update={"category": category})
        return len(definitions)

    async def health_check(self) -> dict:
        return {"status": "healthy", "backend": "memory", "products": len(self.products)}


class InMemoryPriceRepository(PriceRepository):

    def __init__(self):
        self.records: list[PriceRecord] = []

    def _matching(self, category: str, brand: str, product_name: str) -> list[PriceRecord]:
        matched = [
            (idx, r) for idx, r in enumerate(self.records)
            if r.category == category and r.brand == brand
            and r.product_name == product_name
        ]
        # Insertion order breaks timestamp ties.
        matched.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [r for _, r in matched]

    async def latest_price(self, category: str, brand: str,
                           product_name: str) -> Optional[PriceRecord]:
        matched = self._matching(category, brand, product_name)
        return matched[0] if matched else None

    async def add_price(self, record: PriceRecord) -> PriceRecord:
        self.records.append(record)
        return record

    async def price_history(self, category: str, brand: str, product_name: str,
                            limit: int = 100) -> list[PriceRecord]:
        return self._matching(category, brand, product_name)[:limit]

    async def health_check(self) -> dict:
        return {"status": "healthy", "backend": "memory", "records": len(self.records)}
