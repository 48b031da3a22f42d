"""
asyncpg_repository.py — Production PostgreSQL repository implementations.

Products, schemas and price records are stored as JSONB documents next to
a few plain columns used for lookups. The product store and the price
store live on separate pools, each created explicitly at startup.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from comparebuy.models import (
    CategorySchema, Definition, PriceRecord, Product, ProductSummary,
    product_document,
)
from comparebuy.repository import PriceRepository, ProductRepository

logger = logging.getLogger(__name__)

PRODUCT_DDL = """
CREATE TABLE IF NOT EXISTS products (
    id          UUID PRIMARY KEY,
    category    TEXT NOT NULL,
    brand       TEXT,
    name        TEXT NOT NULL,
    rating      DOUBLE PRECISION,
    document    JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS products_lookup_idx
    ON products (lower(category), lower(brand), lower(name));

CREATE TABLE IF NOT EXISTS schema_definition (
    category    TEXT PRIMARY KEY,
    document    JSONB NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS schema_definition_category_idx
    ON schema_definition (lower(category));

CREATE TABLE IF NOT EXISTS definitions (
    category    TEXT NOT NULL,
    feature     TEXT NOT NULL,
    definition  TEXT NOT NULL,
    PRIMARY KEY (category, feature)
);
"""

PRICE_DDL = """
CREATE TABLE IF NOT EXISTS price_updates (
    id            UUID PRIMARY KEY,
    category      TEXT NOT NULL,
    brand         TEXT NOT NULL,
    product_name  TEXT NOT NULL,
    price         JSONB NOT NULL,
    timestamp     TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS price_updates_lookup_idx
    ON price_updates (category, brand, product_name, timestamp DESC);
"""


def like_pattern(text: str) -> str:
    """Substring ILIKE pattern with wildcards in ``text`` escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# ── Connection Pool Manager ──────────────────────────────────────────────────

class DatabasePool:
    """Manages asyncpg connection pool lifecycle."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10,
                 command_timeout: float = 30.0, name: str = "db"):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.name = name
        self._pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        """Create connection pool and install the JSONB codec."""
        self._pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout,
            init=self._init_connection,
        )
        logger.info(
            "Database pool %s initialized (min=%d, max=%d)",
            self.name, self.min_size, self.max_size,
        )

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        """Per-connection setup: JSONB in and out as Python objects."""
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError(f"Database pool {self.name} not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self):
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute_script(self, sql: str) -> None:
        async with self.acquire() as conn:
            await conn.execute(sql)

    async def health_check(self) -> dict:
        try:
            async with self.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                pool = self.pool
                return {
                    "status": "healthy",
                    "postgres_version": version,
                    "pool_size": pool.get_size(),
                    "pool_free": pool.get_idle_size(),
                }
        except Exception as e:
            logger.warning("Health check failed for %s: %s", self.name, e)
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            logger.info("Database pool %s closed", self.name)


# ── Product Repository ───────────────────────────────────────────────────────

class AsyncPGProductRepository(ProductRepository):
    """Product, schema and definition store on PostgreSQL."""

    def __init__(self, db: DatabasePool):
        self.db = db

    async def create_tables(self) -> None:
        await self.db.execute_script(PRODUCT_DDL)

    # ── Schemas ──────────────────────────────────────────────────────────

    async def list_categories(self) -> list[str]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT category FROM schema_definition ORDER BY category"
            )
            return [r["category"] for r in rows]

    async def get_schema(self, category: str) -> Optional[CategorySchema]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT document FROM schema_definition
                WHERE lower(category) = lower($1)
                ORDER BY category
                LIMIT 1
                """,
                category,
            )
            return CategorySchema.model_validate(row["document"]) if row else None

    async def upsert_schema(self, schema: CategorySchema) -> CategorySchema:
        document = schema.model_dump(mode="json", by_alias=True, exclude_unset=True)
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO schema_definition (category, document, updated_at)
                VALUES ($1, $2, $3)
                ON CONFLICT ((lower(category))) DO UPDATE SET
                    document = schema_definition.document || EXCLUDED.document
                        || jsonb_build_object('Category', schema_definition.category),
                    updated_at = EXCLUDED.updated_at
                RETURNING document
                """,
                schema.category,
                document,
                datetime.now(timezone.utc),
            )
        logger.info("Upserted schema for %s", schema.category)
        return CategorySchema.model_validate(row["document"])

    # ── Products ─────────────────────────────────────────────────────────

    async def distinct_brands(self, category: str) -> list[str]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT brand FROM products
                WHERE lower(category) = lower($1) AND brand IS NOT NULL
                ORDER BY brand
                """,
                category,
            )
            return [r["brand"] for r in rows]

    async def distinct_models(self, category: str, brand: str) -> list[str]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT name FROM products
                WHERE lower(category) = lower($1) AND lower(brand) = lower($2)
                ORDER BY name
                """,
                category,
                brand,
            )
            return [r["name"] for r in rows]

    async def find_product(self, category: str, brand: str, name: str) -> Optional[Product]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT document FROM products
                WHERE lower(category) = lower($1)
                  AND lower(brand) = lower($2)
                  AND lower(name) = lower($3)
                ORDER BY created_at
                LIMIT 1
                """,
                category,
                brand,
                name,
            )
            return Product.model_validate(row["document"]) if row else None

    async def search_products(self, query: str, category: Optional[str] = None,
                              limit: int = 20) -> list[ProductSummary]:
        conditions = ["(name ILIKE $1 ESCAPE '\\' OR brand ILIKE $1 ESCAPE '\\')"]
        vals: list[Any] = [like_pattern(query)]
        if category is not None:
            conditions.append("lower(category) = lower($2)")
            vals.append(category)

        sql = f"""
            SELECT name, brand FROM products
            WHERE {' AND '.join(conditions)}
            ORDER BY created_at
            LIMIT {int(limit)}
        """
        async with self.db.acquire() as conn:
            rows = await conn.fetch(sql, *vals)
            return [ProductSummary(name=r["name"], brand=r["brand"]) for r in rows]

    async def insert_products(self, products: list[Product]) -> int:
        now = datetime.now(timezone.utc)
        records = [
            (uuid.uuid4(), p.category, p.brand, p.name, p.rating, product_document(p), now)
            for p in products
        ]
        async with self.db.transaction() as conn:
            await conn.executemany(
                """
                INSERT INTO products (id, category, brand, name, rating, document, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                records,
            )
        logger.info("Inserted %d product(s)", len(records))
        return len(records)

    async def set_price(self, category: str, brand: str, name: str,
                        price: Any) -> Optional[Product]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE products SET document = jsonb_set(document, '{price}', $4)
                WHERE id = (
                    SELECT id FROM products
                    WHERE category = $1 AND brand = $2 AND name = $3
                    ORDER BY created_at
                    LIMIT 1
                )
                RETURNING document
                """,
                category,
                brand,
                name,
                price,
            )
            return Product.model_validate(row["document"]) if row else None

    async def list_products(self, limit: int, category: Optional[str] = None,
                            brand: Optional[str] = None) -> list[Product]:
        conditions, vals, idx = [], [], 1
        if category is not None:
            conditions.append(f"lower(category) = lower(${idx})")
            vals.append(category)
            idx += 1
        if brand is not None:
            conditions.append(f"lower(brand) = lower(${idx})")
            vals.append(brand)
            idx += 1

        where = "WHERE " + " AND ".join(conditions) if conditions else ""
        sql = f"""
            SELECT document FROM products
            {where}
            ORDER BY created_at
            LIMIT {int(limit)}
        """
        async with self.db.acquire() as conn:
            rows = await conn.fetch(sql, *vals)
            return [Product.model_validate(r["document"]) for r in rows]

    async def top_rated(self, limit: int) -> list[Product]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT document FROM products
                ORDER BY rating DESC NULLS LAST, created_at
                LIMIT {int(limit)}
                """
            )
            return [Product.model_validate(r["document"]) for r in rows]

    # ── Definitions ──────────────────────────────────────────────────────

    async def get_definitions(self, category: str) -> dict[str, Definition]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT category, feature, definition FROM definitions
                WHERE lower(category) = lower($1)
                ORDER BY feature
                """,
                category,
            )
            return {r["feature"]: Definition(**dict(r)) for r in rows}

    async def upsert_definitions(self, category: str,
                                 definitions: list[Definition]) -> int:
        async with self.db.transaction() as conn:
            await conn.executemany(
                """
                INSERT INTO definitions (category, feature, definition)
                VALUES ($1, $2, $3)
                ON CONFLICT (category, feature) DO UPDATE SET
                    definition = EXCLUDED.definition
                """,
                [(category, d.feature, d.definition) for d in definitions],
            )
        return len(definitions)

    async def health_check(self) -> dict:
        return await self.db.health_check()


# ── Price Repository ─────────────────────────────────────────────────────────

class AsyncPGPriceRepository(PriceRepository):
    """Price history on its own database."""

    def __init__(self, db: DatabasePool):
        self.db = db

    async def create_tables(self) -> None:
        await self.db.execute_script(PRICE_DDL)

    @staticmethod
    def _to_record(row: asyncpg.Record) -> PriceRecord:
        return PriceRecord(
            category=row["category"],
            brand=row["brand"],
            product_name=row["product_name"],
            price=row["price"],
            timestamp=row["timestamp"],
        )

    async def latest_price(self, category: str, brand: str,
                           product_name: str) -> Optional[PriceRecord]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT category, brand, product_name, price, timestamp
                FROM price_updates
                WHERE category = $1 AND brand = $2 AND product_name = $3
                ORDER BY timestamp DESC
                LIMIT 1
                """,
                category,
                brand,
                product_name,
            )
            return self._to_record(row) if row else None

    async def add_price(self, record: PriceRecord) -> PriceRecord:
        async with self.db.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO price_updates (id, category, brand, product_name, price, timestamp)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                uuid.uuid4(),
                record.category,
                record.brand,
                record.product_name,
                record.price,
                record.timestamp,
            )
        return record

    async def price_history(self, category: str, brand: str, product_name: str,
                            limit: int = 100) -> list[PriceRecord]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT category, brand, product_name, price, timestamp
                FROM price_updates
                WHERE category = $1 AND brand = $2 AND product_name = $3
                ORDER BY timestamp DESC
                LIMIT $4
                """,
                category,
                brand,
                product_name,
                limit,
            )
            return [self._to_record(r) for r in rows]

    async def health_check(self) -> dict:
        return await self.db.health_check()
