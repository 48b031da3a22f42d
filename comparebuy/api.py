"""
CompareBuy — FastAPI Application Layer

Endpoints:
  GET  /categories                                  — Category names
  GET  /get-schema/{category}                       — Category schema
  GET  /definitions/{category}                      — Feature definitions
  GET  /{category}/brands                           — Brands in a category
  GET  /{category}/{brand}/models                   — Models for a brand
  GET  /{category}/{brand}/{model}/productDetails   — One product
  GET  /{category}/compare                          — Rendered comparison
  GET  /search, /{category}/search                  — Loose search
  GET  /products/{category}                         — Category listing
  GET  /recommended/brand/{category}/{brand}        — Same-brand picks
  GET  /recommended/category/{category}             — Same-category picks
  GET  /hot-selling                                 — Top rated
  GET  /price-history/{category}/{brand}/{model}    — Recorded prices
  POST /insert-products                             — Insert one or many
  POST /update-price                                — Record a price change
  POST /insert-schema                               — Upsert a schema
  POST /insert-definitions                          — Upsert definitions
  GET  /health                                      — Health check

Error bodies are always {"error": "..."}.
"""
from __future__ import annotations
import logging
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Optional, Union

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from comparebuy.asyncpg_repository import (
    AsyncPGPriceRepository, AsyncPGProductRepository, DatabasePool,
)
from comparebuy.catalog import CatalogService
from comparebuy.config import Settings, get_settings
from comparebuy.errors import CatalogError
from comparebuy.models import (
    DefinitionsRequest, HealthResponse, PriceUpdateRequest, product_document,
)
from comparebuy.renderer import render_html

logger = logging.getLogger(__name__)


# ============================================================
# Application State
# ============================================================

class AppState:
    """Explicit handles shared by all requests of one app instance."""
    settings: Settings
    catalog: Optional[CatalogService]
    pools: list[DatabasePool]
    start_time: float
    request_count: int = 0

    def __init__(self, settings: Settings, catalog: Optional[CatalogService] = None):
        self.settings = settings
        self.catalog = catalog
        self.pools = []
        self.start_time = time.monotonic()
        self.request_count = 0


async def build_catalog(settings: Settings) -> tuple[CatalogService, list[DatabasePool]]:
    """Open both databases; any failure here aborts startup."""
    product_db = DatabasePool(
        settings.asyncpg_dsn, settings.db_pool_min, settings.db_pool_max,
        settings.db_command_timeout, name="products",
    )
    price_db = DatabasePool(
        settings.price_asyncpg_dsn, settings.db_pool_min, settings.db_pool_max,
        settings.db_command_timeout, name="prices",
    )
    opened: list[DatabasePool] = []
    try:
        for pool in (product_db, price_db):
            await pool.initialize()
            opened.append(pool)
        products = AsyncPGProductRepository(product_db)
        prices = AsyncPGPriceRepository(price_db)
        await products.create_tables()
        await prices.create_tables()
    except Exception:
        for pool in opened:
            await pool.close()
        raise
    return CatalogService(products, prices, settings), opened


# ============================================================
# Lifespan: Startup / Shutdown
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, cleanup on shutdown."""
    state: AppState = app.state.comparebuy
    logger.info("Starting CompareBuy API...")

    if state.catalog is None:
        try:
            state.catalog, state.pools = await build_catalog(state.settings)
        except Exception:
            logger.exception("Database startup failed")
            raise

    logger.info("System ready.")
    yield

    logger.info("Shutting down CompareBuy API...")
    for pool in state.pools:
        await pool.close()


def get_state(request: Request) -> AppState:
    return request.app.state.comparebuy


def get_catalog(state: AppState = Depends(get_state)) -> CatalogService:
    if state.catalog is None:
        raise HTTPException(503, "Service not ready")
    return state.catalog


@contextmanager
def translate_errors(message: str):
    """Domain errors keep their status; anything else is logged and becomes a 500."""
    try:
        yield
    except CatalogError as e:
        raise HTTPException(e.status_code, e.payload())
    except HTTPException:
        raise
    except Exception:
        logger.exception(message)
        raise HTTPException(500, message)


# ============================================================
# Error Shaping
# ============================================================

async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(body, status_code=exc.status_code,
                        headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if any(err.get("type") == "json_invalid" for err in exc.errors()):
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


router = APIRouter()


# ============================================================
# System
# ============================================================

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(state: AppState = Depends(get_state)):
    """System health check."""
    components = {}
    if state.catalog is not None:
        components = await state.catalog.health()
    status = "healthy"
    if not components or any(c.get("status") != "healthy" for c in components.values()):
        status = "degraded"
    return HealthResponse(
        status=status,
        components=components,
        version=state.settings.app_version,
        uptime_seconds=int(time.monotonic() - state.start_time),
        request_count=state.request_count,
    )


# ============================================================
# Categories, Schemas & Definitions
# ============================================================

@router.get("/categories", tags=["Catalog"])
async def list_categories(catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching categories"):
        return await catalog.categories()


@router.get("/get-schema/{category}", tags=["Schemas"])
async def get_schema(category: str, catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching schema definition"):
        schema = await catalog.get_schema(category)
        return schema.model_dump(mode="json", by_alias=True)


@router.get("/definitions/{category}", tags=["Schemas"])
async def get_definitions(category: str, catalog: CatalogService = Depends(get_catalog)):
    """Feature definitions for one category, keyed by feature name."""
    with translate_errors("Error fetching definitions"):
        definitions = await catalog.definitions(category)
        return {
            feature: d.model_dump(include={"feature", "definition"})
            for feature, d in definitions.items()
        }


# ============================================================
# Search, Listings & Price History
# ============================================================

def _search_response(found) -> dict[str, Any]:
    return {"count": len(found), "products": [p.model_dump() for p in found]}


@router.get("/search", tags=["Search"])
async def search_all(
    query: Optional[str] = Query(None, description="At least 3 characters"),
    catalog: CatalogService = Depends(get_catalog),
):
    """Search products by name or brand across all categories."""
    with translate_errors("Error searching products"):
        return _search_response(await catalog.search(query))


@router.get("/hot-selling", tags=["Listings"])
async def hot_selling(catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching hot selling products"):
        found = await catalog.hot_selling()
        return {"count": len(found),
                "hotSellingProducts": [product_document(p) for p in found]}


@router.get("/products/{category}", tags=["Listings"])
async def products_in_category(category: str, catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching products"):
        found = await catalog.products_in_category(category)
        return {"count": len(found),
                "products": [p.model_dump(mode="json", exclude_none=True) for p in found]}


@router.get("/recommended/brand/{category}/{brand}", tags=["Listings"])
async def recommended_by_brand(category: str, brand: str,
                               catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching recommended products from the same brand"):
        found = await catalog.recommended_by_brand(category, brand)
        return {"count": len(found),
                "recommendedProducts": [product_document(p) for p in found]}


@router.get("/recommended/category/{category}", tags=["Listings"])
async def recommended_by_category(category: str,
                                  catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching recommended products from the same category"):
        found = await catalog.recommended_by_category(category)
        return {"count": len(found),
                "recommendedProducts": [product_document(p) for p in found]}


@router.get("/price-history/{category}/{brand}/{model}", tags=["Prices"])
async def price_history(category: str, brand: str, model: str,
                        catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching price history"):
        history = await catalog.price_history(category, brand, model)
        return {"count": len(history),
                "history": [r.model_dump(mode="json") for r in history]}


# ============================================================
# Writes
# ============================================================

@router.post("/insert-products", tags=["Writes"])
async def insert_products(
    payload: Union[list[Any], dict[str, Any]] = Body(...),
    catalog: CatalogService = Depends(get_catalog),
):
    """Insert a single product or an array; every product must pass its schema."""
    with translate_errors("Error inserting products"):
        message = await catalog.insert_products(payload)
        return {"message": message}


@router.post("/update-price", tags=["Prices"])
async def update_price(request: PriceUpdateRequest,
                       catalog: CatalogService = Depends(get_catalog)):
    """Record a new price only when it differs from the latest one."""
    with translate_errors("Error updating price"):
        result = await catalog.update_price(request)
        return result.model_dump(exclude_none=True)


@router.post("/insert-schema", tags=["Schemas"])
async def insert_schema(payload: dict[str, Any] = Body(...),
                        catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error inserting/updating schema"):
        schema = await catalog.upsert_schema(payload)
        return {
            "success": True,
            "message": "Schema inserted/updated successfully",
            "schema": schema.model_dump(mode="json", by_alias=True),
        }


@router.post("/insert-definitions", tags=["Schemas"])
async def insert_definitions(request: DefinitionsRequest,
                             catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error inserting definitions"):
        count = await catalog.upsert_definitions(request.category, request.definitions)
        return {"success": True, "count": count}


# ============================================================
# Category Cascade (parameterised paths last)
# ============================================================

@router.get("/{category}/brands", tags=["Catalog"])
async def list_brands(category: str, catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching brands"):
        return await catalog.brands(category)


@router.get("/{category}/search", tags=["Search"])
async def search_category(
    category: str,
    query: Optional[str] = Query(None, description="At least 3 characters"),
    catalog: CatalogService = Depends(get_catalog),
):
    """Search products by name or brand within one category."""
    with translate_errors("Error searching products"):
        return _search_response(await catalog.search(query, category=category))


@router.get("/{category}/compare", tags=["Comparison"])
async def compare_products(
    category: str,
    brand1: Optional[str] = Query(None),
    model1: Optional[str] = Query(None),
    brand2: Optional[str] = Query(None),
    model2: Optional[str] = Query(None),
    format: str = Query("json", pattern="^(json|html)$"),
    catalog: CatalogService = Depends(get_catalog),
):
    """Side-by-side feature comparison of two products in one category."""
    if not (brand1 and model1 and brand2 and model2):
        raise HTTPException(400, "brand1, model1, brand2 and model2 are required")

    with translate_errors("Error comparing products"):
        table = await catalog.compare(category, brand1, model1, brand2, model2)

    if format == "html":
        return HTMLResponse(render_html(table))
    return table.model_dump()


@router.get("/{category}/{brand}/models", tags=["Catalog"])
async def list_models(category: str, brand: str,
                      catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching models"):
        return await catalog.models(category, brand)


@router.get("/{category}/{brand}/{model}/productDetails", tags=["Catalog"])
async def product_details(category: str, brand: str, model: str,
                          catalog: CatalogService = Depends(get_catalog)):
    with translate_errors("Error fetching product data"):
        product = await catalog.product_details(category, brand, model)
        return product_document(product)


# ============================================================
# App Factory
# ============================================================

def create_app(settings: Optional[Settings] = None,
               catalog: Optional[CatalogService] = None) -> FastAPI:
    """Build the API. Pass ``catalog`` to skip opening the databases."""
    settings = settings or get_settings()

    app = FastAPI(
        title="CompareBuy API",
        description="Product catalog and side-by-side comparison.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.comparebuy = AppState(settings, catalog)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        start = time.monotonic()
        app.state.comparebuy.request_count += 1
        response = await call_next(request)
        elapsed = int((time.monotonic() - start) * 1000)
        response.headers["X-Response-Time-Ms"] = str(elapsed)
        return response

    app.include_router(router)
    return app


app = create_app()


# ============================================================
# Entry Point
# ============================================================

def serve(settings: Optional[Settings] = None) -> None:
    import uvicorn
    from comparebuy.logging_config import configure_logging

    settings = settings or get_settings()
    configure_logging(settings)
    uvicorn.run(
        "comparebuy.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    serve()
