"""Marketplace Catalog: FastAPI application entry point.

Serves cached, searchable listings for the agents / prompts / videos
collections. ``create_app`` wires one set of services per collection around
a shared cache; the module-level ``app`` is what uvicorn runs.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog.config import Settings, settings
from catalog.errors import CatalogError
from catalog.integrations.document_store import DocumentStore, InMemoryDocumentStore
from catalog.integrations.sql_store import SqlCatalog
from catalog.orchestrator.demo_data import demo_documents
from catalog.orchestrator.router import CollectionServices
from catalog.pipelines.listing.collections import COLLECTIONS
from catalog.routes import router
from catalog.services.cache import CacheService

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("catalog")


def build_database(config: Settings) -> SqlCatalog | None:
    """The shared SQL engine, or None when the demo catalog runs in memory."""
    if config.is_demo_mode:
        return None
    return SqlCatalog(
        config.database_url,
        pool_size=config.database_pool_size,
        max_overflow=config.database_max_overflow,
    )


def build_stores(config: Settings, database: SqlCatalog | None = None) -> dict[str, DocumentStore]:
    if database is not None:
        return {name: database.store(name) for name in COLLECTIONS}
    return {
        name: InMemoryDocumentStore(name, demo_documents(name, config.demo_seed_count))
        for name in COLLECTIONS
    }


def create_app(
    config: Settings = settings,
    stores: dict[str, DocumentStore] | None = None,
    cache: CacheService | None = None,
) -> FastAPI:
    database = None
    if stores is None:
        database = build_database(config)
        stores = build_stores(config, database)
    cache = cache or CacheService(
        redis_url=config.redis_url,
        fallback_maxsize=config.cache_fallback_maxsize,
        default_ttl=config.cache_ttl_results,
    )
    collections = {
        name: CollectionServices(COLLECTIONS[name], store, cache, config)
        for name, store in stores.items()
        if name in COLLECTIONS
    }

    # ═══════════════ LIFESPAN ═══════════════

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Catalog starting | demo_mode=%s | collections=%s",
                    config.is_demo_mode, ",".join(collections))

        if database is not None:
            db_ok = await database.create_tables()
            logger.info("Database: %s", "connected" if db_ok else "unavailable")

        # Initialize Redis cache (graceful degradation if unavailable)
        if not cache.available:
            redis_ok = await cache.connect()
            logger.info("Redis: %s", "connected" if redis_ok else "unavailable (using in-memory fallback)")

        for services in collections.values():
            await services.snapshots.init()

        yield

        for services in collections.values():
            services.snapshots.dispose()
        await cache.disconnect()
        if database is not None:
            await database.dispose()
        logger.info("Catalog shutting down")

    # ═══════════════ APP ═══════════════

    app = FastAPI(
        title="Marketplace Catalog API",
        description="Cached listings for agents, prompts and videos",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.cache = cache
    app.state.collections = collections

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-Id"],
    )

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log("Request failed | %s %s | %d | %s",
            request.method, request.url.path, exc.status_code, str(exc)[:200])
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "demo_mode": config.is_demo_mode,
            "redis": await cache.ping(),
            "collections": {
                name: services.snapshots.stats()["loaded"] for name, services in collections.items()
            },
        }

    app.include_router(router)
    return app


app = create_app()
