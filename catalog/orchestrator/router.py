"""Orchestrator: the read path for one collection.

Responsibilities:
  - Canonicalize the request into a ListingQuery and its signature
  - Check the query result cache before touching the snapshot
  - On a miss, make sure the snapshot is fresh and run the listing pipeline
  - Store the result, tagged with the categories it depends on
  - Serve aggregates (counts, per-category lists, featured) the same way

``CollectionServices`` wires one collection's snapshot manager, orchestrator,
invalidator and writer around a shared cache.
"""

import logging
import time
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from catalog.config import Settings, settings as default_settings
from catalog.errors import ItemNotFoundError, PayloadValidationError, StoreError
from catalog.integrations.document_store import DocumentStore
from catalog.orchestrator.schemas import (
    CatalogItem,
    CategoriesResponse,
    CategoryCount,
    CategoryItemsResponse,
    CountResponse,
    FeaturedResponse,
    ItemResponse,
    ListingPage,
    ListingResponse,
    RefreshResponse,
    SearchCountResponse,
)
from catalog.pipelines.listing import ListingFilters, ListingPipeline, ListingQuery, Page
from catalog.pipelines.listing.collections import CollectionSpec
from catalog.pipelines.listing.filters import ALL_CATEGORIES, filter_items
from catalog.pipelines.listing.pagination import sort_by_recency
from catalog.services.cache import CacheService
from catalog.services.cache_keys import ANY_CATEGORY_TAG, CacheKeys, compute_signature, tags_for_query
from catalog.services.catalog_writer import CatalogWriter, review_stats
from catalog.services.invalidator import Invalidator
from catalog.services.rate_limiter import RateLimiter
from catalog.services.snapshot import SnapshotManager
from catalog.utils.coercion import parse_int, parse_str

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _listing_page(page: Page, query: ListingQuery) -> ListingPage:
    return ListingPage(
        items=[item.to_document() for item in page.items],
        totalCount=page.total_count,
        currentPage=page.current_page,
        totalPages=page.total_pages,
        hasMore=page.has_more,
        limit=page.limit,
        offset=page.offset,
        lastVisibleId=page.last_visible_id,
        searchQuery=query.search,
        filters=query.filters.model_dump(mode="json", exclude_none=True),
    )


def item_view(document: dict[str, Any]) -> dict[str, Any]:
    """Single-item response body with derived engagement fields."""
    view = CatalogItem.from_document(str(document["id"]), document).to_document()
    likes = view.get("likes")
    reviews = [r for r in view.get("reviews") or [] if isinstance(r, dict)]
    count, average = review_stats(reviews)
    view["likesCount"] = len(likes) if isinstance(likes, list) else parse_int(view.get("likesCount"), 0)
    view["reviewCount"] = count
    view["averageRating"] = average
    return view


class ListingOrchestrator:
    """Serves every read operation of one collection."""

    def __init__(
        self,
        spec: CollectionSpec,
        snapshots: SnapshotManager,
        cache: CacheService,
        store: DocumentStore,
        config: Settings = default_settings,
    ):
        self.spec = spec
        self.snapshots = snapshots
        self.cache = cache
        self.store = store
        self.config = config
        self.keys = CacheKeys(spec.name, config.cache_prefix)
        self.pipeline = ListingPipeline(spec)

    def parse_query(self, params: Mapping[str, Any]) -> ListingQuery:
        return ListingQuery.from_params(
            params, default_limit=self.config.default_page_limit, max_limit=self.config.max_page_limit,
        )

    # ─────────────── listings ───────────────

    async def list_items(self, params: Mapping[str, Any]) -> ListingResponse:
        start = time.monotonic()
        query = self.parse_query(params)
        key = self.keys.results(compute_signature(query))

        cached = await self.cache.get(key)
        if cached is not None:
            # Signatures ignore term order, so echo this request's own text
            page = ListingPage.model_validate({**cached, "searchQuery": query.search})
            return ListingResponse(**page.model_dump(), fromCache=True, responseTimeMs=_elapsed_ms(start))

        snapshot = await self.snapshots.ensure_fresh()
        page = _listing_page(self.pipeline.execute(snapshot.items, query), query)
        await self.cache.set(
            key, page.model_dump(mode="json"), self.config.cache_ttl_results,
            tags=[self.keys.tag(t) for t in tags_for_query(query)],
        )
        elapsed = _elapsed_ms(start)
        logger.info(
            "Listing served | collection=%s | total=%d | page=%d | snapshot=v%d | %dms",
            self.spec.name, page.totalCount, page.currentPage, snapshot.version, elapsed,
        )
        return ListingResponse(**page.model_dump(), fromCache=False, responseTimeMs=elapsed)

    async def search_count(self, params: Mapping[str, Any]) -> SearchCountResponse:
        text = parse_str(params.get("q"))
        if not text:
            raise PayloadValidationError("Search query is required")
        # Counts don't depend on paging, so the signature is built without it
        query = ListingQuery(search=text, filters=ListingFilters.from_params(params))
        key = self.keys.search_count(compute_signature(query))
        filters = query.filters.model_dump(mode="json", exclude_none=True)

        cached = await self.cache.get(key)
        if cached is not None:
            return SearchCountResponse(
                count=cached["count"], totalItems=cached.get("totalItems"),
                searchQuery=text, filters=filters, fromCache=True,
            )

        snapshot = await self.snapshots.ensure_fresh()
        count = len(self.pipeline.matching(snapshot.items, query))
        await self.cache.set(
            key, {"count": count, "totalItems": len(snapshot)}, self.config.cache_ttl_results,
            tags=[self.keys.tag(t) for t in tags_for_query(query)],
        )
        return SearchCountResponse(count=count, totalItems=len(snapshot), searchQuery=text, filters=filters)

    async def featured(self, limit: Any = None) -> FeaturedResponse:
        limit = parse_int(limit, self.config.default_page_limit)
        if limit <= 0:
            limit = self.config.default_page_limit
        limit = min(limit, self.config.max_page_limit)
        key = self.keys.featured(limit)

        cached = await self.cache.get(key)
        if cached is not None:
            return FeaturedResponse(items=cached, count=len(cached), fromCache=True)

        snapshot = await self.snapshots.ensure_fresh()
        items = [i.to_document() for i in sort_by_recency([i for i in snapshot.items if i.isFeatured])[:limit]]
        await self.cache.set(key, items, self.config.cache_ttl_results, tags=[self.keys.tag(ANY_CATEGORY_TAG)])
        return FeaturedResponse(items=items, count=len(items))

    # ─────────────── aggregates ───────────────

    async def total_count(self) -> CountResponse:
        key = self.keys.total_count()
        cached = await self.cache.get(key)
        if cached is not None:
            return CountResponse(totalCount=cached, fromCache=True)

        snapshot = await self.snapshots.ensure_fresh()
        await self.cache.set(key, len(snapshot), self.config.cache_ttl_aggregates)
        return CountResponse(totalCount=len(snapshot))

    async def category_counts(self) -> CategoriesResponse:
        key = self.keys.category_counts()
        cached = await self.cache.get(key)
        if cached is not None:
            return CategoriesResponse(categories=cached, fromCache=True)

        snapshot = await self.snapshots.ensure_fresh()
        counts: Counter[str] = Counter()
        for item in snapshot.items:
            # Same membership the category filter uses
            counts.update({c for c in (*item.categories, item.category) if c})
        categories = [CategoryCount(name=ALL_CATEGORIES, count=len(snapshot))]
        categories += [
            CategoryCount(name=name, count=count)
            for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        await self.cache.set(
            key, [c.model_dump() for c in categories], self.config.cache_ttl_aggregates,
        )
        return CategoriesResponse(categories=categories)

    async def category_items(self, name: str) -> CategoryItemsResponse:
        key = self.keys.category(name)
        cached = await self.cache.get(key)
        if cached is not None:
            return CategoryItemsResponse(category=name, items=cached, count=len(cached), fromCache=True)

        snapshot = await self.snapshots.ensure_fresh()
        matched = sort_by_recency(filter_items(snapshot.items, {"category": name}))
        items = [i.to_document() for i in matched]
        await self.cache.set(key, items, self.config.cache_ttl_aggregates)
        return CategoryItemsResponse(category=name, items=items, count=len(items))

    # ─────────────── single item ───────────────

    async def get_item(self, item_id: str, skip_cache: bool = False) -> ItemResponse:
        key = self.keys.item(item_id)
        if not skip_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                return ItemResponse(data=cached, fromCache=True)

        document = await self._fetch(item_id)
        if document is None:
            raise ItemNotFoundError(self.spec.name, item_id)
        view = item_view(document)
        await self.cache.set(key, view, self.config.cache_ttl_item)
        return ItemResponse(data=view)

    async def _fetch(self, item_id: str) -> dict[str, Any] | None:
        """Read from the store, falling back to the current snapshot when it fails."""
        try:
            return await self.store.get_by_id(item_id)
        except Exception as e:
            logger.warning("Store read failed | collection=%s | id=%s | %s", self.spec.name, item_id, str(e)[:200])
            snapshot = self.snapshots.current
            if snapshot is not None:
                for item in snapshot.items:
                    if item.id == item_id:
                        return item.to_document()
            raise StoreError(f"could not read {self.spec.name}/{item_id}") from e

    # ─────────────── admin ───────────────

    async def refresh(self) -> RefreshResponse:
        """Force a snapshot reload and drop everything cached for the collection."""
        snapshot = await self.snapshots.force_refresh()
        purged = await self.cache.delete_pattern(self.keys.namespace_pattern())
        logger.info("Admin refresh | collection=%s | items=%d | purged=%d", self.spec.name, len(snapshot), purged)
        return RefreshResponse(
            message=f"{self.spec.name} cache refreshed",
            itemCount=len(snapshot),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def clear_cache(self) -> int:
        return await self.cache.delete_pattern(self.keys.namespace_pattern())

    def stats(self) -> dict[str, Any]:
        return {
            "collection": self.spec.name,
            "snapshot": self.snapshots.stats(),
            "cache": self.cache.stats(),
            "ttlSeconds": {
                "results": self.config.cache_ttl_results,
                "item": self.config.cache_ttl_item,
                "aggregates": self.config.cache_ttl_aggregates,
            },
            "sampleSignature": compute_signature(self.parse_query({})),
        }


class CollectionServices:
    """Everything one collection needs, built around a shared cache."""

    def __init__(
        self,
        spec: CollectionSpec,
        store: DocumentStore,
        cache: CacheService,
        config: Settings = default_settings,
    ):
        self.spec = spec
        self.store = store
        self.snapshots = SnapshotManager(store, spec, config.snapshot_max_staleness)
        self.reader = ListingOrchestrator(spec, self.snapshots, cache, store, config)
        self.invalidator = Invalidator(self.snapshots, cache, self.reader.keys)
        self.writer = CatalogWriter(
            spec, store, self.invalidator,
            review_limiter=RateLimiter(config.review_rate_limit, config.review_rate_window_seconds),
        )
