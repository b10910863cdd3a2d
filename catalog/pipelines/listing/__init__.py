"""Listing pipeline: Search → Filter → Sort & Paginate over one snapshot.

All stages are pure functions over an immutable item sequence, so a request
that captured a snapshot reference at its start sees one generation only.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field

from catalog.orchestrator.schemas import CatalogItem
from catalog.pipelines.listing.collections import AGENTS, CollectionSpec
from catalog.pipelines.listing.filters import ListingFilters, filter_items
from catalog.pipelines.listing.pagination import DEFAULT_LIMIT, Page, paginate, sort_by_recency
from catalog.pipelines.listing.search import search_items
from catalog.utils.coercion import parse_int, parse_str

logger = logging.getLogger(__name__)


class ListingQuery(BaseModel):
    """A fully coerced listing request."""

    model_config = {"frozen": True}

    search: str | None = None
    filters: ListingFilters = Field(default_factory=ListingFilters)
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int | None = None,
    ) -> ListingQuery:
        limit = parse_int(params.get("limit"), default_limit)
        if limit <= 0:
            limit = default_limit
        if max_limit is not None:
            limit = min(limit, max_limit)
        return cls(
            search=parse_str(params.get("search")) or parse_str(params.get("searchQuery")),
            filters=ListingFilters.from_params(params),
            limit=limit,
            offset=max(parse_int(params.get("offset"), 0), 0),
        )


class ListingPipeline:
    """Runs the listing stages for one collection."""

    def __init__(self, spec: CollectionSpec = AGENTS):
        self.spec = spec

    def matching(self, items: Sequence[CatalogItem], query: ListingQuery) -> list[CatalogItem]:
        """Search and filter, without ordering or slicing."""
        results = search_items(items, query.search, self.spec.search_fields)
        return filter_items(results, query.filters)

    def execute(self, items: Sequence[CatalogItem], query: ListingQuery) -> Page:
        matched = self.matching(items, query)
        page = paginate(sort_by_recency(matched), query.limit, query.offset)
        logger.info(
            "Listing %s | matched=%d | page=%d/%d | returned=%d",
            self.spec.name, page.total_count, page.current_page, page.total_pages, len(page.items),
        )
        return page


__all__ = [
    "ListingFilters",
    "ListingPipeline",
    "ListingQuery",
    "Page",
    "filter_items",
    "paginate",
    "search_items",
    "sort_by_recency",
]
