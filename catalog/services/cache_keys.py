"""Cache key schema and query signatures.

Key format: {prefix}:{collection}:{kind}[:{identifier}]

Where:
- prefix: "mk" by default (namespace on a shared Redis)
- collection: "agents", "prompts", "videos"
- kind: "results" (listing pages), "search-count", "item", "category",
  "categories", "total", "featured", "tag"

Listing pages live under ``{prefix}:{collection}:results:*`` so the whole
result namespace can still be purged by pattern (admin refresh / clear).
Day-to-day invalidation goes through tags instead: every stored result is
tagged with the category it filters on, or ``category:*`` when it does not
filter by category.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable

from catalog.pipelines.listing import ListingQuery
from catalog.pipelines.listing.search import tokenize

ANY_CATEGORY_TAG = "category:*"


def canonical_query(query: ListingQuery) -> str:
    """Order- and format-independent text form of a listing request.

    Search terms are lower-cased, de-duplicated and sorted (matching is a
    case-insensitive AND, so term order never changes the result). Filters
    arrive already coerced, so "10", "10.0" and "1e1" are all 10.0. The form
    is JSON so user text can never be read as structure.
    """
    filters = {
        name: list(value) if isinstance(value, tuple) else value
        for name, value in query.filters.active().items()
    }
    return json.dumps(
        {
            "search": sorted(set(tokenize(query.search))),
            "filters": filters,
            "limit": query.limit,
            "offset": query.offset,
        },
        sort_keys=True,
        ensure_ascii=False,
    )


def compute_signature(query: ListingQuery) -> str:
    """Deterministic fixed-length signature of a listing request."""
    return hashlib.sha256(canonical_query(query).encode()).hexdigest()[:32]


def category_tag(category: str) -> str:
    return f"category:{category}"


def tags_for_query(query: ListingQuery) -> set[str]:
    """Tags a stored result depends on."""
    if query.filters.category is not None:
        return {category_tag(query.filters.category)}
    return {ANY_CATEGORY_TAG}


def tags_for_categories(categories: Iterable[str]) -> set[str]:
    """Tags to purge when an item in ``categories`` changes."""
    return {ANY_CATEGORY_TAG} | {category_tag(c) for c in categories if c}


class CacheKeys:
    """Cache key generator for one collection."""

    def __init__(self, collection: str, prefix: str = "mk"):
        self.collection = collection
        self.prefix = prefix
        self.base = f"{prefix}:{collection}"

    def results(self, signature: str) -> str:
        return f"{self.base}:results:{signature}"

    def results_pattern(self) -> str:
        return f"{self.base}:results:*"

    def namespace_pattern(self) -> str:
        return f"{self.base}:*"

    def search_count(self, signature: str) -> str:
        return f"{self.base}:results:count:{signature}"

    def featured(self, limit: int) -> str:
        return f"{self.base}:results:featured:{limit}"

    def item(self, item_id: str) -> str:
        return f"{self.base}:item:{item_id}"

    def category(self, name: str) -> str:
        return f"{self.base}:category:{name}"

    def category_counts(self) -> str:
        return f"{self.base}:categories:counts"

    def total_count(self) -> str:
        return f"{self.base}:total:count"

    def tag(self, tag: str) -> str:
        return f"{self.base}:tag:{tag}"
