"""Filter stage: structured predicates, AND-combined.

Every predicate is optional; an absent predicate places no constraint. The
category value "All" means "no category filter". Price bounds that don't
parse as finite numbers are dropped instead of rejected, and so are flags
that aren't recognisable booleans.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, field_validator

from catalog.orchestrator.schemas import CatalogItem
from catalog.utils.coercion import parse_bool, parse_float, parse_list, parse_str

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


class ListingFilters(BaseModel):
    """Canonical, already-coerced filter set."""

    model_config = {"frozen": True}

    category: str | None = None
    priceMin: float | None = None
    priceMax: float | None = None
    verified: bool | None = None
    featured: bool | None = None
    complexity: str | None = None
    tags: tuple[str, ...] | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> str | None:
        text = parse_str(v)
        return None if text == ALL_CATEGORIES else text

    @field_validator("priceMin", "priceMax", mode="before")
    @classmethod
    def _bound(cls, v: Any) -> float | None:
        return parse_float(v)

    @field_validator("verified", "featured", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool | None:
        return parse_bool(v)

    @field_validator("complexity", mode="before")
    @classmethod
    def _complexity(cls, v: Any) -> str | None:
        return parse_str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> tuple[str, ...] | None:
        values = [str(t).strip() for t in (parse_list(v) or []) if str(t).strip()]
        return tuple(sorted(set(values))) or None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> ListingFilters:
        """Build from raw query parameters, ignoring unknown keys."""
        return cls.model_validate({k: params.get(k) for k in cls.model_fields})

    def active(self) -> dict[str, Any]:
        """Only the predicates that constrain the result."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


def filter_items(
    items: Sequence[CatalogItem],
    filters: ListingFilters | Mapping[str, Any] | None = None,
) -> list[CatalogItem]:
    if filters is None:
        return list(items)
    if not isinstance(filters, ListingFilters):
        filters = ListingFilters.from_params(filters)

    active = filters.active()
    if not active:
        return list(items)

    filtered = [item for item in items if _accepts(item, filters)]
    logger.info(
        "Filters applied | %s | %d → %d items",
        ", ".join(f"{k}:{v}" for k, v in active.items()), len(items), len(filtered),
    )
    return filtered


def _accepts(item: CatalogItem, f: ListingFilters) -> bool:
    if f.category is not None:
        if item.category != f.category and f.category not in item.categories:
            return False
    if f.priceMin is not None and item.price < f.priceMin:
        return False
    if f.priceMax is not None and item.price > f.priceMax:
        return False
    if f.verified is not None and item.isVerified is not f.verified:
        return False
    if f.featured is not None and item.isFeatured is not f.featured:
        return False
    if f.complexity is not None:
        metadata = item.get("workflowMetadata")
        if not isinstance(metadata, dict) or metadata.get("complexity") != f.complexity:
            return False
    if f.tags is not None:
        item_tags = item.get("tags")
        if not isinstance(item_tags, list):
            return False
        if not any(tag in f.tags for tag in item_tags if isinstance(tag, str)):
            return False
    return True
