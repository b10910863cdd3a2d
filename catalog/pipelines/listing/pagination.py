"""Sort & paginate stage.

Ordering is newest ``createdAt`` first. Items without a usable timestamp
compare equal to each other and keep their input order (Python's sort is
stable); they are placed after every dated item.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from catalog.orchestrator.schemas import CatalogItem

DEFAULT_LIMIT = 20

# Epoch values above this are taken to be milliseconds
_MS_THRESHOLD = 1e11


class Page(BaseModel):
    items: list[CatalogItem] = Field(default_factory=list)
    total_count: int = 0
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @property
    def current_page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit)

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total_count

    @property
    def last_visible_id(self) -> str | None:
        return self.items[-1].id if self.items else None


def parse_timestamp(value: Any) -> float | None:
    """Epoch seconds for ISO strings, datetimes, epoch numbers and
    ``{"_seconds": …}`` store timestamps; None when unusable."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return value / 1000 if value > _MS_THRESHOLD else float(value)
    if isinstance(value, str) and value.strip():
        try:
            return parse_timestamp(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            return float(seconds)
    return None


def _recency_key(item: CatalogItem) -> tuple[int, float]:
    ts = parse_timestamp(item.createdAt)
    return (1, 0.0) if ts is None else (0, -ts)


def sort_by_recency(items: Sequence[CatalogItem]) -> list[CatalogItem]:
    return sorted(items, key=_recency_key)


def paginate(items: Sequence[CatalogItem], limit: int = DEFAULT_LIMIT, offset: int = 0) -> Page:
    """Slice one page. Offsets past the end give an empty page, not an error."""
    if limit <= 0:
        limit = DEFAULT_LIMIT
    offset = max(offset, 0)
    return Page(
        items=list(items[offset:offset + limit]),
        total_count=len(items),
        limit=limit,
        offset=offset,
    )
