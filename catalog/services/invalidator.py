"""Invalidator: keeps cached reads consistent with the post-write snapshot.

Runs synchronously right after a successful document-store write:

  1. force-refresh the collection snapshot
  2. purge cached query results by tag (``category:*`` plus every category
     the item belonged to before or after the write)
  3. purge the single-item entry (update / delete / engagement)
  4. purge per-category aggregates (including "All") and the category counts
  5. purge the total count (create / delete)

Counter increments (views, downloads) only drop the single-item entry.
Listings and the snapshot pick the new counts up on their next refresh, so
an anonymous page view never empties the result cache.

Every step is best effort. A failing step is logged and recorded in the
returned ``InvalidationReport``; it never fails the write, which has already
succeeded and is authoritative. All steps are deletions or a full reload, so
running the same event twice leaves the same end state as running it once.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from catalog.pipelines.listing.filters import ALL_CATEGORIES
from catalog.services.cache import CacheService
from catalog.services.cache_keys import CacheKeys, tags_for_categories
from catalog.services.snapshot import SnapshotManager

logger = logging.getLogger(__name__)


class InvalidationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ENGAGEMENT = "engagement"
    COUNTER = "counter"


class InvalidationEvent(BaseModel):
    """What changed: one item, and its categories before and after the write."""

    model_config = ConfigDict(frozen=True)

    collection: str
    item_id: str
    kind: InvalidationKind
    categories_before: tuple[str, ...] = ()
    categories_after: tuple[str, ...] = ()

    @property
    def affected_categories(self) -> list[str]:
        return sorted({c for c in (*self.categories_before, *self.categories_after) if c})


class InvalidationReport(BaseModel):
    kind: InvalidationKind
    item_id: str
    snapshot_version: int | None = None
    keys_purged: int = 0
    failures: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class Invalidator:
    """Applies invalidation events for one collection."""

    def __init__(self, snapshots: SnapshotManager, cache: CacheService, keys: CacheKeys):
        self.snapshots = snapshots
        self.cache = cache
        self.keys = keys

    async def on_create(self, item_id: str, categories: Iterable[str]) -> InvalidationReport:
        return await self.handle(self._event(item_id, InvalidationKind.CREATE, after=categories))

    async def on_update(
        self, item_id: str, categories_before: Iterable[str], categories_after: Iterable[str],
    ) -> InvalidationReport:
        return await self.handle(self._event(
            item_id, InvalidationKind.UPDATE, before=categories_before, after=categories_after,
        ))

    async def on_delete(self, item_id: str, categories: Iterable[str]) -> InvalidationReport:
        return await self.handle(self._event(item_id, InvalidationKind.DELETE, before=categories))

    async def on_engagement(self, item_id: str, categories: Iterable[str]) -> InvalidationReport:
        categories = tuple(categories)
        return await self.handle(self._event(
            item_id, InvalidationKind.ENGAGEMENT, before=categories, after=categories,
        ))

    async def on_counter(self, item_id: str) -> InvalidationReport:
        return await self.handle(self._event(item_id, InvalidationKind.COUNTER))

    async def handle(self, event: InvalidationEvent) -> InvalidationReport:
        report = InvalidationReport(kind=event.kind, item_id=event.item_id)
        categories = event.affected_categories

        async def refresh_snapshot() -> int:
            snapshot = await self.snapshots.force_refresh()
            report.snapshot_version = snapshot.version
            return 0

        async def purge_results() -> int:
            tags = [self.keys.tag(t) for t in sorted(tags_for_categories(categories))]
            return await self.cache.invalidate_tags(tags)

        async def purge_item() -> int:
            return await self.cache.delete(self.keys.item(event.item_id))

        async def purge_categories() -> int:
            keys = [self.keys.category(c) for c in [*categories, ALL_CATEGORIES]]
            if event.kind is not InvalidationKind.ENGAGEMENT:
                keys.append(self.keys.category_counts())
            return await self.cache.delete(*keys)

        async def purge_total() -> int:
            return await self.cache.delete(self.keys.total_count())

        if event.kind is InvalidationKind.COUNTER:
            await self._step(report, "item", purge_item)
        else:
            await self._step(report, "snapshot", refresh_snapshot)
            await self._step(report, "results", purge_results)
            if event.kind is not InvalidationKind.CREATE:
                await self._step(report, "item", purge_item)
            await self._step(report, "categories", purge_categories)
            if event.kind in (InvalidationKind.CREATE, InvalidationKind.DELETE):
                await self._step(report, "total", purge_total)

        log = logger.info if report.ok else logger.warning
        log(
            "Invalidation %s | collection=%s | id=%s | categories=%s | purged=%d | snapshot=v%s | failures=%d",
            event.kind.value, event.collection, event.item_id, ",".join(categories) or "-",
            report.keys_purged, report.snapshot_version, len(report.failures),
        )
        return report

    async def _step(self, report: InvalidationReport, name: str, action: Callable[[], Awaitable[int]]):
        try:
            report.keys_purged += await action()
        except Exception as e:
            # Best effort: the write already succeeded; stale entries age out by TTL
            logger.warning("Invalidation step failed | step=%s | id=%s | %s", name, report.item_id, str(e)[:200])
            report.failures.append(f"{name}: {str(e)[:200]}")

    def _event(
        self, item_id: str, kind: InvalidationKind,
        before: Iterable[str] = (), after: Iterable[str] = (),
    ) -> InvalidationEvent:
        return InvalidationEvent(
            collection=self.keys.collection,
            item_id=item_id,
            kind=kind,
            categories_before=tuple(before),
            categories_after=tuple(after),
        )
