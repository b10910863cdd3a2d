"""Snapshot Manager: in-memory copy of one whole collection.

Reads run Search → Filter → Sort & Paginate against a ``Snapshot``: an
immutable, versioned tuple of items plus the time it was loaded. A reader
grabs the reference once per request and never re-reads it, so a refresh
that lands mid-request is invisible to that request.

Refreshes are not mutually excluded. Two overlapping refreshes each build a
complete snapshot and swap the reference with a single assignment; whichever
finishes last wins. That is acceptable because staleness is bounded by the
window (and every write forces a refresh), not because racing loads are
equivalent: an older load can land after a newer one.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from catalog.errors import SnapshotLoadError
from catalog.integrations.document_store import DocumentStore
from catalog.orchestrator.schemas import CatalogItem
from catalog.pipelines.listing.collections import AGENTS, CollectionSpec
from catalog.pipelines.listing.pagination import sort_by_recency

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: tuple[CatalogItem, ...] = ()
    version: int = 0
    last_refreshed_at: datetime
    load_ms: int = 0

    def __len__(self) -> int:
        return len(self.items)


class SnapshotManager:
    """Owns the current snapshot of one collection and decides when to reload it."""

    def __init__(
        self,
        store: DocumentStore,
        spec: CollectionSpec = AGENTS,
        max_staleness: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.spec = spec
        self.max_staleness = max_staleness
        self._clock = clock
        self._snapshot: Snapshot | None = None
        self._loads = 0

    @property
    def current(self) -> Snapshot | None:
        return self._snapshot

    def is_stale(self, snapshot: Snapshot | None = None) -> bool:
        snapshot = snapshot if snapshot is not None else self._snapshot
        if snapshot is None:
            return True
        return self._clock() - snapshot.last_refreshed_at >= self.max_staleness

    async def init(self) -> Snapshot | None:
        """Initial load at startup. A failure here is logged, not raised;
        the first read will try again."""
        try:
            return await self.refresh()
        except SnapshotLoadError as e:
            logger.warning("Initial %s snapshot failed, will retry on first read: %s", self.spec.name, e)
            return None

    async def ensure_fresh(self) -> Snapshot:
        """Current snapshot, reloading it first when missing or stale.

        If the reload fails but a previous snapshot exists, the previous one is
        served. Raises SnapshotLoadError only when there is nothing to serve.
        """
        snapshot = self._snapshot
        if snapshot is not None and not self.is_stale(snapshot):
            return snapshot
        try:
            return await self.refresh()
        except SnapshotLoadError:
            if self._snapshot is not None:
                logger.warning(
                    "Serving stale %s snapshot | version=%d | refreshed=%s",
                    self.spec.name, self._snapshot.version, self._snapshot.last_refreshed_at.isoformat(),
                )
                return self._snapshot
            raise

    async def refresh(self) -> Snapshot:
        """Load the whole collection and swap in a new snapshot."""
        start = time.monotonic()
        try:
            documents = await self.store.list_all("createdAt", "desc")
        except Exception as e:
            logger.error("Snapshot load failed | collection=%s | %s", self.spec.name, str(e)[:200])
            raise SnapshotLoadError(f"could not load {self.spec.name}: {str(e)[:200]}") from e

        items = self._build_items(documents)
        self._loads += 1
        snapshot = Snapshot(
            items=tuple(items),
            version=self._loads,
            last_refreshed_at=self._clock(),
            load_ms=int((time.monotonic() - start) * 1000),
        )
        self._snapshot = snapshot
        logger.info(
            "Snapshot refreshed | collection=%s | items=%d | version=%d | %dms",
            self.spec.name, len(snapshot), snapshot.version, snapshot.load_ms,
        )
        return snapshot

    async def force_refresh(self) -> Snapshot:
        """Reload regardless of staleness (after writes and on admin request)."""
        return await self.refresh()

    def dispose(self):
        self._snapshot = None
        logger.info("Snapshot disposed | collection=%s", self.spec.name)

    def stats(self) -> dict[str, Any]:
        snapshot = self._snapshot
        if snapshot is None:
            return {
                "loaded": False,
                "itemCount": 0,
                "version": 0,
                "lastRefreshedAt": None,
                "ageMinutes": None,
                "nextRefreshInMinutes": 0,
            }
        age = self._clock() - snapshot.last_refreshed_at
        remaining = max(self.max_staleness - age, timedelta(0))
        return {
            "loaded": True,
            "itemCount": len(snapshot),
            "version": snapshot.version,
            "lastRefreshedAt": snapshot.last_refreshed_at.isoformat(),
            "ageMinutes": round(age.total_seconds() / 60, 1),
            "nextRefreshInMinutes": round(remaining.total_seconds() / 60, 1),
        }

    def _build_items(self, documents: list[dict[str, Any]]) -> list[CatalogItem]:
        """Validate documents, keep the first occurrence of each id, newest first."""
        items: list[CatalogItem] = []
        seen: set[str] = set()
        skipped = 0
        for doc in documents:
            doc_id = doc.get("id")
            if not doc_id or str(doc_id) in seen:
                skipped += 1
                continue
            data = self._with_category_fallback(doc)
            try:
                item = CatalogItem.from_document(str(doc_id), data)
            except ValidationError as e:
                skipped += 1
                logger.warning("Skipping malformed document | id=%s | %s", doc_id, str(e)[:200])
                continue
            seen.add(item.id)
            items.append(item)
        if skipped:
            logger.info("Snapshot build skipped %d documents | collection=%s", skipped, self.spec.name)
        return sort_by_recency(items)

    def _with_category_fallback(self, doc: dict[str, Any]) -> dict[str, Any]:
        field = self.spec.category_fallback_field
        if not field or doc.get("category") or doc.get("categories"):
            return doc
        fallback = doc.get(field)
        if isinstance(fallback, str) and fallback:
            return {**doc, "category": fallback}
        return doc
