"""Write path: shape, persist, then invalidate.

Every mutation follows the same order: validate / shape the payload, write
to the document store, then hand an event to the Invalidator. Only the
store write can fail the request; invalidation problems are logged by the
Invalidator and the response still reports success.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from catalog.errors import (
    CatalogError,
    ItemNotFoundError,
    PayloadValidationError,
    PermissionDeniedError,
    RateLimitedError,
    ReviewConflictError,
    StoreError,
)
from catalog.integrations.document_store import DocumentStore
from catalog.orchestrator.schemas import LikeResponse, ReviewRequest, ReviewResponse
from catalog.pipelines.listing.collections import CollectionSpec
from catalog.services.invalidator import Invalidator
from catalog.services.rate_limiter import RateLimiter
from catalog.services.shaper import ItemPayload, item_categories, shape_item
from catalog.services.snapshot import utcnow
from catalog.utils.coercion import parse_float, parse_str

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_REVIEW_LENGTH = 3
MIN_RATING = 1
MAX_RATING = 5


def review_stats(reviews: list[dict[str, Any]]) -> tuple[int, float]:
    """(count, average rating to 2 decimals) over a review list."""
    if not reviews:
        return 0, 0.0
    total = sum(parse_float(r.get("rating")) or 0.0 for r in reviews)
    return len(reviews), round(total / len(reviews), 2)


class CatalogWriter:
    """Create / update / delete and engagement writes for one collection."""

    def __init__(
        self,
        spec: CollectionSpec,
        store: DocumentStore,
        invalidator: Invalidator,
        review_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.spec = spec
        self.store = store
        self.invalidator = invalidator
        self.review_limiter = review_limiter or RateLimiter(5, 600)
        self._clock = clock

    # ─────────────── CRUD ───────────────

    async def create(self, data: Any) -> dict[str, Any]:
        payload = ItemPayload.parse(data)
        document = shape_item(payload, None, self._clock(), self.spec)
        requested_id = parse_str(data.get("id"))
        if requested_id and await self._store("get", self.store.get_by_id(requested_id)) is not None:
            raise PayloadValidationError(f"{self.spec.name} item already exists: {requested_id}")

        item_id = await self._store("create", self.store.create(document, requested_id))
        logger.info("Item created | collection=%s | id=%s | categories=%s",
                    self.spec.name, item_id, ",".join(document["categories"]))
        await self.invalidator.on_create(item_id, document["categories"])
        return {**document, "id": item_id}

    async def update(self, item_id: str, data: Any) -> dict[str, Any]:
        payload = ItemPayload.parse(data)
        existing = await self._existing(item_id)
        document = shape_item(payload, existing, self._clock(), self.spec)

        await self._store("update", self.store.update(item_id, document))
        logger.info("Item updated | collection=%s | id=%s", self.spec.name, item_id)
        await self.invalidator.on_update(item_id, item_categories(existing), document["categories"])
        return {**document, "id": item_id}

    async def delete(self, item_id: str) -> None:
        existing = await self._existing(item_id)
        await self._store("delete", self.store.delete(item_id))
        logger.info("Item deleted | collection=%s | id=%s", self.spec.name, item_id)
        await self.invalidator.on_delete(item_id, item_categories(existing))

    # ─────────────── ENGAGEMENT ───────────────

    async def toggle_like(self, item_id: str, user_id: str | None) -> LikeResponse:
        user_id = self._require_user(user_id)
        existing = await self._existing(item_id)
        likes = [str(u) for u in existing.get("likes") or [] if u]
        liked = user_id not in likes
        likes = likes + [user_id] if liked else [u for u in likes if u != user_id]

        await self._store("like", self.store.update(item_id, {"likes": likes, "likesCount": len(likes)}))
        await self.invalidator.on_engagement(item_id, item_categories(existing))
        return LikeResponse(liked=liked, likesCount=len(likes))

    async def add_review(self, item_id: str, user_id: str | None, request: ReviewRequest) -> ReviewResponse:
        user_id = self._require_user(user_id)
        content = request.content.strip() if isinstance(request.content, str) else ""
        if len(content) < MIN_REVIEW_LENGTH:
            raise PayloadValidationError("Review content is too short")
        rating = parse_float(request.rating)
        if rating is None or not MIN_RATING <= rating <= MAX_RATING:
            raise PayloadValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        if self.review_limiter.is_limited(user_id):
            raise RateLimitedError("Too many review attempts. Please try again later.")

        existing = await self._existing(item_id)
        reviews = [r for r in existing.get("reviews") or [] if isinstance(r, dict)]
        if any(r.get("userId") == user_id for r in reviews):
            raise ReviewConflictError(f"user {user_id} has already reviewed this item")

        now = self._clock()
        review = {
            "id": f"{user_id}_{int(now.timestamp() * 1000)}",
            "userId": user_id,
            "userName": parse_str(request.userName) or "User",
            "rating": rating,
            "content": content,
            "createdAt": now.isoformat(),
        }
        reviews.append(review)
        count, average = review_stats(reviews)

        await self._store("review", self.store.update(item_id, {
            "reviews": reviews, "reviewCount": count, "averageRating": average,
        }))
        logger.info("Review added | collection=%s | id=%s | rating=%s | reviews=%d",
                    self.spec.name, item_id, rating, count)
        await self.invalidator.on_engagement(item_id, item_categories(existing))
        return ReviewResponse(reviewId=review["id"], reviewCount=count, averageRating=average, review=review)

    async def delete_review(self, item_id: str, review_id: str, user_id: str | None) -> ReviewResponse:
        user_id = self._require_user(user_id)
        existing = await self._existing(item_id)
        reviews = [r for r in existing.get("reviews") or [] if isinstance(r, dict)]
        target = next((r for r in reviews if r.get("id") == review_id), None)
        if target is None:
            raise ItemNotFoundError(f"{self.spec.name} review", review_id)
        if target.get("userId") != user_id:
            raise PermissionDeniedError("Not allowed to delete this review")

        remaining = [r for r in reviews if r.get("id") != review_id]
        count, average = review_stats(remaining)
        await self._store("review", self.store.update(item_id, {
            "reviews": remaining, "reviewCount": count, "averageRating": average,
        }))
        logger.info("Review deleted | collection=%s | id=%s | review=%s", self.spec.name, item_id, review_id)
        await self.invalidator.on_engagement(item_id, item_categories(existing))
        return ReviewResponse(reviewId=review_id, reviewCount=count, averageRating=average)

    async def record_view(self, item_id: str) -> int:
        return await self._increment(item_id, "viewCount")

    async def record_download(self, item_id: str) -> int:
        return await self._increment(item_id, "downloadCount")

    # ─────────────── helpers ───────────────

    async def _increment(self, item_id: str, field: str) -> int:
        value = await self._store(field, self.store.increment_counter(item_id, field))
        await self.invalidator.on_counter(item_id)
        return value

    async def _existing(self, item_id: str) -> dict[str, Any]:
        document = await self._store("get", self.store.get_by_id(item_id))
        if document is None:
            raise ItemNotFoundError(self.spec.name, item_id)
        return document

    @staticmethod
    def _require_user(user_id: str | None) -> str:
        user_id = parse_str(user_id)
        if not user_id:
            raise PermissionDeniedError("X-User-Id header is required")
        return user_id

    async def _store(self, action: str, call: Awaitable[T]) -> T:
        """Await a document-store call, mapping unexpected failures to StoreError."""
        try:
            return await call
        except CatalogError:
            raise
        except Exception as e:
            logger.error("Store %s failed | collection=%s | %s", action, self.spec.name, str(e)[:200])
            raise StoreError(f"{action} failed: {str(e)[:200]}") from e
