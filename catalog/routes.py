"""HTTP endpoints for the catalog collections.

Every collection (agents, prompts, videos) is served under
``/api/{collection}``. Fixed sub-paths are declared before ``/{item_id}`` so
they are never captured as item ids.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from catalog.errors import ItemNotFoundError, PayloadValidationError
from catalog.orchestrator.router import CollectionServices
from catalog.orchestrator.schemas import (
    CategoriesResponse,
    CategoryItemsResponse,
    CountResponse,
    FeaturedResponse,
    ItemResponse,
    LikeResponse,
    ListingResponse,
    RefreshResponse,
    ReviewRequest,
    ReviewResponse,
    SearchCountResponse,
)
from catalog.utils.coercion import parse_bool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/{collection}")


def get_services(collection: str, request: Request) -> CollectionServices:
    services = request.app.state.collections.get(collection)
    if services is None:
        raise ItemNotFoundError("collection", collection)
    return services


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except Exception as e:
        raise PayloadValidationError("Invalid request body") from e


# ═══════════════ READ ═══════════════

@router.get("", response_model=ListingResponse)
async def list_items(request: Request, services: CollectionServices = Depends(get_services)):
    return await services.reader.list_items(dict(request.query_params))


@router.get("/count", response_model=CountResponse)
async def total_count(services: CollectionServices = Depends(get_services)):
    return await services.reader.total_count()


@router.get("/search/count", response_model=SearchCountResponse)
async def search_count(request: Request, services: CollectionServices = Depends(get_services)):
    return await services.reader.search_count(dict(request.query_params))


@router.get("/categories", response_model=CategoriesResponse)
async def categories(services: CollectionServices = Depends(get_services)):
    return await services.reader.category_counts()


@router.get("/categories/{name}", response_model=CategoryItemsResponse)
async def category_items(name: str, services: CollectionServices = Depends(get_services)):
    return await services.reader.category_items(name)


@router.get("/featured", response_model=FeaturedResponse)
async def featured(request: Request, services: CollectionServices = Depends(get_services)):
    return await services.reader.featured(request.query_params.get("limit"))


# ═══════════════ CACHE ADMIN ═══════════════

@router.get("/cache/stats")
async def cache_stats(services: CollectionServices = Depends(get_services)):
    return {"success": True, **services.reader.stats()}


@router.post("/cache/refresh", response_model=RefreshResponse)
async def cache_refresh(services: CollectionServices = Depends(get_services)):
    return await services.reader.refresh()


@router.delete("/cache")
async def cache_clear(services: CollectionServices = Depends(get_services)):
    purged = await services.reader.clear_cache()
    return {"success": True, "purged": purged}


# ═══════════════ WRITE ═══════════════

@router.post("", status_code=201)
async def create_item(request: Request, services: CollectionServices = Depends(get_services)):
    item = await services.writer.create(await _json_body(request))
    return {"success": True, "data": item}


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: str, request: Request, services: CollectionServices = Depends(get_services)):
    skip_cache = bool(parse_bool(request.query_params.get("skipCache")))
    return await services.reader.get_item(item_id, skip_cache=skip_cache)


@router.put("/{item_id}")
async def update_item(item_id: str, request: Request, services: CollectionServices = Depends(get_services)):
    item = await services.writer.update(item_id, await _json_body(request))
    return {"success": True, "data": item}


@router.delete("/{item_id}")
async def delete_item(item_id: str, services: CollectionServices = Depends(get_services)):
    await services.writer.delete(item_id)
    return {"success": True, "id": item_id}


@router.post("/{item_id}/like", response_model=LikeResponse)
async def toggle_like(
    item_id: str,
    services: CollectionServices = Depends(get_services),
    user_id: str | None = Header(None, alias="X-User-Id"),
):
    return await services.writer.toggle_like(item_id, user_id)


@router.post("/{item_id}/reviews", response_model=ReviewResponse)
async def add_review(
    item_id: str,
    request: Request,
    services: CollectionServices = Depends(get_services),
    user_id: str | None = Header(None, alias="X-User-Id"),
):
    body = await _json_body(request)
    try:
        review = ReviewRequest.model_validate(body)
    except ValidationError as e:
        raise PayloadValidationError(str(e)[:200]) from e
    return await services.writer.add_review(item_id, user_id, review)


@router.delete("/{item_id}/reviews/{review_id}", response_model=ReviewResponse)
async def delete_review(
    item_id: str,
    review_id: str,
    services: CollectionServices = Depends(get_services),
    user_id: str | None = Header(None, alias="X-User-Id"),
):
    return await services.writer.delete_review(item_id, review_id, user_id)


@router.post("/{item_id}/view")
async def record_view(item_id: str, services: CollectionServices = Depends(get_services)):
    count = await services.writer.record_view(item_id)
    return {"success": True, "viewCount": count}


@router.post("/{item_id}/download")
async def record_download(item_id: str, services: CollectionServices = Depends(get_services)):
    count = await services.writer.record_download(item_id)
    return {"success": True, "downloadCount": count}
