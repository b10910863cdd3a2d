"""Pydantic models for API input/output: shared by the read and write paths.

Split into: the catalog item view, listing responses, and write-side requests.
Field names stay camelCase to match the document shape the frontend consumes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from catalog.utils.coercion import parse_bool, parse_float, parse_int, parse_list


# ═══════════════ CATALOG ITEM ═══════════════

class CatalogItem(BaseModel):
    """One listed entity (agent / prompt / video) as held in a snapshot.

    Frozen: snapshot items are shared between concurrent requests. Unknown
    document fields are kept as extras so listings return the full document.
    Loosely-typed legacy values are coerced rather than rejected, so one bad
    document never fails a whole snapshot load.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    name: str = ""
    title: str = ""
    description: str = ""
    category: str = ""
    categories: list[str] = Field(default_factory=list)
    price: float = 0.0
    isVerified: bool = False
    isFeatured: bool = False
    likes: Any = Field(default_factory=list)
    viewCount: int = 0
    downloadCount: int = 0
    createdAt: Any = None
    updatedAt: Any = None

    @model_validator(mode="before")
    @classmethod
    def _derive_categories(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        categories = [str(c) for c in (parse_list(data.get("categories")) or []) if c]
        category = data.get("category") if isinstance(data.get("category"), str) else ""
        if not categories and category:
            categories = [category]
        if not category and categories:
            category = categories[0]
        data["categories"] = categories
        data["category"] = category
        return data

    @field_validator("name", "title", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> float:
        number = parse_float(v)
        return number if number is not None else 0.0

    @field_validator("isVerified", "isFeatured", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return bool(parse_bool(v))

    @field_validator("viewCount", "downloadCount", mode="before")
    @classmethod
    def _counter(cls, v: Any) -> int:
        return max(parse_int(v, 0), 0)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> CatalogItem:
        return cls.model_validate({**data, "id": doc_id})

    def get(self, name: str, default: Any = None) -> Any:
        """Read a declared or extra field without raising."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name, default)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ═══════════════ LISTING RESPONSES ═══════════════

class ListingPage(BaseModel):
    """The cacheable part of a listing response."""
    items: list[dict[str, Any]] = Field(default_factory=list)
    totalCount: int = 0
    currentPage: int = 1
    totalPages: int = 0
    hasMore: bool = False
    limit: int = 20
    offset: int = 0
    lastVisibleId: str | None = None
    searchQuery: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)


class ListingResponse(ListingPage):
    fromCache: bool = False
    responseTimeMs: int = 0


class CountResponse(BaseModel):
    success: bool = True
    totalCount: int = 0
    fromCache: bool = False


class SearchCountResponse(BaseModel):
    success: bool = True
    count: int = 0
    searchQuery: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)
    totalItems: int | None = None
    fromCache: bool = False


class CategoryCount(BaseModel):
    name: str
    count: int


class CategoriesResponse(BaseModel):
    success: bool = True
    categories: list[CategoryCount] = Field(default_factory=list)
    fromCache: bool = False


class CategoryItemsResponse(BaseModel):
    success: bool = True
    category: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    fromCache: bool = False


class FeaturedResponse(BaseModel):
    success: bool = True
    items: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    fromCache: bool = False


class ItemResponse(BaseModel):
    success: bool = True
    data: dict[str, Any] = Field(default_factory=dict)
    fromCache: bool = False


# ═══════════════ WRITE-SIDE REQUESTS ═══════════════

class ReviewRequest(BaseModel):
    content: str = ""
    rating: Any = None
    userName: str = ""


class LikeResponse(BaseModel):
    success: bool = True
    liked: bool
    likesCount: int


class ReviewResponse(BaseModel):
    success: bool = True
    reviewId: str
    reviewCount: int
    averageRating: float
    review: dict[str, Any] | None = None


class RefreshResponse(BaseModel):
    success: bool = True
    message: str = ""
    itemCount: int = 0
    timestamp: str = ""
