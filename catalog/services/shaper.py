"""Write-path shaper: the schema boundary for create / update payloads.

Admin forms post loosely-typed data: objects and arrays as JSON-encoded
strings, lists as comma-separated text, flags as "true"/"false", numbers as
strings. ``ItemPayload`` normalizes all of that exactly once; ``shape_item``
then merges the payload over the stored document and derives the canonical
fields the snapshot and listings rely on.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from catalog.errors import PayloadValidationError
from catalog.pipelines.listing.collections import AGENTS, CollectionSpec
from catalog.utils.coercion import (
    parse_bool,
    parse_float,
    parse_int,
    parse_json_object,
    parse_list,
    parse_str,
)

FLAG_FIELDS = ("isFeatured", "isVerified", "isPopular", "isTrending")
LIST_FIELDS = ("features", "tags", "keywords")
COUNTER_FIELDS = ("viewCount", "downloadCount", "popularity")
DEFAULT_CURRENCY = "USD"
DEFAULT_VERSION = "1.0.0"

# Flat pricing inputs folded into priceDetails
_FLAT_PRICE_FIELDS = ("basePrice", "discountedPrice", "currency", "discountPercentage")


class ItemPayload(BaseModel):
    """Normalized write payload. ``None`` means "not supplied"."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    categories: list[str] | None = None

    price: float | None = None
    basePrice: float | None = None
    discountedPrice: float | None = None
    currency: str | None = None
    isSubscription: bool | None = None
    priceDetails: dict[str, Any] | None = None

    isFeatured: bool | None = None
    isVerified: bool | None = None
    isPopular: bool | None = None
    isTrending: bool | None = None

    features: list[Any] | None = None
    tags: list[Any] | None = None
    keywords: list[Any] | None = None
    likes: list[str] | None = None

    viewCount: int | None = None
    downloadCount: int | None = None
    popularity: int | None = None
    version: str | None = None

    workflowMetadata: dict[str, Any] | None = None
    deliverables: list[Any] | None = None
    creator: dict[str, Any] | None = None

    @field_validator("name", "title", "description", "category", "currency", "version", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return parse_str(v)

    @field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, v: Any) -> list[str] | None:
        values = parse_list(v)
        if values is None:
            return None
        return [str(c).strip() for c in values if str(c).strip()]

    @field_validator("price", "basePrice", "discountedPrice", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float | None:
        return parse_float(v)

    @field_validator("isSubscription", "isFeatured", "isVerified", "isPopular", "isTrending", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool | None:
        return parse_bool(v)

    @field_validator("features", "tags", "keywords", "likes", mode="before")
    @classmethod
    def _list(cls, v: Any) -> list[Any] | None:
        return parse_list(v)

    @field_validator("viewCount", "downloadCount", "popularity", mode="before")
    @classmethod
    def _counter(cls, v: Any) -> int | None:
        if v is None:
            return None
        return max(parse_int(v, 0), 0)

    @field_validator("priceDetails", "workflowMetadata", "creator", mode="before")
    @classmethod
    def _object(cls, v: Any) -> dict[str, Any] | None:
        decoded = parse_json_object(v)
        return decoded if isinstance(decoded, dict) else None

    @field_validator("deliverables", mode="before")
    @classmethod
    def _array(cls, v: Any) -> list[Any] | None:
        decoded = parse_json_object(v)
        return decoded if isinstance(decoded, list) else None

    @classmethod
    def parse(cls, data: Any) -> "ItemPayload":
        """Validate raw request data, raising PayloadValidationError on failure."""
        if not isinstance(data, dict):
            raise PayloadValidationError("payload must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise PayloadValidationError(str(e)[:200]) from e

    def supplied(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _stored_categories(document: dict[str, Any]) -> list[str]:
    """The stored ``categories`` array, or the legacy field when it is empty."""
    categories = [str(c) for c in (parse_list(document.get("categories")) or []) if c]
    if categories:
        return categories
    category = document.get("category")
    return [category] if isinstance(category, str) and category else []


def item_categories(document: dict[str, Any] | None) -> list[str]:
    """Every category a stored document can be listed under.

    Older documents may carry a legacy ``category`` that disagrees with
    ``categories``; the category filter matches either, so both count.
    """
    if not document:
        return []
    categories = _stored_categories(document)
    legacy = document.get("category")
    if isinstance(legacy, str) and legacy and legacy not in categories:
        categories.append(legacy)
    return categories


def _first_number(*values: Any) -> float | None:
    for value in values:
        number = parse_float(value)
        if number is not None:
            return number
    return None


def _first_flag(*values: Any) -> bool | None:
    for value in values:
        flag = parse_bool(value)
        if flag is not None:
            return flag
    return None


def _price_details(supplied: dict[str, Any], existing: dict[str, Any]) -> dict[str, Any]:
    given = supplied.get("priceDetails") or {}
    stored = existing.get("priceDetails") if isinstance(existing.get("priceDetails"), dict) else {}
    flat = supplied.get("price")

    base = _first_number(
        given.get("basePrice"), supplied.get("basePrice"), flat,
        stored.get("basePrice"), existing.get("price"),
    ) or 0.0
    discounted = _first_number(
        given.get("discountedPrice"), supplied.get("discountedPrice"), flat, stored.get("discountedPrice"),
    )
    if discounted is None:
        discounted = base

    discount = 0
    if base > 0 and discounted < base:
        discount = round((base - discounted) / base * 100)

    return {
        "basePrice": base,
        "discountedPrice": discounted,
        "currency": parse_str(given.get("currency")) or supplied.get("currency")
        or stored.get("currency") or DEFAULT_CURRENCY,
        "isSubscription": bool(_first_flag(
            given.get("isSubscription"), supplied.get("isSubscription"), stored.get("isSubscription"),
        )),
        "isFree": base == 0,
        "discountPercentage": discount,
    }


def shape_item(
    payload: ItemPayload,
    existing: dict[str, Any] | None,
    now: datetime,
    spec: CollectionSpec = AGENTS,
) -> dict[str, Any]:
    """Merge ``payload`` over ``existing`` and derive the canonical document.

    Raises PayloadValidationError when the result has no name/title, or no
    category in a collection that requires one.
    """
    existing = dict(existing or {})
    supplied = payload.supplied()
    output = {**existing, **supplied}
    output.pop("id", None)

    # Name / title
    name = parse_str(output.get("name"))
    title = parse_str(output.get("title"))
    if not name and not title:
        raise PayloadValidationError("name or title is required")
    output["name"] = name or title
    output["title"] = title or name

    # Categories ⇄ legacy category
    if "categories" in supplied or "category" in supplied:
        categories = supplied.get("categories") or ([supplied["category"]] if supplied.get("category") else [])
    else:
        categories = _stored_categories(existing)
    if not categories and spec.category_fallback_field:
        fallback = parse_str(output.get(spec.category_fallback_field))
        categories = [fallback] if fallback else []
    if spec.requires_category and not categories:
        raise PayloadValidationError("category is required")
    output["categories"] = list(dict.fromkeys(categories))
    output["category"] = output["categories"][0] if output["categories"] else ""

    # Pricing
    details = _price_details(supplied, existing)
    for field in _FLAT_PRICE_FIELDS:
        output.pop(field, None)
    output["priceDetails"] = details
    output["price"] = details["discountedPrice"]
    output["isFree"] = details["isFree"]
    output["isSubscription"] = details["isSubscription"]

    # Flags, lists, counters
    for field in FLAG_FIELDS:
        output[field] = bool(parse_bool(output.get(field)))
    for field in LIST_FIELDS:
        value = output.get(field)
        output[field] = value if isinstance(value, list) else []
    likes = output.get("likes")
    output["likes"] = [str(u) for u in likes] if isinstance(likes, list) else []
    for field in COUNTER_FIELDS:
        output[field] = max(parse_int(output.get(field), 0), 0)
    output["version"] = parse_str(output.get("version")) or DEFAULT_VERSION

    # Timestamps
    output["createdAt"] = existing.get("createdAt") or now.isoformat()
    output["updatedAt"] = now.isoformat()
    return output
