"""Per-collection listing configuration.

Field paths use dots for nested objects and ``[]`` to fan out over a list of
objects, e.g. ``deliverables[].fileName``.
"""

from pydantic import BaseModel


class CollectionSpec(BaseModel):
    model_config = {"frozen": True}

    name: str
    search_fields: tuple[str, ...]
    requires_category: bool = True
    category_fallback_field: str | None = None


AGENTS = CollectionSpec(
    name="agents",
    search_fields=(
        "title",
        "description",
        "category",
        "categories",
        "businessValue",
        "workflowMetadata.integrations",
        "features",
        "tags",
        "name",
        "deliverables[].description",
        "deliverables[].fileName",
    ),
)

PROMPTS = CollectionSpec(
    name="prompts",
    search_fields=(
        "title",
        "description",
        "category",
        "categories",
        "keywords",
        "tags",
        "additionalHTML",
        "name",
    ),
)

VIDEOS = CollectionSpec(
    name="videos",
    search_fields=(
        "title",
        "description",
        "authorName",
        "platform",
        "category",
        "categories",
        "tags",
    ),
    category_fallback_field="platform",
)

COLLECTIONS: dict[str, CollectionSpec] = {
    spec.name: spec for spec in (AGENTS, PROMPTS, VIDEOS)
}


def get_collection(name: str) -> CollectionSpec | None:
    return COLLECTIONS.get(name)
