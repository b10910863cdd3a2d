"""Shared test fixtures and configuration."""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Demo store and no Redis during tests
os.environ.setdefault("DOCUMENT_STORE", "memory")
os.environ.setdefault("REDIS_URL", "redis://localhost:1")

from catalog.config import Settings  # noqa: E402
from catalog.integrations.document_store import InMemoryDocumentStore  # noqa: E402
from catalog.orchestrator.router import CollectionServices  # noqa: E402
from catalog.orchestrator.schemas import CatalogItem  # noqa: E402
from catalog.pipelines.listing.collections import AGENTS  # noqa: E402
from catalog.services.cache import CacheService  # noqa: E402


class FakeClock:
    """Settable UTC clock for staleness tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 6, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_documents():
    """Three agents from the category filter scenario, plus extras for search."""
    return [
        {
            "id": "a1",
            "title": "Blog Writer",
            "name": "Blog Writer",
            "description": "Writes long-form blog posts",
            "categories": ["Writing"],
            "price": 10,
            "isVerified": True,
            "isFeatured": False,
            "tags": ["content", "seo"],
            "workflowMetadata": {"complexity": "beginner", "integrations": ["WordPress", "OpenAI"]},
            "createdAt": "2025-01-03T00:00:00+00:00",
        },
        {
            "id": "a2",
            "title": "Lead Scorer",
            "name": "Lead Scorer",
            "description": "Scores inbound leads",
            "categories": ["Business"],
            "price": 50,
            "isVerified": False,
            "isFeatured": True,
            "businessValue": "Focus sales on hot prospects",
            "tags": ["sales"],
            "workflowMetadata": {"complexity": "advanced", "integrations": ["HubSpot"]},
            "createdAt": "2025-01-02T00:00:00+00:00",
        },
        {
            "id": "a3",
            "title": "Newsletter Assistant",
            "name": "Newsletter Assistant",
            "description": "Drafts weekly newsletters with AI",
            "categories": ["Writing", "AI"],
            "price": 0,
            "isVerified": True,
            "isFeatured": True,
            "features": ["Mailchimp export"],
            "deliverables": [{"fileName": "newsletter.json", "description": "Workflow export"}],
            "workflowMetadata": {"complexity": "intermediate", "integrations": ["Mailchimp"]},
            "createdAt": "2025-01-01T00:00:00+00:00",
        },
    ]


@pytest.fixture
def sample_items(sample_documents):
    return [CatalogItem.from_document(d["id"], d) for d in sample_documents]


@pytest.fixture
def test_settings():
    return Settings(document_store="memory", redis_url="redis://localhost:1", cache_prefix="test")


@pytest.fixture
def store(sample_documents):
    return InMemoryDocumentStore("agents", sample_documents)


@pytest.fixture
def cache():
    """Fresh cache service without Redis."""
    return CacheService(redis_url="redis://localhost:1", fallback_maxsize=256)


@pytest.fixture
def services(store, cache, test_settings):
    return CollectionServices(AGENTS, store, cache, test_settings)
