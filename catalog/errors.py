"""Catalog error hierarchy.

All project exceptions inherit from CatalogError, enabling:
- ``except CatalogError`` at the HTTP boundary (mapped to status codes)
- Fine-grained catches deeper in the stack (``except SnapshotLoadError``)

Hierarchy:
    CatalogError
    ├── SnapshotLoadError        # document store unreachable during refresh
    ├── StoreError               # document store read/write failed
    ├── ItemNotFoundError
    ├── PayloadValidationError   # write payload rejected by the schema boundary
    ├── ReviewConflictError
    ├── PermissionDeniedError
    └── RateLimitedError

Cache backend failures have no exception type: the cache layer
degrades to a miss and never raises.
"""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for all catalog errors."""

    status_code = 500


class SnapshotLoadError(CatalogError):
    """The collection could not be loaded and no previous snapshot exists."""

    status_code = 503


class StoreError(CatalogError):
    """The document store rejected or failed a request."""

    status_code = 502


class ItemNotFoundError(CatalogError):
    status_code = 404

    def __init__(self, collection: str, item_id: str):
        super().__init__(f"{collection} item not found: {item_id}")
        self.collection = collection
        self.item_id = item_id


class PayloadValidationError(CatalogError):
    status_code = 400


class ReviewConflictError(CatalogError):
    status_code = 409


class PermissionDeniedError(CatalogError):
    status_code = 403


class RateLimitedError(CatalogError):
    status_code = 429
