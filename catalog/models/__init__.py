"""SQLAlchemy ORM models."""

from catalog.models.base import Base
from catalog.models.catalog_item import CatalogDocument

__all__ = ["Base", "CatalogDocument"]
