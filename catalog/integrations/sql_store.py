"""PostgreSQL-backed document store (SQLAlchemy async + asyncpg).

Each collection shares the ``catalog_documents`` table, partitioned by the
``collection`` column. Counter increments lock the row (SELECT … FOR UPDATE)
so concurrent view/download events are never lost.

``SqlCatalog`` owns the engine for every collection store: it is built once
in SQL mode, creates the table at startup and disposes the pool on shutdown.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from catalog.errors import ItemNotFoundError, StoreError
from catalog.models import Base, CatalogDocument
from catalog.pipelines.listing.pagination import parse_timestamp

logger = logging.getLogger(__name__)


def _created_at(data: dict[str, Any]) -> datetime:
    ts = parse_timestamp(data.get("createdAt"))
    if ts is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _to_document(row: CatalogDocument) -> dict[str, Any]:
    return {**(row.data or {}), "id": row.id}


class SqlDocumentStore:
    """Document store for one collection backed by an async session factory."""

    def __init__(self, collection: str, session_factory: async_sessionmaker[AsyncSession]):
        self.collection = collection
        self._sessions = session_factory

    async def list_all(self, order_by: str = "createdAt", direction: str = "desc") -> list[dict[str, Any]]:
        # Only createdAt is indexed; any other field is ordered by the same column
        column = CatalogDocument.created_at
        ordering = column.desc() if direction.lower() == "desc" else column.asc()
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(CatalogDocument)
                    .where(CatalogDocument.collection == self.collection)
                    .order_by(ordering)
                )
                return [_to_document(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise StoreError(f"list {self.collection} failed: {str(e)[:200]}") from e

    async def get_by_id(self, item_id: str) -> dict[str, Any] | None:
        try:
            async with self._sessions() as session:
                row = await session.get(CatalogDocument, (item_id, self.collection))
                return _to_document(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"get {self.collection}/{item_id} failed: {str(e)[:200]}") from e

    async def create(self, data: dict[str, Any], item_id: str | None = None) -> str:
        doc_id = item_id or uuid.uuid4().hex
        try:
            async with self._sessions() as session:
                session.add(CatalogDocument(
                    id=doc_id,
                    collection=self.collection,
                    data={**data, "id": doc_id},
                    created_at=_created_at(data),
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"create in {self.collection} failed: {str(e)[:200]}") from e
        logger.info("Document created | collection=%s | id=%s", self.collection, doc_id)
        return doc_id

    async def update(self, item_id: str, partial: dict[str, Any]) -> None:
        try:
            async with self._sessions() as session:
                row = await self._locked(session, item_id)
                # Reassign so the JSON column registers the change
                row.data = {**(row.data or {}), **partial, "id": item_id}
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"update {self.collection}/{item_id} failed: {str(e)[:200]}") from e

    async def delete(self, item_id: str) -> None:
        try:
            async with self._sessions() as session:
                row = await self._locked(session, item_id)
                await session.delete(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"delete {self.collection}/{item_id} failed: {str(e)[:200]}") from e
        logger.info("Document deleted | collection=%s | id=%s", self.collection, item_id)

    async def increment_counter(self, item_id: str, field: str, amount: int = 1) -> int:
        try:
            async with self._sessions() as session:
                row = await self._locked(session, item_id)
                data = dict(row.data or {})
                current = data.get(field)
                value = (current if isinstance(current, int) and not isinstance(current, bool) else 0) + amount
                data[field] = value
                row.data = data
                await session.commit()
                return value
        except SQLAlchemyError as e:
            raise StoreError(f"increment {self.collection}/{item_id}.{field} failed: {str(e)[:200]}") from e

    async def _locked(self, session: AsyncSession, item_id: str) -> CatalogDocument:
        result = await session.execute(
            select(CatalogDocument)
            .where(CatalogDocument.collection == self.collection, CatalogDocument.id == item_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ItemNotFoundError(self.collection, item_id)
        return row


class SqlCatalog:
    """Engine and session factory shared by the per-collection SQL stores."""

    def __init__(self, url: str, pool_size: int = 5, max_overflow: int = 10):
        self.engine = create_async_engine(
            url,
            echo=False,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
        )
        self.sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def store(self, collection: str) -> SqlDocumentStore:
        return SqlDocumentStore(collection, self.sessions)

    async def create_tables(self) -> bool:
        """Create ``catalog_documents`` if missing. Returns False when unreachable."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database unavailable, snapshots will fail until it is reachable: %s", str(e)[:200])
            return False
        logger.info("Catalog table ready | url=%s", self.engine.url.render_as_string(hide_password=True))
        return True

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Database connections closed")
