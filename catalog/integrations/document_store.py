"""Document store collaborator: the source of truth for one collection.

The catalog never talks to a database directly; it goes through this small
interface so the snapshot, the read path and the write path can run against
PostgreSQL (``SqlDocumentStore``) or the in-process store used for the demo
catalog and the tests.

Documents are plain dicts. Every document returned carries its ``id``.
"""

import copy
import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from catalog.errors import ItemNotFoundError
from catalog.pipelines.listing.pagination import parse_timestamp

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentStore(Protocol):
    collection: str

    async def list_all(self, order_by: str = "createdAt", direction: str = "desc") -> list[dict[str, Any]]:
        ...

    async def get_by_id(self, item_id: str) -> dict[str, Any] | None:
        ...

    async def create(self, data: dict[str, Any], item_id: str | None = None) -> str:
        ...

    async def update(self, item_id: str, partial: dict[str, Any]) -> None:
        ...

    async def delete(self, item_id: str) -> None:
        ...

    async def increment_counter(self, item_id: str, field: str, amount: int = 1) -> int:
        ...


def order_documents(docs: list[dict[str, Any]], order_by: str, direction: str) -> list[dict[str, Any]]:
    """Order by a timestamp-like field; documents without one go last."""
    dated = [d for d in docs if parse_timestamp(d.get(order_by)) is not None]
    undated = [d for d in docs if parse_timestamp(d.get(order_by)) is None]
    dated.sort(key=lambda d: parse_timestamp(d.get(order_by)), reverse=direction.lower() == "desc")
    return dated + undated


class InMemoryDocumentStore:
    """Dict-backed store. Returns deep copies so callers can't mutate stored state."""

    def __init__(self, collection: str, documents: list[dict[str, Any]] | None = None):
        self.collection = collection
        self._docs: dict[str, dict[str, Any]] = {}
        for doc in documents or []:
            doc_id = str(doc.get("id") or uuid.uuid4().hex)
            self._docs[doc_id] = {**copy.deepcopy(doc), "id": doc_id}

    def __len__(self) -> int:
        return len(self._docs)

    async def list_all(self, order_by: str = "createdAt", direction: str = "desc") -> list[dict[str, Any]]:
        docs = [copy.deepcopy(d) for d in self._docs.values()]
        return order_documents(docs, order_by, direction)

    async def get_by_id(self, item_id: str) -> dict[str, Any] | None:
        doc = self._docs.get(item_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create(self, data: dict[str, Any], item_id: str | None = None) -> str:
        doc_id = item_id or uuid.uuid4().hex
        self._docs[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        logger.info("Document created | collection=%s | id=%s", self.collection, doc_id)
        return doc_id

    async def update(self, item_id: str, partial: dict[str, Any]) -> None:
        doc = self._docs.get(item_id)
        if doc is None:
            raise ItemNotFoundError(self.collection, item_id)
        doc.update(copy.deepcopy(partial))
        doc["id"] = item_id

    async def delete(self, item_id: str) -> None:
        if self._docs.pop(item_id, None) is None:
            raise ItemNotFoundError(self.collection, item_id)
        logger.info("Document deleted | collection=%s | id=%s", self.collection, item_id)

    async def increment_counter(self, item_id: str, field: str, amount: int = 1) -> int:
        # No await between read and write, so this is atomic on the event loop
        doc = self._docs.get(item_id)
        if doc is None:
            raise ItemNotFoundError(self.collection, item_id)
        current = doc.get(field)
        value = (current if isinstance(current, int) and not isinstance(current, bool) else 0) + amount
        doc[field] = value
        return value
