"""Search stage: boolean multi-term substring matching.

An item matches when every whitespace-separated query term is contained,
case-insensitively, in at least one searchable field. Missing fields or
values of an unexpected type simply don't match; they never raise.
Search never reorders its input.
"""

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from catalog.orchestrator.schemas import CatalogItem
from catalog.pipelines.listing.collections import AGENTS

logger = logging.getLogger(__name__)


def tokenize(query: str | None) -> list[str]:
    """Lower-case whitespace tokens of a raw query string."""
    if not query:
        return []
    return query.lower().split()


def search_items(
    items: Sequence[CatalogItem],
    query: str | None,
    fields: Iterable[str] = AGENTS.search_fields,
) -> list[CatalogItem]:
    terms = tokenize(query)
    if not terms:
        return list(items)

    fields = tuple(fields)
    results = [item for item in items if _matches(item, terms, fields)]
    logger.info("Search | terms=%s | %d → %d items", terms, len(items), len(results))
    return results


def _matches(item: CatalogItem, terms: list[str], fields: tuple[str, ...]) -> bool:
    haystack = [text.lower() for text in _searchable_texts(item, fields)]
    return all(any(term in text for text in haystack) for term in terms)


def _searchable_texts(item: CatalogItem, fields: tuple[str, ...]) -> Iterator[str]:
    for path in fields:
        head, _, rest = path.partition(".")
        yield from _resolve(item.get(head.removesuffix("[]")), head.endswith("[]"), rest)


def _resolve(value: Any, fan_out: bool, rest: str) -> Iterator[str]:
    """Walk the remaining dotted path, yielding every string found."""
    if value is None:
        return
    if fan_out:
        if isinstance(value, list):
            for element in value:
                yield from _resolve(element, False, rest)
        return
    if not rest:
        yield from _strings(value)
        return
    if not isinstance(value, dict):
        return
    head, _, tail = rest.partition(".")
    yield from _resolve(value.get(head.removesuffix("[]")), head.endswith("[]"), tail)


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, (list, tuple)):
        for element in value:
            if isinstance(element, str):
                yield element
