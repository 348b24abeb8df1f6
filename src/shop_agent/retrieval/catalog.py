"""Catalog interfaces and the in-memory adapter."""

from __future__ import annotations

import json
import threading
from math import sqrt
from pathlib import Path
from typing import Any, Protocol

from shop_agent.retrieval.embedder import Embedder
from shop_agent.types import CatalogItem, SearchResult, SearchType


class Catalog(Protocol):
    """Minimal catalog contract consumed by the lookup tool."""

    def count(self) -> int:
        """Number of indexed items."""

    def vector_search(self, query: str, n: int) -> list[SearchResult]:
        """Top-`n` items by semantic similarity, best first."""

    def text_search(self, pattern: str, n: int) -> list[SearchResult]:
        """Up to `n` items containing `pattern` in any text field."""


class InMemoryCatalog:
    """Deterministic catalog used for tests, local runs and small inventories.

    Items whose cosine similarity to the query is not above `min_score` are
    left out of semantic results, so a query unrelated to every item is an
    index miss rather than a list of weak matches.
    """

    def __init__(self, embedder: Embedder, *, min_score: float = 0.0) -> None:
        self._embedder = embedder
        self._min_score = min_score
        self._items: dict[str, CatalogItem] = {}
        self._lock = threading.Lock()

    def add(self, items: list[CatalogItem]) -> None:
        missing = [item for item in items if not item.embedding]
        if missing:
            vectors = self._embedder.embed_documents([item.summary for item in missing])
            for item, vector in zip(missing, vectors, strict=True):
                item.embedding = vector

        dimension = len(items[0].embedding) if items else 0
        if any(len(item.embedding) != dimension for item in items):
            raise ValueError("catalog items must share one embedding dimension")
        with self._lock:
            for item in items:
                self._items[item.item_id] = item

    def count(self) -> int:
        return len(self._items)

    def vector_search(self, query: str, n: int) -> list[SearchResult]:
        query_embedding = self._embedder.embed_query(query)
        with self._lock:
            items = list(self._items.values())
        scored = [
            (_cosine_similarity(query_embedding, item.embedding), item) for item in items
        ]
        ranked = sorted(
            (pair for pair in scored if pair[0] > self._min_score),
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [
            SearchResult(item=item, search_type=SearchType.VECTOR, score=score)
            for score, item in ranked[:n]
        ]

    def text_search(self, pattern: str, n: int) -> list[SearchResult]:
        needle = pattern.lower()
        with self._lock:
            items = list(self._items.values())
        matches: list[SearchResult] = []
        for item in items:
            fields = [item.name, item.description, item.summary, *item.categories]
            if any(needle in value.lower() for value in fields):
                matches.append(SearchResult(item=item, search_type=SearchType.TEXT))
                if len(matches) >= n:
                    break
        return matches


def load_catalog_file(path: str | Path) -> list[CatalogItem]:
    """Read catalog items from a JSON array of item records."""

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Catalog file must contain a JSON array: {path}")
    return [_item_from_record(record) for record in raw]


def _item_from_record(record: dict[str, Any]) -> CatalogItem:
    known = {
        "item_id",
        "item_name",
        "item_description",
        "categories",
        "summary",
        "embedding_text",
        "embedding",
    }
    name = str(record["item_name"])
    description = str(record.get("item_description", ""))
    categories = [str(value) for value in record.get("categories", [])]
    summary = str(
        record.get("summary")
        or record.get("embedding_text")
        or f"{name}. {description} Categories: {', '.join(categories)}"
    )
    return CatalogItem(
        item_id=str(record.get("item_id", name)),
        name=name,
        description=description,
        categories=categories,
        summary=summary,
        embedding=[float(value) for value in record.get("embedding", [])],
        attributes={key: value for key, value in record.items() if key not in known},
    )


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
