"""Catalog lookup with semantic search and a substring fallback."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shop_agent.config import LookupConfig
from shop_agent.obs.logging import get_logger
from shop_agent.retrieval.catalog import Catalog
from shop_agent.types import SearchResult, SearchType

logger = get_logger(__name__)


class LookupStatus(str, Enum):
    MATCHES = "matches"
    INVENTORY_EMPTY = "inventory_empty"
    FAILED = "failed"
    INVALID_ARGUMENTS = "invalid_arguments"


@dataclass(slots=True)
class LookupOutcome:
    """What one lookup produced, ready to be fed back to the model."""

    status: LookupStatus
    query: str
    results: list[SearchResult] = field(default_factory=list)
    search_type: SearchType | None = None
    details: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.status is LookupStatus.INVENTORY_EMPTY:
            return {
                "error": "No items found in inventory",
                "message": "The inventory database appears to be empty",
                "count": 0,
            }
        if self.status is LookupStatus.INVALID_ARGUMENTS:
            return {
                "error": "Invalid tool arguments",
                "details": self.details,
                "query": self.query,
            }
        if self.status is LookupStatus.FAILED:
            return {
                "error": "Failed to search inventory",
                "details": self.details,
                "query": self.query,
            }
        return {
            "results": [result.to_payload() for result in self.results],
            "searchType": self.search_type.value if self.search_type else None,
            "query": self.query,
            "count": len(self.results),
        }


class ItemLookup:
    """Finds catalog items for a shopper query.

    Order of strategies:
    1. An empty catalog short-circuits to `INVENTORY_EMPTY` so the model can
       tell "nothing exists" apart from "nothing matches".
    2. Semantic search over item summaries.
    3. Only when semantic search returns nothing, a case-insensitive substring
       match over name, description, categories and summary.

    Result sets are never mixed: every result carries the same search type.
    Catalog errors are returned as a `FAILED` outcome instead of raised, and a
    non-positive `n` as `INVALID_ARGUMENTS`.
    """

    def __init__(self, catalog: Catalog, config: LookupConfig | None = None) -> None:
        self.catalog = catalog
        self.config = config or LookupConfig()

    def lookup(self, query: str, n: int | None = None) -> LookupOutcome:
        if n is None:
            n = self.config.default_n
        if n < 1:
            logger.warning("lookup_size_invalid", query=query, n=n)
            return LookupOutcome(
                status=LookupStatus.INVALID_ARGUMENTS,
                query=query,
                details=f"n must be a positive integer, got {n}",
            )
        limit = min(n, self.config.max_n)
        try:
            total = self.catalog.count()
            if total == 0:
                logger.warning("catalog_empty", query=query)
                return LookupOutcome(status=LookupStatus.INVENTORY_EMPTY, query=query)

            results = self.catalog.vector_search(query, limit)
            search_type = SearchType.VECTOR
            if not results:
                logger.info("vector_search_miss", query=query, catalog_size=total)
                results = self.catalog.text_search(query, limit)
                search_type = SearchType.TEXT
        except Exception as exc:
            logger.error("catalog_lookup_failed", query=query, error=str(exc))
            return LookupOutcome(
                status=LookupStatus.FAILED,
                query=query,
                details=str(exc),
            )

        results = [result for result in results[:limit] if result.search_type is search_type]
        logger.info(
            "catalog_lookup",
            query=query,
            search_type=search_type.value,
            count=len(results),
        )
        return LookupOutcome(
            status=LookupStatus.MATCHES,
            query=query,
            results=results,
            search_type=search_type,
        )
