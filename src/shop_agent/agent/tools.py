"""The catalog lookup tool exposed to the model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shop_agent.agent.registry import ToolRegistry, ToolSpec
from shop_agent.retrieval.lookup import ItemLookup

ITEM_LOOKUP_TOOL = "item_lookup"


class ItemLookupInput(BaseModel):
    query: str = Field(min_length=1, description="What the shopper is looking for.")
    n: int = Field(default=10, ge=1, le=50, description="Maximum number of items to return.")


def register_item_lookup(registry: ToolRegistry, lookup: ItemLookup) -> None:
    """Register `item_lookup` backed by the given lookup service."""

    def _lookup(input_data: ItemLookupInput) -> dict[str, Any]:
        return lookup.lookup(input_data.query, input_data.n).to_payload()

    registry.register(
        ToolSpec(
            name=ITEM_LOOKUP_TOOL,
            description=(
                "Gathers furniture item details from the inventory database. "
                "Provide 'query' describing the item and optionally 'n', the "
                "number of results (default 10)."
            ),
            args_schema=ItemLookupInput,
            handler=_lookup,
            tags=["retrieval", "catalog"],
        )
    )
