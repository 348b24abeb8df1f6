"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool-result"


class SearchType(str, Enum):
    VECTOR = "vector"
    TEXT = "text"


class ToolCall(BaseModel):
    """A model-emitted request to run a tool."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """One immutable entry in a thread's history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | dict[str, Any] = ""
    tool_call: ToolCall | None = None
    tool_call_id: str | None = None

    @classmethod
    def human(cls, text: str) -> Message:
        return cls(role=Role.HUMAN, content=text)

    @classmethod
    def assistant(cls, text: str, tool_call: ToolCall | None = None) -> Message:
        return cls(role=Role.ASSISTANT, content=text, tool_call=tool_call)

    @classmethod
    def tool_result(cls, payload: dict[str, Any], tool_call_id: str) -> Message:
        return cls(role=Role.TOOL_RESULT, content=payload, tool_call_id=tool_call_id)


@dataclass(slots=True)
class CatalogItem:
    """A furniture item as stored by the catalog."""

    item_id: str
    name: str
    description: str
    categories: list[str]
    summary: str
    embedding: list[float] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """Serializable view without the embedding vector."""
        return {
            "item_id": self.item_id,
            "item_name": self.name,
            "item_description": self.description,
            "categories": list(self.categories),
            "summary": self.summary,
            **self.attributes,
        }


@dataclass(slots=True)
class SearchResult:
    """A catalog match tagged with the strategy that produced it."""

    item: CatalogItem
    search_type: SearchType
    score: float | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.item.to_document()
        if self.score is not None:
            payload["score"] = round(self.score, 6)
        return payload


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
