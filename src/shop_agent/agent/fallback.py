"""Deterministic chat model used when no external LLM is configured."""

from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from shop_agent.agent.tools import ITEM_LOOKUP_TOOL


class DeterministicChatModel:
    """Chat model stand-in that always consults the catalog once.

    It keeps the same contract as a LangChain chat model (`bind_tools` and
    `invoke`), so the decision node and state machine run unchanged in
    local/offline environments where `OPENAI_API_KEY` is not configured.
    For a new human message it requests `item_lookup`; once the tool result is
    in the conversation it answers from that payload.
    """

    def __init__(self, *, max_results: int = 5) -> None:
        self.max_results = max_results
        self.tool_names: list[str] = []

    def bind_tools(self, tools: Sequence[Any]) -> DeterministicChatModel:
        bound = DeterministicChatModel(max_results=self.max_results)
        bound.tool_names = [str(getattr(tool, "name", tool)) for tool in tools]
        return bound

    def invoke(self, messages: Sequence[BaseMessage]) -> AIMessage:
        last = messages[-1] if messages else None
        if isinstance(last, ToolMessage):
            return AIMessage(content=_answer_from_tool_output(str(last.content)))
        if isinstance(last, HumanMessage) and ITEM_LOOKUP_TOOL in self.tool_names:
            return AIMessage(
                content="",
                tool_calls=[
                    {
                        "name": ITEM_LOOKUP_TOOL,
                        "args": {"query": str(last.content), "n": self.max_results},
                        "id": f"call_{uuid.uuid4().hex[:12]}",
                        "type": "tool_call",
                    }
                ],
            )
        return AIMessage(
            content="I can help you find furniture in our store. What are you looking for?"
        )


def _answer_from_tool_output(raw: str) -> str:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return "I could not read the inventory results. Could you try asking again?"

    if payload.get("error") == "No items found in inventory":
        return (
            "Our inventory appears to be empty right now; it might be being updated. "
            "Please check back soon."
        )
    if "error" in payload:
        return (
            "I ran into a problem searching the inventory. "
            "I can still help with general questions about our furniture."
        )

    results = payload.get("results") or []
    if not results:
        return (
            f"I couldn't find any items matching \"{payload.get('query', '')}\". "
            "Could you describe what you are looking for differently?"
        )

    lines = ["Here is what I found in our inventory:"]
    for idx, item in enumerate(results, start=1):
        name = item.get("item_name", "Unnamed item")
        description = item.get("item_description", "")
        lines.append(f"{idx}. {name}: {description}".rstrip(": "))
    return "\n".join(lines)
