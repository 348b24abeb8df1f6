"""Decision node: asks the model whether to answer or to look up items."""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from shop_agent.agent.invoker import ResilientModelInvoker
from shop_agent.config import RetryPolicy
from shop_agent.obs.logging import get_logger
from shop_agent.types import Message, Role, ToolCall

logger = get_logger(__name__)

_SYSTEM_PROMPT = """
You are a helpful E-commerce Chatbot Agent for a furniture store.

IMPORTANT: You have access to an item_lookup tool that searches the furniture inventory database. ALWAYS use this tool when customers ask about furniture items, even if the tool returns errors or empty results.

When using the item_lookup tool:
- If it returns results, provide helpful details about the furniture items
- If it returns an error or no results, acknowledge this and offer to help in other ways
- If the database appears to be empty, let the customer know that inventory might be being updated

Current time: {time}
""".strip()

_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        MessagesPlaceholder(variable_name="messages"),
    ]
)


@dataclass(frozen=True, slots=True)
class FinalAnswer:
    text: str


@dataclass(frozen=True, slots=True)
class ToolRequest:
    call: ToolCall
    text: str = ""


Decision = FinalAnswer | ToolRequest


class DecisionNode:
    """Formats the prompt, calls the model and classifies its reply."""

    def __init__(
        self,
        invoker: ResilientModelInvoker,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.invoker = invoker
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_model(
        cls,
        llm: Any,
        tools: Sequence[Any],
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> DecisionNode:
        """Bind `tools` to `llm` and wrap it in a retrying invoker."""

        bound = llm.bind_tools(list(tools))
        return cls(ResilientModelInvoker(bound, policy=policy, sleep=sleep or time.sleep))

    def build_prompt(self, history: Sequence[Message]) -> list[BaseMessage]:
        return _PROMPT.format_messages(
            time=self._clock().isoformat(),
            messages=[to_langchain_message(message) for message in history],
        )

    def decide(self, history: Sequence[Message]) -> Decision:
        reply = self.invoker.invoke(self.build_prompt(history))
        text = extract_text(reply)
        tool_calls = list(getattr(reply, "tool_calls", None) or [])
        if not tool_calls:
            return FinalAnswer(text=text)

        if len(tool_calls) > 1:
            logger.warning(
                "extra_tool_calls_dropped",
                requested=len(tool_calls),
                kept=tool_calls[0].get("name"),
            )
        first = tool_calls[0]
        call = ToolCall(
            id=first.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=str(first.get("name", "")),
            args=dict(first.get("args") or {}),
        )
        return ToolRequest(call=call, text=text)


def to_langchain_message(message: Message) -> BaseMessage:
    if message.role is Role.HUMAN:
        return HumanMessage(content=_content_text(message.content))
    if message.role is Role.TOOL_RESULT:
        return ToolMessage(
            content=_content_text(message.content),
            tool_call_id=message.tool_call_id or "",
        )
    if message.tool_call is not None:
        return AIMessage(
            content=_content_text(message.content),
            tool_calls=[
                {
                    "name": message.tool_call.name,
                    "args": message.tool_call.args,
                    "id": message.tool_call.id,
                    "type": "tool_call",
                }
            ],
        )
    return AIMessage(content=_content_text(message.content))


def extract_text(reply: Any) -> str:
    content = getattr(reply, "content", reply)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content or "")


def _content_text(content: str | dict[str, Any]) -> str:
    if isinstance(content, dict):
        return json.dumps(content, default=str)
    return content
