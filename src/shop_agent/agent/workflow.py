"""Decide/execute state machine driving one conversation turn."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from shop_agent.agent.decision import DecisionNode, FinalAnswer, ToolRequest
from shop_agent.agent.registry import ToolRegistry
from shop_agent.config import AgentConfig
from shop_agent.errors import InvalidTransition, RecursionLimitExceeded
from shop_agent.obs.logging import get_logger
from shop_agent.types import Message

logger = get_logger(__name__)


class WorkflowState(str, Enum):
    DECIDING = "deciding"
    EXECUTING = "executing"
    TERMINAL = "terminal"


@dataclass(frozen=True, slots=True)
class ToolCompleted:
    call_id: str


Event = FinalAnswer | ToolRequest | ToolCompleted


def transition(state: WorkflowState, event: Event) -> WorkflowState:
    """Next state for `event`; raises `InvalidTransition` for impossible moves."""

    if state is WorkflowState.DECIDING:
        if isinstance(event, ToolRequest):
            return WorkflowState.EXECUTING
        if isinstance(event, FinalAnswer):
            return WorkflowState.TERMINAL
    elif state is WorkflowState.EXECUTING and isinstance(event, ToolCompleted):
        return WorkflowState.DECIDING
    raise InvalidTransition(f"{type(event).__name__} is not valid in state {state.value}")


@dataclass(slots=True)
class WorkflowResult:
    answer: str
    new_messages: list[Message] = field(default_factory=list)
    cycles: int = 0


class WorkflowStateMachine:
    """Alternates between the decision node and tool execution.

    A cycle is one tool execution. When the model asks for a tool after
    `recursion_limit` cycles the run stops with `RecursionLimitExceeded`;
    the caller receives no messages from the failed run.
    """

    def __init__(
        self,
        decision_node: DecisionNode,
        tool_registry: ToolRegistry,
        config: AgentConfig | None = None,
    ) -> None:
        self.decision_node = decision_node
        self.tool_registry = tool_registry
        self.config = config or AgentConfig()

    def run(self, history: Sequence[Message]) -> WorkflowResult:
        messages = list(history)
        new_messages: list[Message] = []
        state = WorkflowState.DECIDING
        pending: ToolRequest | None = None
        answer = ""
        cycles = 0

        while state is not WorkflowState.TERMINAL:
            if state is WorkflowState.DECIDING:
                decision = self.decision_node.decide(messages)
                if isinstance(decision, ToolRequest):
                    if cycles >= self.config.recursion_limit:
                        logger.error(
                            "recursion_limit_exceeded",
                            limit=self.config.recursion_limit,
                        )
                        raise RecursionLimitExceeded(self.config.recursion_limit)
                    pending = decision
                    message = Message.assistant(decision.text, tool_call=decision.call)
                else:
                    answer = decision.text
                    message = Message.assistant(decision.text)
                next_state = transition(state, decision)
            else:
                if pending is None:
                    raise InvalidTransition("executing without a pending tool request")
                payload = self.tool_registry.execute(pending.call.name, pending.call.args)
                message = Message.tool_result(payload, tool_call_id=pending.call.id)
                cycles += 1
                next_state = transition(state, ToolCompleted(call_id=pending.call.id))
                pending = None

            messages.append(message)
            new_messages.append(message)
            logger.debug(
                "workflow_transition",
                from_state=state.value,
                to_state=next_state.value,
                cycle=cycles,
            )
            state = next_state

        return WorkflowResult(answer=answer, new_messages=new_messages, cycles=cycles)
