"""Conversation engine: load history, run the workflow, commit the turn."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog

from shop_agent.agent.decision import DecisionNode
from shop_agent.agent.registry import ToolRegistry
from shop_agent.agent.tools import register_item_lookup
from shop_agent.agent.workflow import WorkflowResult, WorkflowStateMachine
from shop_agent.config import AgentConfig, LookupConfig, RetryPolicy
from shop_agent.errors import (
    ConversationError,
    ErrorCategory,
    ModelInvocationError,
    ThreadNotFound,
)
from shop_agent.obs.logging import get_logger
from shop_agent.obs.tracing import Timer, TraceStore
from shop_agent.retrieval.catalog import Catalog
from shop_agent.retrieval.lookup import ItemLookup
from shop_agent.store.conversation import ConversationStore
from shop_agent.types import Message, ToolTrace

logger = get_logger(__name__)

_turn_tool_traces: ContextVar[list[ToolTrace] | None] = ContextVar(
    "turn_tool_traces", default=None
)


class _ThreadLock:
    """A per-thread lock and the number of turns holding or waiting on it."""

    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


def _record_tool_trace(trace: ToolTrace) -> None:
    traces = _turn_tool_traces.get()
    if traces is not None:
        traces.append(trace)


class ConversationEngine:
    """Runs one turn of a thread-scoped shopping conversation.

    Turns on the same thread are serialized: the per-thread lock is held from
    loading history until the turn is committed, so two concurrent turns can
    never both build on the same prior state. Different threads run in
    parallel.
    """

    def __init__(
        self,
        *,
        workflow: WorkflowStateMachine,
        store: ConversationStore,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.workflow = workflow
        self.store = store
        self.trace_store = trace_store or TraceStore()
        self._locks: dict[str, _ThreadLock] = {}
        self._locks_guard = threading.Lock()
        self.workflow.tool_registry.set_observer(_record_tool_trace)

    def run_conversation_turn(self, query: str, thread_id: str) -> str:
        """Answer `query` within `thread_id` and commit the turn.

        Raises:
            ConversationError: with a user-facing message for rate limiting,
                provider overload, authentication problems or any other
                failure. Nothing is committed for a failed turn.
        """

        with structlog.contextvars.bound_contextvars(thread_id=thread_id):
            with self._thread_lock(thread_id):
                return self._run_locked(query, thread_id)

    def _run_locked(self, query: str, thread_id: str) -> str:
        history = self._load_history(thread_id)
        human = Message.human(query)
        logger.info("turn_started", history_length=len(history))

        traces: list[ToolTrace] = []
        token = _turn_tool_traces.set(traces)
        result: WorkflowResult | None = None
        timer = Timer()
        try:
            with timer:
                result = self.workflow.run([*history, human])
                self._commit(thread_id, [human, *result.new_messages])
        except Exception as exc:
            category = _categorize(exc)
            self._log_failure(exc, category)
            self._record(thread_id, query, None, traces, result, timer, category)
            raise ConversationError(category) from exc
        finally:
            _turn_tool_traces.reset(token)

        self._record(thread_id, query, result.answer, traces, result, timer, None)
        logger.info(
            "turn_finished",
            cycles=result.cycles,
            committed=len(result.new_messages) + 1,
            latency_ms=round(timer.elapsed_ms, 2),
        )
        return result.answer

    def _load_history(self, thread_id: str) -> list[Message]:
        try:
            history = self.store.load(thread_id)
        except ThreadNotFound:
            logger.info("thread_started")
            return []
        except Exception as exc:
            logger.warning("history_load_failed", error=str(exc), error_type=type(exc).__name__)
            return []
        logger.debug("history_loaded", messages=len(history))
        return history

    def _commit(self, thread_id: str, messages: list[Message]) -> None:
        self.store.append(thread_id, messages)
        logger.debug("turn_committed", messages=len(messages))

    def _record(
        self,
        thread_id: str,
        query: str,
        answer: str | None,
        traces: list[ToolTrace],
        result: WorkflowResult | None,
        timer: Timer,
        category: ErrorCategory | None,
    ) -> None:
        self.trace_store.create_record(
            thread_id=thread_id,
            query=query,
            answer=answer,
            tool_traces=list(traces),
            cycles=result.cycles if result is not None else len(traces),
            latency_ms=timer.elapsed_ms,
            error_category=category.value if category else None,
        )

    @staticmethod
    def _log_failure(exc: Exception, category: ErrorCategory) -> None:
        if category is ErrorCategory.UNKNOWN:
            logger.exception("turn_failed", category=category.value)
        else:
            logger.error("turn_failed", category=category.value, error=str(exc))

    @contextmanager
    def _thread_lock(self, thread_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(thread_id)
            if entry is None:
                entry = self._locks[thread_id] = _ThreadLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[thread_id]


def _categorize(exc: BaseException) -> ErrorCategory:
    if isinstance(exc, ModelInvocationError):
        return exc.category
    return ErrorCategory.UNKNOWN


def build_engine(
    *,
    llm: Any,
    catalog: Catalog,
    store: ConversationStore,
    agent_config: AgentConfig | None = None,
    lookup_config: LookupConfig | None = None,
    retry_policy: RetryPolicy | None = None,
    trace_store: TraceStore | None = None,
    sleep: Callable[[float], None] | None = None,
) -> ConversationEngine:
    """Wire the lookup tool, decision node, workflow and store together."""

    registry = ToolRegistry()
    register_item_lookup(registry, ItemLookup(catalog, lookup_config))
    decision_node = DecisionNode.from_model(
        llm,
        registry.as_langchain_tools(),
        policy=retry_policy,
        sleep=sleep,
    )
    workflow = WorkflowStateMachine(decision_node, registry, agent_config)
    return ConversationEngine(workflow=workflow, store=store, trace_store=trace_store)
