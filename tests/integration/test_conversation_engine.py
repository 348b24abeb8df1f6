import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from shop_agent.agent.fallback import DeterministicChatModel
from shop_agent.config import AgentConfig
from shop_agent.engine import build_engine
from shop_agent.errors import ConversationError, ErrorCategory, StorageError, ThreadNotFound
from shop_agent.obs.tracing import TraceStore
from shop_agent.retrieval.catalog import InMemoryCatalog
from shop_agent.retrieval.embedder import HashingEmbedder
from shop_agent.store.conversation import InMemoryConversationStore
from shop_agent.types import CatalogItem, Role


class ProviderError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class ScriptedModel:
    def __init__(self, replies) -> None:
        self.replies = list(replies)

    def bind_tools(self, tools):
        return self

    def invoke(self, messages):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class AlwaysToolModel:
    def bind_tools(self, tools):
        return self

    def invoke(self, messages):
        return AIMessage(
            content="",
            tool_calls=[{"name": "item_lookup", "args": {"query": "table"}, "id": f"call-{len(messages)}"}],
        )


class SlowRecordingModel(DeterministicChatModel):
    """Records how much history each turn starts from."""

    seen_history: list[int] = []
    gate = threading.Event()

    def bind_tools(self, tools):
        bound = SlowRecordingModel(max_results=self.max_results)
        bound.tool_names = [tool.name for tool in tools]
        return bound

    def invoke(self, messages):
        if isinstance(messages[-1], HumanMessage):
            SlowRecordingModel.seen_history.append(len(messages))
            SlowRecordingModel.gate.wait(timeout=0.2)
        return super().invoke(messages)


class FailingLoadStore(InMemoryConversationStore):
    def load(self, thread_id):
        raise StorageError("replica unreachable")


class FailingAppendStore(InMemoryConversationStore):
    def append(self, thread_id, messages):
        raise StorageError("disk full")


def _catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog(HashingEmbedder())
    catalog.add(
        [
            CatalogItem(
                item_id="tbl-1",
                name="Oak Dining Table",
                description="Solid oak dining table seating six.",
                categories=["Dining Room", "Tables"],
                summary="Oak Dining Table. Solid oak dining table seating six. Categories: Dining Room, Tables",
            ),
            CatalogItem(
                item_id="chr-1",
                name="Velvet Accent Chair",
                description="Emerald velvet chair with brass legs.",
                categories=["Living Room", "Chairs"],
                summary="Velvet Accent Chair. Emerald velvet chair with brass legs. Categories: Living Room, Chairs",
            ),
        ]
    )
    return catalog


def _engine(llm, store=None, **kwargs):
    return build_engine(
        llm=llm,
        catalog=kwargs.pop("catalog", None) or _catalog(),
        store=store if store is not None else InMemoryConversationStore(),
        sleep=kwargs.pop("sleep", lambda _: None),
        **kwargs,
    )


def test_new_thread_dining_tables_turn_commits_full_exchange() -> None:
    store = InMemoryConversationStore()
    engine = _engine(DeterministicChatModel(), store)

    answer = engine.run_conversation_turn("Do you have any dining tables?", "thread-1")

    assert "Oak Dining Table" in answer
    history = store.load("thread-1")
    assert [m.role for m in history] == [
        Role.HUMAN,
        Role.ASSISTANT,
        Role.TOOL_RESULT,
        Role.ASSISTANT,
    ]
    assert history[0].content == "Do you have any dining tables?"
    assert history[1].tool_call.name == "item_lookup"
    assert history[2].content["searchType"] == "vector"
    assert history[3].content == answer


def test_continuing_a_thread_only_appends() -> None:
    store = InMemoryConversationStore()
    engine = _engine(DeterministicChatModel(), store)

    engine.run_conversation_turn("Do you have any dining tables?", "thread-2")
    first = store.load("thread-2")
    engine.run_conversation_turn("What about a velvet chair?", "thread-2")
    second = store.load("thread-2")

    assert len(second) > len(first)
    assert second[: len(first)] == first
    assert second[len(first)].content == "What about a velvet chair?"


def test_model_sees_prior_turns() -> None:
    model = ScriptedModel([AIMessage(content="Hello!"), AIMessage(content="You said hi.")])
    store = InMemoryConversationStore()
    engine = _engine(model, store)

    engine.run_conversation_turn("hi", "thread-3")
    answer = engine.run_conversation_turn("what did I say?", "thread-3")

    assert answer == "You said hi."
    assert [m.content for m in store.load("thread-3")] == [
        "hi",
        "Hello!",
        "what did I say?",
        "You said hi.",
    ]


def test_recursion_limit_fails_turn_and_commits_nothing() -> None:
    store = InMemoryConversationStore()
    engine = _engine(AlwaysToolModel(), store, agent_config=AgentConfig(recursion_limit=15))

    with pytest.raises(ConversationError) as excinfo:
        engine.run_conversation_turn("tables forever", "thread-4")

    assert excinfo.value.category is ErrorCategory.UNKNOWN
    with pytest.raises(ThreadNotFound):
        store.load("thread-4")


def test_failed_turn_keeps_prior_history_intact() -> None:
    store = InMemoryConversationStore()
    model = ScriptedModel([AIMessage(content="Welcome!"), ProviderError(401)])
    engine = _engine(model, store)

    engine.run_conversation_turn("hello", "thread-5")
    before = store.load("thread-5")

    with pytest.raises(ConversationError) as excinfo:
        engine.run_conversation_turn("show me sofas", "thread-5")

    assert excinfo.value.category is ErrorCategory.AUTH
    assert excinfo.value.user_message == (
        "Authentication failed. Please check your API configuration."
    )
    assert store.load("thread-5") == before


def test_sustained_rate_limit_maps_to_user_message() -> None:
    delays: list[float] = []
    model = ScriptedModel([ProviderError(429)] * 3)
    engine = _engine(model, sleep=delays.append)

    with pytest.raises(ConversationError) as excinfo:
        engine.run_conversation_turn("chairs?", "thread-6")

    assert delays == [1.0, 2.0]
    assert excinfo.value.category is ErrorCategory.RATE_LIMIT
    assert "rate limits" in str(excinfo.value)


def test_overload_is_not_retried() -> None:
    delays: list[float] = []
    engine = _engine(ScriptedModel([ProviderError(503)]), sleep=delays.append)

    with pytest.raises(ConversationError) as excinfo:
        engine.run_conversation_turn("chairs?", "thread-7")

    assert delays == []
    assert excinfo.value.category is ErrorCategory.OVERLOADED


def test_history_load_failure_starts_fresh() -> None:
    engine = _engine(ScriptedModel([AIMessage(content="Hi!")]), FailingLoadStore())

    assert engine.run_conversation_turn("hello", "thread-8") == "Hi!"


def test_commit_failure_is_surfaced() -> None:
    engine = _engine(ScriptedModel([AIMessage(content="Hi!")]), FailingAppendStore())

    with pytest.raises(ConversationError) as excinfo:
        engine.run_conversation_turn("hello", "thread-9")

    assert excinfo.value.category is ErrorCategory.UNKNOWN


def test_empty_inventory_is_narrated() -> None:
    engine = _engine(DeterministicChatModel(), catalog=InMemoryCatalog(HashingEmbedder()))

    answer = engine.run_conversation_turn("Do you have any dining tables?", "thread-10")

    assert "inventory appears to be empty" in answer


def test_turns_on_one_thread_are_serialized() -> None:
    SlowRecordingModel.seen_history = []
    store = InMemoryConversationStore()
    engine = _engine(SlowRecordingModel(), store)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(engine.run_conversation_turn, query, "shared")
            for query in ("dining tables?", "velvet chairs?")
        ]
        for future in futures:
            future.result()

    # system prompt + 1 human, then system prompt + 4 committed + 1 human
    assert sorted(SlowRecordingModel.seen_history) == [2, 6]
    assert len(store.load("shared")) == 8


def test_turn_traces_record_tool_calls() -> None:
    trace_store = TraceStore()
    engine = _engine(DeterministicChatModel(), trace_store=trace_store)

    engine.run_conversation_turn("Do you have any dining tables?", "thread-11")

    (record,) = trace_store.list_recent()
    assert record.thread_id == "thread-11"
    assert record.cycles == 1
    assert [trace.name for trace in record.tool_traces] == ["item_lookup"]
    assert record.error_category is None
    assert trace_store.summary()["total_tool_calls"] == 1


class ResetLoadStore(InMemoryConversationStore):
    def load(self, thread_id):
        raise OSError("connection reset")


def test_unexpected_load_error_degrades_to_fresh_history() -> None:
    store = ResetLoadStore()
    engine = _engine(ScriptedModel([AIMessage(content="Hi!")]), store)

    assert engine.run_conversation_turn("hello", "thread-12") == "Hi!"
    assert [m.content for m in InMemoryConversationStore.load(store, "thread-12")] == [
        "hello",
        "Hi!",
    ]


def test_thread_locks_are_released_after_turns() -> None:
    engine = _engine(DeterministicChatModel())

    for index in range(5):
        engine.run_conversation_turn("dining tables?", f"thread-lock-{index}")
    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [
            pool.submit(engine.run_conversation_turn, "velvet chairs?", "thread-lock-shared")
            for _ in range(4)
        ]
        for future in futures:
            future.result()

    assert engine._locks == {}


def test_thread_lock_is_released_when_turn_fails() -> None:
    engine = _engine(ScriptedModel([ProviderError(401)]))

    with pytest.raises(ConversationError):
        engine.run_conversation_turn("hello", "thread-lock-failed")

    assert engine._locks == {}
