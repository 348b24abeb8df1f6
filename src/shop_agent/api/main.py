"""FastAPI entrypoint for chat and trace endpoints."""

from __future__ import annotations

import os
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from shop_agent.agent.fallback import DeterministicChatModel
from shop_agent.config import AgentConfig
from shop_agent.engine import ConversationEngine, build_engine
from shop_agent.errors import ConversationError, ErrorCategory
from shop_agent.obs.logging import configure_logging, get_logger
from shop_agent.obs.tracing import TraceStore
from shop_agent.retrieval.catalog import InMemoryCatalog, load_catalog_file
from shop_agent.retrieval.embedder import HashingEmbedder
from shop_agent.store.conversation import (
    ConversationStore,
    InMemoryConversationStore,
    SqliteConversationStore,
)

configure_logging()
logger = get_logger(__name__)

_UNAVAILABLE = {ErrorCategory.RATE_LIMIT, ErrorCategory.OVERLOADED}


def _create_llm(config: AgentConfig) -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    # Retries are owned by ResilientModelInvoker.
    return ChatOpenAI(model=config.model_name, temperature=config.temperature, max_retries=0)


def _create_embedder() -> Any:
    if not os.getenv("OPENAI_API_KEY"):
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    return OpenAIEmbeddings(model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"))


def _create_store() -> ConversationStore:
    db_path = os.getenv("SHOP_AGENT_DB")
    if db_path:
        return SqliteConversationStore(db_path)
    return InMemoryConversationStore()


def _create_catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog(_create_embedder())
    catalog_path = os.getenv("SHOP_AGENT_CATALOG")
    if catalog_path:
        items = load_catalog_file(catalog_path)
        catalog.add(items)
        logger.info("catalog_loaded", path=catalog_path, items=len(items))
    return catalog


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    threadId: str
    response: str


app = FastAPI(title="Furniture Shopping Assistant", version="0.1.0")

_agent_config = AgentConfig(model_name=os.getenv("OPENAI_MODEL", "gpt-4o-mini"))
_llm = _create_llm(_agent_config)
_catalog = _create_catalog()
_trace_store = TraceStore()
_engine: ConversationEngine = build_engine(
    llm=_llm if _llm is not None else DeterministicChatModel(),
    catalog=_catalog,
    store=_create_store(),
    agent_config=_agent_config,
    trace_store=_trace_store,
)


def _run_turn(message: str, thread_id: str) -> ChatResponse:
    try:
        answer = _engine.run_conversation_turn(message, thread_id)
    except ConversationError as exc:
        status = 503 if exc.category in _UNAVAILABLE else 500
        raise HTTPException(status_code=status, detail=exc.user_message) from exc
    return ChatResponse(threadId=thread_id, response=answer)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": _llm is not None,
        "model_mode": "openai" if _llm is not None else "deterministic",
        "catalog_items": _catalog.count(),
    }


@app.post("/chat", response_model=ChatResponse)
def start_chat(request: ChatRequest) -> ChatResponse:
    thread_id = uuid.uuid4().hex
    return _run_turn(request.message, thread_id)


@app.post("/chat/{thread_id}", response_model=ChatResponse)
def continue_chat(thread_id: str, request: ChatRequest) -> ChatResponse:
    return _run_turn(request.message, thread_id)


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
