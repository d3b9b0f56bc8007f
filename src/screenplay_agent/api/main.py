"""FastAPI entrypoint exposing per-session classification endpoints."""

from __future__ import annotations

import os
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from screenplay_agent.config import EngineConfig
from screenplay_agent.context import ClassificationContext
from screenplay_agent.engine import ClassificationEngine
from screenplay_agent.oracle.contract import ClassificationOracle
from screenplay_agent.oracle.llm import ChatModelOracle
from screenplay_agent.oracle.ollama import OllamaOracle
from screenplay_agent.types import AuditLine, ElementType, ImportFlavor


def _create_oracle(config: EngineConfig) -> ClassificationOracle | None:
    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        from langchain_openai import ChatOpenAI

        llm = ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)
        return ChatModelOracle(llm, config.oracle)

    ollama_url = os.getenv("OLLAMA_BASE_URL")
    if ollama_url:
        return OllamaOracle(ollama_url, os.getenv("OLLAMA_MODEL", "qwen2.5:7b"), config.oracle)
    return None


class ClassifyRequest(BaseModel):
    text: str
    flavor: ImportFlavor = ImportFlavor.LIVE_TYPING


class BatchRequest(BaseModel):
    lines: list[str] = Field(min_length=1)
    flavor: ImportFlavor = ImportFlavor.PASTE


class AuditLineIn(BaseModel):
    index: int = Field(ge=0)
    text: str
    current_type: ElementType


class AuditRequest(BaseModel):
    lines: list[AuditLineIn] = Field(min_length=1)
    window: int | None = Field(default=None, ge=1)


class SessionStore:
    """Holds one engine per session id; nothing is shared between sessions."""

    def __init__(self, config: EngineConfig, oracle: ClassificationOracle | None) -> None:
        self.config = config
        self.oracle = oracle
        self._engines: dict[str, ClassificationEngine] = {}

    def get_or_create(self, session_id: str) -> ClassificationEngine:
        engine = self._engines.get(session_id)
        if engine is None:
            engine = ClassificationEngine(self.config, oracle=self.oracle)
            self._engines[session_id] = engine
        return engine

    def get(self, session_id: str) -> ClassificationEngine:
        engine = self._engines.get(session_id)
        if engine is None:
            raise KeyError(f"Session not found: {session_id}")
        return engine

    def drop(self, session_id: str) -> None:
        if self._engines.pop(session_id, None) is None:
            raise KeyError(f"Session not found: {session_id}")

    def __len__(self) -> int:
        return len(self._engines)


def _context_view(context: ClassificationContext) -> dict[str, Any]:
    data = asdict(context)
    data["previous_type"] = context.previous_type.value if context.previous_type else None
    return data


def create_app(
    config: EngineConfig | None = None,
    oracle: ClassificationOracle | None = None,
) -> FastAPI:
    config = config or EngineConfig()
    if oracle is None:
        oracle = _create_oracle(config)
    sessions = SessionStore(config, oracle)

    app = FastAPI(title="Screenplay Classification Engine", version="0.1.0")
    app.state.sessions = sessions

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "oracle_configured": oracle is not None,
            "oracle_mode": getattr(oracle, "name", "none") if oracle is not None else "none",
            "session_count": len(sessions),
        }

    @app.post("/sessions/{session_id}/classify")
    async def classify(session_id: str, request: ClassifyRequest) -> dict[str, Any]:
        engine = sessions.get_or_create(session_id)
        result = await engine.classify(request.text, flavor=request.flavor)
        return {
            "items": [element.to_dict() for element in result.elements()],
            "context": _context_view(engine.context),
        }

    @app.post("/sessions/{session_id}/classify/batch")
    async def classify_batch(session_id: str, request: BatchRequest) -> dict[str, Any]:
        engine = sessions.get_or_create(session_id)
        results = await engine.classify_batch(request.lines, flavor=request.flavor)
        return {"items": [result.to_dict() for result in results]}

    @app.post("/sessions/{session_id}/audit")
    async def audit(session_id: str, request: AuditRequest) -> dict[str, Any]:
        engine = sessions.get_or_create(session_id)
        lines = [AuditLine(index=item.index, text=item.text, current_type=item.current_type) for item in request.lines]
        corrections = await engine.audit_batch(lines, window=request.window)
        return {"items": [correction.model_dump(mode="json") for correction in corrections]}

    @app.get("/sessions/{session_id}/metrics")
    def metrics(session_id: str) -> dict[str, Any]:
        try:
            engine = sessions.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return engine.metrics_summary()

    @app.delete("/sessions/{session_id}")
    def drop_session(session_id: str) -> dict[str, Any]:
        try:
            sessions.drop(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"deleted": session_id}

    return app


app = create_app()
