"""Oracle backed by an Ollama `/api/generate` endpoint."""

from __future__ import annotations

from typing import Any

import httpx
from langchain_core.prompts import ChatPromptTemplate

from screenplay_agent.config import OracleConfig
from screenplay_agent.context import ClassificationContext
from screenplay_agent.oracle.base import BaseOracle, RateLimiter
from screenplay_agent.oracle.contract import OracleResponseError, OracleUnavailableError
from screenplay_agent.oracle.prompts import AUDIT_PROMPT, CLASSIFY_PROMPT, audit_request, classify_request
from screenplay_agent.types import AuditLine, Line


class OllamaOracle(BaseOracle):
    """Posts system + user prompts to Ollama in JSON mode.

    `transport` lets tests substitute an `httpx.MockTransport`.
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str,
        model_name: str,
        config: OracleConfig | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config, rate_limiter=rate_limiter)
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self._transport = transport

    async def _complete_classify(self, line: Line, context: ClassificationContext) -> str:
        return await self._generate(CLASSIFY_PROMPT, classify_request(line, context))

    async def _complete_audit(self, lines: list[AuditLine]) -> str:
        return await self._generate(AUDIT_PROMPT, audit_request(lines))

    async def _generate(self, prompt: ChatPromptTemplate, request: str) -> str:
        system, user = (message.content for message in prompt.format_messages(request=request))
        body: dict[str, Any] = {
            "model": self.model_name,
            "prompt": user,
            "system": system,
            "stream": False,
            "format": "json",
        }
        try:
            async with httpx.AsyncClient(timeout=None, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=body)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise OracleUnavailableError(f"ollama request failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise OracleResponseError("ollama returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise OracleResponseError("ollama body must be a JSON object")
        return str(data.get("response", ""))
