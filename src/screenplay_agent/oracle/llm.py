"""Oracle backed by any LangChain chat model."""

from __future__ import annotations

from typing import Any

from screenplay_agent.config import OracleConfig
from screenplay_agent.context import ClassificationContext
from screenplay_agent.oracle.base import BaseOracle, RateLimiter
from screenplay_agent.oracle.contract import OracleUnavailableError
from screenplay_agent.oracle.prompts import AUDIT_PROMPT, CLASSIFY_PROMPT, audit_request, classify_request
from screenplay_agent.types import AuditLine, Line


class ChatModelOracle(BaseOracle):
    """Sends the classification prompts through a chat model's `ainvoke`."""

    name = "chat-model"

    def __init__(
        self,
        llm: Any,
        config: OracleConfig | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__(config, rate_limiter=rate_limiter)
        self.llm = llm

    async def _complete_classify(self, line: Line, context: ClassificationContext) -> str:
        messages = CLASSIFY_PROMPT.format_messages(request=classify_request(line, context))
        return await self._invoke(messages)

    async def _complete_audit(self, lines: list[AuditLine]) -> str:
        messages = AUDIT_PROMPT.format_messages(request=audit_request(lines))
        return await self._invoke(messages)

    async def _invoke(self, messages: list[Any]) -> str:
        try:
            response = await self.llm.ainvoke(messages)
        except Exception as exc:
            raise OracleUnavailableError(f"chat model call failed: {exc}") from exc
        return _content_text(getattr(response, "content", response))


def _content_text(content: Any) -> str:
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)
