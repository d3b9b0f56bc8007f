"""Shared call discipline for oracle adapters: spacing, timeout, retries."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from screenplay_agent.config import OracleConfig
from screenplay_agent.context import ClassificationContext
from screenplay_agent.oracle.contract import (
    AuditCorrection,
    OracleError,
    OracleResponseError,
    OracleUnavailableError,
    OracleVerdict,
)
from screenplay_agent.types import AuditLine, Line

log = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.DOTALL)


class RateLimiter:
    """Enforces a minimum interval between consecutive calls."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_allowed = 0.0
        self._lock: asyncio.Lock | None = None

    async def acquire(self) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            wait = self._next_allowed - self._clock()
            if wait > 0:
                await self._sleep(wait)
            self._next_allowed = self._clock() + self.min_interval


class BaseOracle(ABC):
    """Wraps a raw completion backend with the oracle call discipline.

    Each attempt waits for the rate limiter, runs under the configured
    timeout, and failed attempts back off exponentially. Only
    `OracleError` subclasses escape.
    """

    name = "oracle"

    def __init__(
        self,
        config: OracleConfig | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or OracleConfig()
        self._limiter = rate_limiter or RateLimiter(self.config.min_request_interval_seconds)
        self._sleep = sleep

    @abstractmethod
    async def _complete_classify(self, line: Line, context: ClassificationContext) -> str:
        """Return the backend's raw text answer for one line."""

    @abstractmethod
    async def _complete_audit(self, lines: list[AuditLine]) -> str:
        """Return the backend's raw text answer for an audit batch."""

    async def classify_one(self, line: Line, context: ClassificationContext) -> OracleVerdict:
        raw = await self._request(lambda: self._complete_classify(line, context), "classify")
        return parse_verdict(raw)

    async def audit_batch(self, lines: list[AuditLine]) -> list[AuditCorrection]:
        if not lines:
            return []
        raw = await self._request(lambda: self._complete_audit(lines), "audit")
        return parse_corrections(raw, lines)

    async def _request(self, call: Callable[[], Awaitable[str]], label: str) -> str:
        attempts = self.config.max_retries + 1
        last_error: OracleError = OracleUnavailableError(f"{self.name} {label} was not attempted")
        for attempt in range(attempts):
            await self._limiter.acquire()
            try:
                return await asyncio.wait_for(call(), timeout=self.config.request_timeout_seconds)
            except asyncio.TimeoutError:
                last_error = OracleUnavailableError(
                    f"{self.name} {label} timed out after {self.config.request_timeout_seconds}s"
                )
            except OracleError as exc:
                last_error = exc
            log.warning(
                "Oracle %s %s attempt %d/%d failed: %s", self.name, label, attempt + 1, attempts, last_error
            )
            if attempt + 1 < attempts:
                await self._sleep(self.config.backoff_base_seconds * (2**attempt))
        raise last_error


def extract_json(raw: str) -> Any:
    """Parse the JSON document in a model answer, tolerating code fences."""
    text = raw.strip()
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    if not text.startswith(("{", "[")):
        starts = [pos for pos in (text.find("{"), text.find("[")) if pos >= 0]
        if not starts:
            raise OracleResponseError("oracle answer contains no JSON")
        text = text[min(starts) :]
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        end = max(text.rfind("}"), text.rfind("]"))
        try:
            return json.loads(text[: end + 1])
        except json.JSONDecodeError as exc:
            raise OracleResponseError(f"oracle answer is not valid JSON: {exc}") from exc


def parse_verdict(raw: str) -> OracleVerdict:
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise OracleResponseError("classification answer must be a JSON object")
    try:
        return OracleVerdict.model_validate(data)
    except ValidationError as exc:
        raise OracleResponseError(f"malformed classification answer: {exc}") from exc


def parse_corrections(raw: str, lines: list[AuditLine]) -> list[AuditCorrection]:
    """Validate corrections item by item; unusable items are skipped."""
    data = extract_json(raw)
    if isinstance(data, dict):
        data = data.get("corrections", [])
    if not isinstance(data, list):
        raise OracleResponseError("audit answer must contain a list of corrections")

    known = {item.index for item in lines}
    corrections: list[AuditCorrection] = []
    for item in data:
        try:
            correction = AuditCorrection.model_validate(item)
        except ValidationError:
            log.debug("Skipping malformed audit correction: %r", item)
            continue
        if correction.index not in known or correction.suggested_type == correction.current_type:
            continue
        corrections.append(correction)
    return sorted(corrections, key=lambda c: c.index)
