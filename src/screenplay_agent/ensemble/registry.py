"""Strategy registry built on Pydantic v2 models."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable
from time import perf_counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from screenplay_agent.context import ClassificationContext
from screenplay_agent.types import ClassificationResult, ElementType, Line, StrategyTrace


class StrategySpec(BaseModel):
    """Declarative strategy specification for registration and voting."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    weight: float = Field(ge=0.0, le=1.0)
    handler: Callable[[Line, ClassificationContext], Any]
    tags: list[str] = Field(default_factory=list)
    timeout_seconds: float | None = Field(default=None, gt=0.0)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    async def run(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        if self.is_async:
            result = await self.handler(line, context)
        else:
            result = await asyncio.to_thread(self.handler, line, context)
        if not isinstance(result, ClassificationResult):
            raise TypeError(f"Strategy {self.name} returned {type(result).__name__}")
        return result


class StrategyRegistry:
    """Stores strategy specs in registration order and traces every run."""

    def __init__(self) -> None:
        self._strategies: dict[str, StrategySpec] = {}
        self._observer: Callable[[StrategyTrace], None] | None = None

    def register(self, spec: StrategySpec) -> None:
        if spec.name in self._strategies:
            raise ValueError(f"Strategy already registered: {spec.name}")
        self._strategies[spec.name] = spec

    def get(self, name: str) -> StrategySpec:
        spec = self._strategies.get(name)
        if spec is None:
            raise KeyError(f"Unknown strategy: {name}")
        return spec

    def set_observer(self, observer: Callable[[StrategyTrace], None] | None) -> None:
        """Set an optional callback invoked after each strategy execution."""
        self._observer = observer

    def specs(self, *, exclude_tags: Iterable[str] = ()) -> list[StrategySpec]:
        excluded = set(exclude_tags)
        return [spec for spec in self._strategies.values() if not excluded.intersection(spec.tags)]

    def total_weight(self, *, exclude_tags: Iterable[str] = ()) -> float:
        return sum(spec.weight for spec in self.specs(exclude_tags=exclude_tags))

    async def execute(
        self,
        name: str,
        line: Line,
        context: ClassificationContext,
        *,
        timeout: float | None = None,
    ) -> tuple[ClassificationResult, float]:
        """Run one strategy; returns the result and its latency in ms.

        Failures and timeouts are traced, then re-raised to the caller.
        """

        spec = self.get(name)
        start = perf_counter()
        try:
            limit = spec.timeout_seconds or timeout
            if limit is not None:
                result = await asyncio.wait_for(spec.run(line, context), timeout=limit)
            else:
                result = await spec.run(line, context)
        except Exception as exc:
            self._emit(spec, ElementType.ACTION, 0.0, start, error=exc)
            raise
        latency_ms = self._emit(spec, result.element_type, result.confidence, start)
        return result, latency_ms

    def _emit(
        self,
        spec: StrategySpec,
        element_type: ElementType,
        confidence: float,
        start: float,
        *,
        error: Exception | None = None,
    ) -> float:
        latency_ms = (perf_counter() - start) * 1000.0
        if self._observer is not None:
            self._observer(
                StrategyTrace(
                    name=spec.name,
                    element_type=element_type,
                    confidence=confidence,
                    latency_ms=latency_ms,
                    succeeded=error is None,
                    error=None if error is None else (str(error) or type(error).__name__),
                )
            )
        return latency_ms

    def __len__(self) -> int:
        return len(self._strategies)
