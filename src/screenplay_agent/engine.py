"""Per-session classification engine."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from screenplay_agent.agent.chain import AgentChain
from screenplay_agent.cache.store import ClassificationCache
from screenplay_agent.config import EngineConfig
from screenplay_agent.context import ClassificationContext, ContextHistory
from screenplay_agent.ensemble.classifier import EnsembleClassifier
from screenplay_agent.ensemble.strategies import build_registry, build_result
from screenplay_agent.obs.tracing import EngineMetrics, Timer
from screenplay_agent.oracle.contract import AuditCorrection, ClassificationOracle
from screenplay_agent.patterns import PatternLibrary, default_library
from screenplay_agent.sequencing import SpacingStateMachine
from screenplay_agent.types import (
    AuditLine,
    ClassificationResult,
    ElementType,
    ImportFlavor,
    Line,
    SourceTag,
)

log = logging.getLogger(__name__)

EMERGENCY_CONFIDENCE = 0.3


class ClassificationEngine:
    """Owns the cache, context, history and metrics of one document session.

    The agent chain is the fast path. Lines it is unsure about escalate
    to the cached ensemble unless they come from live typing. Every
    failure below the public entry points is absorbed into a degraded
    result.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        oracle: ClassificationOracle | None = None,
        library: PatternLibrary | None = None,
        chain: AgentChain | None = None,
        cache: ClassificationCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or EngineConfig()
        self.library = library or default_library()
        self.chain = chain or AgentChain.default(self.library)
        self.history = ContextHistory(self.config.history_size, self.config.history_prune_to)
        self.context = ClassificationContext()
        self.cache = cache or ClassificationCache(self.config.cache, clock=clock)
        self.metrics = EngineMetrics()
        self.oracle = oracle
        self.registry = build_registry(
            self.chain, self.history, self.config.ensemble, library=self.library, oracle=oracle
        )
        self.registry.set_observer(self.metrics.record_strategy)
        self.ensemble = EnsembleClassifier(self.registry, self.config.ensemble)

    def classify_line(self, text: str, context: ClassificationContext | None = None) -> ClassificationResult:
        """Synchronous agent-chain-only path used on every keystroke."""
        ctx = context if context is not None else self.context
        with Timer() as timer:
            line = Line.from_raw(text)
            result = self.chain.classify(line, ctx)
        self._commit(result, ctx)
        self.metrics.record_classification(result.source, timer.elapsed_ms)
        return result

    async def classify(
        self,
        text: str,
        context: ClassificationContext | None = None,
        flavor: ImportFlavor = ImportFlavor.LIVE_TYPING,
    ) -> ClassificationResult:
        ctx = context if context is not None else self.context
        with Timer() as timer:
            line = Line.from_raw(text)
            result = self.chain.classify(line, ctx)
            if self._should_escalate(result, flavor):
                result = await self._escalate(line, ctx, flavor, result)
        self._commit(result, ctx)
        self.metrics.record_classification(result.source, timer.elapsed_ms)
        return result

    async def classify_batch(
        self,
        lines: Sequence[str],
        flavor: ImportFlavor = ImportFlavor.PASTE,
        context: ClassificationContext | None = None,
    ) -> list[ClassificationResult]:
        """Classify a document in order, interleaving spacer elements.

        Lines are processed one after another so each context update is
        visible to the next line.
        """

        ctx = context if context is not None else ClassificationContext()
        sequencer = SpacingStateMachine()
        output: list[ClassificationResult] = []
        seen_content = False
        last_index = len(lines) - 1
        for index, raw in enumerate(lines):
            if not seen_content:
                ctx.line_position = "start"
            elif index == last_index:
                ctx.line_position = "end"
            else:
                ctx.line_position = "middle"
            result = await self.classify(raw, ctx, flavor)
            seen_content = seen_content or result.element_type is not ElementType.EMPTY_LINE
            output.extend(sequencer.interleave(result.elements()))
        log.info("Classified batch of %d lines into %d elements", len(lines), len(output))
        return output

    async def audit_batch(self, lines: Sequence[AuditLine], window: int | None = None) -> list[AuditCorrection]:
        """Ask the oracle to review the last `window` lines; read-only.

        Chunks are audited concurrently. A failed chunk contributes no
        corrections.
        """

        if self.oracle is None or not lines:
            return []
        limit = window or self.config.audit_window
        tail = list(lines)[-limit:]
        size = self.config.audit_chunk_size
        chunks = [tail[start : start + size] for start in range(0, len(tail), size)]
        batches = await asyncio.gather(*(_audit_chunk(self.oracle, chunk) for chunk in chunks))

        merged: dict[int, AuditCorrection] = {}
        for batch in batches:
            for correction in batch:
                current = merged.get(correction.index)
                if current is None or correction.confidence_score > current.confidence_score:
                    merged[correction.index] = correction
        return [merged[index] for index in sorted(merged)]

    def metrics_summary(self) -> dict[str, Any]:
        summary = self.metrics.summary()
        stats = self.cache.stats()
        summary["cache"] = {
            "entries": stats.entries,
            "total_bytes": stats.total_bytes,
            "hit_rate": stats.hit_rate,
            "evictions": stats.evictions,
        }
        return summary

    def reset(self) -> None:
        self.history.clear()
        self.cache.clear()
        self.metrics.reset()
        self.context = ClassificationContext()

    def fingerprint(self, line: Line, context: ClassificationContext, *, use_oracle: bool) -> str:
        """Cache key covering the line, the context that shaped it, and the library version."""
        digest = hashlib.blake2b(digest_size=16)
        for part in (self.library.version, context.fingerprint(), "oracle" if use_oracle else "local", line.text):
            digest.update(part.encode("utf-8"))
            digest.update(b"\x1f")
        return digest.hexdigest()

    def _should_escalate(self, result: ClassificationResult, flavor: ImportFlavor) -> bool:
        if flavor is ImportFlavor.LIVE_TYPING or not self.config.ensemble.enabled:
            return False
        if result.element_type is ElementType.EMPTY_LINE:
            return False
        return result.confidence < self.config.confidence_threshold

    async def _escalate(
        self,
        line: Line,
        context: ClassificationContext,
        flavor: ImportFlavor,
        local: ClassificationResult,
    ) -> ClassificationResult:
        use_oracle = self.oracle is not None and flavor.allows_oracle
        key = self.fingerprint(line, context, use_oracle=use_oracle)
        cached = self.cache.get(key)
        self.metrics.record_cache_lookup(cached is not None)
        if cached is not None:
            try:
                return ClassificationResult.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                log.warning("Discarding undecodable cached classification %s", key)
                self.cache.delete(key)

        try:
            result = await self.ensemble.classify(line, context, use_oracle=use_oracle)
        except Exception:
            log.exception("Ensemble classification failed; falling back")
            if self.config.fallback_to_local:
                return local
            return build_result(
                ElementType.ACTION,
                EMERGENCY_CONFIDENCE,
                line,
                source=SourceTag.FALLBACK,
                producer="emergency",
            )
        self.cache.set(key, result.to_dict())
        return result

    def _commit(self, result: ClassificationResult, context: ClassificationContext) -> None:
        if not self.config.context_tracking_enabled:
            return
        for element in result.elements():
            context.apply(element.element_type, element.update)
            if element.element_type is not ElementType.EMPTY_LINE:
                self.history.append(element.text, element.element_type)


async def _audit_chunk(oracle: ClassificationOracle, chunk: list[AuditLine]) -> list[AuditCorrection]:
    try:
        return await oracle.audit_batch(chunk)
    except Exception:
        log.exception("Audit of %d lines failed", len(chunk))
        return []
