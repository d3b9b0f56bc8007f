"""Concurrent ensemble classifier."""

from __future__ import annotations

import asyncio
import logging

from screenplay_agent.config import EnsembleConfig
from screenplay_agent.context import ClassificationContext
from screenplay_agent.ensemble.registry import StrategyRegistry, StrategySpec
from screenplay_agent.ensemble.strategies import AGENT_CHAIN, ORACLE_TAG, build_result
from screenplay_agent.ensemble.voting import WeightedVoting
from screenplay_agent.types import (
    ClassificationResult,
    ElementType,
    EnsembleVote,
    Line,
    SourceTag,
)

log = logging.getLogger(__name__)

DEGRADED_TYPE = ElementType.ACTION
DEGRADED_CONFIDENCE = 0.3


class EnsembleClassifier:
    """Runs every registered strategy concurrently and votes on the result.

    Each strategy is bounded by its own timeout and the whole vote by the
    overall timeout. A strategy that raises or times out contributes a
    degraded vote (action at 0.3, half its weight) instead of failing the
    whole call.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        config: EnsembleConfig | None = None,
        *,
        voting: WeightedVoting | None = None,
    ) -> None:
        if len(registry) == 0:
            raise ValueError("EnsembleClassifier requires at least one strategy")
        self.registry = registry
        self.config = config or EnsembleConfig()
        self.voting = voting or WeightedVoting()

    async def classify(
        self,
        line: Line,
        context: ClassificationContext,
        *,
        use_oracle: bool = False,
    ) -> ClassificationResult:
        excluded = () if use_oracle else (ORACLE_TAG,)
        specs = self.registry.specs(exclude_tags=excluded)
        snapshot = context.snapshot()

        outcomes = await self._collect(specs, line, snapshot)
        votes = [vote for vote, _ in outcomes]
        results = {vote.strategy: result for vote, result in outcomes if result is not None}

        outcome = self.voting.combine(votes, sum(spec.weight for spec in specs))
        winner = outcome.element_type
        representative = self._representative(winner, votes, results)

        oracle_names = {spec.name for spec in specs if ORACLE_TAG in spec.tags}
        top = outcome.top_vote
        if top is not None and not top.degraded and top.strategy in oracle_names:
            source = SourceTag.ORACLE
        elif representative is None:
            source = SourceTag.FALLBACK
        else:
            source = SourceTag.ENSEMBLE

        if representative is None:
            final = build_result(winner, outcome.confidence, line, source=source, producer="ensemble")
        else:
            final = ClassificationResult(
                element_type=winner,
                confidence=outcome.confidence,
                source=source,
                payload=representative.payload,
                producer=representative.producer or "ensemble",
                text=line.text,
                update=representative.update,
                follow_ups=list(representative.follow_ups),
            )
        final.alternatives = outcome.alternatives
        log.debug(
            "Ensemble voted %s (%.2f) from %d strategies", winner.value, outcome.confidence, len(votes)
        )
        return final

    async def _collect(
        self, specs: list[StrategySpec], line: Line, context: ClassificationContext
    ) -> list[tuple[EnsembleVote, ClassificationResult | None]]:
        """Run all strategies, bounded as a whole by the overall timeout."""
        if not specs:
            return []
        tasks = [asyncio.ensure_future(self._vote(spec, line, context)) for spec in specs]
        _, pending = await asyncio.wait(tasks, timeout=self.config.overall_timeout_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: list[tuple[EnsembleVote, ClassificationResult | None]] = []
        for spec, task in zip(specs, tasks):
            if task in pending:
                log.warning(
                    "Strategy %s exceeded the %.2fs ensemble budget, using degraded vote",
                    spec.name,
                    self.config.overall_timeout_seconds,
                )
                outcomes.append((_degraded_vote(spec), None))
            else:
                outcomes.append(task.result())
        return outcomes

    async def _vote(
        self, spec: StrategySpec, line: Line, context: ClassificationContext
    ) -> tuple[EnsembleVote, ClassificationResult | None]:
        try:
            result, latency_ms = await self.registry.execute(
                spec.name, line, context, timeout=self.config.strategy_timeout_seconds
            )
        except Exception as exc:
            log.warning("Strategy %s failed, using degraded vote: %r", spec.name, exc)
            return _degraded_vote(spec), None
        vote = EnsembleVote(
            strategy=spec.name,
            element_type=result.element_type,
            confidence=result.confidence,
            weight=spec.weight,
            latency_ms=latency_ms,
        )
        return vote, result

    @staticmethod
    def _representative(
        winner: ElementType,
        votes: list[EnsembleVote],
        results: dict[str, ClassificationResult],
    ) -> ClassificationResult | None:
        """Pick whose payload to keep: the agent chain if it agreed, else the strongest voter."""
        supporting = [vote for vote in votes if vote.element_type is winner and not vote.degraded]
        if not supporting:
            return None
        for vote in supporting:
            if vote.strategy == AGENT_CHAIN:
                return results[vote.strategy]
        best = max(supporting, key=lambda vote: vote.score)
        return results[best.strategy]


def _degraded_vote(spec: StrategySpec) -> EnsembleVote:
    return EnsembleVote(
        strategy=spec.name,
        element_type=DEGRADED_TYPE,
        confidence=DEGRADED_CONFIDENCE,
        weight=spec.weight / 2.0,
        latency_ms=0.0,
        degraded=True,
    )
