"""Weighted voting over ensemble strategy votes."""

from __future__ import annotations

from dataclasses import dataclass, field

from screenplay_agent.types import ElementType, EnsembleVote


@dataclass(slots=True)
class VoteOutcome:
    element_type: ElementType
    confidence: float
    scores: dict[ElementType, float]
    top_vote: EnsembleVote | None
    alternatives: list[tuple[ElementType, float]] = field(default_factory=list)


class WeightedVoting:
    """Sums confidence x weight per classification and picks the largest.

    Final confidence is the winning sum divided by the total configured
    weight of the strategies that were asked to vote. Ties go to the
    classification proposed first in strategy order.
    """

    def combine(self, votes: list[EnsembleVote], total_weight: float) -> VoteOutcome:
        if not votes:
            raise ValueError("cannot combine an empty vote set")

        scores: dict[ElementType, float] = {}
        first_seen: dict[ElementType, int] = {}
        for position, vote in enumerate(votes):
            scores[vote.element_type] = scores.get(vote.element_type, 0.0) + vote.score
            first_seen.setdefault(vote.element_type, position)

        winner = max(scores, key=lambda kind: (scores[kind], -first_seen[kind]))
        denominator = total_weight if total_weight > 0 else 1.0
        confidence = max(0.0, min(1.0, scores[winner] / denominator))

        supporting = [vote for vote in votes if vote.element_type is winner]
        top_vote = max(supporting, key=lambda vote: vote.score) if supporting else None
        alternatives = sorted(
            (
                (kind, max(0.0, min(1.0, score / denominator)))
                for kind, score in scores.items()
                if kind is not winner
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        return VoteOutcome(
            element_type=winner,
            confidence=confidence,
            scores=scores,
            top_vote=top_vote,
            alternatives=alternatives,
        )
