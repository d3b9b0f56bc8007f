"""Scoring strategies combined by the ensemble classifier."""

from __future__ import annotations

import re

from screenplay_agent.agent.chain import AgentChain
from screenplay_agent.config import EnsembleConfig
from screenplay_agent.context import ClassificationContext, ContextHistory
from screenplay_agent.ensemble.registry import StrategyRegistry, StrategySpec
from screenplay_agent.features import LineFeatures
from screenplay_agent.oracle.contract import ClassificationOracle
from screenplay_agent.patterns import PatternLibrary, classify_action, default_library
from screenplay_agent.render import render, render_character, render_parenthetical
from screenplay_agent.types import (
    ClassificationResult,
    ContextUpdate,
    ElementType,
    Line,
    SourceTag,
)

AGENT_CHAIN = "agent-chain"
PATTERN_SCORING = "pattern-scoring"
CONTEXT_SEQUENCE = "context-sequence"
FEATURE_HEURISTICS = "feature-heuristics"
ORACLE = "oracle"
ORACLE_TAG = "oracle"

MAX_FEATURE_BONUS = 0.3

_CUE = re.compile(r"^(?P<name>[^:：()]{2,50}?)\s*[:：]")
_SCENE_NUMBER = re.compile(r"^(?:مشهد|scene)\s*\d+", flags=re.IGNORECASE)


def build_result(
    element_type: ElementType,
    confidence: float,
    line: Line,
    *,
    source: SourceTag,
    producer: str,
    alternatives: list[tuple[ElementType, float]] | None = None,
) -> ClassificationResult:
    """Result with the payload and context update implied by `element_type`."""

    text = line.text
    update: ContextUpdate | None
    if element_type is ElementType.CHARACTER:
        cue = _CUE.match(text)
        name = cue.group("name").strip() if cue else text.rstrip(":： ")
        payload = render_character(name)
        update = ContextUpdate(in_dialogue=True, last_character=name)
    elif element_type is ElementType.PARENTHETICAL:
        payload = render_parenthetical(text.strip("() "))
        update = None
    elif element_type is ElementType.DIALOGUE:
        payload = render(element_type, text)
        update = ContextUpdate(in_dialogue=True)
    elif element_type is ElementType.ACTION:
        payload = render(element_type, text)
        update = ContextUpdate(in_dialogue=False, last_action_type=classify_action(text))
    else:
        payload = render(element_type, text)
        update = ContextUpdate(in_dialogue=False)
    return ClassificationResult(
        element_type=element_type,
        confidence=max(0.0, min(1.0, confidence)),
        source=source,
        payload=payload,
        alternatives=alternatives or [],
        producer=producer,
        text=text,
        update=update,
    )


# Per-type feature indicators and the bonus each contributes.
FEATURE_WEIGHTS: dict[ElementType, dict[str, float]] = {
    ElementType.CHARACTER: {"colon": 0.2, "short": 0.1},
    ElementType.DIALOGUE: {"punctuation": 0.1, "arabic": 0.05},
    ElementType.PARENTHETICAL: {"parens": 0.3},
    ElementType.SCENE_HEADING_1: {"digits": 0.15, "short": 0.05},
    ElementType.SCENE_HEADING_2: {"short": 0.1},
    ElementType.SCENE_HEADING_3: {"short": 0.05},
    ElementType.ACTION: {"words": 0.05, "punctuation": 0.05},
    ElementType.TRANSITION: {"short": 0.1},
}


def feature_indicators(features: LineFeatures) -> set[str]:
    found: set[str] = set()
    if features.colon_count:
        found.add("colon")
    if features.length < 30:
        found.add("short")
    if features.punctuation_count:
        found.add("punctuation")
    if features.arabic_ratio > 0.5:
        found.add("arabic")
    if features.paren_count >= 2:
        found.add("parens")
    if features.digit_count:
        found.add("digits")
    if features.word_count >= 5:
        found.add("words")
    return found


def feature_bonus(element_type: ElementType, features: LineFeatures) -> float:
    indicators = feature_indicators(features)
    weights = FEATURE_WEIGHTS.get(element_type, {})
    return min(MAX_FEATURE_BONUS, sum(w for name, w in weights.items() if name in indicators))


class PatternScoringStrategy:
    """Scores every element type directly against the pattern library."""

    def __init__(self, library: PatternLibrary | None = None) -> None:
        self.library = library or default_library()

    def __call__(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        matches = self.library.score_all(line.text, context)
        if not matches:
            return build_result(
                ElementType.ACTION, 0.2, line, source=SourceTag.ENSEMBLE, producer=PATTERN_SCORING
            )
        scored = sorted(
            (
                (kind, min(1.0, found.confidence + feature_bonus(kind, line.features)))
                for kind, found in matches.items()
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        best_type, best_score = scored[0]
        return build_result(
            best_type,
            best_score,
            line,
            source=SourceTag.ENSEMBLE,
            producer=PATTERN_SCORING,
            alternatives=scored[1:],
        )


class ContextSequenceStrategy:
    """Scores a line from the preceding decisions.

    Reads the context flags and a snapshot of the recent history; never
    writes either.
    """

    window = 5

    def __init__(self, history: ContextHistory) -> None:
        self.history = history

    def __call__(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        kind, confidence = self._score(line, context)
        return build_result(kind, confidence, line, source=SourceTag.ENSEMBLE, producer=CONTEXT_SEQUENCE)

    def _score(self, line: Line, context: ClassificationContext) -> tuple[ElementType, float]:
        text = line.text
        is_cue = bool(_CUE.match(text))
        is_paren = text.startswith("(") and text.endswith(")")
        previous = context.previous_type
        recent = self.history.last_types(self.window)
        dialogue_run = sum(1 for kind in recent if kind in (ElementType.DIALOGUE, ElementType.CHARACTER))

        if _SCENE_NUMBER.match(text):
            return ElementType.SCENE_HEADING_1, 0.95
        if previous is ElementType.CHARACTER and not is_cue and not is_paren:
            return ElementType.DIALOGUE, 0.8
        if is_paren and (context.in_dialogue or previous is ElementType.CHARACTER):
            return ElementType.PARENTHETICAL, 0.85
        if is_cue and previous in (ElementType.DIALOGUE, ElementType.PARENTHETICAL, ElementType.ACTION):
            return ElementType.CHARACTER, 0.75
        if context.in_dialogue and not is_cue:
            bonus = 0.15 if context.last_character else 0.0
            if recent and dialogue_run == len(recent):
                bonus += 0.1
            return ElementType.DIALOGUE, 0.6 + bonus
        if previous is not None and previous.is_scene_heading:
            if previous is ElementType.SCENE_HEADING_1 and line.features.word_count <= 4 and not is_cue:
                return ElementType.SCENE_HEADING_2, 0.5
            return ElementType.ACTION, 0.6
        if is_cue:
            return ElementType.CHARACTER, 0.65
        return ElementType.ACTION, 0.4


class FeatureHeuristicStrategy:
    """Cheap feature-vector rules."""

    def __call__(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        kind, confidence = self._predict(line, context)
        score = self.context_score(context)
        if score > 0.7:
            confidence += 0.2 * score
        return build_result(kind, confidence, line, source=SourceTag.ENSEMBLE, producer=FEATURE_HEURISTICS)

    @staticmethod
    def context_score(context: ClassificationContext) -> float:
        score = 0.0
        if context.last_character:
            score += 0.3
        if context.in_dialogue:
            score += 0.2
        if context.line_position == "start":
            score += 0.2
        if context.last_action_type:
            score += 0.1
        return score

    @staticmethod
    def _predict(line: Line, context: ClassificationContext) -> tuple[ElementType, float]:
        features = line.features
        text = line.text
        if features.colon_count and features.length < 50:
            return ElementType.CHARACTER, min(1.0, 0.8 + 0.1 * features.colon_count)
        if features.paren_count >= 2 and text.startswith("("):
            return ElementType.PARENTHETICAL, 0.9
        if features.digit_count and features.length < 30:
            return ElementType.SCENE_HEADING_1, 0.85
        if context.in_dialogue:
            return ElementType.DIALOGUE, 0.6
        if features.arabic_ratio > 0.5 and features.punctuation_count and features.word_count >= 3:
            return ElementType.ACTION, 0.5
        return ElementType.ACTION, 0.3


class OracleStrategy:
    """Adapts a remote oracle verdict into a strategy result."""

    def __init__(self, oracle: ClassificationOracle) -> None:
        self.oracle = oracle

    async def __call__(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        verdict = await self.oracle.classify_one(line, context)
        return build_result(
            verdict.element_type,
            verdict.confidence,
            line,
            source=SourceTag.ORACLE,
            producer=ORACLE,
            alternatives=list(verdict.alternatives),
        )


def build_registry(
    chain: AgentChain,
    history: ContextHistory,
    config: EnsembleConfig | None = None,
    *,
    library: PatternLibrary | None = None,
    oracle: ClassificationOracle | None = None,
) -> StrategyRegistry:
    """Register the local strategies and, when given, the oracle strategy."""

    config = config or EnsembleConfig()
    registry = StrategyRegistry()
    registry.register(
        StrategySpec(name=AGENT_CHAIN, weight=config.agent_chain_weight, handler=chain.classify, tags=["local"])
    )
    registry.register(
        StrategySpec(
            name=PATTERN_SCORING,
            weight=config.pattern_weight,
            handler=PatternScoringStrategy(library),
            tags=["local"],
        )
    )
    registry.register(
        StrategySpec(
            name=CONTEXT_SEQUENCE,
            weight=config.context_weight,
            handler=ContextSequenceStrategy(history),
            tags=["local", "context"],
        )
    )
    registry.register(
        StrategySpec(
            name=FEATURE_HEURISTICS,
            weight=config.feature_weight,
            handler=FeatureHeuristicStrategy(),
            tags=["local"],
        )
    )
    if oracle is not None:
        registry.register(
            StrategySpec(
                name=ORACLE,
                weight=config.oracle_weight,
                handler=OracleStrategy(oracle).__call__,
                tags=[ORACLE_TAG, "remote"],
            )
        )
    return registry
