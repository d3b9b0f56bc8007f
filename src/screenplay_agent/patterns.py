"""Versioned library of recognition predicates per element type."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from screenplay_agent.context import ClassificationContext
from screenplay_agent.types import ElementType

DEFAULT_LIBRARY_VERSION = "2.1.0"

# Context facts a predicate can attach a bonus (or penalty) to.
FACT_IN_DIALOGUE = "in_dialogue"
FACT_HAS_CHARACTER = "last_character"
FACT_AFTER_CHARACTER = "after_character"
FACT_AFTER_SCENE_HEADING = "after_scene_heading"
FACT_POSITION_START = "position_start"
FACT_HAS_ACTION_TYPE = "last_action_type"

# Predicate tags agents use to select or skip subsets of a type.
TAG_WEAK = "weak"
TAG_HARD_CUT = "hard-cut"
TAG_DUAL_LANGUAGE = "dual-language"
TAG_CONTINUATION = "continuation"

ARABIC_RANGE = r"\u0600-\u06FF"
BULLETS = "•○●◦▪▫■□◼◻⚫⚪"

SCENE_WORD = r"(?:مشهد|scene)"
TIME_WORDS = r"(?:ليل|نهار|صباح|مساء|فجر|ظهر|عصر|day|night|morning|evening)"
PLACE_WORDS = r"(?:داخلي|خارجي|int|ext)"
LOCATION_NOUNS = (
    r"(?:مسجد|بيت|منزل|شارع|حديقة|مدرسة|جامعة|مكتب|محل|مستشفى|مطعم|فندق|سيارة"
    r"|غرفة|قاعة|ممر|سطح|ساحة|مقبرة|مخبز|مكتبة|قصر|كهف)"
)
ACTION_VERBS = (
    r"(?:يدخل|يخرج|يقف|يجلس|يمشي|يجري|ينظر|يبتسم|يضحك|يبكي|يصرخ|يهمس|يفكر|يتذكر"
    r"|يصل|يغادر|يراقب|يلاحظ|يلتفت|يفتح|يغلق|تدخل|تخرج|تقف|تجلس|تنظر|تبتسم|تضحك|تبكي"
    r"|فجأة|ببطء|بسرعة|بهدوء|بعنف)"
)

_ACTION_SUBTYPES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("movement", re.compile(r"(?:يدخل|يخرج|يصل|يغادر|تدخل|تخرج|يمشي|يجري)")),
    ("observation", re.compile(r"(?:ينظر|يراقب|يلاحظ|تنظر|يلتفت)")),
    ("speech", re.compile(r"(?:يتكلم|يقول|يهمس|يصرخ)")),
    ("emotion", re.compile(r"(?:يضحك|يبكي|يبتسم|يحزن|تضحك|تبكي|تبتسم)")),
    ("temporal", re.compile(r"(?:فجأة|بسرعة|ببطء)")),
)


def classify_action(text: str) -> str:
    """Return the action sub-type for an action line."""
    for name, pattern in _ACTION_SUBTYPES:
        if pattern.search(text):
            return name
    return "general"


def context_facts(context: ClassificationContext) -> frozenset[str]:
    facts: set[str] = set()
    if context.in_dialogue:
        facts.add(FACT_IN_DIALOGUE)
    if context.last_character:
        facts.add(FACT_HAS_CHARACTER)
    if context.previous_type is ElementType.CHARACTER:
        facts.add(FACT_AFTER_CHARACTER)
    if context.previous_type is not None and context.previous_type.is_scene_heading:
        facts.add(FACT_AFTER_SCENE_HEADING)
    if context.line_position == "start":
        facts.add(FACT_POSITION_START)
    if context.last_action_type:
        facts.add(FACT_HAS_ACTION_TYPE)
    return frozenset(facts)


@dataclass(frozen=True, slots=True)
class Predicate:
    """One recognition rule with its base confidence and context bonuses."""

    name: str
    element_type: ElementType
    pattern: re.Pattern[str]
    base_confidence: float
    priority: int = 0
    bonuses: tuple[tuple[str, float], ...] = ()
    tags: frozenset[str] = field(default_factory=frozenset)

    def search(self, text: str) -> re.Match[str] | None:
        return self.pattern.search(text)

    def confidence(self, facts: frozenset[str]) -> float:
        score = self.base_confidence + sum(bonus for fact, bonus in self.bonuses if fact in facts)
        return max(0.0, min(1.0, score))


@dataclass(frozen=True, slots=True)
class PatternMatch:
    predicate: Predicate
    match: re.Match[str]
    confidence: float

    @property
    def element_type(self) -> ElementType:
        return self.predicate.element_type


class PatternLibrary:
    """Immutable, versioned collection of predicates grouped by element type."""

    def __init__(self, version: str, predicates: Iterable[Predicate]) -> None:
        self.version = version
        grouped: dict[ElementType, list[Predicate]] = {}
        for predicate in predicates:
            grouped.setdefault(predicate.element_type, []).append(predicate)
        self._predicates = {
            element_type: tuple(sorted(items, key=lambda p: p.priority, reverse=True))
            for element_type, items in grouped.items()
        }

    def element_types(self) -> list[ElementType]:
        return list(self._predicates)

    def predicates_for(self, element_type: ElementType) -> tuple[Predicate, ...]:
        return self._predicates.get(element_type, ())

    def best_match(
        self,
        element_type: ElementType,
        text: str,
        context: ClassificationContext,
        *,
        include_tags: frozenset[str] | None = None,
        exclude_tags: frozenset[str] = frozenset(),
    ) -> PatternMatch | None:
        """Return the highest-confidence matching predicate for one type.

        Several matching predicates never add up; the best one wins and
        ties go to the higher-priority predicate.
        """

        facts = context_facts(context)
        best: PatternMatch | None = None
        for predicate in self.predicates_for(element_type):
            if predicate.tags & exclude_tags:
                continue
            if include_tags is not None and not predicate.tags & include_tags:
                continue
            found = predicate.search(text)
            if found is None:
                continue
            confidence = predicate.confidence(facts)
            if best is None or confidence > best.confidence:
                best = PatternMatch(predicate=predicate, match=found, confidence=confidence)
        return best

    def score_all(self, text: str, context: ClassificationContext) -> dict[ElementType, PatternMatch]:
        scores: dict[ElementType, PatternMatch] = {}
        for element_type in self._predicates:
            found = self.best_match(element_type, text, context)
            if found is not None:
                scores[element_type] = found
        return scores


def _p(
    name: str,
    element_type: ElementType,
    pattern: str,
    base: float,
    *,
    priority: int = 0,
    bonuses: dict[str, float] | None = None,
    tags: Iterable[str] = (),
    flags: int = re.IGNORECASE,
) -> Predicate:
    return Predicate(
        name=name,
        element_type=element_type,
        pattern=re.compile(pattern, flags),
        base_confidence=base,
        priority=priority,
        bonuses=tuple((bonuses or {}).items()),
        tags=frozenset(tags),
    )


_NAME = rf"(?P<name>[{ARABIC_RANGE}A-Za-z][{ARABIC_RANGE}A-Za-z .'\-]{{0,49}}?)"
_BULLET_PREFIX = rf"(?:[{BULLETS}\-–—*+]\s*)?"


def default_predicates() -> list[Predicate]:
    return [
        # invocation
        _p("basmala-full", ElementType.INVOCATION, r"^بسم\s+الله\s+الرحمن\s+الرحيم[\s.!]*$", 0.98,
           priority=10, bonuses={FACT_POSITION_START: 0.02}),
        _p("basmala-prefix", ElementType.INVOCATION, r"^بسم\s+الله(?:\s|$)", 0.85, priority=5),
        # transitions
        _p("cut-bare", ElementType.TRANSITION, r"^(?:قطع|cut)[\s.:!]*$", 1.0, priority=10, tags=(TAG_HARD_CUT,)),
        _p("transition-to", ElementType.TRANSITION,
           r"^(?:قطع\s+إلى|انتقال\s+إلى|مزج\s+إلى|تلاشي\s+إلى|(?:smash\s+)?cut\s+to|dissolve\s+to|fade\s+to)\b",
           0.9, priority=8),
        _p("transition-fade", ElementType.TRANSITION,
           r"^(?:تلاشي|تلاشي\s+(?:أسود|للسواد)|مزج|fade\s+in|fade\s+out|fade\s+to\s+black)[\s.:!]*$",
           0.9, priority=8),
        # scene headings
        _p("scene-combined", ElementType.SCENE_HEADING_1,
           rf"^{SCENE_WORD}\s*(?P<number>\d+)\s*[-–—:،]?\s*"
           rf"(?P<info>(?=.*{TIME_WORDS})(?=.*{PLACE_WORDS}).+)$",
           0.99, priority=10),
        _p("scene-number", ElementType.SCENE_HEADING_1, rf"^{SCENE_WORD}\s*(?P<number>\d+)[\s\-–—:،.]*$",
           0.95, priority=9, bonuses={FACT_POSITION_START: 0.05}),
        _p("scene-number-info", ElementType.SCENE_HEADING_1,
           rf"^{SCENE_WORD}\s*(?P<number>\d+)\s*[-–—:،]\s*(?P<info>.+)$", 0.9, priority=8),
        _p("scene-time-place", ElementType.SCENE_HEADING_2,
           rf"^(?:{TIME_WORDS}|{PLACE_WORDS})(?:[\s\-–—/،.]+(?:{TIME_WORDS}|{PLACE_WORDS}))*[\s.]*$",
           0.85, priority=8, bonuses={FACT_AFTER_SCENE_HEADING: 0.1}),
        _p("scene-int-ext", ElementType.SCENE_HEADING_2, r"^(?:int\.|ext\.|int/ext\.?|interior\b|exterior\b)", 0.8,
           priority=6),
        _p("scene-location", ElementType.SCENE_HEADING_3,
           rf"^{LOCATION_NOUNS}(?:\s|$)(?!.*[:：])(?!.*[.!?؟،]$)(?=.{{0,60}}$)",
           0.9, priority=6, bonuses={FACT_AFTER_SCENE_HEADING: 0.05}),
        # parentheticals
        _p("paren-balanced", ElementType.PARENTHETICAL, r"^\((?P<inner>[^()]+)\)$", 0.95, priority=10),
        _p("paren-loose", ElementType.PARENTHETICAL, r"^\((?P<inner>.*)\)$", 0.85, priority=5),
        # character cues
        _p("character-cue", ElementType.CHARACTER, rf"^{_BULLET_PREFIX}{_NAME}\s*[:：]$", 0.92,
           priority=10, bonuses={FACT_IN_DIALOGUE: -0.1}),
        _p("character-inline", ElementType.CHARACTER,
           rf"^{_BULLET_PREFIX}{_NAME}\s*[:：]\s*(?P<rest>\S.*)$", 0.9,
           priority=8, bonuses={FACT_IN_DIALOGUE: -0.1}),
        # dialogue
        _p("dialogue-dual-language", ElementType.DIALOGUE,
           rf"^[\s•]*(?P<original>(?![{ARABIC_RANGE}])[^\W\d_][^()]*?)\s*\(\s*(?P<gloss>[^()]+?)\s*\)$",
           0.95, priority=10, tags=(TAG_DUAL_LANGUAGE,)),
        _p("dialogue-continuation", ElementType.DIALOGUE, r"^[^(\s].*$", 0.4, priority=5,
           bonuses={FACT_IN_DIALOGUE: 0.4}, tags=(TAG_CONTINUATION,)),
        _p("dialogue-after-cue", ElementType.DIALOGUE, r"^[^(\s].*[.!?؟…]$", 0.5, priority=4,
           bonuses={FACT_AFTER_CHARACTER: 0.35, FACT_HAS_CHARACTER: 0.05}),
        # action
        _p("action-keyword", ElementType.ACTION, rf"^{ACTION_VERBS}(?:[\s.،]|$)", 0.85, priority=10,
           bonuses={FACT_HAS_ACTION_TYPE: 0.05}),
        _p("action-bullet", ElementType.ACTION, rf"^(?:[{BULLETS}]+|[\-–—*+])\s*\S", 0.85, priority=9),
        _p("action-sentence", ElementType.ACTION, r"[.!?؟]$", 0.6, priority=2,
           bonuses={FACT_AFTER_SCENE_HEADING: 0.1, FACT_IN_DIALOGUE: -0.2}, tags=(TAG_WEAK,)),
    ]


def default_library() -> PatternLibrary:
    return PatternLibrary(DEFAULT_LIBRARY_VERSION, default_predicates())
