"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from screenplay_agent.features import LineFeatures, extract_features


class ElementType(str, Enum):
    """Closed set of structural roles a screenplay line can take."""

    INVOCATION = "invocation"
    SCENE_HEADING_1 = "scene-heading-1"
    SCENE_HEADING_2 = "scene-heading-2"
    SCENE_HEADING_3 = "scene-heading-3"
    CHARACTER = "character"
    DIALOGUE = "dialogue"
    PARENTHETICAL = "parenthetical"
    ACTION = "action"
    TRANSITION = "transition"
    SPACER = "spacer"
    EMPTY_LINE = "empty-line"

    @property
    def is_scene_heading(self) -> bool:
        return self in SCENE_HEADINGS

    @property
    def is_blank(self) -> bool:
        return self in (ElementType.SPACER, ElementType.EMPTY_LINE)


SCENE_HEADINGS = frozenset(
    {ElementType.SCENE_HEADING_1, ElementType.SCENE_HEADING_2, ElementType.SCENE_HEADING_3}
)

# Element types a classifier may vote for; spacers and blank lines are structural.
VOTABLE_TYPES = tuple(t for t in ElementType if not t.is_blank)


class SourceTag(str, Enum):
    AGENT_CHAIN = "agent-chain"
    ENSEMBLE = "ensemble"
    ORACLE = "oracle"
    FALLBACK = "fallback"


class ImportFlavor(str, Enum):
    """How a line reached the engine; live typing never consults the oracle."""

    PASTE = "paste"
    FILE_IMPORT = "file-import"
    LIVE_TYPING = "live-typing"

    @property
    def allows_oracle(self) -> bool:
        return self is not ImportFlavor.LIVE_TYPING


@dataclass(frozen=True, slots=True)
class Line:
    """An immutable input line with its derived feature vector."""

    raw: str
    text: str
    features: LineFeatures

    @classmethod
    def from_raw(cls, raw: str) -> "Line":
        text = raw.strip()
        return cls(raw=raw, text=text, features=extract_features(text))

    @property
    def is_blank(self) -> bool:
        return not self.text


@dataclass(slots=True)
class RenderedBlock:
    """Structural content ready for a presentation layer (no markup)."""

    css_class: str
    text: str
    parts: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ContextUpdate:
    """Proposed context change; `None` fields leave the context untouched."""

    in_dialogue: bool | None = None
    last_character: str | None = None
    last_action_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "in_dialogue": self.in_dialogue,
            "last_character": self.last_character,
            "last_action_type": self.last_action_type,
        }


@dataclass(slots=True)
class ClassificationResult:
    """Final or intermediate decision for one input line."""

    element_type: ElementType
    confidence: float
    source: SourceTag
    payload: RenderedBlock
    alternatives: list[tuple[ElementType, float]] = field(default_factory=list)
    producer: str = ""
    text: str = ""
    update: ContextUpdate | None = None
    follow_ups: list[ClassificationResult] = field(default_factory=list)

    def elements(self) -> list[ClassificationResult]:
        """This result followed by any extra elements emitted for the same line."""
        return [self, *self.follow_ups]

    def to_dict(self) -> dict[str, Any]:
        return {
            "element_type": self.element_type.value,
            "confidence": self.confidence,
            "source": self.source.value,
            "payload": {
                "css_class": self.payload.css_class,
                "text": self.payload.text,
                "parts": dict(self.payload.parts),
            },
            "alternatives": [[kind.value, score] for kind, score in self.alternatives],
            "producer": self.producer,
            "text": self.text,
            "update": self.update.to_dict() if self.update is not None else None,
            "follow_ups": [item.to_dict() for item in self.follow_ups],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassificationResult":
        payload = data["payload"]
        update = data.get("update")
        return cls(
            element_type=ElementType(data["element_type"]),
            confidence=float(data["confidence"]),
            source=SourceTag(data["source"]),
            payload=RenderedBlock(
                css_class=payload["css_class"],
                text=payload["text"],
                parts=dict(payload.get("parts", {})),
            ),
            alternatives=[(ElementType(kind), float(score)) for kind, score in data.get("alternatives", [])],
            producer=data.get("producer", ""),
            text=data.get("text", ""),
            update=ContextUpdate(**update) if update is not None else None,
            follow_ups=[cls.from_dict(item) for item in data.get("follow_ups", [])],
        )


@dataclass(slots=True)
class EnsembleVote:
    """One strategy's vote for one line."""

    strategy: str
    element_type: ElementType
    confidence: float
    weight: float
    latency_ms: float
    degraded: bool = False

    @property
    def score(self) -> float:
        return self.confidence * self.weight


@dataclass(slots=True)
class StrategyTrace:
    """Trace record for an executed ensemble strategy."""

    name: str
    element_type: ElementType
    confidence: float
    latency_ms: float
    succeeded: bool
    error: str | None = None


@dataclass(slots=True)
class AuditLine:
    """An already-classified line submitted for review."""

    index: int
    text: str
    current_type: ElementType
