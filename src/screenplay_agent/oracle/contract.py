"""Remote classification oracle contract and wire models."""

from __future__ import annotations

from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from screenplay_agent.context import ClassificationContext
from screenplay_agent.types import VOTABLE_TYPES, AuditLine, ElementType, Line


class OracleError(Exception):
    """Base class for every oracle failure; callers treat it as no vote."""


class OracleUnavailableError(OracleError):
    """Transport failure, timeout, or no backend configured."""


class OracleResponseError(OracleError):
    """The oracle answered with something that could not be parsed."""


_LEGACY_NAMES = {
    "basmala": ElementType.INVOCATION,
    "scene-header": ElementType.SCENE_HEADING_1,
    "scene-header-1": ElementType.SCENE_HEADING_1,
    "scene-header-top-line": ElementType.SCENE_HEADING_1,
    "scene-header-2": ElementType.SCENE_HEADING_2,
    "scene-header-3": ElementType.SCENE_HEADING_3,
    "scene-heading": ElementType.SCENE_HEADING_1,
}


def normalize_element_type(value: object) -> object:
    """Map loose oracle labels onto the closed element type set."""
    if isinstance(value, str):
        label = value.strip().lower().replace("_", "-")
        return _LEGACY_NAMES.get(label, label)
    return value


class OracleVerdict(BaseModel):
    """Single-line classification returned by an oracle."""

    element_type: ElementType = Field(alias="classification")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    alternatives: list[tuple[ElementType, float]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("element_type", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_element_type(value)

    @field_validator("alternatives", mode="before")
    @classmethod
    def _alternatives(cls, value: object) -> object:
        if not isinstance(value, list):
            return value
        pairs: list[object] = []
        for item in value:
            if isinstance(item, dict):
                item = (item.get("type") or item.get("classification"), item.get("confidence", 0.0))
            if isinstance(item, (list, tuple)) and len(item) == 2:
                item = (normalize_element_type(item[0]), item[1])
            pairs.append(item)
        return pairs

    @field_validator("element_type")
    @classmethod
    def _votable(cls, value: ElementType) -> ElementType:
        if value not in VOTABLE_TYPES:
            raise ValueError(f"oracle cannot vote for {value.value}")
        return value


class AuditCorrection(BaseModel):
    """Suggested fix for one already-classified line."""

    index: int = Field(ge=0)
    current_type: ElementType = Field(alias="currentClass")
    suggested_type: ElementType = Field(alias="suggestedClass")
    confidence: Literal["high", "medium", "low"] = "medium"
    confidence_score: float = Field(default=0.5, ge=0.0, le=1.0, alias="confidenceScore")
    reason: str = ""
    priority: Literal["critical", "high", "medium", "low"] = "medium"
    suggested_action: Literal["correct", "review", "split", "merge"] = Field(
        default="review", alias="suggestedAction"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("current_type", "suggested_type", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_element_type(value)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _percent_to_ratio(cls, value: object) -> object:
        # The audit prompt asks for 0..100; integers are always percentages.
        if isinstance(value, bool):
            return value
        if isinstance(value, int) or (isinstance(value, float) and value > 1.0):
            return float(value) / 100.0
        return value


class ClassificationOracle(Protocol):
    """Capability the engine depends on; any backend may implement it."""

    name: str

    async def classify_one(self, line: Line, context: ClassificationContext) -> OracleVerdict:
        """Classify one line, raising `OracleError` on any failure."""

    async def audit_batch(self, lines: list[AuditLine]) -> list[AuditCorrection]:
        """Review already-classified lines, raising `OracleError` on failure."""
