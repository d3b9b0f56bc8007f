"""Spacer insertion between adjacent screenplay elements."""

from __future__ import annotations

from collections.abc import Iterable

from screenplay_agent.render import render_spacer
from screenplay_agent.types import SCENE_HEADINGS, ClassificationResult, ElementType, SourceTag

_DIALOGUE_FORMS = (ElementType.DIALOGUE, ElementType.PARENTHETICAL)

# A scene heading right after the invocation does not get a spacer.
_NO_SPACER_BEFORE_SCENE = frozenset({ElementType.INVOCATION})


def _build_table() -> frozenset[tuple[ElementType, ElementType]]:
    pairs: set[tuple[ElementType, ElementType]] = set()
    for prev in ElementType:
        if prev.is_blank or prev in _NO_SPACER_BEFORE_SCENE:
            continue
        for heading in SCENE_HEADINGS:
            pairs.add((prev, heading))
    for heading in SCENE_HEADINGS:
        pairs.add((heading, ElementType.ACTION))
        pairs.add((heading, ElementType.CHARACTER))
    pairs.add((ElementType.ACTION, ElementType.CHARACTER))
    pairs.add((ElementType.ACTION, ElementType.TRANSITION))
    for prev in _DIALOGUE_FORMS:
        pairs.add((prev, ElementType.CHARACTER))
        pairs.add((prev, ElementType.ACTION))
        pairs.add((prev, ElementType.TRANSITION))
    return frozenset(pairs)


SPACER_TABLE = _build_table()


def needs_spacer(prev: ElementType | None, curr: ElementType) -> bool:
    """Table lookup; the first element of a document never gets a spacer."""
    if prev is None:
        return False
    return (prev, curr) in SPACER_TABLE


def spacer_result() -> ClassificationResult:
    return ClassificationResult(
        element_type=ElementType.SPACER,
        confidence=1.0,
        source=SourceTag.AGENT_CHAIN,
        payload=render_spacer(),
        producer="sequencer",
        text="",
    )


class SpacingStateMachine:
    """Tracks the last emitted type and decides spacer insertion per element.

    Blank elements (`empty-line`, `spacer`) pass through without changing
    the state, so spacing follows the last real element.
    """

    def __init__(self) -> None:
        self.last_type: ElementType | None = None

    def feed(self, element_type: ElementType) -> bool:
        """Advance the state; return whether a spacer precedes `element_type`."""
        if element_type.is_blank:
            return False
        insert = needs_spacer(self.last_type, element_type)
        self.last_type = element_type
        return insert

    def reset(self) -> None:
        self.last_type = None

    @staticmethod
    def plan(element_types: Iterable[ElementType]) -> list[int]:
        """Indices of elements that must be preceded by a spacer."""
        machine = SpacingStateMachine()
        return [index for index, kind in enumerate(element_types) if machine.feed(kind)]

    def interleave(self, results: Iterable[ClassificationResult]) -> list[ClassificationResult]:
        output: list[ClassificationResult] = []
        for result in results:
            if self.feed(result.element_type):
                output.append(spacer_result())
            output.append(result)
        return output
