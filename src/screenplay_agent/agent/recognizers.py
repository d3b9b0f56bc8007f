"""Recognizer agents, one per slot of the agent chain."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from screenplay_agent.context import ClassificationContext
from screenplay_agent.patterns import (
    ACTION_VERBS,
    TAG_CONTINUATION,
    TAG_DUAL_LANGUAGE,
    TAG_HARD_CUT,
    TAG_WEAK,
    PatternLibrary,
    PatternMatch,
    classify_action,
    default_library,
)
from screenplay_agent.render import render, render_character, render_parenthetical
from screenplay_agent.types import (
    ClassificationResult,
    ContextUpdate,
    ElementType,
    Line,
    RenderedBlock,
    SourceTag,
)

_ACTION_START = re.compile(rf"^{ACTION_VERBS}(?:\s|$)")
_NAME_CHARS = re.compile(r"^[^\W\d_]+(?:[ .'\-][^\W\d_]+)*$", flags=re.UNICODE)

DEFAULT_CONFIDENCE = 0.1


class RecognizerAgent(ABC):
    """Wraps a subset of the pattern library for one element type.

    `recognize` returns `None` when the agent does not match so the chain
    can try the next agent.
    """

    name = "agent"

    def __init__(self, library: PatternLibrary | None = None) -> None:
        self.library = library or default_library()

    @abstractmethod
    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        """Classify `line` or decline."""

    def _result(
        self,
        line: Line,
        element_type: ElementType,
        confidence: float,
        payload: RenderedBlock,
        *,
        update: ContextUpdate | None = None,
        follow_ups: list[ClassificationResult] | None = None,
        source: SourceTag = SourceTag.AGENT_CHAIN,
    ) -> ClassificationResult:
        return ClassificationResult(
            element_type=element_type,
            confidence=confidence,
            source=source,
            payload=payload,
            producer=self.name,
            text=line.text,
            update=update,
            follow_ups=follow_ups or [],
        )


class InvocationAgent(RecognizerAgent):
    name = "invocation"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(ElementType.INVOCATION, line.text, context)
        if found is None:
            return None
        return self._result(
            line,
            ElementType.INVOCATION,
            found.confidence,
            render(ElementType.INVOCATION, line.text),
            update=ContextUpdate(in_dialogue=False),
        )


class CutTransitionAgent(RecognizerAgent):
    """Bare hard cuts, checked before any looser transition phrase."""

    name = "cut-transition"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(
            ElementType.TRANSITION, line.text, context, include_tags=frozenset({TAG_HARD_CUT})
        )
        if found is None:
            return None
        return _transition(self, line, found)


class TransitionAgent(RecognizerAgent):
    name = "transition"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(
            ElementType.TRANSITION, line.text, context, exclude_tags=frozenset({TAG_HARD_CUT})
        )
        if found is None:
            return None
        return _transition(self, line, found)


def _transition(agent: RecognizerAgent, line: Line, found: PatternMatch) -> ClassificationResult:
    return agent._result(
        line,
        ElementType.TRANSITION,
        found.confidence,
        render(ElementType.TRANSITION, line.text),
        update=ContextUpdate(in_dialogue=False),
    )


class SceneHeadingAgent(RecognizerAgent):
    """Recognizes the three scene heading levels; the best level wins."""

    name = "scene-heading"
    levels = (ElementType.SCENE_HEADING_1, ElementType.SCENE_HEADING_2, ElementType.SCENE_HEADING_3)

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        best: PatternMatch | None = None
        for level in self.levels:
            found = self.library.best_match(level, line.text, context)
            if found is not None and (best is None or found.confidence > best.confidence):
                best = found
        if best is None:
            return None

        groups = {key: value.strip() for key, value in best.match.groupdict().items() if value}
        return self._result(
            line,
            best.element_type,
            best.confidence,
            render(best.element_type, line.text, **groups),
            update=ContextUpdate(in_dialogue=False),
        )


class ParentheticalAgent(RecognizerAgent):
    name = "parenthetical"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(ElementType.PARENTHETICAL, line.text, context)
        if found is None:
            return None
        return self._result(
            line,
            ElementType.PARENTHETICAL,
            found.confidence,
            render_parenthetical(found.match.group("inner")),
        )


class CharacterAgent(RecognizerAgent):
    """Character cue, optionally followed by dialogue on the same line.

    A cue with inline dialogue yields a character result whose
    `follow_ups` hold the dialogue element for the remainder.
    """

    name = "character"
    min_name_length = 2
    max_name_length = 50
    max_name_words = 4

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(ElementType.CHARACTER, line.text, context)
        if found is None:
            return None
        name = found.match.group("name").strip()
        if not self.is_valid_name(name):
            return None

        rest = (found.match.groupdict().get("rest") or "").strip()
        follow_ups: list[ClassificationResult] = []
        if rest:
            follow_ups.append(
                ClassificationResult(
                    element_type=ElementType.DIALOGUE,
                    confidence=found.confidence,
                    source=SourceTag.AGENT_CHAIN,
                    payload=render(ElementType.DIALOGUE, rest),
                    producer=self.name,
                    text=rest,
                )
            )
        return self._result(
            line,
            ElementType.CHARACTER,
            found.confidence,
            render_character(name),
            update=ContextUpdate(in_dialogue=True, last_character=name),
            follow_ups=follow_ups,
        )

    def is_valid_name(self, name: str) -> bool:
        if not self.min_name_length <= len(name) <= self.max_name_length:
            return False
        if len(name.split()) > self.max_name_words:
            return False
        if not _NAME_CHARS.match(name):
            return False
        return _ACTION_START.match(name) is None


class DualLanguageDialogueAgent(RecognizerAgent):
    """Original-script dialogue followed by a parenthetical gloss.

    Matches in or out of dialogue; its slot puts it ahead of the action
    and continuation checks.
    """

    name = "dual-language-dialogue"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        found = self.library.best_match(
            ElementType.DIALOGUE, line.text, context, include_tags=frozenset({TAG_DUAL_LANGUAGE})
        )
        if found is None:
            return None
        return self._result(
            line,
            ElementType.DIALOGUE,
            found.confidence,
            render(
                ElementType.DIALOGUE,
                line.text,
                original=found.match.group("original").strip(),
                gloss=found.match.group("gloss").strip(),
            ),
            update=ContextUpdate(in_dialogue=True),
        )


class ActionAgent(RecognizerAgent):
    name = "action"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        excluded = frozenset({TAG_WEAK}) if context.in_dialogue else frozenset()
        found = self.library.best_match(ElementType.ACTION, line.text, context, exclude_tags=excluded)
        if found is None:
            return None
        return self._result(
            line,
            ElementType.ACTION,
            found.confidence,
            render(ElementType.ACTION, line.text),
            update=ContextUpdate(in_dialogue=False, last_action_type=classify_action(line.text)),
        )


class DialogueContinuationAgent(RecognizerAgent):
    name = "dialogue-continuation"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        if not context.in_dialogue:
            return None
        found = self.library.best_match(
            ElementType.DIALOGUE, line.text, context, include_tags=frozenset({TAG_CONTINUATION})
        )
        if found is None:
            return None
        return self._result(
            line,
            ElementType.DIALOGUE,
            found.confidence,
            render(ElementType.DIALOGUE, line.text),
            update=ContextUpdate(in_dialogue=True),
        )


class DefaultAgent(RecognizerAgent):
    """Last resort: every line is at least a low-confidence action."""

    name = "default"

    def recognize(self, line: Line, context: ClassificationContext) -> ClassificationResult | None:
        return self._result(
            line,
            ElementType.ACTION,
            DEFAULT_CONFIDENCE,
            render(ElementType.ACTION, line.text),
            update=ContextUpdate(in_dialogue=False, last_action_type=classify_action(line.text)),
            source=SourceTag.FALLBACK,
        )


def default_agents(library: PatternLibrary | None = None) -> list[RecognizerAgent]:
    """Agents in chain priority order, sharing one pattern library."""
    shared = library or default_library()
    return [
        InvocationAgent(shared),
        CutTransitionAgent(shared),
        TransitionAgent(shared),
        SceneHeadingAgent(shared),
        ParentheticalAgent(shared),
        CharacterAgent(shared),
        DualLanguageDialogueAgent(shared),
        ActionAgent(shared),
        DialogueContinuationAgent(shared),
        DefaultAgent(shared),
    ]
