"""Ordered, first-match-wins agent chain."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from screenplay_agent.agent.recognizers import RecognizerAgent, default_agents
from screenplay_agent.context import ClassificationContext
from screenplay_agent.patterns import PatternLibrary
from screenplay_agent.render import render
from screenplay_agent.types import (
    ClassificationResult,
    ContextUpdate,
    ElementType,
    Line,
    SourceTag,
)

log = logging.getLogger(__name__)


class AgentChain:
    """Evaluates recognizer agents in fixed priority order.

    The chain commits to the first agent that matches and never scans
    further for a higher-confidence result. Blank lines short-circuit to
    an `empty-line` element before any agent runs.
    """

    def __init__(self, agents: Sequence[RecognizerAgent]) -> None:
        if not agents:
            raise ValueError("AgentChain requires at least one recognizer agent")
        self._agents = tuple(agents)

    @classmethod
    def default(cls, library: PatternLibrary | None = None) -> "AgentChain":
        return cls(default_agents(library))

    @property
    def agents(self) -> tuple[RecognizerAgent, ...]:
        return self._agents

    def classify(self, line: Line, context: ClassificationContext) -> ClassificationResult:
        if line.is_blank:
            return ClassificationResult(
                element_type=ElementType.EMPTY_LINE,
                confidence=1.0,
                source=SourceTag.AGENT_CHAIN,
                payload=render(ElementType.EMPTY_LINE, ""),
                producer="blank-line",
                text="",
                update=ContextUpdate(in_dialogue=False),
            )

        for agent in self._agents:
            result = agent.recognize(line, context)
            if result is not None:
                return result

        log.debug("No agent matched line %r; using action fallback", line.text[:40])
        return ClassificationResult(
            element_type=ElementType.ACTION,
            confidence=0.1,
            source=SourceTag.FALLBACK,
            payload=render(ElementType.ACTION, line.text),
            producer="chain-fallback",
            text=line.text,
            update=ContextUpdate(in_dialogue=False),
        )
