"""Prompt templates shared by the oracle adapters."""

from __future__ import annotations

import json

from langchain_core.prompts import ChatPromptTemplate

from screenplay_agent.context import ClassificationContext
from screenplay_agent.types import VOTABLE_TYPES, AuditLine, Line

_LABELS = ", ".join(kind.value for kind in VOTABLE_TYPES)

CLASSIFY_SYSTEM_PROMPT = f"""
You are an expert script supervisor for Arabic screenplays.

Classify ONE screenplay line into exactly one of: {_LABELS}.

Rules:
1) A line starting with a name followed by ":" is a character cue.
2) Lines after a character cue are dialogue until an action, heading or transition.
3) Text fully wrapped in parentheses is a parenthetical.
4) "مشهد" followed by a number is scene-heading-1; time and interior/exterior markers are scene-heading-2; a bare location is scene-heading-3.

Answer with JSON only:
{{{{"classification": "<label>", "confidence": <0..1>, "reasoning": "<short>", "alternatives": [{{{{"type": "<label>", "confidence": <0..1>}}}}]}}}}
""".strip()

AUDIT_SYSTEM_PROMPT = f"""
You are reviewing an already-classified Arabic screenplay for structural mistakes.

Allowed labels: {_LABELS}.

For every line whose label is wrong, return one correction. Leave correct lines out.
Use confidence "high", "medium" or "low"; priority "critical", "high", "medium" or "low";
suggestedAction "correct", "review", "split" or "merge".

Answer with JSON only:
{{{{"corrections": [{{{{"index": <n>, "currentClass": "<label>", "suggestedClass": "<label>", "confidence": "high", "confidenceScore": <0..100>, "reason": "<short>", "priority": "high", "suggestedAction": "correct"}}}}]}}}}
""".strip()

CLASSIFY_PROMPT = ChatPromptTemplate.from_messages(
    [("system", CLASSIFY_SYSTEM_PROMPT), ("human", "{request}")]
)
AUDIT_PROMPT = ChatPromptTemplate.from_messages(
    [("system", AUDIT_SYSTEM_PROMPT), ("human", "{request}")]
)


def classify_request(line: Line, context: ClassificationContext) -> str:
    return json.dumps(
        {
            "line": line.text,
            "previous_type": context.previous_type.value if context.previous_type else None,
            "last_character": context.last_character,
            "in_dialogue": context.in_dialogue,
            "position": context.line_position,
        },
        ensure_ascii=False,
    )


def audit_request(lines: list[AuditLine]) -> str:
    return json.dumps(
        [{"index": item.index, "text": item.text, "currentClass": item.current_type.value} for item in lines],
        ensure_ascii=False,
    )
