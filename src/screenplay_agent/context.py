"""Cross-line classification context and recent-decision history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from screenplay_agent.types import ContextUpdate, ElementType

LinePosition = Literal["start", "middle", "end"]


@dataclass(slots=True)
class ClassificationContext:
    """Mutable per-document state carried between consecutive lines.

    Agents and strategies only read it. The engine applies a
    `ContextUpdate` once a decision has been committed.
    """

    previous_type: ElementType | None = None
    last_character: str | None = None
    in_dialogue: bool = False
    last_action_type: str | None = None
    line_position: LinePosition = "start"

    def apply(self, element_type: ElementType, update: ContextUpdate | None) -> None:
        if update is not None:
            if update.in_dialogue is not None:
                self.in_dialogue = update.in_dialogue
            if update.last_character is not None:
                self.last_character = update.last_character
            if update.last_action_type is not None:
                self.last_action_type = update.last_action_type
        if element_type is not ElementType.SPACER:
            self.previous_type = element_type
        if not element_type.is_blank and self.line_position == "start":
            self.line_position = "middle"

    def snapshot(self) -> "ClassificationContext":
        return ClassificationContext(
            previous_type=self.previous_type,
            last_character=self.last_character,
            in_dialogue=self.in_dialogue,
            last_action_type=self.last_action_type,
            line_position=self.line_position,
        )

    def fingerprint(self) -> str:
        """Stable string of the fields that influence a classification."""
        previous = self.previous_type.value if self.previous_type else "-"
        return "|".join(
            [
                previous,
                self.last_character or "-",
                "1" if self.in_dialogue else "0",
                self.last_action_type or "-",
                self.line_position,
            ]
        )


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    text: str
    element_type: ElementType


@dataclass(slots=True)
class ContextHistory:
    """Bounded buffer of recent decisions used by sequence scoring.

    When it grows past `max_size` it is pruned to the last `prune_to`
    entries.
    """

    max_size: int = 100
    prune_to: int = 50
    _entries: list[HistoryEntry] = field(default_factory=list)

    def append(self, text: str, element_type: ElementType) -> None:
        self._entries.append(HistoryEntry(text=text, element_type=element_type))
        if len(self._entries) > self.max_size:
            self._entries = self._entries[-self.prune_to :]

    def recent(self, limit: int | None = None) -> tuple[HistoryEntry, ...]:
        if limit is None:
            return tuple(self._entries)
        return tuple(self._entries[-limit:]) if limit > 0 else ()

    def last_types(self, limit: int = 3) -> list[ElementType]:
        return [entry.element_type for entry in self.recent(limit)]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
