"""Rendered payload construction per element type."""

from __future__ import annotations

from screenplay_agent.types import ElementType, RenderedBlock

NAME_SEPARATOR = " :"


def render(element_type: ElementType, text: str, **parts: str) -> RenderedBlock:
    return RenderedBlock(css_class=element_type.value, text=text, parts=dict(parts))


def render_character(name: str) -> RenderedBlock:
    return render(ElementType.CHARACTER, f"{name}{NAME_SEPARATOR}", name=name)


def render_parenthetical(inner: str) -> RenderedBlock:
    return render(ElementType.PARENTHETICAL, f"({inner.strip()})", inner=inner.strip())


def render_spacer() -> RenderedBlock:
    return RenderedBlock(css_class=ElementType.SPACER.value, text="")
