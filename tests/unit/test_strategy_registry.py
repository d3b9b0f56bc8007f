import asyncio

import pytest
from pydantic import ValidationError

from screenplay_agent.context import ClassificationContext
from screenplay_agent.ensemble.registry import StrategyRegistry, StrategySpec
from screenplay_agent.ensemble.strategies import build_result
from screenplay_agent.types import ElementType, Line, SourceTag


def _fixed(element_type: ElementType, confidence: float):
    def _handler(line: Line, context: ClassificationContext):
        return build_result(element_type, confidence, line, source=SourceTag.ENSEMBLE, producer="fixed")

    return _handler


def test_duplicate_strategy_registration_rejected() -> None:
    registry = StrategyRegistry()
    spec = StrategySpec(name="fixed", weight=0.5, handler=_fixed(ElementType.ACTION, 0.5))

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


def test_strategy_weight_is_validated() -> None:
    with pytest.raises(ValidationError):
        StrategySpec(name="heavy", weight=1.5, handler=_fixed(ElementType.ACTION, 0.5))


def test_unknown_strategy_lookup_fails() -> None:
    with pytest.raises(KeyError):
        StrategyRegistry().get("missing")


def test_observer_captures_latency_and_outcome() -> None:
    registry = StrategyRegistry()
    registry.register(StrategySpec(name="cue", weight=0.4, handler=_fixed(ElementType.CHARACTER, 0.9)))

    async def _boom(line: Line, context: ClassificationContext):
        raise RuntimeError("oracle down")

    registry.register(StrategySpec(name="boom", weight=0.3, handler=_boom, tags=["remote"]))

    observed = []
    registry.set_observer(observed.append)
    line = Line.from_raw("أحمد:")
    result, latency_ms = asyncio.run(registry.execute("cue", line, ClassificationContext()))
    with pytest.raises(RuntimeError):
        asyncio.run(registry.execute("boom", line, ClassificationContext()))
    registry.set_observer(None)

    assert result.element_type is ElementType.CHARACTER
    assert latency_ms >= 0.0
    assert [trace.name for trace in observed] == ["cue", "boom"]
    assert observed[0].succeeded is True
    assert observed[0].confidence == pytest.approx(0.9)
    assert observed[1].succeeded is False
    assert observed[1].error == "oracle down"


def test_slow_strategy_is_bounded_by_timeout() -> None:
    registry = StrategyRegistry()

    async def _slow(line: Line, context: ClassificationContext):
        await asyncio.sleep(1.0)
        return build_result(ElementType.ACTION, 1.0, line, source=SourceTag.ENSEMBLE, producer="slow")

    registry.register(StrategySpec(name="slow", weight=0.5, handler=_slow))

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(registry.execute("slow", Line.from_raw("x"), ClassificationContext(), timeout=0.05))


def test_non_result_return_is_a_type_error() -> None:
    registry = StrategyRegistry()
    registry.register(StrategySpec(name="bad", weight=0.1, handler=lambda line, context: "action"))

    with pytest.raises(TypeError):
        asyncio.run(registry.execute("bad", Line.from_raw("x"), ClassificationContext()))


def test_specs_can_exclude_by_tag() -> None:
    registry = StrategyRegistry()
    registry.register(StrategySpec(name="local", weight=0.4, handler=_fixed(ElementType.ACTION, 0.5), tags=["local"]))
    registry.register(StrategySpec(name="remote", weight=0.6, handler=_fixed(ElementType.ACTION, 0.5), tags=["oracle"]))

    assert [spec.name for spec in registry.specs(exclude_tags=["oracle"])] == ["local"]
    assert registry.total_weight() == pytest.approx(1.0)
    assert len(registry) == 2
