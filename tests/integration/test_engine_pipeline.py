import asyncio
import time

import pytest

from screenplay_agent.config import EngineConfig, EnsembleConfig
from screenplay_agent.engine import ClassificationEngine
from screenplay_agent.oracle.contract import AuditCorrection, OracleUnavailableError, OracleVerdict
from screenplay_agent.types import AuditLine, ElementType, ImportFlavor, SourceTag

E = ElementType

DOCUMENT = [
    "بسم الله الرحمن الرحيم",
    "مشهد 1",
    "ليل - داخلي",
    "يدخل أحمد إلى الغرفة.",
    "أحمد: مرحبا يا سارة.",
    "سارة:",
    "أهلا بك.",
    "(بهدوء)",
    "كيف حالك؟",
    "قطع إلى:",
]

UNSURE_LINE = "الغرفة مظلمة تماما"


class CountingOracle:
    name = "counting"

    def __init__(self, element_type: ElementType = E.TRANSITION, confidence: float = 1.0, delay: float = 0.0) -> None:
        self.verdict = OracleVerdict(element_type=element_type, confidence=confidence)
        self.delay = delay
        self.calls = 0

    async def classify_one(self, line, context):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.verdict

    async def audit_batch(self, lines):
        return []


class AuditOracle(CountingOracle):
    def __init__(self, failing_index: int) -> None:
        super().__init__()
        self.failing_index = failing_index
        self.chunks: list[list[int]] = []

    async def audit_batch(self, lines):
        indices = [line.index for line in lines]
        self.chunks.append(indices)
        if self.failing_index in indices:
            raise OracleUnavailableError("chunk lost")
        corrections = [
            AuditCorrection(index=i, current_type=E.ACTION, suggested_type=E.DIALOGUE, confidence_score=0.5)
            for i in indices
        ]
        if max(indices) == 9:
            corrections.append(
                AuditCorrection(index=5, current_type=E.ACTION, suggested_type=E.CHARACTER, confidence_score=0.9)
            )
        return corrections


def test_paste_document_is_classified_and_spaced() -> None:
    engine = ClassificationEngine()

    results = asyncio.run(engine.classify_batch(DOCUMENT))

    assert [r.element_type for r in results] == [
        E.INVOCATION,
        E.SCENE_HEADING_1,
        E.SPACER,
        E.SCENE_HEADING_2,
        E.SPACER,
        E.ACTION,
        E.SPACER,
        E.CHARACTER,
        E.DIALOGUE,
        E.SPACER,
        E.CHARACTER,
        E.DIALOGUE,
        E.PARENTHETICAL,
        E.DIALOGUE,
        E.SPACER,
        E.TRANSITION,
    ]
    assert results[7].payload.parts["name"] == "أحمد"
    assert results[8].text == "مرحبا يا سارة."
    assert all(r.source is SourceTag.AGENT_CHAIN for r in results)
    assert all(0.0 <= r.confidence <= 1.0 for r in results)
    assert engine.metrics_summary()["total_classifications"] == len(DOCUMENT)


def test_repeated_paste_is_served_from_cache() -> None:
    engine = ClassificationEngine()

    first = asyncio.run(engine.classify_batch([UNSURE_LINE]))
    second = asyncio.run(engine.classify_batch([UNSURE_LINE]))

    assert [r.to_dict() for r in first] == [r.to_dict() for r in second]
    assert first[0].source is SourceTag.ENSEMBLE
    summary = engine.metrics_summary()
    assert summary["cache_hit_rate"] == pytest.approx(0.5)
    assert summary["cache"]["entries"] == 1


def test_live_typing_never_consults_the_oracle() -> None:
    oracle = CountingOracle()
    engine = ClassificationEngine(oracle=oracle)

    typed = asyncio.run(engine.classify(UNSURE_LINE, flavor=ImportFlavor.LIVE_TYPING))
    assert oracle.calls == 0
    assert typed.source is SourceTag.FALLBACK

    engine.reset()
    pasted = asyncio.run(engine.classify(UNSURE_LINE, flavor=ImportFlavor.PASTE))
    assert oracle.calls == 1
    assert pasted.element_type is E.TRANSITION
    assert pasted.source is SourceTag.ORACLE


def test_confident_lines_skip_the_ensemble() -> None:
    oracle = CountingOracle()
    engine = ClassificationEngine(oracle=oracle)

    result = asyncio.run(engine.classify("مشهد 4", flavor=ImportFlavor.FILE_IMPORT))

    assert result.element_type is E.SCENE_HEADING_1
    assert oracle.calls == 0


def test_slow_oracle_is_bounded_by_strategy_timeout() -> None:
    config = EngineConfig(ensemble=EnsembleConfig(strategy_timeout_seconds=0.05, overall_timeout_seconds=0.5))
    oracle = CountingOracle(delay=5.0)
    engine = ClassificationEngine(config, oracle=oracle)

    start = time.perf_counter()
    result = asyncio.run(engine.classify(UNSURE_LINE, flavor=ImportFlavor.PASTE))
    elapsed = time.perf_counter() - start

    assert elapsed < 2.0
    assert result.source is not SourceTag.ORACLE
    stats = engine.metrics.strategy_stats("oracle")
    assert stats is not None
    assert stats.failures == 1


def test_ensemble_failure_falls_back_to_local_result() -> None:
    engine = ClassificationEngine()

    async def _broken(*args, **kwargs):
        raise RuntimeError("ensemble exploded")

    engine.ensemble.classify = _broken

    result = asyncio.run(engine.classify(UNSURE_LINE, flavor=ImportFlavor.PASTE))

    assert result.element_type is E.ACTION
    assert result.confidence == pytest.approx(0.1)
    assert result.source is SourceTag.FALLBACK


def test_ensemble_failure_without_local_fallback_is_emergency_action() -> None:
    engine = ClassificationEngine(EngineConfig(fallback_to_local=False))

    async def _broken(*args, **kwargs):
        raise RuntimeError("ensemble exploded")

    engine.ensemble.classify = _broken

    result = asyncio.run(engine.classify(UNSURE_LINE, flavor=ImportFlavor.PASTE))

    assert result.element_type is E.ACTION
    assert result.confidence == pytest.approx(0.3)
    assert result.producer == "emergency"


def test_audit_reviews_recent_window_in_chunks() -> None:
    oracle = AuditOracle(failing_index=6)
    engine = ClassificationEngine(EngineConfig(audit_window=6, audit_chunk_size=2), oracle=oracle)
    lines = [AuditLine(index=i, text=f"سطر {i}", current_type=E.ACTION) for i in range(10)]

    corrections = asyncio.run(engine.audit_batch(lines))

    assert sorted(oracle.chunks) == [[4, 5], [6, 7], [8, 9]]
    assert [c.index for c in corrections] == [4, 5, 8, 9]
    assert corrections[1].suggested_type is E.CHARACTER
    assert corrections[1].confidence_score == pytest.approx(0.9)
    assert engine.history.recent() == ()


def test_audit_without_oracle_returns_nothing() -> None:
    engine = ClassificationEngine()
    lines = [AuditLine(index=0, text="مشهد 1", current_type=E.ACTION)]

    assert asyncio.run(engine.audit_batch(lines)) == []


def test_context_tracking_can_be_disabled() -> None:
    engine = ClassificationEngine(EngineConfig(context_tracking_enabled=False))

    engine.classify_line("أحمد:")

    assert engine.context.in_dialogue is False
    assert engine.context.previous_type is None
    assert len(engine.history) == 0


def test_same_input_gives_same_output_across_engines() -> None:
    first = asyncio.run(ClassificationEngine().classify_batch(DOCUMENT + [UNSURE_LINE]))
    second = asyncio.run(ClassificationEngine().classify_batch(DOCUMENT + [UNSURE_LINE]))

    assert [r.to_dict() for r in first] == [r.to_dict() for r in second]


def test_reset_clears_session_state() -> None:
    engine = ClassificationEngine()
    engine.classify_line("سارة:")
    asyncio.run(engine.classify_batch([UNSURE_LINE]))

    engine.reset()

    assert engine.context.in_dialogue is False
    assert len(engine.history) == 0
    assert len(engine.cache) == 0
    assert engine.metrics_summary()["total_classifications"] == 0


def test_blank_lines_keep_spacers_around_scene_heading() -> None:
    engine = ClassificationEngine()

    results = asyncio.run(engine.classify_batch(["يجلس على الكرسي.", "", "مشهد 2", "", "يدخل أحمد."]))

    assert [r.element_type for r in results] == [
        E.ACTION,
        E.EMPTY_LINE,
        E.SPACER,
        E.SCENE_HEADING_1,
        E.EMPTY_LINE,
        E.SPACER,
        E.ACTION,
    ]


def test_session_position_moves_past_start_after_first_line() -> None:
    engine = ClassificationEngine()

    assert engine.classify_line("مشهد 2").confidence == pytest.approx(1.0)
    engine.reset()
    engine.classify_line("يجلس على الكرسي.")
    heading = engine.classify_line("مشهد 2")

    assert engine.context.line_position == "middle"
    assert heading.element_type is E.SCENE_HEADING_1
    assert heading.confidence == pytest.approx(0.95)


def test_persisted_cache_warms_a_new_engine(tmp_path) -> None:
    config = EngineConfig(cache={"persistence_path": str(tmp_path / "cache.db")})
    first = ClassificationEngine(config)
    asyncio.run(first.classify_batch([UNSURE_LINE]))

    second = ClassificationEngine(config)
    assert len(second.cache) == 1

    results = asyncio.run(second.classify_batch([UNSURE_LINE]))

    assert results[0].source is SourceTag.ENSEMBLE
    assert second.metrics_summary()["cache_hit_rate"] == pytest.approx(1.0)
