import pytest
from pydantic import ValidationError

from screenplay_agent.config import CacheConfig, EngineConfig, EnsembleConfig, OracleConfig


def test_defaults() -> None:
    config = EngineConfig()

    assert config.confidence_threshold == pytest.approx(0.8)
    assert config.cache.max_bytes == 50 * 1024 * 1024
    assert config.cache.max_entries == 1000
    assert config.cache.default_ttl_seconds == pytest.approx(1800.0)
    assert config.ensemble.strategy_timeout_seconds <= config.ensemble.overall_timeout_seconds
    assert config.oracle.min_request_interval_seconds == pytest.approx(1.0)


@pytest.mark.parametrize(
    ("model", "values"),
    [
        (EngineConfig, {"confidence_threshold": 1.2}),
        (EngineConfig, {"history_size": 10, "history_prune_to": 10}),
        (CacheConfig, {"max_bytes": 0}),
        (CacheConfig, {"default_ttl_seconds": 0}),
        (CacheConfig, {"eviction_fraction": 0}),
        (OracleConfig, {"max_retries": -1}),
        (EnsembleConfig, {"strategy_timeout_seconds": 5, "overall_timeout_seconds": 1}),
        (EnsembleConfig, {"oracle_weight": 1.1}),
    ],
)
def test_invalid_values_are_rejected(model, values) -> None:
    with pytest.raises(ValidationError):
        model(**values)


def test_nested_config_from_dict() -> None:
    config = EngineConfig.model_validate(
        {"cache": {"max_entries": 5}, "ensemble": {"enabled": False}, "audit_chunk_size": 10}
    )

    assert config.cache.max_entries == 5
    assert config.ensemble.enabled is False
    assert config.audit_chunk_size == 10
