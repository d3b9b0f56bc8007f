"""Configuration models for the classification engine."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class CacheConfig(BaseModel):
    """Configures the classification cache budgets and persistence."""

    max_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    max_entries: int = Field(default=1000, ge=1)
    default_ttl_seconds: float = Field(default=30 * 60.0, gt=0.0)
    compression_threshold_bytes: int = Field(default=1024, ge=0)
    enable_compression: bool = True
    eviction_fraction: float = Field(default=0.1, gt=0.0, le=1.0)
    persistence_path: str | None = None


class OracleConfig(BaseModel):
    """Configures remote oracle call bounds."""

    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    min_request_interval_seconds: float = Field(default=1.0, ge=0.0)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=0.5, ge=0.0)


class EnsembleConfig(BaseModel):
    """Configures concurrent strategy execution and voting weights."""

    enabled: bool = True
    strategy_timeout_seconds: float = Field(default=10.0, gt=0.0)
    overall_timeout_seconds: float = Field(default=12.0, gt=0.0)
    agent_chain_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    pattern_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    context_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    feature_weight: float = Field(default=0.1, ge=0.0, le=1.0)
    oracle_weight: float = Field(default=0.6, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_timeouts(self) -> "EnsembleConfig":
        if self.overall_timeout_seconds < self.strategy_timeout_seconds:
            raise ValueError("overall_timeout_seconds must be >= strategy_timeout_seconds")
        return self


class EngineConfig(BaseModel):
    """Top-level engine configuration; every field is optional."""

    confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    fallback_to_local: bool = True
    context_tracking_enabled: bool = True
    history_size: int = Field(default=100, ge=2)
    history_prune_to: int = Field(default=50, ge=1)
    audit_window: int = Field(default=50, ge=1)
    audit_chunk_size: int = Field(default=25, ge=1)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)

    @model_validator(mode="after")
    def _check_history(self) -> "EngineConfig":
        if self.history_prune_to >= self.history_size:
            raise ValueError("history_prune_to must be smaller than history_size")
        return self
