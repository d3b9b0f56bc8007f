"""Screenplay line classification package."""

from .config import CacheConfig, EngineConfig, EnsembleConfig, OracleConfig
from .types import ClassificationResult, ElementType, ImportFlavor, SourceTag

__all__ = [
    "CacheConfig",
    "ClassificationResult",
    "ElementType",
    "EngineConfig",
    "EnsembleConfig",
    "ImportFlavor",
    "OracleConfig",
    "SourceTag",
]
