"""Configuration management."""

from .config import (
    Config,
    DataSourceConfig,
    EngineConfig,
    StatisticalModelConfig,
    MemoryModelConfig,
    PushdownConfig,
    LazyLoadingConfig,
    load_config,
)

__all__ = [
    "Config",
    "DataSourceConfig",
    "EngineConfig",
    "StatisticalModelConfig",
    "MemoryModelConfig",
    "PushdownConfig",
    "LazyLoadingConfig",
    "load_config",
]
