"""Configuration management for the cost engine."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import yaml
from pathlib import Path

from ..errors import ConfigurationError

MB = 1024 * 1024
GB = 1024 * MB

# Lowest value any statistical model weight may take
WEIGHT_FLOOR = 0.1


@dataclass
class DataSourceConfig:
    """Configuration for a single statistics-providing data source."""

    name: str
    type: str  # "duckdb"
    config: Dict[str, Any]
    collections: List[str] = field(default_factory=list)


@dataclass
class EngineConfig:
    """Configuration for the cost model engine."""

    default_model: str = "statistical"
    adaptive_learning: bool = True
    learning_rate: float = 0.1
    anomaly_threshold: float = 0.5
    history_size: int = 100

    def validate(self) -> None:
        """Reject values the engine cannot work with.

        Raises:
            ConfigurationError: If a value is out of range
        """
        if not self.default_model:
            raise ConfigurationError("default_model must not be empty")
        if not 0.0 <= self.learning_rate <= 1.0:
            raise ConfigurationError(
                f"learning_rate must be in [0, 1], got {self.learning_rate}"
            )
        if self.anomaly_threshold < 0:
            raise ConfigurationError(
                f"anomaly_threshold must be >= 0, got {self.anomaly_threshold}"
            )
        if self.history_size < 1:
            raise ConfigurationError(
                f"history_size must be >= 1, got {self.history_size}"
            )


def _default_base_costs() -> Dict[str, float]:
    return {
        "scan": 1.0,
        "seek": 0.1,
        "join": 10.0,
        "sort": 5.0,
        "aggregate": 3.0,
        "filter": 0.5,
        "project": 0.2,
    }


def _default_row_multipliers() -> Dict[str, float]:
    return {"small": 1.0, "medium": 2.0, "large": 5.0, "huge": 10.0}


def _default_index_multipliers() -> Dict[str, float]:
    return {"none": 1.0, "partial": 0.5, "full": 0.1}


def _default_memory_multipliers() -> Dict[str, float]:
    return {"low": 1.0, "medium": 2.0, "high": 5.0}


@dataclass
class StatisticalModelConfig:
    """Configuration for the bucketed statistical cost model."""

    base_costs: Dict[str, float] = field(default_factory=_default_base_costs)
    row_multipliers: Dict[str, float] = field(default_factory=_default_row_multipliers)
    index_multipliers: Dict[str, float] = field(default_factory=_default_index_multipliers)
    memory_multipliers: Dict[str, float] = field(default_factory=_default_memory_multipliers)
    default_row_count: int = 1000
    default_index_type: str = "none"
    default_memory_type: str = "low"
    min_weight: float = WEIGHT_FLOOR

    def validate(self) -> None:
        """Keep every weight at or above the floor.

        Raises:
            ConfigurationError: If min_weight or a base cost is below the floor
        """
        if self.min_weight < WEIGHT_FLOOR:
            raise ConfigurationError(
                f"min_weight must be >= {WEIGHT_FLOOR}, got {self.min_weight}"
            )
        for operation, cost in self.base_costs.items():
            if cost < self.min_weight:
                raise ConfigurationError(
                    f"base_costs.{operation} must be >= min_weight, got {cost}"
                )


def _default_memory_cost_weights() -> Dict[str, float]:
    return {"low": 1.0, "medium": 1.5, "high": 2.5, "critical": 4.0}


def _default_memory_thresholds() -> Dict[str, int]:
    return {"low": 10 * MB, "medium": 100 * MB, "high": 500 * MB, "critical": 1 * GB}


def _default_operation_memory_usage() -> Dict[str, int]:
    return {
        "scan": 100,
        "filter": 50,
        "sort": 200,
        "project": 50,
        "join": 300,
        "aggregate": 250,
        "index": 150,
    }


def _default_memory_pressure_factors() -> Dict[str, float]:
    return {"available": 1.0, "low": 1.2, "medium": 1.5, "high": 2.0, "critical": 3.0}


def _default_operation_base_costs() -> Dict[str, float]:
    return {
        "scan": 100.0,
        "filter": 50.0,
        "sort": 200.0,
        "project": 50.0,
        "limit": 10.0,
        "skip": 20.0,
    }


@dataclass
class MemoryModelConfig:
    """Configuration for the memory-aware cost model."""

    memory_cost_weights: Dict[str, float] = field(default_factory=_default_memory_cost_weights)
    memory_thresholds: Dict[str, int] = field(default_factory=_default_memory_thresholds)
    operation_memory_usage: Dict[str, int] = field(default_factory=_default_operation_memory_usage)
    memory_pressure_factors: Dict[str, float] = field(
        default_factory=_default_memory_pressure_factors
    )
    operation_base_costs: Dict[str, float] = field(default_factory=_default_operation_base_costs)
    default_node_cost: float = 100.0
    default_operation_memory_usage: int = 100
    default_available_memory: int = 1 * GB
    default_total_memory: int = 8 * GB
    default_row_count: int = 1000
    default_row_size: int = 1000
    history_size: int = 100


@dataclass
class PushdownConfig:
    """Configuration for projection pushdown."""

    min_complexity_score: float = 5.0
    cost_threshold: float = 0.0
    cost_model: Optional[str] = None  # None means the engine default


@dataclass
class LazyLoadingConfig:
    """Configuration for lazy field loading."""

    eager_load_limit: int = 10
    prioritize_id_fields: bool = True
    use_field_statistics: bool = True

    def validate(self) -> None:
        if self.eager_load_limit < 1:
            raise ConfigurationError(
                f"eager_load_limit must be >= 1, got {self.eager_load_limit}"
            )


@dataclass
class Config:
    """Main configuration class."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    statistical: StatisticalModelConfig = field(default_factory=StatisticalModelConfig)
    memory: MemoryModelConfig = field(default_factory=MemoryModelConfig)
    pushdown: PushdownConfig = field(default_factory=PushdownConfig)
    lazy_loading: LazyLoadingConfig = field(default_factory=LazyLoadingConfig)
    datasources: Dict[str, DataSourceConfig] = field(default_factory=dict)


def _build_section(section_cls, data: Any, name: str):
    """Instantiate one config dataclass, merging dict-valued defaults."""
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")

    defaults = section_cls()
    values = {}
    for key, value in data.items():
        if not hasattr(defaults, key):
            raise ConfigurationError(f"Unknown option '{name}.{key}'")
        current = getattr(defaults, key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged = dict(current)
            merged.update(value)
            values[key] = merged
        else:
            values[key] = value
    return section_cls(**values)


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Parsed configuration

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid

    Example YAML format:
        engine:
          default_model: statistical
          adaptive_learning: true
          learning_rate: 0.1
          history_size: 100

        statistical:
          base_costs:
            join: 12.0

        memory:
          default_available_memory: 2147483648

        pushdown:
          min_complexity_score: 5
          cost_threshold: 1.5

        lazy_loading:
          eager_load_limit: 10

        datasources:
          local_duckdb:
            type: duckdb
            path: /data/local.duckdb
            read_only: true
            collections: [users, orders]
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML configuration: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Top-level configuration must be a mapping")

    datasources = {}
    for name, ds_config in (data.get("datasources") or {}).items():
        ds_config = dict(ds_config)
        if "type" not in ds_config:
            raise ConfigurationError(f"Data source '{name}' has no type")
        ds_type = ds_config.pop("type")
        collections = ds_config.pop("collections", [])
        datasources[name] = DataSourceConfig(
            name=name, type=ds_type, config=ds_config, collections=collections
        )

    try:
        engine = _build_section(EngineConfig, data.get("engine"), "engine")
        statistical = _build_section(
            StatisticalModelConfig, data.get("statistical"), "statistical"
        )
        memory = _build_section(MemoryModelConfig, data.get("memory"), "memory")
        pushdown = _build_section(PushdownConfig, data.get("pushdown"), "pushdown")
        lazy_loading = _build_section(
            LazyLoadingConfig, data.get("lazy_loading"), "lazy_loading"
        )
        engine.validate()
        statistical.validate()
        lazy_loading.validate()
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration value: {e}")

    return Config(
        engine=engine,
        statistical=statistical,
        memory=memory,
        pushdown=pushdown,
        lazy_loading=lazy_loading,
        datasources=datasources,
    )
