"""Cost model engine and statistics collection."""

from .engine import (
    CostModelEngine,
    HistoryEntry,
    ModelComparison,
    create_default_engine,
    EVENTS,
)
from .statistics import StatisticsCollector

__all__ = [
    "CostModelEngine",
    "HistoryEntry",
    "ModelComparison",
    "create_default_engine",
    "EVENTS",
    "StatisticsCollector",
]
