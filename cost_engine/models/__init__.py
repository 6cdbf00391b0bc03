"""Cost models and the value types they exchange."""

from .base import (
    CostModel,
    CostEstimate,
    EstimationContext,
    ExecutionMetrics,
    ErrorReport,
    MemoryPressure,
    MemoryUsageEstimate,
    NodeCost,
    NodeMemoryUsage,
    PlanMemoryUsage,
    UpdateOutcome,
    as_context,
    as_metrics,
    compare_with_metrics,
    relative_error,
)
from .statistical import StatisticalModel, row_count_type
from .memory_aware import MemoryAwareModel, MemoryHistoryEntry, UsageStats

__all__ = [
    "CostModel",
    "CostEstimate",
    "EstimationContext",
    "ExecutionMetrics",
    "ErrorReport",
    "MemoryPressure",
    "MemoryUsageEstimate",
    "NodeCost",
    "NodeMemoryUsage",
    "PlanMemoryUsage",
    "UpdateOutcome",
    "as_context",
    "as_metrics",
    "compare_with_metrics",
    "relative_error",
    "StatisticalModel",
    "row_count_type",
    "MemoryAwareModel",
    "MemoryHistoryEntry",
    "UsageStats",
]
