"""Memory-aware cost model.

Costs every operation at a fixed base, scaled by how much memory the query
(or plan node) is expected to need and by how much memory pressure the host
is under. Observed memory usage is folded into running averages.
"""

import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..config.config import MemoryModelConfig
from ..errors import EstimationError, ValidationError
from ..plan.nodes import ExecutionPlan
from ..plan.operations import OperationSet, parse_query
from ..plan.statistics import Statistics, as_statistics
from ..utils.logging import get_contextual_logger
from .base import (
    CostModel,
    CostEstimate,
    EstimationContext,
    ExecutionMetrics,
    MemoryPressure,
    MemoryUsageEstimate,
    NodeCost,
    NodeMemoryUsage,
    PlanMemoryUsage,
    UpdateOutcome,
    as_context,
    as_metrics,
    ensure_count,
    ensure_finite,
)

# Operations this model knows how to cost, in reporting order
COSTED_OPERATIONS = ("scan", "filter", "sort", "project", "limit", "skip")

# Checked in order; the first level whose threshold is exceeded wins
USAGE_LEVELS = ("critical", "high", "medium", "low")

PRESSURE_LEVELS = (
    (0.9, "critical"),
    (0.75, "high"),
    (0.5, "medium"),
    (0.25, "low"),
)


@dataclass
class UsageStats:
    """Running average of observed memory usage."""

    count: int = 0
    total_usage: float = 0.0
    average_usage: float = 0.0

    def record(self, usage: float) -> None:
        self.count += 1
        self.total_usage += usage
        self.average_usage = self.total_usage / self.count


@dataclass
class MemoryHistoryEntry:
    """One update fed into the memory model."""

    plan: ExecutionPlan
    metrics: ExecutionMetrics
    context: EstimationContext
    timestamp: float = field(default_factory=time.time)


class MemoryAwareModel(CostModel):
    """Cost model sensitive to memory usage and memory pressure."""

    name = "memory"

    def __init__(
        self,
        config: Optional[MemoryModelConfig] = None,
        statistics: Optional[Statistics] = None,
    ):
        """Initialize memory-aware model.

        Args:
            config: Model configuration (rates, thresholds, weights, defaults)
            statistics: Default statistics, merged under per-call statistics
        """
        super().__init__()
        self.config = config or MemoryModelConfig()
        self.statistics = Statistics().merged(as_statistics(statistics))
        self._operation_stats: Dict[str, UsageStats] = {}
        self._collection_stats: Dict[str, UsageStats] = {}
        self._history: deque = deque(maxlen=self.config.history_size)
        self.logger = get_contextual_logger(__name__, {"model": self.name})
        self.logger.debug("Memory-aware cost model initialized")

    def estimate_query_cost(self, query: Any, context: Any = None) -> CostEstimate:
        context = as_context(context)
        parsed = parse_query(query)

        memory_usage = self.estimate_memory_usage(parsed.operations, context)
        memory_pressure = self.get_memory_pressure(context)
        costs = self._estimate_costs(parsed.operations, memory_usage, memory_pressure)
        total_cost = ensure_finite(sum(costs.values()), "Memory-aware query estimate")

        self.logger.debug(
            f"Estimated query cost {total_cost} "
            f"(usage {memory_usage.memory_usage_level}, "
            f"pressure {memory_pressure.memory_pressure_level})"
        )
        return CostEstimate(
            total_cost=total_cost,
            costs=costs,
            query=parsed,
            memory_usage=memory_usage,
            memory_pressure=memory_pressure,
        )

    def estimate_plan_cost(
        self, plan: Any, statistics: Any = None, context: Any = None
    ) -> CostEstimate:
        context = as_context(context)
        plan = self._coerce_plan(plan)
        merged = self.statistics.merged(self._coerce_statistics(statistics))

        nodes: Dict[str, NodeMemoryUsage] = {}
        self._estimate_node_memory(plan.nodes, nodes, merged, context, "")
        memory_pressure = self.get_memory_pressure(context)

        node_costs: Dict[str, NodeCost] = {}
        for node_id, usage in nodes.items():
            weight = self.config.memory_cost_weights[usage.memory_usage_level]
            base_cost = self.config.operation_base_costs.get(
                usage.type, self.config.default_node_cost
            )
            node_costs[node_id] = NodeCost(
                type=usage.type,
                cost=base_cost * weight * memory_pressure.memory_pressure_factor,
                row_count=usage.row_count,
                memory_usage_level=usage.memory_usage_level,
                memory_cost_weight=weight,
                memory_pressure_factor=memory_pressure.memory_pressure_factor,
            )

        total_cost = 0.0
        for node_cost in node_costs.values():
            total_cost += node_cost.cost
        total_cost = ensure_finite(total_cost, "Memory-aware plan estimate")

        total_memory = sum(usage.total_memory_usage for usage in nodes.values())
        self.logger.debug(
            f"Estimated plan cost {total_cost} over {len(node_costs)} nodes, "
            f"{total_memory} bytes"
        )
        return CostEstimate(
            total_cost=total_cost,
            node_costs=node_costs,
            plan=plan,
            statistics=merged,
            memory_usage=PlanMemoryUsage(total=total_memory, nodes=nodes),
            memory_pressure=memory_pressure,
        )

    def update(self, plan: Any, actual_metrics: Any, context: Any = None) -> UpdateOutcome:
        """Fold observed per-operation and per-collection memory into running averages."""
        try:
            context = as_context(context)
            plan = self._coerce_plan(plan)
            metrics = as_metrics(actual_metrics)
            operation_usage = self._numeric_usage(metrics.operation_memory, "operation")
            collection_usage = self._numeric_usage(metrics.collection_memory, "collection")
        except (ValidationError, EstimationError, TypeError, ValueError, AttributeError) as e:
            self.logger.warning(f"Update failed: {e}")
            return UpdateOutcome.FAILED

        with self._lock:
            for operation, usage in operation_usage.items():
                self._operation_stats.setdefault(operation, UsageStats()).record(usage)
            for collection, usage in collection_usage.items():
                self._collection_stats.setdefault(collection, UsageStats()).record(usage)
            self._history.append(
                MemoryHistoryEntry(plan=plan, metrics=metrics, context=context)
            )

        self.logger.info(
            f"Recorded memory usage for {len(operation_usage)} operations "
            f"and {len(collection_usage)} collections"
        )
        return UpdateOutcome.APPLIED

    def get_memory_usage_stats(self) -> Dict[str, Dict[str, Dict[str, float]]]:
        """Snapshot of the running averages, keyed by operation and by collection."""
        with self._lock:
            return {
                "operations": {
                    name: asdict(stats) for name, stats in self._operation_stats.items()
                },
                "collections": {
                    name: asdict(stats) for name, stats in self._collection_stats.items()
                },
            }

    def get_memory_usage_history(self) -> List[MemoryHistoryEntry]:
        """Recorded updates, oldest first."""
        with self._lock:
            return list(self._history)

    def estimate_memory_usage(
        self, operations: OperationSet, context: EstimationContext
    ) -> MemoryUsageEstimate:
        """Estimate the memory a query with these operations needs."""
        statistics = self.statistics.merged(context.statistics)
        collection = context.collection_name

        row_count = context.row_count
        if row_count is None:
            row_count = statistics.resolve(collection, "row_count")
        if row_count is None:
            row_count = self.config.default_row_count

        row_size = context.row_size
        if row_size is None:
            row_size = statistics.resolve(collection, "row_size")
        if row_size is None:
            row_size = self.config.default_row_size
        ensure_count(row_count, "row count")
        ensure_count(row_size, "row size")

        operation_memory_usage = {}
        for operation in operations.active():
            rate = self.config.operation_memory_usage.get(operation)
            if operation in COSTED_OPERATIONS and rate is not None:
                operation_memory_usage[operation] = row_count * rate

        total = sum(operation_memory_usage.values())
        return MemoryUsageEstimate(
            base_memory_usage=row_count * row_size,
            operation_memory_usage=operation_memory_usage,
            total_memory_usage=total,
            memory_usage_level=self.memory_usage_level(total),
        )

    def memory_usage_level(self, usage: float) -> str:
        """Classify a byte count against the configured thresholds."""
        thresholds = self.config.memory_thresholds
        for level in USAGE_LEVELS:
            threshold = thresholds.get(level)
            if threshold is not None and usage > threshold:
                return level
        return "low"

    def get_memory_pressure(self, context: EstimationContext) -> MemoryPressure:
        """Derive the memory pressure level from available and total memory.

        Raises:
            EstimationError: If total memory is not positive
        """
        available_memory = context.available_memory
        if available_memory is None:
            available_memory = self.config.default_available_memory
        total_memory = context.total_memory
        if total_memory is None:
            total_memory = self.config.default_total_memory
        ensure_count(available_memory, "available memory")
        ensure_count(total_memory, "total memory")

        if total_memory <= 0:
            raise EstimationError(f"Total memory must be positive, got {total_memory}")

        ratio = 1 - available_memory / total_memory
        level = "available"
        for bound, name in PRESSURE_LEVELS:
            if ratio > bound:
                level = name
                break

        return MemoryPressure(
            available_memory=available_memory,
            total_memory=total_memory,
            memory_pressure_ratio=ratio,
            memory_pressure_level=level,
            memory_pressure_factor=self.config.memory_pressure_factors[level],
        )

    def _estimate_costs(
        self,
        operations: OperationSet,
        memory_usage: MemoryUsageEstimate,
        memory_pressure: MemoryPressure,
    ) -> Dict[str, float]:
        weight = self.config.memory_cost_weights[memory_usage.memory_usage_level]
        factor = memory_pressure.memory_pressure_factor

        costs = {}
        for operation in COSTED_OPERATIONS:
            if getattr(operations, operation):
                base_cost = self.config.operation_base_costs.get(
                    operation, self.config.default_node_cost
                )
                costs[operation] = base_cost * weight * factor
        return costs

    def _estimate_node_memory(
        self,
        nodes: tuple,
        result: Dict[str, NodeMemoryUsage],
        statistics: Statistics,
        context: EstimationContext,
        parent_id: str,
    ) -> None:
        for index, node in enumerate(nodes):
            node_id = f"{parent_id}-{index}" if parent_id else f"node-{index}"

            row_count = node.row_count
            if row_count is None:
                row_count = statistics.resolve(node.collection, "row_count")
            if row_count is None:
                row_count = self.config.default_row_count

            row_size = node.row_size
            if row_size is None:
                row_size = context.row_size
            if row_size is None:
                row_size = statistics.resolve(node.collection, "row_size")
            if row_size is None:
                row_size = self.config.default_row_size
            ensure_count(row_count, f"row count for {node.type} node")
            ensure_count(row_size, f"row size for {node.type} node")

            rate = self.config.operation_memory_usage.get(
                node.type, self.config.default_operation_memory_usage
            )
            memory_usage = row_count * row_size
            operation_memory_usage = row_count * rate
            total = memory_usage + operation_memory_usage

            result[node_id] = NodeMemoryUsage(
                type=node.type,
                row_count=row_count,
                row_size=row_size,
                memory_usage=memory_usage,
                operation_memory_usage=operation_memory_usage,
                total_memory_usage=total,
                memory_usage_level=self.memory_usage_level(total),
            )

            if node.children:
                self._estimate_node_memory(node.children, result, statistics, context, node_id)

    def _numeric_usage(self, usage: Dict[str, Any], kind: str) -> Dict[str, float]:
        result = {}
        for name, value in usage.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Memory usage for {kind} '{name}' is not a number")
            result[name] = value
        return result
