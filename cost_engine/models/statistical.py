"""Bucketed statistical cost model."""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.config import StatisticalModelConfig
from ..errors import EstimationError, ValidationError
from ..plan.nodes import PlanNode
from ..plan.operations import OperationSet, parse_query
from ..plan.statistics import Statistics, as_statistics
from ..datasources.base import CollectionStatistics
from ..utils.logging import get_contextual_logger
from .base import (
    CostModel,
    CostEstimate,
    EstimationContext,
    NodeCost,
    UpdateOutcome,
    as_context,
    as_metrics,
    compare_with_metrics,
    ensure_count,
    ensure_finite,
)

# Upper bounds (exclusive) of the row count tiers; anything larger is "huge".
ROW_COUNT_TIERS = (
    (100, "small"),
    (10_000, "medium"),
    (1_000_000, "large"),
)


def row_count_type(row_count: int) -> str:
    """Bucket a row count into small/medium/large/huge."""
    for upper, name in ROW_COUNT_TIERS:
        if row_count < upper:
            return name
    return "huge"


@dataclass
class ResolvedStatistics:
    """Statistics resolved for one query."""

    row_count: int
    row_count_type: str
    index_type: str
    memory_type: str


class StatisticalModel(CostModel):
    """Estimate costs from row count tiers, index coverage and memory fit.

    Every operation has a weight, seeded from the configured base costs, which
    is multiplied by tier multipliers. ``update`` scales all weights by the
    observed relative error of a plan estimate.
    """

    name = "statistical"

    def __init__(
        self,
        config: Optional[StatisticalModelConfig] = None,
        statistics: Optional[Statistics] = None,
    ):
        """Initialize statistical model.

        Args:
            config: Model configuration (base costs, multipliers, defaults)
            statistics: Default statistics, merged under per-call statistics
        """
        super().__init__()
        self.config = config or StatisticalModelConfig()
        self.config.validate()
        default = CollectionStatistics(
            row_count=self.config.default_row_count,
            index_type=self.config.default_index_type,
            memory_type=self.config.default_memory_type,
        )
        self.statistics = Statistics(default=default).merged(as_statistics(statistics))
        self._weights: Dict[str, float] = dict(self.config.base_costs)
        self.logger = get_contextual_logger(__name__, {"model": self.name})
        self.logger.debug("Statistical cost model initialized")

    def get_weights(self) -> Dict[str, float]:
        """Return a snapshot of the current operation weights."""
        with self._lock:
            return dict(self._weights)

    def reset_weights(self) -> None:
        """Restore the configured base costs."""
        with self._lock:
            self._weights = dict(self.config.base_costs)
        self.logger.info("Weights reset to base costs")

    def estimate_query_cost(self, query: Any, context: Any = None) -> CostEstimate:
        context = as_context(context)
        parsed = parse_query(query)
        statistics = self._resolve_statistics(context)
        weights = self.get_weights()

        costs = self._estimate_costs(parsed.operations, statistics, weights)
        total_cost = ensure_finite(sum(costs.values()), "Statistical query estimate")

        self.logger.debug(f"Estimated query cost {total_cost} from {costs}")
        return CostEstimate(
            total_cost=total_cost,
            costs=costs,
            query=parsed,
            statistics=statistics,
        )

    def estimate_plan_cost(
        self, plan: Any, statistics: Any = None, context: Any = None
    ) -> CostEstimate:
        context = as_context(context)
        plan = self._coerce_plan(plan)
        merged = self.statistics.merged(self._coerce_statistics(statistics))
        weights = self.get_weights()

        node_costs = self._estimate_node_costs(plan.nodes, merged, weights)
        total_cost = 0.0
        for node_cost in node_costs.values():
            total_cost += node_cost.cost
        total_cost = ensure_finite(total_cost, "Statistical plan estimate")

        self.logger.debug(f"Estimated plan cost {total_cost} over {len(node_costs)} nodes")
        return CostEstimate(
            total_cost=total_cost,
            node_costs=node_costs,
            plan=plan,
            statistics=merged,
        )

    def update(self, plan: Any, actual_metrics: Any, context: Any = None) -> UpdateOutcome:
        """Scale every weight by the relative error of the plan estimate.

        ``weight = max(min_weight, weight + weight * total_error * learning_rate)``
        is applied to all weights, whichever operators the plan used.
        """
        context = as_context(context)
        try:
            metrics = as_metrics(actual_metrics)
            estimate = self.estimate_plan_cost(plan, context.statistics, context)
            report = compare_with_metrics(metrics, estimate)
        except (EstimationError, ValidationError, TypeError, ValueError, AttributeError) as e:
            self.logger.warning(f"Update failed: {e}")
            return UpdateOutcome.FAILED

        learning_rate = context.learning_rate
        if learning_rate is None:
            learning_rate = 0.1

        if context.anomaly_threshold is not None and report.total_error > context.anomaly_threshold:
            self.logger.warning(
                f"Anomalous estimate: relative error {report.total_error:.3f} "
                f"exceeds threshold {context.anomaly_threshold}"
            )

        with self._lock:
            for key, weight in self._weights.items():
                adjustment = weight * report.total_error * learning_rate
                self._weights[key] = max(self.config.min_weight, weight + adjustment)

        self.logger.info(f"Updated weights with error {report.total_error:.4f}")
        return UpdateOutcome.APPLIED

    def _resolve_statistics(self, context: EstimationContext) -> ResolvedStatistics:
        statistics = self.statistics.merged(context.statistics)
        collection = context.collection_name

        row_count = context.row_count
        if row_count is None:
            row_count = statistics.resolve(collection, "row_count")
        if row_count is None:
            row_count = self.config.default_row_count
        ensure_count(row_count, "row count")

        index_type = (
            context.index_type
            or statistics.resolve(collection, "index_type")
            or self.config.default_index_type
        )
        memory_type = (
            context.memory_type
            or statistics.resolve(collection, "memory_type")
            or self.config.default_memory_type
        )

        return ResolvedStatistics(
            row_count=row_count,
            row_count_type=row_count_type(row_count),
            index_type=index_type,
            memory_type=memory_type,
        )

    def _multiplier(self, table: Dict[str, float], key: str, kind: str) -> float:
        try:
            return table[key]
        except KeyError:
            raise EstimationError(f"Unknown {kind} type '{key}'") from None

    def _estimate_costs(
        self,
        operations: OperationSet,
        statistics: ResolvedStatistics,
        weights: Dict[str, float],
    ) -> Dict[str, float]:
        costs: Dict[str, float] = {}

        row = self._multiplier(self.config.row_multipliers, statistics.row_count_type, "row count")
        index = self._multiplier(self.config.index_multipliers, statistics.index_type, "index")
        memory = self._multiplier(self.config.memory_multipliers, statistics.memory_type, "memory")

        if operations.scan:
            costs["scan"] = weights.get("scan", 1.0) * row * index * memory

        if operations.filter:
            costs["filter"] = weights.get("filter", 1.0) * row * memory

        # Quadratic in the row tier, like a nested loop
        if operations.join:
            costs["join"] = weights.get("join", 1.0) * row * row * memory

        if operations.sort:
            costs["sort"] = (
                weights.get("sort", 1.0) * row * math.log2(max(2, statistics.row_count)) * memory
            )

        if operations.aggregate:
            costs["aggregate"] = weights.get("aggregate", 1.0) * row * memory

        if operations.project:
            costs["project"] = weights.get("project", 1.0) * row

        return costs

    def _estimate_node_costs(
        self,
        nodes: tuple,
        statistics: Statistics,
        weights: Dict[str, float],
    ) -> Dict[str, NodeCost]:
        """Cost each node, then splice its children's costs in under a prefixed key.

        Keys are ``node-{i}`` for the given nodes and
        ``{type}-{i}-{child key}`` for descendants. A repeated key
        overwrites the earlier entry.
        """
        node_costs: Dict[str, NodeCost] = {}

        for index, node in enumerate(nodes):
            node_costs[f"node-{index}"] = self._estimate_node_cost(node, statistics, weights)

            if node.children:
                child_costs = self._estimate_node_costs(node.children, statistics, weights)
                for child_key, child_cost in child_costs.items():
                    node_costs[f"{node.type}-{index}-{child_key}"] = child_cost

        return node_costs

    def _estimate_node_cost(
        self, node: PlanNode, statistics: Statistics, weights: Dict[str, float]
    ) -> NodeCost:
        row_count = node.row_count
        if row_count is None:
            row_count = statistics.resolve(node.collection, "row_count")
        if row_count is None:
            row_count = self.config.default_row_count
        ensure_count(row_count, f"row count for {node.type} node")
        tier = row_count_type(row_count)
        index_type = node.index_type or "none"
        memory_type = node.memory_type or "low"

        cost = (
            weights.get(node.type, 1.0)
            * self._multiplier(self.config.row_multipliers, tier, "row count")
            * self._multiplier(self.config.index_multipliers, index_type, "index")
            * self._multiplier(self.config.memory_multipliers, memory_type, "memory")
        )

        return NodeCost(
            type=node.type,
            cost=cost,
            row_count=row_count,
            row_count_type=tier,
            index_type=index_type,
            memory_type=memory_type,
        )
