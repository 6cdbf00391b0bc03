"""Cost model contract and the value types shared by all cost models."""

import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace, asdict
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import EstimationError, ValidationError
from ..plan.nodes import ExecutionPlan, as_plan
from ..plan.operations import ParsedQuery
from ..plan.statistics import Statistics, as_statistics


class UpdateOutcome(Enum):
    """Result of feeding observed metrics back into a cost model."""

    APPLIED = "applied"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"
    DISABLED = "disabled"


# camelCase spellings accepted by EstimationContext.from_dict
_CONTEXT_ALIASES = {
    "collectionName": "collection_name",
    "rowCount": "row_count",
    "indexType": "index_type",
    "memoryType": "memory_type",
    "availableMemory": "available_memory",
    "totalMemory": "total_memory",
    "rowSize": "row_size",
    "learningRate": "learning_rate",
    "anomalyThreshold": "anomaly_threshold",
}


@dataclass(frozen=True)
class EstimationContext:
    """Caller-supplied hints for a single estimation or update call."""

    collection_name: Optional[str] = None
    row_count: Optional[int] = None
    index_type: Optional[str] = None
    memory_type: Optional[str] = None
    available_memory: Optional[int] = None
    total_memory: Optional[int] = None
    row_size: Optional[int] = None
    learning_rate: Optional[float] = None
    anomaly_threshold: Optional[float] = None
    statistics: Optional[Statistics] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "EstimationContext":
        """Build a context from snake_case or camelCase keys.

        Raises:
            ValidationError: If an unknown key is present
        """
        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _CONTEXT_ALIASES.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown estimation context key '{key}'")
            values[name] = value
        if "statistics" in values:
            values["statistics"] = as_statistics(values["statistics"])
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "EstimationContext":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            if isinstance(value, Statistics):
                value = value.to_dict()
            result[item.name] = value
        return result


def as_context(context: Any) -> EstimationContext:
    """Coerce ``None``, a mapping or a context into an ``EstimationContext``."""
    if context is None:
        return EstimationContext()
    if isinstance(context, EstimationContext):
        return context
    if isinstance(context, Mapping):
        return EstimationContext.from_dict(context)
    raise ValidationError(f"Unsupported context type: {type(context).__name__}")


@dataclass
class NodeCost:
    """Cost attributed to one plan node."""

    type: str
    cost: float
    row_count: Optional[int] = None
    row_count_type: Optional[str] = None
    index_type: Optional[str] = None
    memory_type: Optional[str] = None
    memory_usage_level: Optional[str] = None
    memory_cost_weight: Optional[float] = None
    memory_pressure_factor: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for key, value in asdict(self).items():
            if value is not None:
                result[key] = value
        return result


@dataclass
class MemoryUsageEstimate:
    """Memory a query is expected to need."""

    base_memory_usage: int
    operation_memory_usage: Dict[str, int]
    total_memory_usage: int
    memory_usage_level: str


@dataclass
class NodeMemoryUsage:
    """Memory one plan node is expected to need."""

    type: str
    row_count: int
    row_size: int
    memory_usage: int
    operation_memory_usage: int
    total_memory_usage: int
    memory_usage_level: str


@dataclass
class PlanMemoryUsage:
    """Memory a whole plan is expected to need, per node and in total."""

    total: int
    nodes: Dict[str, NodeMemoryUsage]


@dataclass
class MemoryPressure:
    """How much of the machine's memory is already in use."""

    available_memory: int
    total_memory: int
    memory_pressure_ratio: float
    memory_pressure_level: str
    memory_pressure_factor: float


@dataclass
class CostEstimate:
    """Cost of a query (``costs``) or a plan (``node_costs``).

    ``total_cost`` is always the sum of the component costs.
    """

    total_cost: float
    costs: Dict[str, float] = field(default_factory=dict)
    node_costs: Dict[str, NodeCost] = field(default_factory=dict)
    query: Optional[ParsedQuery] = None
    plan: Optional[ExecutionPlan] = None
    statistics: Any = None
    memory_usage: Any = None
    memory_pressure: Optional[MemoryPressure] = None

    def component_costs(self) -> Dict[str, float]:
        """Flat name -> cost view over either kind of estimate."""
        if self.node_costs:
            return {key: node.cost for key, node in self.node_costs.items()}
        return dict(self.costs)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"total_cost": self.total_cost}
        if self.query is not None:
            result["costs"] = dict(self.costs)
            result["query"] = self.query.to_dict()
        if self.plan is not None:
            result["node_costs"] = {
                key: node.to_dict() for key, node in self.node_costs.items()
            }
        if isinstance(self.statistics, Statistics):
            result["statistics"] = self.statistics.to_dict()
        elif self.statistics is not None:
            result["statistics"] = asdict(self.statistics)
        if self.memory_usage is not None:
            result["memory_usage"] = asdict(self.memory_usage)
        if self.memory_pressure is not None:
            result["memory_pressure"] = asdict(self.memory_pressure)
        return result


@dataclass
class ExecutionMetrics:
    """Metrics observed while actually running a plan."""

    total_cost: float = 0.0
    node_costs: Dict[str, float] = field(default_factory=dict)
    operation_memory: Dict[str, float] = field(default_factory=dict)
    collection_memory: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> "ExecutionMetrics":
        """Accept flat snake_case keys or the nested camelCase report shape.

        Nested shape::

            {"totalCost": 12.0,
             "nodeCosts": {"node-0": {"cost": 4.0}},
             "memoryUsage": {"operations": {"scan": 1024},
                             "collections": {"users": 2048}}}
        """
        total_cost = data.get("total_cost", data.get("totalCost", 0.0))

        node_costs = {}
        raw_nodes = data.get("node_costs", data.get("nodeCosts")) or {}
        for key, value in raw_nodes.items():
            if isinstance(value, Mapping):
                value = value.get("cost")
            node_costs[key] = value

        memory = data.get("memoryUsage") or {}
        operation_memory = data.get("operation_memory", memory.get("operations")) or {}
        collection_memory = data.get("collection_memory", memory.get("collections")) or {}

        return cls(
            total_cost=total_cost,
            node_costs=dict(node_costs),
            operation_memory=dict(operation_memory),
            collection_memory=dict(collection_memory),
        )


def as_metrics(metrics: Any) -> ExecutionMetrics:
    if isinstance(metrics, ExecutionMetrics):
        return metrics
    if isinstance(metrics, Mapping):
        return ExecutionMetrics.from_dict(metrics)
    raise ValidationError(f"Unsupported metrics type: {type(metrics).__name__}")


def relative_error(actual: float, estimated: float) -> float:
    """``|actual - estimated| / max(1, actual)``."""
    return abs(actual - estimated) / max(1.0, actual)


@dataclass
class ErrorReport:
    """Relative errors between an estimate and observed metrics."""

    total_error: float
    node_errors: Dict[str, float] = field(default_factory=dict)


def compare_with_metrics(actual: ExecutionMetrics, estimate: CostEstimate) -> ErrorReport:
    """Compute the total error and, for keys both sides share, per-node errors."""
    total_error = relative_error(actual.total_cost, estimate.total_cost)

    node_errors = {}
    estimated_nodes = estimate.component_costs()
    for key, actual_cost in actual.node_costs.items():
        if key in estimated_nodes and actual_cost is not None:
            node_errors[key] = relative_error(actual_cost, estimated_nodes[key])

    return ErrorReport(total_error=total_error, node_errors=node_errors)


def ensure_finite(total_cost: float, what: str) -> float:
    """Reject NaN, infinite or negative totals.

    Raises:
        EstimationError: If the total is not a finite non-negative number
    """
    if not math.isfinite(total_cost) or total_cost < 0:
        raise EstimationError(f"{what} produced an invalid total cost: {total_cost}")
    return total_cost


def ensure_count(value: Any, what: str) -> Any:
    """Reject row counts, row sizes and byte counts that are not non-negative numbers.

    Raises:
        EstimationError: If the value is a bool, not a number, NaN, infinite or negative
    """
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value < 0
    ):
        raise EstimationError(f"Invalid {what}: {value!r}")
    return value


class CostModel(ABC):
    """Base class for cost models.

    Estimation never mutates model state. ``update`` may mutate it and must
    hold ``self._lock`` while doing so.
    """

    name = "base"

    def __init__(self):
        self._lock = threading.Lock()

    @abstractmethod
    def estimate_query_cost(self, query: Any, context: Any = None) -> CostEstimate:
        """Estimate the cost of a query.

        Args:
            query: Query mapping, SQL text or parsed query
            context: ``EstimationContext`` or mapping of hints

        Returns:
            Cost estimate with per-operation ``costs``

        Raises:
            EstimationError: If the estimate cannot be computed
        """
        pass

    @abstractmethod
    def estimate_plan_cost(
        self, plan: Any, statistics: Any = None, context: Any = None
    ) -> CostEstimate:
        """Estimate the cost of an execution plan.

        Args:
            plan: ``ExecutionPlan``, node, list of nodes or plan mapping
            statistics: ``Statistics`` or mapping overriding the model defaults
            context: ``EstimationContext`` or mapping of hints

        Returns:
            Cost estimate with per-node ``node_costs``

        Raises:
            EstimationError: If the estimate cannot be computed
        """
        pass

    def update(self, plan: Any, actual_metrics: Any, context: Any = None) -> UpdateOutcome:
        """Feed observed metrics back into the model. Unsupported by default."""
        return UpdateOutcome.UNSUPPORTED

    @property
    def supports_update(self) -> bool:
        return type(self).update is not CostModel.update

    def _coerce_plan(self, plan: Any) -> ExecutionPlan:
        try:
            return as_plan(plan)
        except ValidationError as e:
            raise EstimationError(f"Invalid plan: {e}") from e

    def _coerce_statistics(self, statistics: Any) -> Optional[Statistics]:
        try:
            return as_statistics(statistics)
        except (TypeError, AttributeError, ValueError) as e:
            raise EstimationError(f"Invalid statistics: {e}") from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
