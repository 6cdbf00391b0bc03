"""Query and plan representations consumed by the cost models."""

from .operations import (
    OperationSet,
    ParsedQuery,
    parse_query,
    parse_sql,
    OPERATION_KEYS,
)
from .statistics import Statistics, as_statistics, DEFAULT_KEY
from .nodes import (
    PlanNode,
    ExecutionPlan,
    as_plan,
)

__all__ = [
    "OperationSet",
    "ParsedQuery",
    "parse_query",
    "parse_sql",
    "OPERATION_KEYS",
    "PlanNode",
    "ExecutionPlan",
    "as_plan",
    "Statistics",
    "as_statistics",
    "DEFAULT_KEY",
]
