"""Projection descriptors, analysis and pushdown."""

from .descriptor import (
    FieldSpec,
    ProjectionDescriptor,
    create_projection_descriptor,
    transform_projection,
)
from .analysis import (
    FieldAnalysis,
    ComplexityAnalysis,
    OptimizationOpportunity,
    ProjectionAnalysis,
    ProjectionCost,
    analyze_projection,
    estimate_projection_cost,
    complexity_level,
)
from .optimizer import (
    ProjectionStrategy,
    ProjectionOptimizer,
    OptimizationRecord,
    verify_projection,
)
from .pushdown import (
    PushdownContext,
    PushdownPlan,
    PushdownStep,
    PushdownResult,
    PushdownStrategy,
    field_priority,
    is_id_field,
)
from .lazy import LazyLoadingStrategy

__all__ = [
    "FieldSpec",
    "ProjectionDescriptor",
    "create_projection_descriptor",
    "transform_projection",
    "FieldAnalysis",
    "ComplexityAnalysis",
    "OptimizationOpportunity",
    "ProjectionAnalysis",
    "ProjectionCost",
    "analyze_projection",
    "estimate_projection_cost",
    "complexity_level",
    "ProjectionStrategy",
    "ProjectionOptimizer",
    "OptimizationRecord",
    "verify_projection",
    "PushdownContext",
    "PushdownPlan",
    "PushdownStep",
    "PushdownResult",
    "PushdownStrategy",
    "field_priority",
    "is_id_field",
    "LazyLoadingStrategy",
]
