"""Projection analysis: field breakdown, complexity and cost."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from .descriptor import ProjectionDescriptor, create_projection_descriptor

# Upper bounds (exclusive) of the complexity levels
COMPLEXITY_LEVELS = (
    (5, "simple"),
    (20, "moderate"),
    (50, "complex"),
)


@dataclass
class FieldAnalysis:
    """Top-level fields of a projection, grouped by role."""

    all_fields: List[str] = field(default_factory=list)
    included_fields: List[str] = field(default_factory=list)
    excluded_fields: List[str] = field(default_factory=list)
    nested_fields: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.all_fields)

    @property
    def included_count(self) -> int:
        return len(self.included_fields)

    @property
    def excluded_count(self) -> int:
        return len(self.excluded_fields)

    @property
    def nested_count(self) -> int:
        return len(self.nested_fields)


@dataclass
class ComplexityAnalysis:
    """Size and nesting of a projection.

    ``complexity_score = total_field_count * (1 + nested_depth * 0.5)``
    """

    field_count: int
    nested_field_count: int
    nested_depth: int
    total_field_count: int
    complexity_score: float
    complexity_level: str


@dataclass
class OptimizationOpportunity:
    type: str
    description: str
    impact: str
    fields: List[str] = field(default_factory=list)
    complexity: Optional[ComplexityAnalysis] = None


@dataclass
class ProjectionAnalysis:
    type: str
    fields: FieldAnalysis
    complexity: ComplexityAnalysis
    opportunities: List[OptimizationOpportunity] = field(default_factory=list)


@dataclass
class ProjectionCost:
    """Estimated cost of materializing a projection."""

    retrieval_cost: float
    processing_cost: float
    memory_cost: float
    total_cost: float
    analysis: ProjectionAnalysis


def complexity_level(score: float) -> str:
    for upper, name in COMPLEXITY_LEVELS:
        if score < upper:
            return name
    return "very_complex"


def analyze_fields(descriptor: ProjectionDescriptor) -> FieldAnalysis:
    return FieldAnalysis(
        all_fields=descriptor.field_names(),
        included_fields=descriptor.included_fields(),
        excluded_fields=descriptor.excluded_fields(),
        nested_fields=descriptor.nested_fields(),
    )


def analyze_complexity(descriptor: ProjectionDescriptor) -> ComplexityAnalysis:
    """Score a projection by its total field count and nesting depth."""
    field_count = len(descriptor.fields)
    nested_depth = 0
    nested_field_count = 0
    total_field_count = field_count

    for spec in descriptor.fields.values():
        if spec.nested is None:
            continue
        nested = analyze_complexity(spec.nested)
        nested_depth = max(nested_depth, 1 + nested.nested_depth)
        nested_field_count += 1
        total_field_count += nested.total_field_count

    score = total_field_count * (1 + nested_depth * 0.5)
    return ComplexityAnalysis(
        field_count=field_count,
        nested_field_count=nested_field_count,
        nested_depth=nested_depth,
        total_field_count=total_field_count,
        complexity_score=score,
        complexity_level=complexity_level(score),
    )


def identify_opportunities(
    analysis: ProjectionAnalysis,
    supports_projection_pushdown: bool = False,
    supports_lazy_loading: bool = False,
) -> List[OptimizationOpportunity]:
    opportunities = []
    fields = analysis.fields

    if fields.included_count > 10:
        opportunities.append(OptimizationOpportunity(
            type="field_selection",
            description="Projection includes many fields, consider narrowing the selection",
            impact="medium",
            fields=list(fields.included_fields),
        ))

    if fields.nested_count > 0:
        opportunities.append(OptimizationOpportunity(
            type="nested_fields",
            description="Projection includes nested fields, consider flattening them",
            impact="medium",
            fields=list(fields.nested_fields),
        ))

    if supports_projection_pushdown and analysis.complexity.complexity_score > 10:
        opportunities.append(OptimizationOpportunity(
            type="pushdown",
            description="Projection is complex, consider pushing it down to the data source",
            impact="high",
            complexity=analysis.complexity,
        ))

    if supports_lazy_loading and fields.included_count > 5:
        opportunities.append(OptimizationOpportunity(
            type="lazy_loading",
            description="Projection includes many fields, consider loading them lazily",
            impact="medium",
            fields=list(fields.included_fields),
        ))

    return opportunities


def analyze_projection(
    projection: Any,
    supports_projection_pushdown: bool = False,
    supports_lazy_loading: bool = False,
) -> ProjectionAnalysis:
    """Analyze a projection's fields, complexity and optimization opportunities.

    Args:
        projection: Descriptor or anything ``create_projection_descriptor`` accepts
        supports_projection_pushdown: Whether the caller can push projections down
        supports_lazy_loading: Whether the caller can load fields lazily

    Returns:
        Projection analysis
    """
    descriptor = create_projection_descriptor(projection)
    analysis = ProjectionAnalysis(
        type=descriptor.type,
        fields=analyze_fields(descriptor),
        complexity=analyze_complexity(descriptor),
    )
    analysis.opportunities = identify_opportunities(
        analysis, supports_projection_pushdown, supports_lazy_loading
    )
    return analysis


def estimate_projection_cost(
    projection: Any,
    base_field_cost: float = 1.0,
    base_processing_cost: float = 0.5,
    base_memory_cost: float = 0.2,
    data_source_cost_factor: Optional[float] = None,
) -> ProjectionCost:
    """Estimate retrieval, processing and memory cost of a projection.

    Nested fields cost 1.5x a plain field to retrieve; nesting depth adds to
    processing and memory cost.
    """
    analysis = analyze_projection(projection)
    fields = analysis.fields
    complexity = analysis.complexity

    retrieval_cost = fields.included_count * base_field_cost
    retrieval_cost += fields.nested_count * base_field_cost * 1.5
    if data_source_cost_factor:
        retrieval_cost *= data_source_cost_factor

    processing_cost = complexity.complexity_score * base_processing_cost
    processing_cost += complexity.nested_depth * base_processing_cost * 2

    memory_cost = complexity.total_field_count * base_memory_cost
    memory_cost += complexity.nested_depth * base_memory_cost * 1.5

    return ProjectionCost(
        retrieval_cost=retrieval_cost,
        processing_cost=processing_cost,
        memory_cost=memory_cost,
        total_cost=retrieval_cost + processing_cost + memory_cost,
        analysis=analysis,
    )
