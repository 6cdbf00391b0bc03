"""Projection pushdown strategy.

Rewrites a projection into the shape a data source can evaluate itself:
nested specs the source cannot represent are collapsed, fields with an
unsupported polarity are dropped and oversized projections are cut down to
their highest-priority fields. Failures never escape ``apply``; the caller
gets the original projection back.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional

from ..config.config import PushdownConfig
from ..datasources.base import ProjectionCapabilities
from ..errors import PushdownError
from ..models.base import CostEstimate
from ..optimizer.engine import CostModelEngine
from ..utils.logging import get_logger
from .analysis import ProjectionAnalysis, analyze_projection
from .descriptor import (
    FieldSpec,
    ProjectionDescriptor,
    create_projection_descriptor,
    transform_projection,
)
from .optimizer import ProjectionStrategy

logger = get_logger(__name__)

# (priority, name fragments); a field gains every tier it matches
FIELD_PRIORITY_TIERS = (
    (800, ("name", "title")),
    (700, ("status", "type")),
    (600, ("date", "time")),
    (500, ("count", "total")),
    (300, ("description", "content")),
    (100, ("image", "file")),
)

ID_PRIORITY = 1000


def is_id_field(name: str) -> bool:
    """``id``, ``_id``, ``*Id`` or ``*_id``."""
    lowered = name.lower()
    return lowered in ("id", "_id") or name.endswith("Id") or lowered.endswith("_id")


def field_priority(name: str, prioritize_ids: bool = True) -> int:
    """Additive priority of a field name; higher fields survive field limiting."""
    priority = ID_PRIORITY if prioritize_ids and is_id_field(name) else 0
    lowered = name.lower()
    for tier, fragments in FIELD_PRIORITY_TIERS:
        if any(fragment in lowered for fragment in fragments):
            priority += tier
    return priority


@dataclass
class PushdownContext:
    """What projection strategies know about the caller and the target source."""

    supports_projection_pushdown: bool = False
    data_source: Any = None
    data_source_capabilities: Optional[ProjectionCapabilities] = None
    query: Any = None
    estimation_context: Any = None
    supports_lazy_loading: bool = False
    field_statistics: Optional[Mapping] = None  # field name -> access statistics

    @classmethod
    def from_dict(cls, data: Mapping) -> "PushdownContext":
        """Build a context from snake_case or camelCase keys."""
        capabilities = data.get(
            "data_source_capabilities", data.get("dataSourceCapabilities")
        )
        if isinstance(capabilities, Mapping):
            capabilities = ProjectionCapabilities.from_dict(capabilities)

        return cls(
            supports_projection_pushdown=bool(data.get(
                "supports_projection_pushdown", data.get("supportsProjectionPushdown", False)
            )),
            data_source=data.get("data_source", data.get("dataSource")),
            data_source_capabilities=capabilities,
            query=data.get("query"),
            estimation_context=data.get("estimation_context", data.get("estimationContext")),
            supports_lazy_loading=bool(data.get(
                "supports_lazy_loading", data.get("supportsLazyLoading", False)
            )),
            field_statistics=data.get("field_statistics", data.get("fieldStatistics")),
        )


def as_pushdown_context(context: Any) -> PushdownContext:
    if context is None:
        return PushdownContext()
    if isinstance(context, PushdownContext):
        return context
    if isinstance(context, Mapping):
        return PushdownContext.from_dict(context)
    raise PushdownError(f"Unsupported pushdown context type: {type(context).__name__}")


@dataclass
class PushdownStep:
    type: str
    description: str
    action: Callable[[ProjectionDescriptor], ProjectionDescriptor]


@dataclass
class PushdownPlan:
    """Ordered rewrite steps for one projection and data source."""

    projection: ProjectionDescriptor
    analysis: ProjectionAnalysis
    capabilities: ProjectionCapabilities
    data_source: Any = None
    steps: List[PushdownStep] = field(default_factory=list)


@dataclass
class PushdownResult:
    """Outcome of a pushdown attempt.

    ``projection`` is always usable: the rewrite on success, the original
    otherwise. ``error`` is set when the attempt failed rather than being
    skipped as not worthwhile.
    """

    success: bool
    projection: ProjectionDescriptor
    error: Optional[PushdownError] = None
    reason: Optional[str] = None
    plan: Optional[PushdownPlan] = None
    estimate: Optional[CostEstimate] = None


class PushdownStrategy(ProjectionStrategy):
    """Push projections down to the data source."""

    name = "pushdown"

    def __init__(
        self,
        config: Optional[PushdownConfig] = None,
        engine: Optional[CostModelEngine] = None,
    ):
        """Initialize pushdown strategy.

        Args:
            config: Pushdown configuration
            engine: Cost engine consulted when the context carries a query
        """
        self.config = config or PushdownConfig()
        self.engine = engine

    def apply(self, projection: Any, context: Any = None) -> ProjectionDescriptor:
        """Return the pushed-down projection, or the original if pushdown does not happen."""
        return self.try_apply(projection, context).projection

    def try_apply(self, projection: Any, context: Any = None) -> PushdownResult:
        descriptor = create_projection_descriptor(projection)

        try:
            context = as_pushdown_context(context)
        except PushdownError as e:
            return self._failed(descriptor, e)

        analysis = analyze_projection(
            descriptor,
            supports_projection_pushdown=context.supports_projection_pushdown,
            supports_lazy_loading=context.supports_lazy_loading,
        )

        reason = self.unsupported_reason(analysis, context)
        if reason is not None:
            logger.debug(f"Projection pushdown skipped: {reason}")
            return PushdownResult(success=False, projection=descriptor, reason=reason)

        estimate = None
        if self.engine is not None and context.query is not None:
            try:
                estimate = self.engine.estimate_query_cost(
                    context.query, context.estimation_context, self.config.cost_model
                )
            except Exception as e:
                error = PushdownError(f"Cost estimation failed: {e}")
                error.__cause__ = e
                return self._failed(descriptor, error)

            if estimate.total_cost < self.config.cost_threshold:
                reason = (
                    f"estimated cost {estimate.total_cost} is below threshold "
                    f"{self.config.cost_threshold}"
                )
                logger.debug(f"Projection pushdown skipped: {reason}")
                return PushdownResult(
                    success=False, projection=descriptor, reason=reason, estimate=estimate
                )

        try:
            plan = self.create_plan(descriptor, analysis, context)
            optimized = self.execute_plan(plan)
        except PushdownError as e:
            return self._failed(descriptor, e, estimate=estimate)
        except Exception as e:
            error = PushdownError(f"Error executing pushdown plan: {e}")
            error.__cause__ = e
            return self._failed(descriptor, error, estimate=estimate)

        logger.debug(
            f"Pushed down projection: {len(descriptor)} -> {len(optimized)} fields"
        )
        return PushdownResult(
            success=True, projection=optimized, plan=plan, estimate=estimate
        )

    def unsupported_reason(
        self, analysis: ProjectionAnalysis, context: PushdownContext
    ) -> Optional[str]:
        """Why pushdown does not apply, or None if it does."""
        if not context.supports_projection_pushdown:
            return "projection pushdown not supported by caller"
        if context.data_source is None:
            return "no data source"
        score = analysis.complexity.complexity_score
        if score < self.config.min_complexity_score:
            return f"complexity score {score} below {self.config.min_complexity_score}"
        return None

    def get_capabilities(self, context: PushdownContext) -> ProjectionCapabilities:
        if context.data_source_capabilities is not None:
            return context.data_source_capabilities
        get_capabilities = getattr(context.data_source, "get_capabilities", None)
        if get_capabilities is not None:
            return get_capabilities()
        return ProjectionCapabilities()

    def create_plan(
        self,
        projection: ProjectionDescriptor,
        analysis: ProjectionAnalysis,
        context: PushdownContext,
    ) -> PushdownPlan:
        """Build the prepare, convert and optimize steps.

        Raises:
            PushdownError: If the data source cannot evaluate projections
        """
        capabilities = self.get_capabilities(context)
        if not capabilities.supports_projection:
            raise PushdownError("Data source does not support projection")

        plan = PushdownPlan(
            projection=projection,
            analysis=analysis,
            capabilities=capabilities,
            data_source=context.data_source,
        )
        plan.steps.append(PushdownStep(
            type="prepare",
            description="Collapse nested projections the data source cannot represent",
            action=lambda proj: self.prepare_projection(proj, capabilities),
        ))
        plan.steps.append(PushdownStep(
            type="convert",
            description="Convert projection to data source format",
            action=lambda proj: self.convert_projection(proj, capabilities),
        ))
        plan.steps.append(PushdownStep(
            type="optimize",
            description="Limit projection to the fields the data source accepts",
            action=lambda proj: self.optimize_for_data_source(proj, capabilities),
        ))
        return plan

    def execute_plan(self, plan: PushdownPlan) -> ProjectionDescriptor:
        projection = plan.projection
        for step in plan.steps:
            projection = step.action(projection)
        return projection

    def prepare_projection(
        self,
        projection: ProjectionDescriptor,
        capabilities: ProjectionCapabilities,
        depth: int = 1,
    ) -> ProjectionDescriptor:
        """Collapse nested specs at depth >= ``max_projection_depth`` to a bare include."""

        def collapse(name: str, spec: FieldSpec) -> FieldSpec:
            if spec.nested is None:
                return spec
            if not capabilities.supports_nested or depth >= capabilities.max_projection_depth:
                return replace(spec, nested=None)
            return replace(
                spec, nested=self.prepare_projection(spec.nested, capabilities, depth + 1)
            )

        return transform_projection(projection, collapse)

    def convert_projection(
        self, projection: ProjectionDescriptor, capabilities: ProjectionCapabilities
    ) -> ProjectionDescriptor:
        """Drop fields whose polarity the data source cannot express."""

        def convert(name: str, spec: FieldSpec) -> Optional[FieldSpec]:
            if spec.include and not capabilities.supports_inclusion:
                return None
            if not spec.include and not capabilities.supports_exclusion:
                return None
            nested = None
            if spec.nested is not None and capabilities.supports_nested:
                nested = self.convert_projection(spec.nested, capabilities)
            return replace(spec, nested=nested)

        return transform_projection(projection, convert, {"converted": True})

    def optimize_for_data_source(
        self, projection: ProjectionDescriptor, capabilities: ProjectionCapabilities
    ) -> ProjectionDescriptor:
        """Keep the ``max_projection_fields`` highest-priority fields.

        Ties keep their original order. A limit of None means unlimited.

        Raises:
            PushdownError: If the data source accepts no fields at all
        """
        limit = capabilities.max_projection_fields
        if limit is None:
            return projection
        if limit < 1:
            raise PushdownError(f"Data source accepts no projected fields (limit {limit})")
        if len(projection.fields) <= limit:
            return projection

        ranked = sorted(projection.fields, key=field_priority, reverse=True)
        kept = set(ranked[:limit])

        def limit_fields(name: str, spec: FieldSpec) -> Optional[FieldSpec]:
            return spec if name in kept else None

        logger.debug(f"Limited projection from {len(projection.fields)} to {limit} fields")
        return transform_projection(projection, limit_fields, {"limited_fields": True})

    def _failed(
        self,
        projection: ProjectionDescriptor,
        error: PushdownError,
        estimate: Optional[CostEstimate] = None,
    ) -> PushdownResult:
        logger.warning(f"Projection pushdown failed: {error}")
        return PushdownResult(
            success=False,
            projection=projection,
            error=error,
            reason=str(error),
            estimate=estimate,
        )
