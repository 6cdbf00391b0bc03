"""Lazy loading strategy.

Keeps the ``eager_load_limit`` highest-priority included fields of a wide
projection and marks the rest lazy, so they are only fetched on first access.
"""

from collections.abc import Mapping
from dataclasses import replace
from typing import Any, List, Optional

from ..config.config import LazyLoadingConfig
from ..utils.logging import get_logger
from .descriptor import (
    FieldSpec,
    ProjectionDescriptor,
    create_projection_descriptor,
    transform_projection,
)
from .optimizer import ProjectionStrategy
from .pushdown import as_pushdown_context, field_priority

logger = get_logger(__name__)


def _stat(stats: Mapping, name: str, alias: str) -> Any:
    return stats.get(name, stats.get(alias))


class LazyLoadingStrategy(ProjectionStrategy):
    """Defer loading of low-priority fields."""

    name = "lazy_loading"

    def __init__(self, config: Optional[LazyLoadingConfig] = None):
        """Initialize lazy loading strategy.

        Args:
            config: Eager load limit and prioritization switches
        """
        self.config = config or LazyLoadingConfig()
        self.config.validate()

    def apply(self, projection: Any, context: Any = None) -> ProjectionDescriptor:
        descriptor = create_projection_descriptor(projection)
        context = as_pushdown_context(context)
        if not context.supports_lazy_loading:
            return descriptor

        limit = self.config.eager_load_limit
        included = descriptor.included_fields()
        if len(included) <= limit:
            return descriptor

        ranked = self.fields_by_priority(included, context.field_statistics)
        eager_fields = ranked[:limit]
        lazy_fields = ranked[limit:]
        deferred = set(lazy_fields)

        def mark_lazy(name: str, spec: FieldSpec) -> FieldSpec:
            if name in deferred:
                return replace(spec, lazy=True)
            return spec

        logger.debug(f"Deferring {len(lazy_fields)} of {len(included)} fields")
        return transform_projection(descriptor, mark_lazy, {
            "lazy_loading": {
                "enabled": True,
                "eager_fields": eager_fields,
                "lazy_fields": lazy_fields,
                "eager_load_limit": limit,
            }
        })

    def fields_by_priority(
        self, fields: List[str], field_statistics: Optional[Mapping] = None
    ) -> List[str]:
        """Highest priority first; ties keep their original order."""
        return sorted(
            fields,
            key=lambda name: self.field_priority(name, field_statistics),
            reverse=True,
        )

    def field_priority(self, name: str, field_statistics: Optional[Mapping] = None) -> float:
        """Name-based priority plus access frequency, small size and indexing."""
        priority = float(field_priority(name, prioritize_ids=self.config.prioritize_id_fields))

        if not (self.config.use_field_statistics and field_statistics):
            return priority

        stats = field_statistics.get(name) or {}
        frequency = _stat(stats, "access_frequency", "accessFrequency")
        if frequency:
            priority += frequency * 10
        average_size = _stat(stats, "average_size", "averageSize")
        if average_size:
            priority += 1000 / max(1, average_size)
        if stats.get("indexed"):
            priority += 500
        return priority
