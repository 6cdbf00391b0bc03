"""Projection optimizer that runs a sequence of projection strategies."""

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..utils.logging import get_logger
from .analysis import ProjectionAnalysis, analyze_projection
from .descriptor import ProjectionDescriptor, create_projection_descriptor

logger = get_logger(__name__)


class ProjectionStrategy(ABC):
    """Base class for projection rewrite strategies."""

    name = "strategy"

    @abstractmethod
    def apply(self, projection: Any, context: Any = None) -> ProjectionDescriptor:
        """Apply strategy to a projection.

        Args:
            projection: Projection to rewrite
            context: Strategy-specific optimization context

        Returns:
            Rewritten descriptor, or the original if nothing changed
        """
        pass


@dataclass
class OptimizationRecord:
    """One run of the projection optimizer."""

    original: ProjectionDescriptor
    optimized: ProjectionDescriptor
    analysis: ProjectionAnalysis
    applied: List[str] = field(default_factory=list)
    rolled_back: List[str] = field(default_factory=list)
    context: Any = None
    timestamp: float = field(default_factory=time.time)


def verify_projection(original: ProjectionDescriptor, transformed: Any) -> Optional[str]:
    """Why ``transformed`` is not a safe rewrite of ``original``, or None if it is.

    A rewrite may only narrow the projection. Adding a field or flipping one
    between included and excluded fails, as does dropping every included field.
    """
    if not isinstance(transformed, ProjectionDescriptor):
        return f"result is a {type(transformed).__name__}, not a projection descriptor"

    for name, spec in transformed.fields.items():
        if name not in original.fields:
            return f"field '{name}' was added"
        if spec.include != original.fields[name].include:
            return f"field '{name}' changed between included and excluded"

    if original.included_fields() and not transformed.included_fields():
        return "every included field was dropped"
    return None


class ProjectionOptimizer:
    """Projection optimizer."""

    def __init__(
        self,
        strategies: Optional[List[ProjectionStrategy]] = None,
        history_size: int = 100,
        verify: bool = True,
    ):
        """Initialize optimizer.

        Args:
            strategies: Strategies to run, in order
            history_size: Number of optimization records to keep
            verify: Roll back strategy results that fail ``verify_projection``
        """
        self.strategies: List[ProjectionStrategy] = list(strategies or [])
        self.verify = verify
        self._history: deque = deque(maxlen=history_size)

    def add_strategy(self, strategy: ProjectionStrategy) -> None:
        """Add a projection strategy.

        Args:
            strategy: Strategy to run after the ones already registered
        """
        self.strategies.append(strategy)

    def optimize(self, projection: Any, context: Any = None) -> ProjectionDescriptor:
        """Run every strategy in order, feeding each the previous result.

        A strategy that raises is skipped. With verification on, a result that
        fails ``verify_projection`` is rolled back to the previous descriptor.
        """
        descriptor = create_projection_descriptor(projection)
        analysis = analyze_projection(
            descriptor,
            supports_projection_pushdown=bool(
                getattr(context, "supports_projection_pushdown", False)
            ),
            supports_lazy_loading=bool(getattr(context, "supports_lazy_loading", False)),
        )

        optimized = descriptor
        applied = []
        rolled_back = []
        for strategy in self.strategies:
            try:
                result = strategy.apply(optimized, context)
            except Exception as e:
                logger.warning(f"Projection strategy '{strategy.name}' failed: {e}")
                continue

            problem = verify_projection(optimized, result) if self.verify else None
            if problem is not None:
                logger.warning(
                    f"Rolled back projection strategy '{strategy.name}': {problem}"
                )
                rolled_back.append(strategy.name)
                continue

            if result != optimized:
                applied.append(strategy.name)
                logger.debug(f"Applied projection strategy '{strategy.name}'")
            optimized = result

        self._history.append(OptimizationRecord(
            original=descriptor,
            optimized=optimized,
            analysis=analysis,
            applied=applied,
            rolled_back=rolled_back,
            context=context,
        ))
        return optimized

    def get_history(self) -> List[OptimizationRecord]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()
