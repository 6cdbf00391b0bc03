"""Cost model registry and orchestration."""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config.config import Config, EngineConfig
from ..errors import NotFoundError, ValidationError
from ..models.base import (
    CostModel,
    CostEstimate,
    EstimationContext,
    UpdateOutcome,
    as_context,
)
from ..models.memory_aware import MemoryAwareModel
from ..models.statistical import StatisticalModel
from ..plan.statistics import Statistics, as_statistics
from ..utils.logging import get_logger

logger = get_logger(__name__)

EVENTS = (
    "model-registered",
    "cost-estimated",
    "plan-cost-estimated",
    "model-updated",
    "models-compared",
    "history-cleared",
    "error",
)

Listener = Callable[[Dict[str, Any]], None]


@dataclass
class HistoryEntry:
    """One estimation recorded by the engine."""

    model_name: str
    estimate: CostEstimate
    context: EstimationContext
    query: Any = None
    plan: Any = None
    statistics: Optional[Statistics] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ModelComparison:
    """Estimate of one model in a comparison."""

    model_name: str
    estimate: CostEstimate
    total_cost: float


class CostModelEngine:
    """Registry of named cost models.

    Dispatches estimation to a model, records every estimate in a bounded
    history and feeds observed metrics back to models that learn.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        statistics: Optional[Statistics] = None,
    ):
        """Initialize engine.

        Args:
            config: Engine configuration
            statistics: Statistics used when a call supplies none
        """
        self.config = config or EngineConfig()
        self.config.validate()
        self.statistics = statistics
        self._models: Dict[str, CostModel] = {}
        self._history: deque = deque(maxlen=self.config.history_size)
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.RLock()

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe to an engine event.

        Raises:
            ValidationError: If the event name is unknown
        """
        if event not in EVENTS:
            raise ValidationError(f"Unknown event '{event}'")
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

    def _emit(self, event: str, **payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.warning(f"Listener for '{event}' failed: {e}")

    def register_model(self, name: str, model: CostModel) -> "CostModelEngine":
        """Register a model under a name, replacing any model already there.

        Raises:
            ValidationError: If the name or the model is missing
        """
        if not name or model is None:
            raise ValidationError("Model name and model are required")

        with self._lock:
            self._models[name] = model

        logger.info(f"Registered cost model '{name}' ({model.__class__.__name__})")
        self._emit("model-registered", name=name)
        return self

    def get_model(self, name: str) -> CostModel:
        """Look up a registered model.

        Raises:
            NotFoundError: If no model is registered under the name
        """
        with self._lock:
            model = self._models.get(name)
        if model is None:
            raise NotFoundError(f"Cost model not found: {name}")
        return model

    def model_names(self) -> List[str]:
        """Registered model names, in registration order."""
        with self._lock:
            return list(self._models.keys())

    def estimate_query_cost(
        self, query: Any, context: Any = None, model_name: Optional[str] = None
    ) -> CostEstimate:
        """Estimate a query with the named (or default) model.

        Model errors are reported through the ``error`` event and re-raised.
        """
        model_name = model_name or self.config.default_model
        context = self._with_default_statistics(as_context(context))

        try:
            model = self.get_model(model_name)
            estimate = model.estimate_query_cost(query, context)
        except Exception as e:
            logger.error(f"Error estimating query cost with '{model_name}': {e}")
            self._emit("error", error=e, query=query, context=context, model_name=model_name)
            raise

        self._record(HistoryEntry(
            model_name=model_name, estimate=estimate, context=context, query=query
        ))
        self._emit(
            "cost-estimated",
            query=query,
            context=context,
            model_name=model_name,
            estimate=estimate,
        )
        return estimate

    def estimate_plan_cost(
        self,
        plan: Any,
        statistics: Any = None,
        context: Any = None,
        model_name: Optional[str] = None,
    ) -> CostEstimate:
        """Estimate a plan with the named (or default) model.

        The engine's statistics are used when ``statistics`` is None.
        """
        model_name = model_name or self.config.default_model
        context = as_context(context)
        if statistics is None:
            statistics = self.statistics

        try:
            statistics = as_statistics(statistics)
            model = self.get_model(model_name)
            estimate = model.estimate_plan_cost(plan, statistics, context)
        except Exception as e:
            logger.error(f"Error estimating plan cost with '{model_name}': {e}")
            self._emit(
                "error",
                error=e,
                plan=plan,
                statistics=statistics,
                context=context,
                model_name=model_name,
            )
            raise

        self._record(HistoryEntry(
            model_name=model_name,
            estimate=estimate,
            context=context,
            plan=plan,
            statistics=statistics,
        ))
        self._emit(
            "plan-cost-estimated",
            plan=plan,
            statistics=statistics,
            context=context,
            model_name=model_name,
            estimate=estimate,
        )
        return estimate

    def update_model(
        self,
        plan: Any,
        actual_metrics: Any,
        context: Any = None,
        model_name: Optional[str] = None,
    ) -> bool:
        """Feed observed metrics back into a model.

        Returns:
            True only if the model applied the update
        """
        if not self.config.adaptive_learning:
            logger.debug("Adaptive learning disabled, skipping model update")
            return False

        model_name = model_name or self.config.default_model

        try:
            model = self.get_model(model_name)
            if not model.supports_update:
                logger.info(f"Cost model '{model_name}' does not support updates")
                return False

            context = as_context(context).with_overrides(
                learning_rate=self.config.learning_rate,
                anomaly_threshold=self.config.anomaly_threshold,
            )
            outcome = model.update(plan, actual_metrics, context)
        except Exception as e:
            logger.warning(f"Error updating cost model '{model_name}': {e}")
            self._emit(
                "error",
                error=e,
                plan=plan,
                actual_metrics=actual_metrics,
                context=context,
                model_name=model_name,
            )
            return False

        success = outcome is UpdateOutcome.APPLIED
        logger.info(f"Updated cost model '{model_name}': {outcome.value}")
        self._emit(
            "model-updated",
            plan=plan,
            actual_metrics=actual_metrics,
            context=context,
            model_name=model_name,
            outcome=outcome,
            success=success,
        )
        return success

    def compare_models(
        self,
        query: Any,
        context: Any = None,
        model_names: Optional[List[str]] = None,
    ) -> List[ModelComparison]:
        """Estimate a query with several models, cheapest first.

        Args:
            query: Query to estimate
            context: Estimation context shared by all models
            model_names: Models to compare (all registered models when None)

        Returns:
            Comparisons sorted ascending by total cost; ties keep model order
        """
        if model_names is None:
            model_names = self.model_names()

        results = []
        for name in model_names:
            estimate = self.estimate_query_cost(query, context, name)
            results.append(ModelComparison(
                model_name=name, estimate=estimate, total_cost=estimate.total_cost
            ))

        results.sort(key=lambda result: result.total_cost)
        self._emit(
            "models-compared",
            query=query,
            context=context,
            model_names=list(model_names),
            results=results,
        )
        return results

    def get_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Most recent ``limit`` entries, oldest first (all when limit is None or <= 0)."""
        with self._lock:
            entries = list(self._history)
        if limit is None or limit <= 0:
            return entries
        return entries[-limit:]

    def clear_history(self) -> None:
        """Discard the history; registered models are kept."""
        with self._lock:
            self._history.clear()
        logger.info("Cost estimation history cleared")
        self._emit("history-cleared")

    def _record(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._history.append(entry)

    def _with_default_statistics(self, context: EstimationContext) -> EstimationContext:
        if context.statistics is None and self.statistics is not None:
            return context.with_overrides(statistics=self.statistics)
        return context

    def __repr__(self) -> str:
        return (
            f"CostModelEngine(models={self.model_names()}, "
            f"history={len(self._history)})"
        )


def create_default_engine(
    config: Optional[Config] = None, statistics: Optional[Statistics] = None
) -> CostModelEngine:
    """Build an engine with the ``statistical`` and ``memory`` models registered."""
    config = config or Config()
    engine = CostModelEngine(config.engine, statistics)
    engine.register_model("statistical", StatisticalModel(config.statistical, statistics))
    engine.register_model("memory", MemoryAwareModel(config.memory, statistics))
    return engine
