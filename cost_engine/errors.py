"""Exceptions raised by the cost engine."""


class CostEngineError(Exception):
    """Base exception for all cost engine errors."""
    pass


class ValidationError(CostEngineError):
    """Raised when required arguments are missing or invalid."""
    pass


class NotFoundError(CostEngineError):
    """Raised when a cost model name is not registered."""
    pass


class EstimationError(CostEngineError):
    """Raised when a cost model fails to compute an estimate."""
    pass


class ConfigurationError(CostEngineError):
    """Raised when configuration loading or validation fails."""
    pass


class PushdownError(CostEngineError):
    """Raised inside the pushdown pipeline; never escapes PushdownStrategy.apply."""
    pass
