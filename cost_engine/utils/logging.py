"""Logging setup for the cost engine and its CLI."""

import logging
import sys
import json
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class StructuredFormatter(logging.Formatter):
    """Emit one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Context attached through CostLoggerAdapter
        context = getattr(record, "cost_context", None)
        if context:
            log_data.update(context)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable single-line formatter."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        structured: Emit JSON lines instead of plain text
        log_file: Optional file that receives the same records
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = StandardFormatter()

    # stderr keeps stdout free for CLI JSON output
    handlers = []
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("duckdb").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (usually ``__name__``)."""
    return logging.getLogger(name)


class CostLoggerAdapter(logging.LoggerAdapter):
    """Attach a fixed context, such as the cost model name, to every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Prefix the message with the context and expose it to formatters.

        Args:
            msg: Log message
            kwargs: Keyword arguments passed to the logging call

        Returns:
            Tuple of (message, kwargs)
        """
        extra = kwargs.setdefault("extra", {})
        extra["cost_context"] = self.extra

        prefix = " ".join(f"{key}={value}" for key, value in self.extra.items())
        if prefix:
            msg = f"[{prefix}] {msg}"
        return msg, kwargs


def get_contextual_logger(name: str, context: Dict[str, Any]) -> CostLoggerAdapter:
    """Get a logger that tags every message with ``context``.

    Example:
        >>> logger = get_contextual_logger(__name__, {"model": "statistical"})
        >>> logger.info("Weights updated")  # logged as "[model=statistical] Weights updated"
    """
    return CostLoggerAdapter(get_logger(name), context)
