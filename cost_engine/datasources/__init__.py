"""Data source connectors that supply statistics and capabilities."""

from .base import (
    DataSource,
    CollectionStatistics,
    ProjectionCapabilities,
    estimate_row_size,
)
from .duckdb import DuckDBDataSource

__all__ = [
    "DataSource",
    "CollectionStatistics",
    "ProjectionCapabilities",
    "estimate_row_size",
    "DuckDBDataSource",
]
