"""DuckDB data source implementation."""

from typing import List, Dict, Any, Optional
import duckdb
import logging

from .base import (
    DataSource,
    CollectionStatistics,
    ProjectionCapabilities,
    estimate_row_size,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class DuckDBDataSource(DataSource):
    """DuckDB data source connector used as a statistics provider."""

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize DuckDB data source.

        Config should include:
            - path: Path to DuckDB database file (or :memory: for in-memory)
            - read_only: Whether to open in read-only mode (default: True)
            - schema: Schema holding the collections (default: main)
            - memory_budget_mb: Memory available to the executor, used to
              classify collections as low/medium/high memory (default: 1024)
            - max_projection_depth: Deepest struct projection to push down (default: 3)
            - max_projection_fields: Widest projection to push down (default: 100)
        """
        super().__init__(name, config)
        self.connection = None
        self.db_path = config.get("path", ":memory:")
        self.read_only = config.get("read_only", True)
        self.schema = config.get("schema", "main")
        self.memory_budget_bytes = int(config.get("memory_budget_mb", 1024)) * MB
        self.max_projection_depth = int(config.get("max_projection_depth", 3))
        self.max_projection_fields = config.get("max_projection_fields", 100)

    def connect(self) -> None:
        """Establish connection to DuckDB."""
        logger.info(f"Connecting to DuckDB at '{self.db_path}'")
        self.connection = duckdb.connect(self.db_path, read_only=self.read_only)
        self._connected = True
        logger.info(f"Successfully connected to DuckDB: {self.name}")

    def disconnect(self) -> None:
        """Close DuckDB connection."""
        if self.connection:
            self.connection.close()
            logger.info(f"Disconnected from DuckDB: {self.name}")
            self.connection = None
            self._connected = False

    def get_capabilities(self) -> ProjectionCapabilities:
        """DuckDB evaluates inclusion, exclusion and struct field projections."""
        return ProjectionCapabilities(
            supports_projection=True,
            supports_inclusion=True,
            supports_exclusion=True,
            supports_nested=True,
            max_projection_depth=self.max_projection_depth,
            max_projection_fields=self.max_projection_fields,
        )

    def list_collections(self) -> List[str]:
        """List base tables in the configured schema."""
        result = self.connection.execute(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = ? AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            [self.schema],
        ).fetchall()
        tables = []
        for row in result:
            tables.append(row[0])
        return tables

    def get_collection_statistics(self, collection: str) -> Optional[CollectionStatistics]:
        """Collect row count, row width, index and memory class for a table."""
        qualified = f'"{self.schema}"."{collection}"'
        try:
            result = self.connection.execute(f"SELECT COUNT(*) FROM {qualified}").fetchone()
            row_count = result[0] if result else 0
            schema = self.connection.execute(
                f"SELECT * FROM {qualified} LIMIT 0"
            ).fetch_arrow_table().schema
        except duckdb.Error as e:
            logger.warning(f"Could not get statistics for {self.schema}.{collection}: {e}")
            return None

        row_size = estimate_row_size(schema)
        return CollectionStatistics(
            row_count=row_count,
            index_type=self._get_index_type(collection),
            memory_type=self._classify_memory(row_count * row_size),
            row_size=row_size,
        )

    def _get_index_type(self, collection: str) -> str:
        """Primary key or unique constraint counts as a full index."""
        constraints = self.connection.execute(
            """
            SELECT COUNT(*)
            FROM duckdb_constraints()
            WHERE schema_name = ? AND table_name = ?
              AND constraint_type IN ('PRIMARY KEY', 'UNIQUE')
            """,
            [self.schema, collection],
        ).fetchone()
        if constraints and constraints[0] > 0:
            return "full"

        indexes = self.connection.execute(
            """
            SELECT COUNT(*)
            FROM duckdb_indexes()
            WHERE schema_name = ? AND table_name = ?
            """,
            [self.schema, collection],
        ).fetchone()
        if indexes and indexes[0] > 0:
            return "partial"

        return "none"

    def _classify_memory(self, size_bytes: int) -> str:
        """Compare the collection size against the memory budget."""
        if size_bytes <= self.memory_budget_bytes // 2:
            return "low"
        if size_bytes <= self.memory_budget_bytes:
            return "medium"
        return "high"
