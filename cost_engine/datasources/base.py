"""Base data source interface."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
import pyarrow as pa


@dataclass
class CollectionStatistics:
    """Statistics about a collection (table) as seen by the cost models.

    Unset fields fall back to the ``default`` entry of a ``Statistics`` mapping.
    """

    row_count: Optional[int] = None
    index_type: Optional[str] = None  # "none", "partial", "full"
    memory_type: Optional[str] = None  # "low", "medium", "high"
    row_size: Optional[int] = None  # Average bytes per row

    @classmethod
    def from_dict(cls, data: Mapping) -> "CollectionStatistics":
        return cls(
            row_count=data.get("row_count", data.get("rowCount")),
            index_type=data.get("index_type", data.get("indexType")),
            memory_type=data.get("memory_type", data.get("memoryType")),
            row_size=data.get("row_size", data.get("rowSize")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProjectionCapabilities:
    """What kind of projection a data source can evaluate itself."""

    supports_projection: bool = True
    supports_inclusion: bool = True
    supports_exclusion: bool = True
    supports_nested: bool = False
    max_projection_depth: int = 1
    max_projection_fields: Optional[int] = 100

    @classmethod
    def from_dict(cls, data: Mapping) -> "ProjectionCapabilities":
        """Build capabilities from snake_case or camelCase keys."""
        defaults = cls()
        values = {}
        aliases = {
            "supports_projection": "supportsProjection",
            "supports_inclusion": "supportsInclusion",
            "supports_exclusion": "supportsExclusion",
            "supports_nested": "supportsNested",
            "max_projection_depth": "maxProjectionDepth",
            "max_projection_fields": "maxProjectionFields",
        }
        for name, alias in aliases.items():
            if name in data:
                values[name] = data[name]
            elif alias in data:
                values[name] = data[alias]
            else:
                values[name] = getattr(defaults, name)
        return cls(**values)


# Fixed-width fallback for Arrow types without a bit width (strings, lists, ...)
VARIABLE_WIDTH_BYTES = 32


def estimate_row_size(schema: pa.Schema) -> int:
    """Estimate the average row width in bytes from an Arrow schema.

    Args:
        schema: Arrow schema of the collection

    Returns:
        Estimated bytes per row (at least 1)
    """
    total = 0
    for arrow_field in schema:
        try:
            bit_width = arrow_field.type.bit_width
        except ValueError:
            bit_width = 0
        if bit_width:
            total += max(1, bit_width // 8)
        else:
            total += VARIABLE_WIDTH_BYTES
    return max(1, total)


class DataSource(ABC):
    """Abstract base class for statistics-providing data sources."""

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize data source.

        Args:
            name: Unique name for this data source
            config: Configuration dictionary
        """
        self.name = name
        self.config = config
        self.connection = None
        self._connected = False

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data source."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to the data source."""
        pass

    @abstractmethod
    def get_capabilities(self) -> ProjectionCapabilities:
        """Return the projection capabilities of this data source."""
        pass

    @abstractmethod
    def list_collections(self) -> List[str]:
        """List all collections (tables) visible to this data source."""
        pass

    @abstractmethod
    def get_collection_statistics(self, collection: str) -> Optional[CollectionStatistics]:
        """Get statistics for a collection.

        Args:
            collection: Collection name

        Returns:
            Collection statistics if available, None otherwise
        """
        pass

    def is_connected(self) -> bool:
        """Check if data source is connected."""
        return self._connected

    def ensure_connected(self) -> None:
        """Ensure data source is connected.

        Raises:
            ConnectionError: If connection cannot be established
        """
        if not self.is_connected():
            self.connect()
            self._connected = True

    def __enter__(self):
        """Context manager entry."""
        self.ensure_connected()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
        self._connected = False
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
