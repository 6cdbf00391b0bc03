"""Per-collection statistics supplied by the catalog alongside a plan."""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from ..datasources.base import CollectionStatistics

DEFAULT_KEY = "default"


class Statistics:
    """Per-collection statistics with a ``default`` fallback entry.

    Lookups resolve attribute by attribute: a collection entry that only
    knows its row count still inherits index and memory type from the default.
    """

    def __init__(
        self,
        collections: Optional[Dict[str, CollectionStatistics]] = None,
        default: Optional[CollectionStatistics] = None,
    ):
        self.collections: Dict[str, CollectionStatistics] = dict(collections or {})
        if DEFAULT_KEY in self.collections:
            default = self.collections.pop(DEFAULT_KEY)
        self.default = default or CollectionStatistics()

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "Statistics":
        """Build statistics from either supported mapping shape.

        Per collection::

            {"users": {"row_count": 50, "index_type": "full"}, "default": {...}}

        Grouped by attribute::

            {"rowCounts": {"users": 50, "default": 1000},
             "indexStats": {"users": {"type": "full"}},
             "memoryStats": {"default": {"type": "low"}}}
        """
        if not data:
            return cls()

        if any(key in data for key in ("rowCounts", "indexStats", "memoryStats")):
            return cls._from_grouped(data)

        collections = {}
        for name, entry in data.items():
            if isinstance(entry, CollectionStatistics):
                collections[name] = entry
            else:
                collections[name] = CollectionStatistics.from_dict(entry)
        return cls(collections)

    @classmethod
    def _from_grouped(cls, data: Mapping) -> "Statistics":
        entries: Dict[str, Dict[str, Any]] = {}

        for name, row_count in (data.get("rowCounts") or {}).items():
            entries.setdefault(name, {})["row_count"] = row_count
        for name, stats in (data.get("indexStats") or {}).items():
            entries.setdefault(name, {})["index_type"] = stats.get("type")
        for name, stats in (data.get("memoryStats") or {}).items():
            entries.setdefault(name, {})["memory_type"] = stats.get("type")

        collections = {}
        for name, values in entries.items():
            collections[name] = CollectionStatistics(**values)
        return cls(collections)

    def get(self, collection: Optional[str]) -> Optional[CollectionStatistics]:
        """Return the exact entry for ``collection``, if any."""
        if collection is None:
            return None
        return self.collections.get(collection)

    def resolve(self, collection: Optional[str], attribute: str) -> Any:
        """Resolve one attribute for a collection, falling back to the default."""
        entry = self.get(collection)
        if entry is not None:
            value = getattr(entry, attribute)
            if value is not None:
                return value
        return getattr(self.default, attribute)

    def merged(self, other: Optional["Statistics"]) -> "Statistics":
        """Return a new mapping where entries of ``other`` win."""
        if other is None:
            return Statistics(self.collections, self.default)
        collections = dict(self.collections)
        collections.update(other.collections)
        default = self.default
        if other.has_explicit_default():
            default = other.default
        return Statistics(collections, default)

    def has_explicit_default(self) -> bool:
        return self.default != CollectionStatistics()

    def names(self) -> List[str]:
        return list(self.collections.keys())

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for name, entry in self.collections.items():
            result[name] = entry.to_dict()
        result[DEFAULT_KEY] = self.default.to_dict()
        return result

    def __contains__(self, collection: str) -> bool:
        return collection in self.collections

    def __len__(self) -> int:
        return len(self.collections)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Statistics):
            return NotImplemented
        return self.collections == other.collections and self.default == other.default

    def __repr__(self) -> str:
        return f"Statistics(collections={len(self.collections)})"


def as_statistics(statistics: Any) -> Optional[Statistics]:
    """Coerce ``None``, a mapping or ``Statistics`` into ``Statistics``."""
    if statistics is None:
        return None
    if isinstance(statistics, Statistics):
        return statistics
    if isinstance(statistics, Mapping):
        return Statistics.from_dict(statistics)
    raise TypeError(f"Unsupported statistics type: {type(statistics).__name__}")


