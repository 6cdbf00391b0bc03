"""Statistics collection from data sources."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..datasources.base import DataSource, CollectionStatistics
from ..plan.statistics import Statistics

logger = logging.getLogger(__name__)


class StatisticsCollector:
    """Collects and caches statistics from data sources."""

    def __init__(self, datasources: Optional[Iterable[DataSource]] = None):
        """Initialize statistics collector.

        Args:
            datasources: Data sources to collect from
        """
        self.datasources: Dict[str, DataSource] = {}
        self.cache: Dict[Tuple[str, str], CollectionStatistics] = {}
        for datasource in datasources or []:
            self.register_datasource(datasource)

    def register_datasource(self, datasource: DataSource) -> None:
        """Register a data source by its name."""
        self.datasources[datasource.name] = datasource

    def get_collection_statistics(
        self, datasource: str, collection: str, refresh: bool = False
    ) -> Optional[CollectionStatistics]:
        """Get statistics for a collection.

        Args:
            datasource: Data source name
            collection: Collection name
            refresh: Whether to refresh cached statistics

        Returns:
            Collection statistics if available, None otherwise
        """
        key = (datasource, collection)

        if not refresh and key in self.cache:
            return self.cache[key]

        ds = self.datasources.get(datasource)
        if ds is None:
            logger.warning(f"Unknown data source '{datasource}'")
            return None

        ds.ensure_connected()
        stats = ds.get_collection_statistics(collection)
        if stats:
            self.cache[key] = stats
        return stats

    def build_statistics(
        self,
        collections: Optional[Dict[str, List[str]]] = None,
        default: Optional[CollectionStatistics] = None,
        refresh: bool = False,
    ) -> Statistics:
        """Build a ``Statistics`` mapping for the cost models.

        Args:
            collections: Data source name -> collection names. When omitted,
                every collection of every registered data source is used.
            default: Fallback entry for unknown collections
            refresh: Whether to bypass the cache

        Returns:
            Statistics keyed by collection name (later data sources win on
            name clashes)
        """
        if collections is None:
            collections = {}
            for name, ds in self.datasources.items():
                ds.ensure_connected()
                collections[name] = ds.list_collections()

        entries = {}
        for datasource, names in collections.items():
            for collection in names:
                stats = self.get_collection_statistics(datasource, collection, refresh)
                if stats:
                    entries[collection] = stats

        logger.info(f"Collected statistics for {len(entries)} collections")
        return Statistics(entries, default)

    def clear_cache(self) -> None:
        """Clear statistics cache."""
        self.cache.clear()

    def __repr__(self) -> str:
        return f"StatisticsCollector(cached={len(self.cache)})"
