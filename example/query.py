"""Example: estimate query costs from DuckDB statistics and push a projection down.

Run ``python scripts/init_duckdb.py`` first to create ``data/costq.duckdb``.
"""

from pathlib import Path

from cost_engine.config.config import load_config
from cost_engine.datasources.duckdb import DuckDBDataSource
from cost_engine.optimizer import StatisticsCollector, create_default_engine
from cost_engine.projection import (
    LazyLoadingStrategy,
    ProjectionOptimizer,
    PushdownContext,
    PushdownStrategy,
)
from cost_engine.utils.logging import setup_logging


def print_estimate(title, estimate):
    print(f"\n{title}")
    print("-" * len(title))
    for name, cost in estimate.component_costs().items():
        print(f"  {name:<20} {cost:>12.3f}")
    print(f"  {'total':<20} {estimate.total_cost:>12.3f}")


def main():
    """Main example function."""
    setup_logging("WARNING")

    config_path = Path(__file__).parent / "dbconfig.yaml"
    config = load_config(str(config_path))

    ds_config = config.datasources["local_duckdb"]
    datasource = DuckDBDataSource(ds_config.name, ds_config.config)
    datasource.connect()

    collector = StatisticsCollector([datasource])
    statistics = collector.build_statistics({ds_config.name: ds_config.collections})
    print(f"Collected statistics for: {', '.join(statistics.names())}")

    engine = create_default_engine(config, statistics)

    sql = """
        SELECT c.name, SUM(o.total)
        FROM orders o JOIN customers c ON o.customer_id = c.id
        WHERE o.status = 'shipped'
        GROUP BY c.name
        ORDER BY 2 DESC
    """
    context = {"collection_name": "orders"}

    for comparison in engine.compare_models(sql, context):
        print_estimate(f"{comparison.model_name} model", comparison.estimate)

    plan = {
        "type": "aggregate",
        "children": [
            {
                "type": "join",
                "children": [
                    {"type": "scan", "collection": "orders", "indexType": "partial"},
                    {"type": "scan", "collection": "customers", "indexType": "full"},
                ],
            }
        ],
    }
    print_estimate("statistical plan estimate", engine.estimate_plan_cost(plan))

    # Feed back what the run actually cost
    updated = engine.update_model(plan, {"total_cost": 40.0})
    print(f"\nModel updated: {updated}")
    print_estimate("after update", engine.estimate_plan_cost(plan))

    projection = {
        "order_id": 1,
        "customer_id": 1,
        "status": 1,
        "total": 1,
        "created_at": 1,
        "notes": 1,
        "shipping": {"address": 1, "city": 1},
    }
    optimizer = ProjectionOptimizer([
        PushdownStrategy(config.pushdown, engine),
        LazyLoadingStrategy(config.lazy_loading),
    ])
    pushed = optimizer.optimize(
        projection,
        PushdownContext(
            supports_projection_pushdown=True,
            supports_lazy_loading=True,
            data_source=datasource,
            query=sql,
            estimation_context=context,
        ),
    )
    print(f"\nProjection pushed to {datasource.name}: {pushed.to_dict()}")
    print(f"Loaded lazily: {pushed.lazy_fields()}")
    print(f"Applied strategies: {optimizer.get_history()[-1].applied}")

    datasource.disconnect()


if __name__ == "__main__":
    main()
