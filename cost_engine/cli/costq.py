"""Command line interface for cost estimation and projection pushdown."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml

from ..config import Config, DataSourceConfig, load_config
from ..datasources import DataSource, DuckDBDataSource, ProjectionCapabilities
from ..errors import CostEngineError
from ..models import EstimationContext
from ..optimizer import CostModelEngine, StatisticsCollector, create_default_engine
from ..plan import Statistics, as_statistics
from ..projection import PushdownContext, PushdownStrategy
from ..utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class CostqRuntime:
    """Engine, data sources and pushdown strategy built from one configuration."""

    def __init__(self, config: Config):
        self.config = config
        self.datasources: Dict[str, DataSource] = {}
        for ds_config in config.datasources.values():
            self.datasources[ds_config.name] = _create_datasource(ds_config)
        self._engine: Optional[CostModelEngine] = None

    @property
    def engine(self) -> CostModelEngine:
        """Engine with statistics collected from the configured data sources."""
        if self._engine is None:
            self._engine = create_default_engine(self.config, self._collect_statistics())
        return self._engine

    def pushdown_strategy(self) -> PushdownStrategy:
        return PushdownStrategy(self.config.pushdown, self.engine)

    def _collect_statistics(self) -> Optional[Statistics]:
        if not self.datasources:
            return None
        collector = StatisticsCollector(self.datasources.values())
        collections = {}
        for name, datasource in self.datasources.items():
            datasource.ensure_connected()
            configured = self.config.datasources[name].collections
            collections[name] = configured or datasource.list_collections()
        return collector.build_statistics(collections)

    def close(self) -> None:
        for datasource in self.datasources.values():
            if datasource.is_connected():
                datasource.disconnect()


def _create_datasource(ds_config: DataSourceConfig) -> DataSource:
    if ds_config.type == "duckdb":
        return DuckDBDataSource(ds_config.name, ds_config.config)
    raise click.ClickException(f"Unsupported data source type: {ds_config.type}")


def _load_document(path: Optional[str]) -> Any:
    """Read a JSON or YAML document."""
    if path is None:
        return None
    text = Path(path).read_text()
    try:
        if path.endswith(".json"):
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise click.ClickException(f"Could not parse {path}: {e}")


def _load_query(query_path: Optional[str], sql: Optional[str]) -> Any:
    if sql:
        return sql
    if query_path:
        return _load_document(query_path)
    raise click.UsageError("Provide a query file or --sql")


def _load_context(context_path: Optional[str]) -> EstimationContext:
    data = _load_document(context_path)
    if data is None:
        return EstimationContext()
    if not isinstance(data, dict):
        raise click.ClickException("Context document must be a mapping")
    try:
        return EstimationContext.from_dict(data)
    except (CostEngineError, TypeError) as e:
        raise click.ClickException(f"Invalid context: {e}")


def _emit(document: Any) -> None:
    click.echo(json.dumps(document, indent=2, default=str))


def _runtime(ctx: click.Context) -> CostqRuntime:
    return ctx.find_object(CostqRuntime)


path_option = click.Path(exists=True, dir_okay=False, readable=True)


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=path_option,
    help="Path to YAML config file. Defaults to built-in settings.",
)
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (logs go to stderr).",
)
@click.option("--structured-logs", is_flag=True, help="Emit logs as JSON lines.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: str, structured_logs: bool) -> None:
    """Entry point for the costq CLI."""
    setup_logging(log_level, structured_logs)
    try:
        config = load_config(config_path) if config_path else Config()
    except CostEngineError as e:
        raise click.ClickException(str(e))
    runtime = CostqRuntime(config)
    ctx.obj = runtime
    ctx.call_on_close(runtime.close)


@cli.command()
@click.argument("query_path", required=False, type=path_option)
@click.option("--sql", help="SQL text to estimate instead of a query file.")
@click.option("-m", "--model", "model_name", help="Cost model name (engine default if omitted).")
@click.option("--context", "context_path", type=path_option, help="Estimation context file.")
@click.pass_context
def estimate(
    ctx: click.Context,
    query_path: Optional[str],
    sql: Optional[str],
    model_name: Optional[str],
    context_path: Optional[str],
) -> None:
    """Estimate the cost of a query."""
    query = _load_query(query_path, sql)
    context = _load_context(context_path)
    try:
        result = _runtime(ctx).engine.estimate_query_cost(query, context, model_name)
    except CostEngineError as e:
        raise click.ClickException(str(e))
    _emit(result.to_dict())


@cli.command()
@click.argument("plan_path", type=path_option)
@click.option("--statistics", "statistics_path", type=path_option, help="Statistics file.")
@click.option("-m", "--model", "model_name", help="Cost model name (engine default if omitted).")
@click.option("--context", "context_path", type=path_option, help="Estimation context file.")
@click.pass_context
def plan(
    ctx: click.Context,
    plan_path: str,
    statistics_path: Optional[str],
    model_name: Optional[str],
    context_path: Optional[str],
) -> None:
    """Estimate the cost of an execution plan."""
    plan_document = _load_document(plan_path)
    context = _load_context(context_path)
    try:
        statistics = as_statistics(_load_document(statistics_path))
        result = _runtime(ctx).engine.estimate_plan_cost(
            plan_document, statistics, context, model_name
        )
    except (CostEngineError, TypeError) as e:
        raise click.ClickException(str(e))
    _emit(result.to_dict())


@cli.command()
@click.argument("query_path", required=False, type=path_option)
@click.option("--sql", help="SQL text to compare instead of a query file.")
@click.option("-m", "--model", "model_names", multiple=True, help="Model to include (repeatable).")
@click.option("--context", "context_path", type=path_option, help="Estimation context file.")
@click.pass_context
def compare(
    ctx: click.Context,
    query_path: Optional[str],
    sql: Optional[str],
    model_names: tuple,
    context_path: Optional[str],
) -> None:
    """Compare the cost of a query across models, cheapest first."""
    query = _load_query(query_path, sql)
    context = _load_context(context_path)
    names: Optional[List[str]] = list(model_names) or None
    try:
        results = _runtime(ctx).engine.compare_models(query, context, names)
    except CostEngineError as e:
        raise click.ClickException(str(e))
    _emit([
        {
            "model_name": result.model_name,
            "total_cost": result.total_cost,
            "estimate": result.estimate.to_dict(),
        }
        for result in results
    ])


@cli.command()
@click.argument("projection_path", type=path_option)
@click.option(
    "-d",
    "--datasource",
    "datasource_name",
    help="Target data source: a configured source, or a label for an external one.",
)
@click.option(
    "--capabilities",
    "capabilities_path",
    type=path_option,
    help="Projection capabilities file (overrides the data source's own).",
)
@click.option("--query", "query_path", type=path_option, help="Query used for the cost gate.")
@click.option("--sql", help="SQL used for the cost gate instead of a query file.")
@click.pass_context
def pushdown(
    ctx: click.Context,
    projection_path: str,
    datasource_name: Optional[str],
    capabilities_path: Optional[str],
    query_path: Optional[str],
    sql: Optional[str],
) -> None:
    """Rewrite a projection for a data source."""
    runtime = _runtime(ctx)
    projection = _load_document(projection_path)

    capabilities = None
    capabilities_document = _load_document(capabilities_path)
    if capabilities_document is not None:
        capabilities = ProjectionCapabilities.from_dict(capabilities_document)

    data_source: Any = datasource_name
    if datasource_name in runtime.datasources:
        data_source = runtime.datasources[datasource_name]

    query = None
    if sql or query_path:
        query = _load_query(query_path, sql)

    context = PushdownContext(
        supports_projection_pushdown=data_source is not None,
        data_source=data_source,
        data_source_capabilities=capabilities,
        query=query,
    )
    try:
        result = runtime.pushdown_strategy().try_apply(projection, context)
    except CostEngineError as e:
        raise click.ClickException(str(e))

    _emit({
        "success": result.success,
        "reason": result.reason,
        "projection": result.projection.to_dict(),
        "metadata": result.projection.metadata,
        "estimated_cost": result.estimate.total_cost if result.estimate else None,
    })
