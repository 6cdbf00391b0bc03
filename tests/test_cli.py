"""Tests for the costq CLI."""

import json
import logging

import duckdb
import pytest
from click.testing import CliRunner

from cost_engine.cli.costq import cli


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    """Run costq quietly and return the result."""
    return runner.invoke(cli, ["--log-level", "ERROR", *args])


@pytest.fixture
def warehouse(tmp_path):
    """DuckDB file with a small indexed users table, plus a config pointing at it."""
    db_path = tmp_path / "warehouse.duckdb"
    conn = duckdb.connect(str(db_path))
    conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR, age INTEGER)")
    conn.execute("INSERT INTO users VALUES (1, 'Alice', 34), (2, 'Bob', 28), (3, 'Carol', 45)")
    conn.close()

    config_path = tmp_path / "costq.yaml"
    config_path.write_text(
        "datasources:\n"
        "  warehouse:\n"
        "    type: duckdb\n"
        f"    path: {db_path}\n"
        "    read_only: true\n"
        "    max_projection_fields: 2\n"
    )
    return config_path


def test_estimate_sql(runner):
    """SQL text is parsed and costed with the default model."""
    result = invoke(runner, "estimate", "--sql", "SELECT name FROM users WHERE age > 30")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["total_cost"] == pytest.approx(3.4)
    assert set(document["costs"]) == {"scan", "filter", "project"}
    assert document["statistics"]["row_count_type"] == "medium"


def test_estimate_memory_model(runner):
    result = invoke(runner, "estimate", "-m", "memory", "--sql", "SELECT name FROM users WHERE age > 30")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["total_cost"] == pytest.approx(400.0)
    assert document["memory_pressure"]["memory_pressure_level"] == "high"


def test_estimate_query_file_and_context(runner, tmp_path):
    query_path = tmp_path / "query.yaml"
    query_path.write_text("filter:\n  x: 1\n")
    context_path = tmp_path / "context.json"
    context_path.write_text(json.dumps({"rowCount": 50}))

    result = invoke(runner, "estimate", str(query_path), "--context", str(context_path))

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["total_cost"] == pytest.approx(1.5)


def test_estimate_without_query(runner):
    result = invoke(runner, "estimate")
    assert result.exit_code == 2
    assert "--sql" in result.output


def test_estimate_unknown_model(runner):
    result = invoke(runner, "estimate", "-m", "nope", "--sql", "SELECT 1")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_invalid_context(runner, tmp_path):
    context_path = tmp_path / "context.json"
    context_path.write_text(json.dumps({"bogus": 1}))
    result = invoke(runner, "estimate", "--sql", "SELECT 1", "--context", str(context_path))
    assert result.exit_code == 1
    assert "Invalid context" in result.output


def test_plan(runner, tmp_path):
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps({
        "type": "join",
        "rowCount": 50,
        "children": [{"type": "scan", "collection": "users"}, {"type": "scan", "rowCount": 50}],
    }))
    statistics_path = tmp_path / "statistics.yaml"
    statistics_path.write_text("users:\n  row_count: 50\n")

    result = invoke(runner, "plan", str(plan_path), "--statistics", str(statistics_path))

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert list(document["node_costs"]) == ["node-0", "join-0-node-0", "join-0-node-1"]
    assert document["total_cost"] == pytest.approx(12.0)


def test_plan_memory_model(runner, tmp_path):
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps([{"type": "scan", "rowCount": 10}]))

    result = invoke(runner, "plan", str(plan_path), "-m", "memory")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["memory_usage"]["nodes"]["node-0"]["row_count"] == 10


def test_compare(runner):
    result = invoke(runner, "compare", "--sql", "SELECT name FROM users WHERE age > 30")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert [entry["model_name"] for entry in document] == ["statistical", "memory"]
    assert document[0]["total_cost"] <= document[1]["total_cost"]


def test_compare_selected_models(runner):
    result = invoke(runner, "compare", "--sql", "SELECT 1", "-m", "memory")
    assert result.exit_code == 0, result.output
    assert [entry["model_name"] for entry in json.loads(result.output)] == ["memory"]


def test_pushdown_external_datasource(runner, tmp_path):
    projection_path = tmp_path / "projection.json"
    projection_path.write_text(json.dumps(
        ["description", "userId", "status", "title", "misc", "name"]
    ))
    capabilities_path = tmp_path / "capabilities.json"
    capabilities_path.write_text(json.dumps({"maxProjectionFields": 3}))

    result = invoke(
        runner,
        "pushdown",
        str(projection_path),
        "-d",
        "mongo",
        "--capabilities",
        str(capabilities_path),
    )

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["success"] is True
    assert document["projection"] == {"userId": 1, "title": 1, "name": 1}
    assert document["metadata"]["limited_fields"] is True
    assert document["estimated_cost"] is None


def test_pushdown_without_datasource(runner, tmp_path):
    projection_path = tmp_path / "projection.yaml"
    projection_path.write_text("a: 1\nb: 1\nc: 1\nd: 1\ne: 1\n")

    result = invoke(runner, "pushdown", str(projection_path))

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["success"] is False
    assert document["projection"] == {"a": 1, "b": 1, "c": 1, "d": 1, "e": 1}
    assert "not supported" in document["reason"]


def test_pushdown_cost_gate(runner, tmp_path):
    projection_path = tmp_path / "projection.json"
    projection_path.write_text(json.dumps(["a", "b", "c", "d", "e"]))

    result = invoke(runner, "pushdown", str(projection_path), "-d", "ext", "--sql", "SELECT a FROM t")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["success"] is True
    assert document["estimated_cost"] == pytest.approx(2.4)


def test_configured_duckdb_statistics(runner, warehouse, tmp_path):
    """Statistics collected from DuckDB feed the estimate."""
    context_path = tmp_path / "context.json"
    context_path.write_text(json.dumps({"collection_name": "users"}))

    result = invoke(
        runner,
        "-c",
        str(warehouse),
        "estimate",
        "--sql",
        "SELECT name FROM users WHERE age > 30",
        "--context",
        str(context_path),
    )

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["statistics"] == {
        "row_count": 3,
        "row_count_type": "small",
        "index_type": "full",
        "memory_type": "low",
    }
    assert document["total_cost"] == pytest.approx(0.8)


def test_configured_duckdb_pushdown(runner, warehouse, tmp_path):
    projection_path = tmp_path / "projection.json"
    projection_path.write_text(json.dumps(["notes", "name", "id", "misc", "extra"]))

    result = invoke(runner, "-c", str(warehouse), "pushdown", str(projection_path), "-d", "warehouse")

    assert result.exit_code == 0, result.output
    document = json.loads(result.output)
    assert document["projection"] == {"name": 1, "id": 1}


def test_unsupported_datasource_type(runner, tmp_path):
    config_path = tmp_path / "costq.yaml"
    config_path.write_text("datasources:\n  pg:\n    type: postgresql\n")

    result = invoke(runner, "-c", str(config_path), "estimate", "--sql", "SELECT 1")

    assert result.exit_code == 1
    assert "Unsupported data source type" in result.output


def test_invalid_config_file(runner, tmp_path):
    config_path = tmp_path / "costq.yaml"
    config_path.write_text("engine:\n  learning_rate: 7\n")

    result = invoke(runner, "-c", str(config_path), "estimate", "--sql", "SELECT 1")

    assert result.exit_code == 1
    assert "learning_rate" in result.output
