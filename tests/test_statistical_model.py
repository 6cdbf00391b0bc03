"""Tests for the statistical cost model."""

import copy
import logging

import pytest

from cost_engine.config import StatisticalModelConfig
from cost_engine.errors import ConfigurationError, EstimationError
from cost_engine.models import (
    EstimationContext,
    StatisticalModel,
    UpdateOutcome,
    row_count_type,
)
from cost_engine.plan import Statistics


@pytest.fixture
def model():
    """Statistical model with default configuration."""
    return StatisticalModel()


@pytest.fixture
def small_plan():
    return {"nodes": [{"type": "scan", "rowCount": 50}, {"type": "filter", "rowCount": 50}]}


class TestRowCountTiers:
    """Test row count bucketing."""

    @pytest.mark.parametrize(
        "row_count,expected",
        [
            (0, "small"),
            (99, "small"),
            (100, "medium"),
            (9_999, "medium"),
            (10_000, "large"),
            (999_999, "large"),
            (1_000_000, "huge"),
            (50_000_000, "huge"),
        ],
    )
    def test_tiers(self, row_count, expected):
        assert row_count_type(row_count) == expected


class TestQueryEstimation:
    """Test query cost estimation."""

    def test_filter_on_small_collection(self, model):
        """Filter query on 50 rows costs scan + filter weights."""
        estimate = model.estimate_query_cost({"filter": {"x": 1}}, {"rowCount": 50})
        assert estimate.costs == {"scan": 1.0, "filter": 0.5}
        assert estimate.total_cost == pytest.approx(1.5)
        assert estimate.statistics.row_count_type == "small"
        assert estimate.statistics.index_type == "none"
        assert estimate.statistics.memory_type == "low"

    def test_scan_only(self, model):
        """A query without operations only has a scan cost."""
        weights = model.get_weights()
        estimate = model.estimate_query_cost({}, EstimationContext(row_count=50))
        assert list(estimate.costs) == ["scan"]
        assert estimate.total_cost == weights["scan"]

    def test_scan_uses_all_multipliers(self, model):
        context = EstimationContext(row_count=50_000, index_type="full", memory_type="medium")
        estimate = model.estimate_query_cost({}, context)
        # 1.0 * large(5) * full(0.1) * medium(2)
        assert estimate.total_cost == pytest.approx(1.0)

    def test_join_is_quadratic_in_tier(self, model):
        estimate = model.estimate_query_cost({"join": ["orders"]}, {"row_count": 5000})
        assert estimate.costs["join"] == pytest.approx(10.0 * 2 * 2)
        assert estimate.costs["scan"] == pytest.approx(2.0)
        assert estimate.total_cost == pytest.approx(42.0)

    def test_sort_uses_log_of_row_count(self, model):
        estimate = model.estimate_query_cost({"sort": {"a": 1}}, {"row_count": 1024})
        assert estimate.costs["sort"] == pytest.approx(5.0 * 2 * 10)

    def test_sort_log_floor(self, model):
        estimate = model.estimate_query_cost({"sort": {"a": 1}}, {"row_count": 1})
        assert estimate.costs["sort"] == pytest.approx(5.0)

    def test_project_ignores_memory(self, model):
        estimate = model.estimate_query_cost(
            {"project": ["a"]}, {"row_count": 50, "memory_type": "high"}
        )
        assert estimate.costs["project"] == pytest.approx(0.2)
        assert estimate.costs["scan"] == pytest.approx(5.0)

    def test_aggregate(self, model):
        estimate = model.estimate_query_cost({"aggregate": ["city"]}, {"row_count": 50})
        assert estimate.costs["aggregate"] == pytest.approx(3.0)

    def test_statistics_lookup_by_collection(self):
        statistics = Statistics.from_dict({
            "users": {"row_count": 2_000_000, "index_type": "partial"},
        })
        model = StatisticalModel(statistics=statistics)
        estimate = model.estimate_query_cost({}, {"collection_name": "users"})
        # huge(10) * partial(0.5) * low(1.0)
        assert estimate.total_cost == pytest.approx(5.0)

    def test_unknown_collection_uses_default(self, model):
        estimate = model.estimate_query_cost({}, {"collection_name": "missing"})
        assert estimate.statistics.row_count == 1000
        assert estimate.total_cost == pytest.approx(2.0)

    def test_context_statistics(self, model):
        context = {"collection_name": "users", "statistics": {"users": {"row_count": 20}}}
        estimate = model.estimate_query_cost({}, context)
        assert estimate.statistics.row_count == 20

    def test_sql_query(self, model):
        estimate = model.estimate_query_cost(
            "SELECT name FROM users WHERE age > 30", {"row_count": 50}
        )
        assert set(estimate.costs) == {"scan", "filter", "project"}

    def test_unknown_index_type(self, model):
        with pytest.raises(EstimationError):
            model.estimate_query_cost({}, {"index_type": "btree"})

    @pytest.mark.parametrize("row_count", ["many", True, -5, float("nan")])
    def test_invalid_row_count(self, model, row_count):
        with pytest.raises(EstimationError):
            model.estimate_query_cost({"filter": {"a": 1}}, {"row_count": row_count})

    def test_invalid_statistics_row_count(self, model):
        context = {"collection_name": "users", "statistics": {"users": {"row_count": "50"}}}
        with pytest.raises(EstimationError):
            model.estimate_query_cost({}, context)

    def test_idempotent(self, model):
        query = {"filter": {"a": 1}, "sort": {"a": 1}, "join": ["b"]}
        first = model.estimate_query_cost(query, {"row_count": 12345})
        second = model.estimate_query_cost(query, {"row_count": 12345})
        assert first.total_cost == second.total_cost

    def test_query_not_mutated(self, model):
        query = {"filter": {"a": 1}, "sort": {"a": 1}}
        before = copy.deepcopy(query)
        model.estimate_query_cost(query)
        assert query == before

    def test_total_is_sum_of_costs(self, model):
        query = {"filter": 1, "join": 1, "sort": 1, "aggregate": 1, "project": 1}
        estimate = model.estimate_query_cost(query, {"row_count": 777})
        assert estimate.total_cost == pytest.approx(sum(estimate.costs.values()), abs=1e-9)


class TestPlanEstimation:
    """Test plan cost estimation."""

    def test_flat_plan(self, model, small_plan):
        estimate = model.estimate_plan_cost(small_plan)
        assert set(estimate.node_costs) == {"node-0", "node-1"}
        assert estimate.node_costs["node-0"].cost == pytest.approx(1.0)
        assert estimate.node_costs["node-1"].cost == pytest.approx(0.5)
        assert estimate.total_cost == pytest.approx(1.5)

    def test_children_keys(self, model):
        plan = {
            "type": "join",
            "rowCount": 50,
            "children": [
                {"type": "scan", "rowCount": 50},
                {"type": "scan", "rowCount": 50},
            ],
        }
        estimate = model.estimate_plan_cost(plan)
        assert list(estimate.node_costs) == ["node-0", "join-0-node-0", "join-0-node-1"]
        assert estimate.total_cost == pytest.approx(12.0)

    def test_colliding_keys_overwrite(self, model):
        """A later node with the same derived key replaces the earlier entry."""
        plan = {
            "nodes": [
                {
                    "type": "x-1-node",
                    "rowCount": 50,
                    "children": [{"type": "scan", "rowCount": 50}],
                },
                {
                    "type": "x",
                    "rowCount": 50,
                    "children": [
                        {
                            "type": "node",
                            "rowCount": 50,
                            "children": [{"type": "filter", "rowCount": 50}],
                        }
                    ],
                },
            ]
        }
        estimate = model.estimate_plan_cost(plan)
        assert len(estimate.node_costs) == 4
        assert estimate.node_costs["x-1-node-0-node-0"].type == "filter"
        assert estimate.total_cost == pytest.approx(3.5)

    def test_unknown_node_type_weight(self, model):
        estimate = model.estimate_plan_cost({"type": "window", "rowCount": 50})
        assert estimate.total_cost == pytest.approx(1.0)

    def test_node_statistics_fallback(self, model):
        statistics = {"users": {"row_count": 50_000}}
        estimate = model.estimate_plan_cost({"type": "scan", "collection": "users"}, statistics)
        node = estimate.node_costs["node-0"]
        assert node.row_count == 50_000
        assert node.row_count_type == "large"
        assert node.cost == pytest.approx(5.0)

    def test_node_index_and_memory(self, model):
        plan = {"type": "scan", "rowCount": 50, "indexType": "full", "memoryType": "high"}
        estimate = model.estimate_plan_cost(plan)
        assert estimate.total_cost == pytest.approx(0.5)

    def test_total_is_sum_of_node_costs(self, model):
        plan = {
            "nodes": [
                {
                    "type": "aggregate",
                    "rowCount": 123_456,
                    "children": [
                        {"type": "sort", "rowCount": 4321, "memoryType": "medium"},
                        {
                            "type": "join",
                            "rowCount": 2_000_000,
                            "children": [{"type": "scan", "rowCount": 7, "indexType": "partial"}],
                        },
                    ],
                },
                {"type": "project", "rowCount": 99},
            ]
        }
        estimate = model.estimate_plan_cost(plan)
        total = sum(node.cost for node in estimate.node_costs.values())
        assert estimate.total_cost == pytest.approx(total, abs=1e-9)

    def test_empty_plan(self, model):
        assert model.estimate_plan_cost({"nodes": []}).total_cost == 0.0

    def test_invalid_plan(self, model):
        with pytest.raises(EstimationError):
            model.estimate_plan_cost(42)

    def test_invalid_node_row_count(self, model):
        with pytest.raises(EstimationError):
            model.estimate_plan_cost([{"type": "scan", "rowCount": "10"}])


class TestUpdate:
    """Test weight learning."""

    def test_update_scales_all_weights(self, model):
        plan = [{"type": "scan", "rowCount": 50}]
        before = model.get_weights()

        outcome = model.update(plan, {"total_cost": 3.0}, {"learning_rate": 0.1})

        # estimate 1.0 against actual 3.0
        error = 2.0 / 3.0
        assert outcome is UpdateOutcome.APPLIED
        after = model.get_weights()
        for key, weight in before.items():
            assert after[key] == pytest.approx(weight + weight * error * 0.1)

    def test_default_learning_rate(self, model):
        model.update([{"type": "scan", "rowCount": 50}], {"totalCost": 2.0})
        # error 0.5, default learning rate 0.1
        assert model.get_weights()["scan"] == pytest.approx(1.05)

    def test_weight_floor(self):
        config = StatisticalModelConfig(base_costs={"scan": 1.0, "seek": 0.1})
        model = StatisticalModel(config)
        for _ in range(5):
            model.update([{"type": "scan", "rowCount": 50}], {"total_cost": 0.0})
        weights = model.get_weights()
        assert all(weight >= 0.1 for weight in weights.values())
        assert weights["seek"] >= 0.1

    @pytest.mark.parametrize(
        "config",
        [
            StatisticalModelConfig(min_weight=0.01),
            StatisticalModelConfig(base_costs={"scan": 1.0, "seek": 0.05}),
        ],
    )
    def test_config_below_floor_rejected(self, config):
        with pytest.raises(ConfigurationError):
            StatisticalModel(config)

    def test_nested_metrics_shape(self, model):
        metrics = {"totalCost": 1.0, "nodeCosts": {"node-0": {"cost": 1.0}}}
        outcome = model.update([{"type": "scan", "rowCount": 50}], metrics)
        assert outcome is UpdateOutcome.APPLIED
        assert model.get_weights()["scan"] == pytest.approx(1.0)

    def test_bad_metrics_fail(self, model):
        before = model.get_weights()
        outcome = model.update([{"type": "scan"}], "not metrics")
        assert outcome is UpdateOutcome.FAILED
        assert model.get_weights() == before

    def test_bad_plan_fails(self, model):
        assert model.update(42, {"total_cost": 1.0}) is UpdateOutcome.FAILED

    def test_anomaly_logged(self, model, caplog):
        caplog.set_level(logging.WARNING, logger="cost_engine.models.statistical")
        model.update(
            [{"type": "scan", "rowCount": 50}],
            {"total_cost": 10.0},
            {"anomaly_threshold": 0.5},
        )
        assert any("Anomalous" in record.getMessage() for record in caplog.records)

    def test_reset_weights(self, model):
        model.update([{"type": "scan", "rowCount": 50}], {"total_cost": 10.0})
        model.reset_weights()
        assert model.get_weights() == StatisticalModelConfig().base_costs

    def test_supports_update(self, model):
        assert model.supports_update
