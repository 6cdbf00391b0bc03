"""Tests for projection descriptors, analysis and the projection optimizer."""

import pytest

from cost_engine.errors import ValidationError
from cost_engine.projection import (
    FieldSpec,
    ProjectionDescriptor,
    ProjectionOptimizer,
    ProjectionStrategy,
    analyze_projection,
    complexity_level,
    create_projection_descriptor,
    estimate_projection_cost,
    transform_projection,
    verify_projection,
)


@pytest.fixture
def nested_projection():
    return {"a": 1, "b": 1, "c": {"x": 1, "y": 1}}


class TestDescriptor:
    """Test projection descriptor creation."""

    def test_from_mapping(self, nested_projection):
        descriptor = create_projection_descriptor(nested_projection)
        assert descriptor.field_names() == ["a", "b", "c"]
        assert descriptor.nested_fields() == ["c"]
        assert descriptor.fields["c"].nested.field_names() == ["x", "y"]
        assert descriptor.type == "inclusion"
        assert descriptor.metadata["type"] == "inclusion"

    def test_from_list(self):
        descriptor = create_projection_descriptor(["name", "age"])
        assert descriptor.included_fields() == ["name", "age"]
        assert descriptor.to_dict() == {"name": 1, "age": 1}

    def test_none_is_empty(self):
        descriptor = create_projection_descriptor(None)
        assert len(descriptor) == 0
        assert descriptor.type == "empty"

    def test_types(self):
        assert create_projection_descriptor({"a": 0, "b": False}).type == "exclusion"
        assert create_projection_descriptor({"a": 1, "b": 0}).type == "mixed"

    def test_descriptor_passthrough(self):
        descriptor = create_projection_descriptor({"a": 1})
        assert create_projection_descriptor(descriptor) is descriptor

    def test_expanded_form(self):
        descriptor = create_projection_descriptor({
            "fields": {"a": {"include": True}, "b": {"include": False}},
            "metadata": {"source": "api"},
        })
        assert descriptor.included_fields() == ["a"]
        assert descriptor.excluded_fields() == ["b"]
        assert descriptor.metadata == {"source": "api", "type": "mixed"}

    def test_field_named_fields(self):
        """A plain projection may include a field called ``fields``."""
        descriptor = create_projection_descriptor({"fields": 1, "name": 1})
        assert descriptor.field_names() == ["fields", "name"]

    def test_to_dict_nested(self, nested_projection):
        descriptor = create_projection_descriptor(nested_projection)
        assert descriptor.to_dict() == nested_projection

    def test_invalid(self):
        with pytest.raises(ValidationError):
            create_projection_descriptor("name,age")
        with pytest.raises(ValidationError):
            create_projection_descriptor({"a": "yes"})
        with pytest.raises(ValidationError):
            create_projection_descriptor([1, 2])

    def test_transform_drops_fields(self):
        descriptor = create_projection_descriptor({"a": 1, "b": 1, "c": 0})

        def keep_included(name, spec):
            return spec if spec.include else None

        result = transform_projection(descriptor, keep_included, {"filtered": True})
        assert result.field_names() == ["a", "b"]
        assert result.metadata["filtered"] is True
        assert result.metadata["type"] == "inclusion"
        assert descriptor.field_names() == ["a", "b", "c"]

    def test_descriptor_is_immutable(self):
        descriptor = ProjectionDescriptor(fields={"a": FieldSpec()})
        with pytest.raises(AttributeError):
            descriptor.fields = {}


class TestAnalysis:
    """Test projection analysis."""

    def test_fields_and_complexity(self, nested_projection):
        analysis = analyze_projection(nested_projection)
        assert analysis.type == "inclusion"
        assert analysis.fields.count == 3
        assert analysis.fields.included_count == 3
        assert analysis.fields.nested_count == 1

        complexity = analysis.complexity
        assert complexity.field_count == 3
        assert complexity.nested_depth == 1
        assert complexity.total_field_count == 5
        assert complexity.complexity_score == pytest.approx(7.5)
        assert complexity.complexity_level == "moderate"

    def test_flat_projection(self):
        complexity = analyze_projection(["a", "b"]).complexity
        assert complexity.nested_depth == 0
        assert complexity.complexity_score == 2
        assert complexity.complexity_level == "simple"

    def test_depth_two(self):
        complexity = analyze_projection({"a": {"b": {"c": 1}}}).complexity
        assert complexity.nested_depth == 2
        assert complexity.total_field_count == 3
        assert complexity.complexity_score == pytest.approx(6.0)

    @pytest.mark.parametrize(
        "score,expected",
        [(0, "simple"), (4.9, "simple"), (5, "moderate"), (19.9, "moderate"),
         (20, "complex"), (49, "complex"), (50, "very_complex")],
    )
    def test_complexity_levels(self, score, expected):
        assert complexity_level(score) == expected

    def test_opportunities(self):
        projection = {f"field{i}": 1 for i in range(12)}
        projection["address"] = {"city": 1}
        analysis = analyze_projection(
            projection, supports_projection_pushdown=True, supports_lazy_loading=True
        )
        types = [opportunity.type for opportunity in analysis.opportunities]
        assert types == ["field_selection", "nested_fields", "pushdown", "lazy_loading"]

    def test_no_opportunities_for_small_projection(self):
        analysis = analyze_projection(["a", "b"], True, True)
        assert analysis.opportunities == []


class TestProjectionCost:
    """Test projection cost estimation."""

    def test_nested_projection_cost(self, nested_projection):
        cost = estimate_projection_cost(nested_projection)
        assert cost.retrieval_cost == pytest.approx(4.5)
        assert cost.processing_cost == pytest.approx(4.75)
        assert cost.memory_cost == pytest.approx(1.3)
        assert cost.total_cost == pytest.approx(10.55)

    def test_data_source_factor(self):
        cost = estimate_projection_cost(["a", "b"], data_source_cost_factor=3.0)
        assert cost.retrieval_cost == pytest.approx(6.0)

    def test_excluded_fields_not_retrieved(self):
        cost = estimate_projection_cost({"a": 0, "b": 0})
        assert cost.retrieval_cost == 0


class DropExcluded(ProjectionStrategy):
    name = "drop_excluded"

    def apply(self, projection, context=None):
        return transform_projection(
            projection, lambda name, spec: spec if spec.include else None
        )


class Noop(ProjectionStrategy):
    name = "noop"

    def apply(self, projection, context=None):
        return projection


class Broken(ProjectionStrategy):
    name = "broken"

    def apply(self, projection, context=None):
        raise RuntimeError("strategy bug")


class DropEverything(ProjectionStrategy):
    name = "drop_everything"

    def apply(self, projection, context=None):
        return transform_projection(projection, lambda name, spec: None)


class AddField(ProjectionStrategy):
    name = "add_field"

    def apply(self, projection, context=None):
        fields = dict(projection.fields)
        fields["extra"] = FieldSpec()
        return ProjectionDescriptor(fields=fields)


class TestProjectionOptimizer:
    """Test the strategy pipeline."""

    def test_runs_strategies_in_order(self):
        optimizer = ProjectionOptimizer([Noop()])
        optimizer.add_strategy(DropExcluded())

        result = optimizer.optimize({"a": 1, "b": 0})

        assert result.field_names() == ["a"]
        record = optimizer.get_history()[-1]
        assert record.applied == ["drop_excluded"]
        assert record.original.field_names() == ["a", "b"]

    def test_failing_strategy_skipped(self):
        optimizer = ProjectionOptimizer([Broken(), DropExcluded()])
        result = optimizer.optimize({"a": 1, "b": 0})
        assert result.field_names() == ["a"]
        assert optimizer.get_history()[-1].applied == ["drop_excluded"]

    def test_no_strategies(self):
        optimizer = ProjectionOptimizer()
        result = optimizer.optimize(["a"])
        assert result.to_dict() == {"a": 1}

    def test_history_bounded(self):
        optimizer = ProjectionOptimizer(history_size=2)
        for name in ["a", "b", "c"]:
            optimizer.optimize([name])
        history = optimizer.get_history()
        assert [record.original.field_names() for record in history] == [["b"], ["c"]]
        optimizer.clear_history()
        assert optimizer.get_history() == []

    def test_failed_verification_rolls_back(self):
        optimizer = ProjectionOptimizer([DropEverything(), DropExcluded()])

        result = optimizer.optimize({"a": 1, "b": 0})

        assert result.field_names() == ["a"]
        record = optimizer.get_history()[-1]
        assert record.applied == ["drop_excluded"]
        assert record.rolled_back == ["drop_everything"]

    def test_added_field_rolled_back(self):
        optimizer = ProjectionOptimizer([AddField()])
        result = optimizer.optimize(["a", "b"])
        assert result.field_names() == ["a", "b"]
        assert optimizer.get_history()[-1].rolled_back == ["add_field"]

    def test_verification_disabled(self):
        optimizer = ProjectionOptimizer([DropEverything()], verify=False)
        result = optimizer.optimize(["a", "b"])
        assert result.field_names() == []
        assert optimizer.get_history()[-1].applied == ["drop_everything"]


class TestVerifyProjection:
    """Test the checks applied to each strategy result."""

    @pytest.fixture
    def original(self):
        return create_projection_descriptor({"a": 1, "b": 1, "c": 0})

    def test_narrowing_passes(self, original):
        narrowed = create_projection_descriptor({"a": 1, "c": 0})
        assert verify_projection(original, narrowed) is None

    def test_lazy_marking_passes(self, original):
        marked = transform_projection(
            original, lambda name, spec: FieldSpec(include=spec.include, lazy=name == "b")
        )
        assert verify_projection(original, marked) is None

    def test_added_field(self, original):
        widened = create_projection_descriptor({"a": 1, "b": 1, "c": 0, "d": 1})
        assert "'d' was added" in verify_projection(original, widened)

    def test_flipped_field(self, original):
        flipped = create_projection_descriptor({"a": 0, "b": 1, "c": 0})
        assert "'a' changed" in verify_projection(original, flipped)

    def test_all_included_dropped(self, original):
        excluded_only = create_projection_descriptor({"c": 0})
        assert verify_projection(original, excluded_only) == "every included field was dropped"

    def test_exclusion_projection_may_stay_empty(self):
        original = create_projection_descriptor({"secret": 0})
        assert verify_projection(original, create_projection_descriptor({})) is None

    def test_not_a_descriptor(self, original):
        assert "not a projection descriptor" in verify_projection(original, {"a": 1})
