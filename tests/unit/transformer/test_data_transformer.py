"""
Unit tests for DataTransformer: filters, mappings, aggregations, normalization and pipelines.
"""

from __future__ import annotations

import json
import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from sievecore.errors import AggregationError, InvalidFilterError, MappingError, SerializationError
from sievecore.observability.metrics import METRICS
from sievecore.transformer import (
    Aggregation,
    AggregationFunction,
    DataTransformer,
    Filter,
    FilterOperator,
    Mapping,
    NormalizationRule,
    TransformationPipeline,
    TransformationStep,
    json_equal,
)

from tests.helpers import metric_delta

PEOPLE = [
    {"name": "Alice", "age": 34, "city": "Paris", "active": True},
    {"name": "Bob", "age": 19, "city": "Berlin", "active": False},
    {"name": "Carol", "age": 52, "city": "Paris", "active": True},
    {"name": "Dave", "city": "Rome"},
]


class TestFilter:
    """Record filtering."""

    @pytest.mark.parametrize(
        "flt, expected",
        [
            (Filter(field="city", operator=FilterOperator.EQUALS, value="Paris"), ["Alice", "Carol"]),
            (Filter(field="city", operator=FilterOperator.NOT_EQUALS, value="Paris"), ["Bob", "Dave"]),
            (Filter(field="age", operator=FilterOperator.GREATER_THAN, value=30), ["Alice", "Carol"]),
            (Filter(field="age", operator=FilterOperator.LESS_THAN, value=34), ["Bob"]),
            (Filter(field="age", operator=FilterOperator.GREATER_THAN_OR_EQUAL, value=34), ["Alice", "Carol"]),
            (Filter(field="age", operator=FilterOperator.LESS_THAN_OR_EQUAL, value=34), ["Alice", "Bob"]),
            (Filter(field="name", operator=FilterOperator.CONTAINS, value="o"), ["Bob", "Carol"]),
            (Filter(field="name", operator=FilterOperator.NOT_CONTAINS, value="o"), ["Alice", "Dave"]),
            (Filter(field="name", operator=FilterOperator.STARTS_WITH, value="C"), ["Carol"]),
            (Filter(field="name", operator=FilterOperator.ENDS_WITH, value="e"), ["Alice", "Dave"]),
            (Filter(field="name", operator=FilterOperator.REGEX, value="^[AB]"), ["Alice", "Bob"]),
            (Filter(field="active", operator=FilterOperator.EQUALS, value=True), ["Alice", "Carol"]),
        ],
    )
    def test_operators(self, transformer: DataTransformer, flt: Filter, expected):
        assert [p["name"] for p in transformer.filter(PEOPLE, [flt])] == expected

    def test_missing_field_drops_record(self, transformer: DataTransformer):
        flt = Filter(field="age", operator=FilterOperator.NOT_EQUALS, value=0)
        assert [p["name"] for p in transformer.filter(PEOPLE, [flt])] == ["Alice", "Bob", "Carol"]

    def test_numeric_comparison_requires_numbers(self, transformer: DataTransformer):
        data = [{"v": "50"}, {"v": 50}, {"v": True}]
        flt = Filter(field="v", operator=FilterOperator.GREATER_THAN, value=10)
        assert transformer.filter(data, [flt]) == [{"v": 50}]

    def test_booleans_never_equal_numbers(self, transformer: DataTransformer):
        data = [{"v": 1}, {"v": True}, {"v": 1.0}]
        flt = Filter(field="v", operator=FilterOperator.EQUALS, value=1)
        assert transformer.filter(data, [flt]) == [{"v": 1}, {"v": 1.0}]

    def test_string_operators_on_non_strings(self, transformer: DataTransformer):
        data = [{"v": 123}]
        assert transformer.filter(data, [Filter(field="v", operator="contains", value="1")]) == []
        assert transformer.filter(data, [Filter(field="v", operator="not_contains", value="1")]) == data

    def test_invalid_regex_matches_nothing(self, transformer: DataTransformer):
        flt = Filter(field="name", operator=FilterOperator.REGEX, value="(")
        assert transformer.filter(PEOPLE, [flt]) == []

    def test_non_mapping_records_are_dropped(self, transformer: DataTransformer):
        flt = Filter(field="a", operator=FilterOperator.EQUALS, value=1)
        assert transformer.filter([1, "a", None, {"a": 1}], [flt]) == [{"a": 1}]

    def test_no_filters_keeps_everything(self, transformer: DataTransformer):
        assert transformer.filter(PEOPLE, []) == PEOPLE

    def test_filters_from_dicts_and_aliases(self, transformer: DataTransformer):
        result = transformer.filter(PEOPLE, [{"field": "age", "operator": "gte", "value": 34}])
        assert [p["name"] for p in result] == ["Alice", "Carol"]

    def test_malformed_filter(self, transformer: DataTransformer):
        with pytest.raises(InvalidFilterError):
            transformer.filter(PEOPLE, [{"field": "age", "operator": "between"}])

    @settings(max_examples=60, deadline=None)
    @given(
        records=st.lists(
            st.fixed_dictionaries(
                {"a": st.integers(-5, 5), "b": st.sampled_from(["x", "xy", "y", ""])}
            ),
            max_size=25,
        ),
        threshold=st.integers(-5, 5),
        needle=st.sampled_from(["x", "y", ""]),
    )
    def test_filter_conjunction(self, records, threshold, needle):
        transformer = DataTransformer()
        first = Filter(field="a", operator=FilterOperator.GREATER_THAN, value=threshold)
        second = Filter(field="b", operator=FilterOperator.CONTAINS, value=needle)

        sequential = transformer.filter(transformer.filter(records, [first]), [second])
        combined = transformer.filter(records, [first, second])
        expected = [r for r in records if r["a"] > threshold and needle in r["b"]]

        assert sequential == combined == expected


class TestMapFields:
    def test_copy_is_additive(self, transformer: DataTransformer):
        result = transformer.map_fields([{"name": "Alice"}], [Mapping(from_field="name", to_field="label")])
        assert result == [{"name": "Alice", "label": "Alice"}]

    def test_input_not_mutated(self, transformer: DataTransformer):
        data = [{"name": "Alice"}]
        transformer.map_fields(data, [Mapping(from_field="name", to_field="label")])
        assert data == [{"name": "Alice"}]

    @pytest.mark.parametrize(
        "value, fn, expected",
        [
            ("Ab", "uppercase", "AB"),
            ("Ab", "lowercase", "ab"),
            ("  x ", "trim", "x"),
            (5, "uppercase", 5),
            (5, "to_string", "5"),
            ("s", "to_string", "s"),
            ({"k": 1}, "to_string", '{"k": 1}'),
            ("42", "to_number", 42),
            (" 4.5 ", "to_number", 4.5),
            (7, "to_number", 7),
            (None, "to_number", None),
        ],
    )
    def test_transform_functions(self, transformer: DataTransformer, value, fn, expected):
        result = transformer.map_fields([{"v": value}], [Mapping(from_field="v", to_field="out", transform_fn=fn)])
        assert result[0]["out"] == expected

    def test_missing_source_field_skipped(self, transformer: DataTransformer):
        result = transformer.map_fields([{"a": 1}], [Mapping(from_field="b", to_field="c")])
        assert result == [{"a": 1}]

    def test_non_mapping_record_becomes_empty(self, transformer: DataTransformer):
        assert transformer.map_fields([3], [Mapping(from_field="a", to_field="b")]) == [{}]

    @pytest.mark.parametrize("value", ["abc", "inf", "nan"])
    def test_to_number_failure(self, transformer: DataTransformer, value):
        with pytest.raises(MappingError):
            transformer.map_fields([{"v": value}], [Mapping(from_field="v", to_field="n", transform_fn="to_number")])

    def test_unknown_transform(self, transformer: DataTransformer):
        with pytest.raises(MappingError):
            transformer.map_fields([{"v": 1}], [Mapping(from_field="v", to_field="n", transform_fn="reverse")])


class TestAggregate:
    NUMBERS = [{"v": 10}, {"v": 20}, {"v": 30}]

    def _agg(self, transformer: DataTransformer, data, function, **kwargs):
        agg = Aggregation(field="v", function=function, output_field="out", **kwargs)
        return transformer.aggregate(data, [agg])["out"]

    def test_sum_average_count(self, transformer: DataTransformer):
        assert self._agg(transformer, self.NUMBERS, AggregationFunction.SUM) == 60
        assert self._agg(transformer, self.NUMBERS, AggregationFunction.AVERAGE) == 20
        assert self._agg(transformer, self.NUMBERS, AggregationFunction.COUNT) == 3

    def test_unique_first_seen_order(self, transformer: DataTransformer):
        data = [{"v": v} for v in [1, 1, 2, 3, 3]]
        assert self._agg(transformer, data, AggregationFunction.UNIQUE) == [1, 2, 3]

    def test_min_max_ignore_nan(self, transformer: DataTransformer):
        data = [{"v": 4}, {"v": math.nan}, {"v": -2}, {"v": "100"}]
        assert self._agg(transformer, data, AggregationFunction.MIN) == -2
        assert self._agg(transformer, data, AggregationFunction.MAX) == 4

    def test_min_max_with_huge_integers(self, transformer: DataTransformer):
        data = [{"v": 10**400}, {"v": 1}]
        assert self._agg(transformer, data, AggregationFunction.MIN) == 1
        assert self._agg(transformer, data, AggregationFunction.MAX) == 10**400

    def test_min_without_numbers(self, transformer: DataTransformer):
        with pytest.raises(AggregationError):
            self._agg(transformer, [{"v": "a"}], AggregationFunction.MIN)

    def test_average_without_numbers(self, transformer: DataTransformer):
        assert self._agg(transformer, [{"v": "a"}], AggregationFunction.AVERAGE) is None

    def test_sum_skips_non_numbers(self, transformer: DataTransformer):
        data = [{"v": 1}, {"v": "2"}, {"v": True}, {"v": 2.5}, {"x": 9}]
        assert self._agg(transformer, data, AggregationFunction.SUM) == 3.5

    def test_count_ignores_missing(self, transformer: DataTransformer):
        assert self._agg(transformer, [{"v": None}, {"x": 1}], AggregationFunction.COUNT) == 1

    def test_concat_and_join(self, transformer: DataTransformer):
        data = [{"v": "a"}, {"v": 1}, {"v": "b"}]
        assert self._agg(transformer, data, AggregationFunction.CONCAT) == "ab"
        assert self._agg(transformer, data, AggregationFunction.JOIN) == "a,1,b"
        assert self._agg(transformer, data, AggregationFunction.JOIN, separator=" | ") == "a | 1 | b"

    def test_multiple_aggregations(self, transformer: DataTransformer):
        result = transformer.aggregate(
            PEOPLE,
            [
                {"field": "age", "function": "sum", "output_field": "total_age"},
                {"field": "city", "function": "unique", "output_field": "cities"},
            ],
        )
        assert result == {"total_age": 105, "cities": ["Paris", "Berlin", "Rome"]}


class TestNormalize:
    @pytest.mark.parametrize(
        "rule_type, value, expected",
        [
            ("trim", "  a  ", "a"),
            ("phone_format", "+1 (555) 010-9999", "15550109999"),
            ("email_normalize", "  Bob@Example.COM ", "bob@example.com"),
            ("lowercase", "ABC", "abc"),
            ("uppercase", "abc", "ABC"),
            ("collapse_whitespace", "  a \n\t b  ", "a b"),
            ("unknown_rule", "  As Is ", "  As Is "),
            ("trim", 5, 5),
        ],
    )
    def test_rules(self, transformer: DataTransformer, rule_type, value, expected):
        result = transformer.normalize([{"f": value}], [NormalizationRule(field="f", rule_type=rule_type)])
        assert result == [{"f": expected}]

    def test_missing_field_untouched(self, transformer: DataTransformer):
        assert transformer.normalize([{"a": 1}], [{"field": "b", "rule_type": "trim"}]) == [{"a": 1}]


class TestPipeline:
    @pytest.fixture
    def pipeline(self) -> TransformationPipeline:
        return TransformationPipeline(
            name="adults",
            steps=[
                TransformationStep(
                    name="only-adults",
                    step_type="filter",
                    config={"filters": [{"field": "age", "operator": "greater_than_or_equal", "value": 21}]},
                ),
                TransformationStep(
                    name="upper-city",
                    step_type="map",
                    config={"mappings": [{"from_field": "city", "to_field": "city_code", "transform_fn": "uppercase"}]},
                ),
                TransformationStep(
                    name="tidy",
                    step_type="normalize",
                    config={"rules": [{"field": "name", "rule_type": "lowercase"}]},
                ),
            ],
        )

    def test_steps_run_in_order(self, transformer: DataTransformer, pipeline: TransformationPipeline):
        result = transformer.execute_pipeline(PEOPLE, pipeline)
        assert [(r["name"], r["city_code"]) for r in result] == [("alice", "PARIS"), ("carol", "PARIS")]

    def test_pipeline_from_dict(self, transformer: DataTransformer, pipeline: TransformationPipeline):
        result = transformer.execute_pipeline(PEOPLE, pipeline.model_dump())
        assert len(result) == 2

    def test_single_inline_filter(self, transformer: DataTransformer):
        pipeline = {
            "name": "p",
            "steps": [{"name": "f", "step_type": "filter", "config": {"field": "city", "operator": "eq", "value": "Rome"}}],
        }
        assert transformer.execute_pipeline(PEOPLE, pipeline) == [PEOPLE[3]]

    def test_aggregate_step_yields_one_record(self, transformer: DataTransformer):
        pipeline = TransformationPipeline(
            name="stats",
            steps=[
                TransformationStep(
                    name="count",
                    step_type="aggregate",
                    config={"aggregations": [{"field": "name", "function": "count", "output_field": "n"}]},
                )
            ],
        )
        assert transformer.execute_pipeline(PEOPLE, pipeline) == [{"n": 4}]

    def test_flatten_step(self, transformer: DataTransformer):
        pipeline = TransformationPipeline(
            name="flat", steps=[TransformationStep(name="f", step_type="flatten", config={"prefix": "r"})]
        )
        assert transformer.execute_pipeline([{"a": {"b": 1}}], pipeline) == [{"r_a_b": 1}]

    def test_unknown_step_aborts(self, transformer: DataTransformer):
        pipeline = TransformationPipeline(name="bad", steps=[TransformationStep(name="x", step_type="explode")])
        with pytest.raises(InvalidFilterError):
            transformer.execute_pipeline(PEOPLE, pipeline)

    def test_malformed_step_config(self, transformer: DataTransformer):
        pipeline = TransformationPipeline(
            name="bad", steps=[TransformationStep(name="x", step_type="filter", config={"filters": "age > 3"})]
        )
        with pytest.raises(InvalidFilterError):
            transformer.execute_pipeline(PEOPLE, pipeline)

    def test_empty_pipeline_is_identity(self, transformer: DataTransformer):
        assert transformer.execute_pipeline(PEOPLE, TransformationPipeline(name="noop")) == PEOPLE

    def test_step_metrics(self, transformer: DataTransformer, pipeline: TransformationPipeline):
        with metric_delta(METRICS["pipeline_steps"], 1, labels={"step_type": "map"}):
            transformer.execute_pipeline(PEOPLE, pipeline)

    def test_cached_results(self, transformer: DataTransformer, pipeline: TransformationPipeline):
        cached = pipeline.model_copy(update={"cache_results": True})

        first = transformer.execute_pipeline(PEOPLE, cached)
        with metric_delta(METRICS["pipeline_steps"], 0, labels={"step_type": "filter"}):
            second = transformer.execute_pipeline(PEOPLE, cached)
        assert first == second

        transformer.clear_cache()
        with metric_delta(METRICS["pipeline_steps"], 1, labels={"step_type": "filter"}):
            transformer.execute_pipeline(PEOPLE, cached)

    def test_cache_distinguishes_pipelines_with_same_name(self, transformer: DataTransformer):
        def city_filter(city: str) -> TransformationPipeline:
            return TransformationPipeline(
                name="by-city",
                cache_results=True,
                steps=[
                    TransformationStep(
                        name="f",
                        step_type="filter",
                        config={"field": "city", "operator": "equals", "value": city},
                    )
                ],
            )

        assert transformer.execute_pipeline(PEOPLE, city_filter("Rome")) == [PEOPLE[3]]
        assert transformer.execute_pipeline(PEOPLE, city_filter("Berlin")) == [PEOPLE[1]]


class TestJsonHelpers:
    def test_flatten(self, transformer: DataTransformer):
        nested = {"a": {"b": 1, "c": [10, {"d": 2}]}, "e": "x"}
        assert transformer.flatten_json(nested) == {"a_b": 1, "a_c_0": 10, "a_c_1_d": 2, "e": "x"}

    def test_flatten_with_prefix(self, transformer: DataTransformer):
        assert transformer.flatten_json({"a": 1}, "root") == {"root_a": 1}

    def test_flatten_drops_empty_containers(self, transformer: DataTransformer):
        assert transformer.flatten_json({"a": {}, "b": [], "c": None}) == {"c": None}

    def test_to_json(self, transformer: DataTransformer):
        data = {"name": "café", "n": [1, 2]}
        assert json.loads(transformer.to_json(data)) == data
        assert transformer.to_json_compact(data) == '{"name":"café","n":[1,2]}'

    @pytest.mark.parametrize("bad", [{"x": object()}, {"x": math.inf}])
    def test_to_json_unserializable(self, transformer: DataTransformer, bad):
        with pytest.raises(SerializationError):
            transformer.to_json(bad)


@pytest.mark.parametrize(
    "left, right, expected",
    [
        (1, 1.0, True),
        (True, 1, False),
        (False, 0, False),
        (True, True, True),
        ({"a": [1, True]}, {"a": [1, True]}, True),
        ({"a": [1, True]}, {"a": [1, 1]}, False),
        (None, None, True),
        ("1", 1, False),
    ],
)
def test_json_equal(left, right, expected):
    assert json_equal(left, right) is expected
