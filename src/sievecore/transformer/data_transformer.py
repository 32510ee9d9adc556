"""
Filtering, mapping, aggregation and normalization of extracted records.
"""

from __future__ import annotations

import copy
import hashlib
import json
import math
import re
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, ValidationError

from .. import observability
from ..errors import (
    AggregationError,
    InvalidFilterError,
    MappingError,
    NormalizationError,
    SerializationError,
    TransformationError,
)
from .models import (
    Aggregation,
    AggregationFunction,
    Filter,
    FilterOperator,
    Mapping,
    NormalizationRule,
    TransformationPipeline,
    TransformationStep,
)

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]
ModelT = TypeVar("ModelT", bound=BaseModel)

_NON_DIGIT_RE = re.compile(r"\D")
_WHITESPACE_RE = re.compile(r"\s+")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")


class DataTransformer:
    """
    Stateless record transformations plus an optional pipeline result cache.

    Records are JSON-like mappings. Non-mapping records have no fields: they
    never pass a filter and become empty records when mapped or normalized.
    """

    def __init__(self) -> None:
        self._pipeline_cache: Dict[str, List[Record]] = {}
        self._cache_lock = threading.Lock()
        self.logger = logger.bind(component="DataTransformer")

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def filter(self, data: Sequence[Any], filters: Iterable[Union[Filter, Dict[str, Any]]]) -> List[Any]:
        """Keep records matching every filter (logical AND)."""
        parsed = _coerce_all(Filter, filters, InvalidFilterError)
        self.logger.debug("Applying filters", filter_count=len(parsed), item_count=len(data))

        result = list(data)
        for flt in parsed:
            result = [item for item in result if self._matches(item, flt)]

        self.logger.debug("Filtered result", item_count=len(result))
        return result

    @staticmethod
    def _matches(item: Any, flt: Filter) -> bool:
        if not isinstance(item, dict) or flt.field not in item:
            return False

        value = item[flt.field]
        expected = flt.value
        op = flt.operator

        if op is FilterOperator.EQUALS:
            return json_equal(value, expected)
        if op is FilterOperator.NOT_EQUALS:
            return not json_equal(value, expected)

        if op in (
            FilterOperator.GREATER_THAN,
            FilterOperator.LESS_THAN,
            FilterOperator.GREATER_THAN_OR_EQUAL,
            FilterOperator.LESS_THAN_OR_EQUAL,
        ):
            if not (is_number(value) and is_number(expected)):
                return False
            if op is FilterOperator.GREATER_THAN:
                return value > expected
            if op is FilterOperator.LESS_THAN:
                return value < expected
            if op is FilterOperator.GREATER_THAN_OR_EQUAL:
                return value >= expected
            return value <= expected

        both_strings = isinstance(value, str) and isinstance(expected, str)
        if op is FilterOperator.CONTAINS:
            return both_strings and expected in value
        if op is FilterOperator.NOT_CONTAINS:
            return not both_strings or expected not in value
        if op is FilterOperator.STARTS_WITH:
            return both_strings and value.startswith(expected)
        if op is FilterOperator.ENDS_WITH:
            return both_strings and value.endswith(expected)

        # FilterOperator.REGEX
        if not both_strings:
            return False
        try:
            return re.search(expected, value) is not None
        except re.error:
            return False

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def map_fields(self, data: Sequence[Any], mappings: Iterable[Union[Mapping, Dict[str, Any]]]) -> List[Record]:
        """Copy ``from_field`` to ``to_field`` on every record, optionally transformed."""
        parsed = _coerce_all(Mapping, mappings, MappingError)
        self.logger.debug("Mapping fields", mapping_count=len(parsed), item_count=len(data))

        result = []
        for item in data:
            record = dict(item) if isinstance(item, dict) else {}
            for mapping in parsed:
                if mapping.from_field not in record:
                    continue
                value = record[mapping.from_field]
                if mapping.transform_fn:
                    value = apply_simple_transform(value, mapping.transform_fn)
                record[mapping.to_field] = value
            result.append(record)
        return result

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def aggregate(self, data: Sequence[Any], aggregations: Iterable[Union[Aggregation, Dict[str, Any]]]) -> Record:
        """Reduce all records to a single record, one output field per aggregation."""
        parsed = _coerce_all(Aggregation, aggregations, AggregationError)
        self.logger.debug("Aggregating", item_count=len(data), aggregation_count=len(parsed))

        result: Record = {}
        for agg in parsed:
            values = [item[agg.field] for item in data if isinstance(item, dict) and agg.field in item]
            result[agg.output_field] = self._reduce(values, agg)
        return result

    @staticmethod
    def _reduce(values: List[Any], agg: Aggregation) -> Any:
        fn = agg.function

        if fn is AggregationFunction.COUNT:
            return len(values)

        if fn is AggregationFunction.SUM:
            numbers = [v for v in values if is_number(v)]
            return sum(numbers)

        if fn is AggregationFunction.AVERAGE:
            numbers = [v for v in values if is_number(v)]
            if not numbers:
                return None
            return sum(numbers) / len(numbers)

        if fn in (AggregationFunction.MIN, AggregationFunction.MAX):
            numbers = [v for v in values if is_number(v) and not (isinstance(v, float) and math.isnan(v))]
            if not numbers:
                raise AggregationError(f"Cannot aggregate {fn.value} of '{agg.field}': no numeric values")
            return min(numbers) if fn is AggregationFunction.MIN else max(numbers)

        if fn is AggregationFunction.CONCAT:
            return "".join(v for v in values if isinstance(v, str))

        if fn is AggregationFunction.JOIN:
            return agg.separator.join(stringify(v) for v in values)

        # AggregationFunction.UNIQUE
        seen = set()
        unique = []
        for value in values:
            key = json.dumps(value, sort_keys=True, default=str)
            if key not in seen:
                seen.add(key)
                unique.append(value)
        return unique

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(
        self, data: Sequence[Any], rules: Iterable[Union[NormalizationRule, Dict[str, Any]]]
    ) -> List[Record]:
        """Rewrite fields in place per rule; unknown rule types leave values unchanged."""
        parsed = _coerce_all(NormalizationRule, rules, NormalizationError)
        self.logger.debug("Normalizing", item_count=len(data), rule_count=len(parsed))

        result = []
        for item in data:
            record = dict(item) if isinstance(item, dict) else {}
            for rule in parsed:
                if rule.field in record:
                    record[rule.field] = normalize_value(record[rule.field], rule.rule_type)
            result.append(record)
        return result

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def execute_pipeline(
        self, data: Sequence[Any], pipeline: Union[TransformationPipeline, Dict[str, Any]]
    ) -> List[Any]:
        """Run the pipeline's steps in order.

        Raises:
            InvalidFilterError: a step has an unknown type or malformed config.
        """
        pipeline = self.load_pipeline(pipeline)

        cache_key = None
        if pipeline.cache_results:
            cache_key = _cache_key(pipeline, data)
            with self._cache_lock:
                cached = self._pipeline_cache.get(cache_key)
            if cached is not None:
                self.logger.debug("Pipeline cache hit", pipeline=pipeline.name)
                return copy.deepcopy(cached)

        self.logger.debug("Executing pipeline", pipeline=pipeline.name, step_count=len(pipeline.steps))

        result: List[Any] = list(data)
        for step in pipeline.steps:
            handler = self._step_handlers().get(step.step_type)
            if handler is None:
                self.logger.error("Unknown transformation step type", step=step.name, step_type=step.step_type)
                raise InvalidFilterError(f"Unknown step type: {step.step_type}")

            self.logger.debug("Executing step", step=step.name, step_type=step.step_type)
            result = handler(result, step)
            observability.increment("pipeline_steps", labels={"step_type": step.step_type})

        if cache_key is not None:
            with self._cache_lock:
                self._pipeline_cache[cache_key] = copy.deepcopy(result)
        return result

    @staticmethod
    def load_pipeline(pipeline: Union[TransformationPipeline, Dict[str, Any]]) -> TransformationPipeline:
        """Validate a pipeline definition, raising InvalidFilterError when it is malformed."""
        return _coerce(TransformationPipeline, pipeline, InvalidFilterError)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._pipeline_cache.clear()

    def _step_handlers(self) -> Dict[str, Callable[[List[Any], TransformationStep], List[Any]]]:
        return {
            "filter": lambda data, step: self.filter(data, _step_items(step, "filters", Filter)),
            "map": lambda data, step: self.map_fields(data, _step_items(step, "mappings", Mapping)),
            "normalize": lambda data, step: self.normalize(data, _step_items(step, "rules", NormalizationRule)),
            "aggregate": lambda data, step: [self.aggregate(data, _step_items(step, "aggregations", Aggregation))],
            "flatten": lambda data, step: [self.flatten_json(item, step.config.get("prefix")) for item in data],
        }

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def flatten_json(self, data: Any, prefix: Optional[str] = None) -> Record:
        """Flatten nested objects and arrays into ``_``-joined keys."""
        result: Record = {}
        _flatten(data, prefix or "", result)
        return result

    def to_json(self, data: Any) -> str:
        return _dumps(data, indent=2)

    def to_json_compact(self, data: Any) -> str:
        return _dumps(data, separators=(",", ":"))


# ----------------------------------------------------------------------
# Value helpers
# ----------------------------------------------------------------------


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def json_equal(left: Any, right: Any) -> bool:
    """Equality with JSON semantics: booleans never equal numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    return left == right


def stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def apply_simple_transform(value: Any, fn_name: str) -> Any:
    """Inline transform used by field mappings."""
    if fn_name == "uppercase":
        return value.upper() if isinstance(value, str) else value
    if fn_name == "lowercase":
        return value.lower() if isinstance(value, str) else value
    if fn_name == "trim":
        return value.strip() if isinstance(value, str) else value
    if fn_name == "to_string":
        return stringify(value)
    if fn_name == "to_number":
        if is_number(value):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                number = int(text) if _INTEGER_RE.match(text) else float(text)
            except ValueError:
                raise MappingError(f"Cannot convert '{value}' to number") from None
            if isinstance(number, float) and not math.isfinite(number):
                raise MappingError(f"Cannot convert '{value}' to a finite number")
            return number
        return None
    raise MappingError(f"Unknown transformation: {fn_name}")


def normalize_value(value: Any, rule_type: str) -> Any:
    if not isinstance(value, str):
        return value
    if rule_type == "trim":
        return value.strip()
    if rule_type == "phone_format":
        return _NON_DIGIT_RE.sub("", value)
    if rule_type == "email_normalize":
        return value.lower().strip()
    if rule_type == "lowercase":
        return value.lower()
    if rule_type == "uppercase":
        return value.upper()
    if rule_type == "collapse_whitespace":
        return _WHITESPACE_RE.sub(" ", value).strip()
    return value


def _flatten(value: Any, prefix: str, result: Record) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            _flatten(child, f"{prefix}_{key}" if prefix else str(key), result)
    elif isinstance(value, (list, tuple)):
        for index, child in enumerate(value):
            _flatten(child, f"{prefix}_{index}" if prefix else str(index), result)
    else:
        result[prefix] = value


def _dumps(data: Any, **kwargs: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False, allow_nan=False, **kwargs)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize data to JSON: {e}") from e


def _cache_key(pipeline: TransformationPipeline, data: Sequence[Any]) -> str:
    """Key on the pipeline definition and the input, not just the pipeline name."""
    try:
        payload = json.dumps(list(data), sort_keys=True, default=str)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot hash pipeline input: {e}") from e
    digest = hashlib.sha256(pipeline.model_dump_json().encode("utf-8"))
    digest.update(payload.encode("utf-8"))
    return f"{pipeline.name}:{digest.hexdigest()}"


def _coerce(model: Type[ModelT], item: Any, error: Type[TransformationError]) -> ModelT:
    if isinstance(item, model):
        return item
    try:
        return model.model_validate(item)
    except ValidationError as e:
        raise error(f"Invalid {model.__name__} configuration: {e}") from e


def _coerce_all(model: Type[ModelT], items: Iterable[Any], error: Type[TransformationError]) -> List[ModelT]:
    return [_coerce(model, item, error) for item in items]


def _step_items(step: TransformationStep, key: str, model: Type[ModelT]) -> List[ModelT]:
    """Read a step's config list; a config without ``key`` is one inline item."""
    config = step.config
    raw = config.get(key)
    if raw is None:
        raw = [config] if config else []
    if not isinstance(raw, list):
        raise InvalidFilterError(f"Step '{step.name}': '{key}' must be a list")
    return _coerce_all(model, raw, InvalidFilterError)
