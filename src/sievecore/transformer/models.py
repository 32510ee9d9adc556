"""
Configuration records for record transformation.

Everything here is plain data so filters, mappings and whole pipelines can
be authored as JSON or YAML.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"


_OPERATOR_ALIASES = {
    "eq": FilterOperator.EQUALS,
    "ne": FilterOperator.NOT_EQUALS,
    "gt": FilterOperator.GREATER_THAN,
    "lt": FilterOperator.LESS_THAN,
    "gte": FilterOperator.GREATER_THAN_OR_EQUAL,
    "lte": FilterOperator.LESS_THAN_OR_EQUAL,
}


class Filter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    operator: FilterOperator
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def resolve_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _OPERATOR_ALIASES.get(v.lower(), v.lower())
        return v


class Mapping(BaseModel):
    model_config = ConfigDict(extra="forbid")

    from_field: str
    to_field: str
    transform_fn: Optional[str] = Field(
        default=None, description="One of uppercase, lowercase, trim, to_string, to_number."
    )


class AggregationFunction(str, Enum):
    SUM = "sum"
    AVERAGE = "average"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    CONCAT = "concat"
    JOIN = "join"
    UNIQUE = "unique"


class Aggregation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    function: AggregationFunction
    output_field: str
    separator: str = Field(default=",", description="Separator for the join function.")


class NormalizationRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    rule_type: str
    options: Dict[str, Any] = Field(default_factory=dict)


class TransformationStep(BaseModel):
    """One pipeline step; ``config`` is interpreted according to ``step_type``."""

    model_config = ConfigDict(extra="forbid")

    name: str
    step_type: str
    config: Dict[str, Any] = Field(default_factory=dict)


class TransformationPipeline(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    steps: List[TransformationStep] = Field(default_factory=list)
    parallel: bool = Field(default=False, description="Execution hint only.")
    cache_results: bool = Field(default=False, description="Memoize outputs in the transformer instance.")
