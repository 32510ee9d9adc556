"""
Post-processing of extracted records: filter, map, aggregate, normalize,
flatten, and ordered pipelines of those steps.
"""

from .data_transformer import DataTransformer, json_equal
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

__all__ = [
    "Aggregation",
    "AggregationFunction",
    "DataTransformer",
    "Filter",
    "FilterOperator",
    "Mapping",
    "NormalizationRule",
    "TransformationPipeline",
    "TransformationStep",
    "json_equal",
]
