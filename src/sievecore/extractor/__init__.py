"""
Schema-driven structured data extraction.

A schema is a named list of field rules (selector, optional attribute,
transformations, validation pattern, target type). The extractor applies it
to a parsed document and reports how many fields succeeded.
"""

from .data_extractor import DataExtractor, convert_value
from .models import DataType, ExtractionResult, ExtractionSchema, FieldRule
from .patterns import PatternCache, apply_transformation, parse_transformation

__all__ = [
    "DataExtractor",
    "DataType",
    "ExtractionResult",
    "ExtractionSchema",
    "FieldRule",
    "PatternCache",
    "apply_transformation",
    "convert_value",
    "parse_transformation",
]
